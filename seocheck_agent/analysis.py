from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from .checks import run_checks
from .errors import AnalysisError, InvalidKeyphrase
from .extractor import extract_document
from .fetcher import FetchedPage
from .models import AnalyzeRequest, AnalyzeResponse, CheckResult, ExtractedDocument, HostPageContext
from .sanitizer import sanitize_keywords
from .scoring import score_checks
from .url_validator import validate_url

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[FetchedPage]]
# Returns replacement advice for a failed check, or None to keep the template.
Recommender = Callable[[CheckResult, str], Awaitable[str | None]]

MAX_SECONDARY_KEYWORDS = 10
MAX_SECONDARY_KEYWORD_LENGTH = 100


class AnalysisStage(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CHECKING = "checking"
    RECOMMENDING = "recommending"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class AnalysisEvent:
    name: str
    success: bool
    duration_ms: int
    detail: str | None = None


def _log_event(event: AnalysisEvent) -> None:
    logger.debug(
        "event=%s success=%s duration_ms=%d detail=%s",
        event.name, event.success, event.duration_ms, event.detail,
    )


def parse_secondary_keywords(raw: str | None, locale: str | None, keyphrase: str) -> tuple[str, ...]:
    """Split a comma-separated list and sanitize each entry.

    Empty entries, entries longer than MAX_SECONDARY_KEYWORD_LENGTH and repeats
    (of the keyphrase or of each other) are dropped; at most
    MAX_SECONDARY_KEYWORDS are kept.
    """
    if not raw:
        return ()
    seen = {keyphrase.casefold()}
    out = []
    for entry in raw.split(","):
        keyword = sanitize_keywords(entry, locale)
        if not keyword or len(keyword) > MAX_SECONDARY_KEYWORD_LENGTH or keyword.casefold() in seen:
            continue
        seen.add(keyword.casefold())
        out.append(keyword)
        if len(out) == MAX_SECONDARY_KEYWORDS:
            break
    return tuple(out)


def _apply_host_context(doc: ExtractedDocument, ctx: HostPageContext) -> ExtractedDocument:
    overrides = {}
    if ctx.title is not None:
        overrides["title"] = ctx.title.strip()
    if ctx.meta_description is not None:
        overrides["meta_description"] = ctx.meta_description.strip()
    if ctx.open_graph is not None:
        overrides["open_graph"] = {**doc.open_graph, **ctx.open_graph}
    return dataclasses.replace(doc, **overrides) if overrides else doc


class Analyzer:
    """Runs one analysis: validate, fetch, extract, check, score.

    The fetcher, the optional host page context, the optional recommender and
    the event sink are all injected; nothing here reads globals.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        host_context: HostPageContext | None = None,
        on_event: Callable[[AnalysisEvent], None] | None = None,
        clock: Callable[[], float] = time.perf_counter,
        recommender: Recommender | None = None,
    ):
        self.fetcher = fetcher
        self.host_context = host_context
        self.on_event = on_event or _log_event
        self.clock = clock
        self.recommender = recommender

    async def _recommend(self, checks: list[CheckResult], keyphrase: str) -> list[CheckResult]:
        failed = [i for i, c in enumerate(checks) if not c.passed]
        if not failed:
            return checks
        answers = await asyncio.gather(
            *(self.recommender(checks[i], keyphrase) for i in failed),
            return_exceptions=True,
        )
        out = list(checks)
        for i, answer in zip(failed, answers):
            if isinstance(answer, Exception):
                logger.warning("Recommender failed for %r: %s", checks[i].title, answer)
            elif isinstance(answer, str) and answer.strip():
                out[i] = checks[i].model_copy(update={"recommendation": answer.strip()})
        return out

    def _publish(self, event: AnalysisEvent) -> None:
        try:
            self.on_event(event)
        except Exception:
            logger.exception("Event sink failed for %s", event.name)

    def _emit(self, name: str, success: bool, started: float, detail: str | None = None) -> None:
        self._publish(AnalysisEvent(name, success, int((self.clock() - started) * 1000), detail))

    async def analyze(self, req: AnalyzeRequest) -> AnalyzeResponse:
        t0 = self.clock()
        timings: dict[str, int] = {}
        warnings: list[str] = []
        stage = AnalysisStage.RECEIVED
        self._emit(stage.value, True, t0)

        def finish(name: str, started: float) -> None:
            timings[name] = int((self.clock() - started) * 1000)
            self._emit(name, True, started)

        try:
            stage = AnalysisStage.VALIDATING
            started = self.clock()
            url = validate_url(req.url)
            keyphrase = sanitize_keywords(req.keyphrase, req.locale)
            if not keyphrase:
                raise InvalidKeyphrase("The keyphrase is empty after removing markup.")
            secondary = parse_secondary_keywords(req.secondary_keywords, req.locale, keyphrase)
            finish(stage.value, started)
            logger.info("Analyzing %s", url)

            stage = AnalysisStage.FETCHING
            started = self.clock()
            ctx = self.host_context
            if ctx is not None and ctx.html is not None:
                html, page_url = ctx.html, url
                warnings.append("Page content was supplied by the host; the live page was not fetched.")
            else:
                page = await self.fetcher(url)
                html, page_url = page.html, page.final_url
                if page.redirect_chain:
                    warnings.append(f"Followed {len(page.redirect_chain)} redirect(s) to {page.final_url}.")
                if page.truncated:
                    warnings.append("The page was larger than the size limit; only the beginning was analyzed.")
            finish(stage.value, started)

            stage = AnalysisStage.EXTRACTING
            started = self.clock()
            doc = extract_document(html, page_url)
            if ctx is not None:
                doc = _apply_host_context(doc, ctx)
            finish(stage.value, started)

            stage = AnalysisStage.CHECKING
            started = self.clock()

            def on_result(result: CheckResult, duration_ms: float) -> None:
                self._publish(AnalysisEvent(f"check:{result.title}", result.passed, int(duration_ms)))

            checks = run_checks(doc, keyphrase, on_result=on_result, secondary_keywords=secondary)
            finish(stage.value, started)

            if self.recommender is not None:
                stage = AnalysisStage.RECOMMENDING
                started = self.clock()
                checks = await self._recommend(checks, keyphrase)
                finish(stage.value, started)

            stage = AnalysisStage.SCORING
            started = self.clock()
            score = score_checks(checks)
            finish(stage.value, started)
        except Exception as e:
            code = e.code if isinstance(e, AnalysisError) else type(e).__name__
            self._emit(AnalysisStage.FAILED.value, False, t0, f"{stage.value}: {code}")
            raise

        passed = sum(1 for c in checks if c.passed)
        timings["total"] = int((self.clock() - t0) * 1000)
        self._emit(AnalysisStage.DONE.value, True, t0)
        logger.info("Analysis of %s finished: score=%d (%d/%d passed)", page_url, score, passed, len(checks))

        return AnalyzeResponse(
            url=page_url,
            keyphrase=keyphrase,
            secondary_keywords=list(secondary),
            checks=checks,
            passed_checks=passed,
            failed_checks=len(checks) - passed,
            score=score,
            timestamp=datetime.now(timezone.utc).isoformat(),
            timings_ms=timings,
            warnings=warnings,
        )
