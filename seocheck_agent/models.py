from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

Priority = Literal["high", "medium", "low"]
ImageFormat = Literal["next-gen", "legacy", "unknown"]


class AnalyzeRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    keyphrase: str = Field(..., min_length=1, max_length=500)
    # Language of the keyphrase; accepted for multilingual callers.
    locale: str | None = Field(None, max_length=16)
    # Comma-separated; each entry is sanitized like the keyphrase.
    secondary_keywords: str | None = Field(None, max_length=2000)


class CheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    result: str
    passed: bool
    priority: Priority
    learn_more_link: str
    recommendation: str | None = None


class AnalyzeResponse(BaseModel):
    url: str
    keyphrase: str
    secondary_keywords: list[str] = []
    checks: list[CheckResult]
    passed_checks: int
    failed_checks: int
    score: int = Field(..., ge=0, le=100)
    timestamp: str
    timings_ms: dict[str, int] = {}
    warnings: list[str] = []

    @model_validator(mode="after")
    def _counts_cover_checks(self) -> "AnalyzeResponse":
        if self.passed_checks + self.failed_checks != len(self.checks):
            raise ValueError("passed_checks + failed_checks must equal the number of checks")
        return self


class ErrorResponse(BaseModel):
    error: str
    code: str
    retryable: bool = False
    upstream_status: int | None = None
    field: str | None = None
    timestamp: str


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class ImageRef:
    src: str
    alt: str
    format: ImageFormat


@dataclass(frozen=True)
class LinkRef:
    href: str
    is_internal: bool


@dataclass(frozen=True)
class ExtractedDocument:
    """Read-only view of one fetched page, built by the extractor."""

    url: str = ""
    title: str = ""
    meta_description: str = ""
    open_graph: Mapping[str, str] = field(default_factory=dict)
    canonical: str = ""
    headings: tuple[Heading, ...] = ()
    images: tuple[ImageRef, ...] = ()
    links: tuple[LinkRef, ...] = ()
    text: str = ""
    paragraphs: tuple[str, ...] = ()
    # Inline script bodies; inspected only, never part of `text`.
    scripts: tuple[str, ...] = ()
    scripts_external: tuple[str, ...] = ()
    stylesheets: tuple[str, ...] = ()
    schema_types: tuple[str, ...] = ()

    def headings_at(self, level: int) -> list[Heading]:
        return [h for h in self.headings if h.level == level]

    @property
    def internal_links(self) -> list[LinkRef]:
        return [link for link in self.links if link.is_internal]

    @property
    def outbound_links(self) -> list[LinkRef]:
        return [link for link in self.links if not link.is_internal]


@dataclass(frozen=True)
class HostPageContext:
    """Page data the embedding host already knows (e.g. from its own page API).

    Any field left as None is taken from the fetched page instead.
    """

    html: str | None = None
    title: str | None = None
    meta_description: str | None = None
    open_graph: Mapping[str, str] | None = None
