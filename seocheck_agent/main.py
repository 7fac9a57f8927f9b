from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from .analysis import Analyzer, Fetcher, Recommender
from .config import Settings
from .errors import AnalysisError, ForbiddenOrigin
from .fetcher import PageFetcher
from .models import AnalyzeRequest, AnalyzeResponse, ErrorResponse, HostPageContext
from .origins import OriginAllowList
from .recommendations import GeminiRecommender

logger = logging.getLogger(__name__)

# Paths behind the origin allow-list; /healthz stays open for health checks.
PROTECTED_PATHS = ("/analyze",)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(exc: AnalysisError) -> JSONResponse:
    body = ErrorResponse(
        error=exc.message,
        code=exc.code,
        retryable=exc.retryable,
        upstream_status=getattr(exc, "upstream_status", None),
        field=exc.field,
        timestamp=_now_iso(),
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


def _cors_headers(origin: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Max-Age": "86400",
        "Vary": "Origin",
    }


def create_app(
    settings: Settings | None = None,
    fetcher: Fetcher | None = None,
    host_context: HostPageContext | None = None,
    recommender: Recommender | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if recommender is None:
        recommender = GeminiRecommender.from_settings(settings)
    allowed_origins = OriginAllowList.from_entries(settings.cors_origins)
    fetcher = fetcher or PageFetcher(settings)

    app = FastAPI(title="SEOCheck Agent", version="0.1.0")

    @app.middleware("http")
    async def origin_gate(request: Request, call_next):
        if request.url.path not in PROTECTED_PATHS:
            return await call_next(request)

        origin = request.headers.get("origin")
        if not allowed_origins.is_allowed(origin):
            logger.warning("Blocked %s %s from origin %r", request.method, request.url.path, (origin or "")[:200])
            return _error_response(ForbiddenOrigin("Origin not allowed."))

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=_cors_headers(origin))

        response = await call_next(request)
        response.headers.update(_cors_headers(origin))
        return response

    @app.exception_handler(AnalysisError)
    async def analysis_error_handler(request: Request, exc: AnalysisError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = [str(part) for part in first.get("loc", ())[1:]]
        body = ErrorResponse(
            error=first.get("msg", "Invalid request body."),
            code="validation_error",
            field=".".join(loc) or None,
            timestamp=_now_iso(),
        )
        return JSONResponse(status_code=422, content=body.model_dump(exclude_none=True))

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    @app.post("/analyze", response_model=AnalyzeResponse)
    async def analyze_endpoint(req: AnalyzeRequest):
        analyzer = Analyzer(fetcher, host_context=host_context, recommender=recommender)
        try:
            return await analyzer.analyze(req)
        except AnalysisError:
            raise
        except Exception:
            logger.exception("Unexpected error while analyzing a page")
            body = ErrorResponse(
                error="Internal error while analyzing the page.",
                code="internal_error",
                timestamp=_now_iso(),
            )
            return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return app


_settings = Settings.from_env()
logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
