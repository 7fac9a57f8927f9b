from __future__ import annotations


class AnalysisError(Exception):
    """Base for every failure the pipeline reports to the caller.

    Each subclass knows its HTTP status and whether a retry could succeed, so the
    boundary can turn it into a structured error body without guessing.
    """

    code = "analysis_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidUrl(AnalysisError):
    code = "invalid_url"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, field="url")


class InvalidKeyphrase(AnalysisError):
    code = "invalid_keyphrase"
    status_code = 422

    def __init__(self, message: str):
        super().__init__(message, field="keyphrase")


class ForbiddenOrigin(AnalysisError):
    code = "forbidden_origin"
    status_code = 403


class FetchError(AnalysisError):
    code = "fetch_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        retryable: bool = False,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.retryable = retryable
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 504

    @classmethod
    def for_status(cls, status: int) -> "FetchError":
        # 429 and 5xx are transient on the upstream side.
        retryable = status == 429 or status >= 500
        return cls(f"Upstream responded with HTTP {status}.", upstream_status=status, retryable=retryable)


class ParseError(AnalysisError):
    code = "parse_error"
    status_code = 422
