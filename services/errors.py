"""Exception hierarchy shared by services and the HTTP layer.

Every error carries the HTTP status the web layer answers with and a short
category used as the ``error`` field of the JSON payload.
"""
from __future__ import annotations


class LunaError(Exception):
    status = 500
    category = "Internal error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(LunaError):
    status = 400
    category = "Invalid request"


class NotFoundError(LunaError):
    status = 404
    category = "Not found"


class PersistenceError(LunaError):
    category = "Datastore error"


class DatastoreNotConfiguredError(PersistenceError):
    def __init__(self) -> None:
        super().__init__("Datastore not configured")


class PageSpeedError(Exception):
    """A single failed PageSpeed attempt."""

    def __init__(self, message: str, *, status: int | None = None, error_code: str = "UPSTREAM_ERROR") -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code


class PageSpeedTimeoutError(PageSpeedError):
    def __init__(self, attempt: int, timeout: float) -> None:
        super().__init__(
            f"Analysis attempt {attempt} timed out after {timeout:g}s",
            error_code="TIMEOUT",
        )
        self.attempt = attempt
        self.timeout = timeout


TIMEOUT_MESSAGE = (
    "Analysis failed - PageSpeed API is experiencing timeouts. "
    "Please try again in a few minutes."
)


class AnalysisFailedError(LunaError):
    """Raised once every PageSpeed attempt has failed."""

    category = "PageSpeed-only analysis failed"

    def __init__(self, last_error: Exception) -> None:
        if isinstance(last_error, PageSpeedTimeoutError):
            message = TIMEOUT_MESSAGE
        else:
            message = str(last_error)
        super().__init__(message)
        self.last_error = last_error
        upstream_status = getattr(last_error, "status", None)
        if upstream_status == 429:
            self.status = 429

    @property
    def error_code(self) -> str:
        return getattr(self.last_error, "error_code", "UPSTREAM_ERROR")


class ScreenshotError(LunaError):
    category = "Screenshot capture failed"


class InsightError(LunaError):
    category = "Failed to generate AI insight"


class InsightNotConfiguredError(InsightError):
    def __init__(self) -> None:
        super().__init__("AI service not configured")


class InsightBadRequestError(InsightError):
    status = 400


class InsightRateLimitedError(InsightError):
    status = 429

    def __init__(self) -> None:
        super().__init__("AI service rate limit exceeded")


class InsightUnavailableError(InsightError):
    pass


__all__ = [
    "AnalysisFailedError",
    "DatastoreNotConfiguredError",
    "InsightBadRequestError",
    "InsightError",
    "InsightNotConfiguredError",
    "InsightRateLimitedError",
    "InsightUnavailableError",
    "InvalidInputError",
    "LunaError",
    "NotFoundError",
    "PageSpeedError",
    "PageSpeedTimeoutError",
    "PersistenceError",
    "ScreenshotError",
    "TIMEOUT_MESSAGE",
]
