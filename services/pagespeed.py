"""PageSpeed Insights client with per-attempt timeouts and backoff."""
from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

import aiohttp

from config import settings
from models import PerformanceMetrics
from services.errors import AnalysisFailedError, PageSpeedError, PageSpeedTimeoutError
from services.retry import retry_async

logger = logging.getLogger(__name__)

STRATEGY = "mobile"
CATEGORY = "performance"

_STATUS_ERROR_CODES = {
    400: "INVALID_URL",
    403: "ACCESS_DENIED",
    429: "QUOTA_EXCEEDED",
}


@dataclass(slots=True, frozen=True)
class PageSpeedResult:
    metrics: PerformanceMetrics
    attempts: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _numeric_value(audits: Mapping[str, Any], key: str) -> Optional[float]:
    audit = audits.get(key)
    if not isinstance(audit, dict):
        return None
    value = audit.get("numericValue")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def extract_metrics(payload: Mapping[str, Any]) -> PerformanceMetrics:
    """Pull the score and the five Core Web Vitals out of a PageSpeed response."""
    lighthouse = payload.get("lighthouseResult") or {}
    performance = (lighthouse.get("categories") or {}).get("performance") or {}
    score = performance.get("score")
    performance_score = _round_half_up(score * 100) if isinstance(score, (int, float)) else None

    audits = lighthouse.get("audits") or {}

    def as_ms(key: str) -> Optional[int]:
        value = _numeric_value(audits, key)
        return _round_half_up(value) if value is not None else None

    cls_value = _numeric_value(audits, "cumulative-layout-shift")

    return PerformanceMetrics(
        performance_score=performance_score,
        fcp_time=as_ms("first-contentful-paint"),
        lcp_time=as_ms("largest-contentful-paint"),
        speed_index=as_ms("speed-index"),
        total_blocking_time=as_ms("total-blocking-time"),
        cumulative_layout_shift=round(cls_value, 3) if cls_value is not None else None,
    )


class PageSpeedClient:
    """Fetches a mobile performance audit for one URL, retrying transient failures."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        max_attempts: Optional[int] = None,
        base_timeout: Optional[float] = None,
        timeout_step: Optional[float] = None,
        base_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self._owns_session = session is None
        self.api_key = settings.PAGESPEED_API_KEY if api_key is None else api_key
        self.endpoint = endpoint or settings.PAGESPEED_ENDPOINT
        self.max_attempts = max_attempts or settings.PAGESPEED_MAX_ATTEMPTS
        self.base_timeout = settings.PAGESPEED_BASE_TIMEOUT if base_timeout is None else base_timeout
        self.timeout_step = settings.PAGESPEED_TIMEOUT_STEP if timeout_step is None else timeout_step
        self.base_delay = settings.RETRY_BASE_DELAY if base_delay is None else base_delay
        self._sleep = sleep

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(headers=settings.HEADERS)
        return self.session

    async def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    def attempt_timeout(self, attempt: int) -> float:
        """Timeout for attempt ``attempt`` (1-based): 6s, 8s, 10s with the defaults."""
        return self.base_timeout + (attempt - 1) * self.timeout_step

    def _params(self, url: str) -> dict[str, str]:
        params = {
            "url": url,
            "strategy": STRATEGY,
            "category": CATEGORY,
            "locale": "en",
        }
        if self.api_key:
            params["key"] = self.api_key
        return params

    async def fetch(self, url: str) -> PageSpeedResult:
        """Return the audit metrics for ``url`` or raise ``AnalysisFailedError``."""
        attempts_made = 0

        async def attempt_once(attempt: int) -> PerformanceMetrics:
            nonlocal attempts_made
            attempts_made = attempt
            return await self._request(url, attempt)

        try:
            metrics = await retry_async(
                attempt_once,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                is_retryable=lambda exc: isinstance(exc, PageSpeedError),
                sleep=self._sleep,
                description="PageSpeed",
            )
        except PageSpeedError as exc:
            raise AnalysisFailedError(exc) from exc

        logger.info("PageSpeed data for %s retrieved on attempt %d", url, attempts_made)
        return PageSpeedResult(metrics=metrics, attempts=attempts_made)

    async def _request(self, url: str, attempt: int) -> PerformanceMetrics:
        timeout = self.attempt_timeout(attempt)
        session = await self._get_session()
        logger.info(
            "PageSpeed API attempt %d/%d for %s (timeout %gs, key %s)",
            attempt,
            self.max_attempts,
            url,
            timeout,
            "set" if self.api_key else "not set",
        )

        try:
            async with session.get(
                self.endpoint,
                params=self._params(url),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    logger.error("PageSpeed API error response (%s): %s", response.status, body[:500])
                    raise PageSpeedError(
                        f"PageSpeed API HTTP {response.status}: {response.reason}",
                        status=response.status,
                        error_code=_STATUS_ERROR_CODES.get(response.status, "UPSTREAM_ERROR"),
                    )
        except asyncio.TimeoutError as exc:
            logger.warning("PageSpeed API timed out after %gs on attempt %d", timeout, attempt)
            raise PageSpeedTimeoutError(attempt, timeout) from exc
        except aiohttp.ClientError as exc:
            logger.warning("Connection error calling PageSpeed API: %s", exc)
            logger.debug("Connection error details", exc_info=True)
            raise PageSpeedError(f"PageSpeed API request failed: {exc}") from exc

        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise PageSpeedError(f"PageSpeed API returned invalid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise PageSpeedError("PageSpeed API returned an unexpected payload")

        error = payload.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if isinstance(code, bool) or not isinstance(code, int):
                code = None
            raise PageSpeedError(
                f"PageSpeed API Error: {message}",
                status=code,
                error_code=_STATUS_ERROR_CODES.get(code, "UPSTREAM_ERROR"),
            )

        return extract_metrics(payload)
