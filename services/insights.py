"""Natural-language performance insights generated by Gemini."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

import aiohttp

from config import settings
from models import AnalysisRecord, MonitoredTarget
from services.errors import (
    InsightBadRequestError,
    InsightError,
    InsightNotConfiguredError,
    InsightRateLimitedError,
    InsightUnavailableError,
)
from services.retry import retry_async
from services.storage import AnalysisRepository, TargetRepository

logger = logging.getLogger(__name__)

MODEL_NAME = "gemini-1.5-flash"
GOOD_SCORE = 90
POOR_SCORE = 50

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


def build_request_body(prompt: str) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": 0.9,
            "topK": 40,
            "topP": 0.95,
            "maxOutputTokens": 200,
            "stopSequences": [],
        },
        "safetySettings": [
            {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
            for category in _SAFETY_CATEGORIES
        ],
    }


class GeminiClient:
    """Thin client for the Gemini ``generateContent`` endpoint."""

    model = MODEL_NAME

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.session = session
        self._owns_session = session is None
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.endpoint = endpoint or settings.GEMINI_ENDPOINT
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession()
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            logger.error("GEMINI_API_KEY environment variable not set")
            raise InsightNotConfiguredError()

        logger.info("Generating AI insight with %s", self.model)
        session = await self._get_session()
        try:
            async with session.post(
                self.endpoint,
                params={"key": self.api_key},
                json=build_request_body(prompt),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    logger.error("Gemini API error %s: %s", response.status, error_text[:500])
                    raise _error_for_status(response.status)
                result = await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise InsightUnavailableError("AI service temporarily unavailable") from exc
        except aiohttp.ClientError as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise InsightUnavailableError("AI service temporarily unavailable") from exc
        except ValueError as exc:
            raise InsightUnavailableError("AI service returned invalid response") from exc

        return _extract_text(result)


def _error_for_status(status: int) -> InsightError:
    if status == 400:
        return InsightBadRequestError("Invalid request to AI service")
    if status == 401:
        return InsightUnavailableError("AI service authentication failed")
    if status == 429:
        return InsightRateLimitedError()
    return InsightUnavailableError("AI service temporarily unavailable")


def _extract_text(result: Any) -> str:
    candidates = result.get("candidates") if isinstance(result, dict) else None
    if not candidates:
        logger.error("No candidates in Gemini response: %s", result)
        raise InsightUnavailableError("AI service returned no results")

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts:
        logger.error("Invalid candidate structure: %s", candidates[0])
        raise InsightUnavailableError("AI service returned invalid response")

    text = parts[0].get("text") if isinstance(parts[0], dict) else None
    insight = text.strip() if isinstance(text, str) else ""
    if not insight:
        logger.error("Empty insight from Gemini")
        raise InsightUnavailableError("AI service returned empty response")
    return insight


@dataclass(slots=True, frozen=True)
class DashboardStats:
    site_count: int
    average_score: int | None
    average_lcp: int | None
    good_sites: int
    poor_sites: int


def aggregate_latest(
    targets: Sequence[MonitoredTarget],
    latest: dict[int, AnalysisRecord],
) -> DashboardStats:
    records = [latest[target.id] for target in targets if target.id in latest]
    if not records:
        return DashboardStats(len(targets), None, None, 0, 0)

    scores = [record.performance_score for record in records]
    lcps = [record.lcp_time for record in records if record.lcp_time]
    return DashboardStats(
        site_count=len(targets),
        average_score=round(sum(scores) / len(scores)),
        average_lcp=round(sum(lcps) / len(lcps)) if lcps else None,
        good_sites=sum(1 for score in scores if score >= GOOD_SCORE),
        poor_sites=sum(1 for score in scores if score < POOR_SCORE),
    )


def build_prompt(stats: DashboardStats) -> str:
    lines = [
        "You are a friendly web performance analyst writing one short insight for a dashboard.",
        f"Monitored websites: {stats.site_count}.",
        f"Average performance score: {stats.average_score}/100.",
    ]
    if stats.average_lcp is not None:
        lines.append(f"Average Largest Contentful Paint: {stats.average_lcp / 1000:.1f}s.")
    lines.extend([
        f"Sites with good scores (90+): {stats.good_sites}.",
        f"Sites with poor scores (below 50): {stats.poor_sites}.",
        "Reply in one or two sentences, plain text, no markdown, with one concrete suggestion.",
    ])
    return "\n".join(lines)


def fallback_insight(stats: DashboardStats) -> str:
    """Deterministic sentence used when the AI service cannot answer."""
    if stats.average_score is None:
        return "No performance data yet. Run an analysis to see how your websites are doing."
    if stats.average_score >= GOOD_SCORE:
        return (
            f"Excellent work: your websites average a performance score of {stats.average_score}, "
            f"with {stats.good_sites} of {stats.site_count} in the good range."
        )
    if stats.average_score >= POOR_SCORE:
        return (
            f"Your websites average a performance score of {stats.average_score}. "
            f"{stats.poor_sites} need attention, and trimming render-blocking resources is a good next step."
        )
    return (
        f"Performance needs attention: your websites average a score of {stats.average_score}, "
        f"with {stats.poor_sites} of {stats.site_count} scoring poorly."
    )


class InsightSummarizer:
    """Builds the dashboard insight, retrying rate limits and falling back to rules."""

    def __init__(
        self,
        client: GeminiClient,
        targets: TargetRepository,
        analyses: AnalysisRepository,
        *,
        max_attempts: int = 3,
        base_delay: float | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.targets = targets
        self.analyses = analyses
        self.max_attempts = max_attempts
        self.base_delay = settings.RETRY_BASE_DELAY if base_delay is None else base_delay
        self._sleep = sleep

    def collect_stats(self) -> DashboardStats:
        targets = self.targets.list_dashboard_targets()
        latest = self.analyses.latest_for_targets([target.id for target in targets if target.id is not None])
        return aggregate_latest(targets, latest)

    async def generate(self, prompt: str) -> str:
        return await retry_async(
            lambda attempt: self.client.generate(prompt),
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            is_retryable=lambda exc: isinstance(exc, InsightRateLimitedError),
            sleep=self._sleep,
            description="Gemini",
        )

    async def dashboard_insight(self) -> dict[str, str]:
        stats = self.collect_stats()
        if stats.average_score is None:
            return {"insight": fallback_insight(stats), "source": "fallback"}

        try:
            insight = await self.generate(build_prompt(stats))
        except InsightError as exc:
            logger.warning("Falling back to rule-based insight: %s", exc.message)
            return {"insight": fallback_insight(stats), "source": "fallback"}
        return {"insight": insight, "source": "ai", "model": self.client.model}
