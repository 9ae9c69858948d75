"""Runs one PageSpeed analysis end to end: fetch, persist, record usage."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

from models import AnalysisRecord, ApiUsageLog, PerformanceMetrics, QuickTestRecord
from services.errors import AnalysisFailedError, InvalidInputError, PersistenceError
from services.pagespeed import PageSpeedClient
from services.storage import AnalysisRepository, ApiUsageRepository, QuickTestRepository

logger = logging.getLogger(__name__)


class ResultPersister:
    """Writes exactly one new row per completed analysis, never updating."""

    def __init__(self, analyses: AnalysisRepository, quick_tests: QuickTestRepository) -> None:
        self.analyses = analyses
        self.quick_tests = quick_tests

    def persist(
        self,
        url: str,
        url_id: int | None,
        metrics: PerformanceMetrics,
        is_quick_test: bool,
        load_time: int,
    ) -> AnalysisRecord | QuickTestRecord:
        if is_quick_test:
            record = self.quick_tests.insert(url, metrics)
            logger.info("Quick test for %s saved as #%s", url, record.id)
            return record

        if url_id is None:
            raise InvalidInputError("urlId is required for monitored URL analysis")
        record = self.analyses.insert(url_id, url, metrics, load_time)
        logger.info("Analysis for %s (url #%s) saved as #%s", url, url_id, record.id)
        return record


@dataclass(slots=True)
class AnalysisOutcome:
    url: str
    url_id: int | None
    is_quick_test: bool
    metrics: PerformanceMetrics
    analysis_time: int
    record: AnalysisRecord | QuickTestRecord

    @property
    def message(self) -> str:
        if self.is_quick_test:
            return "Quick test completed successfully (PageSpeed only)"
        return "Analysis completed successfully (PageSpeed only)"

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "performance_metrics": self.metrics.stored_values(),
            "analysis_time": self.analysis_time,
        }


class AnalysisService:
    def __init__(
        self,
        fetcher: PageSpeedClient,
        persister: ResultPersister,
        usage_log: ApiUsageRepository,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetcher = fetcher
        self.persister = persister
        self.usage_log = usage_log
        self._clock = clock

    async def analyze(
        self,
        url: str,
        url_id: int | None = None,
        is_quick_test: bool = False,
        request_type: str | None = None,
    ) -> AnalysisOutcome:
        """Measure ``url`` and store the result.

        Raises ``AnalysisFailedError`` when PageSpeed could not be reached and
        ``PersistenceError`` when the result could not be saved; nothing is
        written in either case.
        """
        if not is_quick_test and url_id is None:
            raise InvalidInputError("urlId is required for monitored URL analysis")

        request_type = request_type or ("quick_test" if is_quick_test else "monitored")
        logger.info(
            "Starting PageSpeed-only %s for %s",
            "quick test" if is_quick_test else "monitored URL",
            url,
        )
        started = self._clock()

        try:
            result = await self.fetcher.fetch(url)
        except AnalysisFailedError as exc:
            self._record_usage(
                url,
                request_type,
                success=False,
                elapsed_ms=self._elapsed_ms(started),
                error_code=exc.error_code,
                error_message=exc.message,
            )
            raise

        analysis_time = self._elapsed_ms(started)
        logger.info("Analysis of %s completed in %d ms", url, analysis_time)

        record = self.persister.persist(url, url_id, result.metrics, is_quick_test, analysis_time)
        self._record_usage(
            url,
            request_type,
            success=True,
            elapsed_ms=analysis_time,
            performance_score=result.metrics.performance_score,
        )
        return AnalysisOutcome(
            url=url,
            url_id=url_id,
            is_quick_test=is_quick_test,
            metrics=result.metrics,
            analysis_time=analysis_time,
            record=record,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self._clock() - started) * 1000))

    def _record_usage(
        self,
        url: str,
        request_type: str,
        *,
        success: bool,
        elapsed_ms: int,
        performance_score: int | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        if not self.usage_log.database.configured:
            return
        entry = ApiUsageLog(
            id=None,
            request_url=url,
            request_type=request_type,
            success=success,
            response_time_ms=elapsed_ms,
            timestamp=datetime.now(UTC).isoformat(),
            performance_score=performance_score,
            error_code=error_code,
            error_message=error_message,
            api_key_used=bool(self.fetcher.api_key),
        )
        try:
            self.usage_log.record(entry)
        except PersistenceError:
            logger.warning("Could not record API usage for %s", url, exc_info=True)
