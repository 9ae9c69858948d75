"""Daily sweep over every monitored URL."""
from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Sequence

from aiogram import Bot

from config import settings
from models import MonitoredTarget
from services.alerts import format_sweep_failures, send_critical_alert
from services.analysis import AnalysisService
from services.errors import LunaError
from services.screenshots import ScreenshotService
from services.storage import TargetRepository

logger = logging.getLogger(__name__)


class Sweeper:
    """Analyzes monitored URLs one at a time, in list order.

    A failure for one URL is recorded and the sweep moves on to the next.
    """

    def __init__(
        self,
        analysis: AnalysisService,
        targets: TargetRepository,
        screenshots: ScreenshotService | None = None,
        *,
        delay_seconds: float | None = None,
        capture_screenshots: bool | None = None,
        alert_bot: Bot | None = None,
        admin_chat_ids: Sequence[int] = (),
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.analysis = analysis
        self.targets = targets
        self.screenshots = screenshots
        self.delay_seconds = settings.SWEEP_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self.capture_screenshots = (
            settings.SWEEP_CAPTURE_SCREENSHOTS if capture_screenshots is None else capture_screenshots
        )
        self.alert_bot = alert_bot
        self.admin_chat_ids = tuple(admin_chat_ids)
        self._sleep = sleep
        self._lock = asyncio.Lock()

    async def run(self) -> dict[str, Any]:
        """Sweep every target and return a summary with per-target results."""
        if self._lock.locked():
            logger.warning("Sweep already running, waiting for it to finish")
        async with self._lock:
            return await self._run()

    async def _run(self) -> dict[str, Any]:
        logger.info("Automatic sweep started")
        targets = self.targets.list_sweep_targets()
        if not targets:
            logger.info("No monitored URLs found")
            return {
                "success": True,
                "message": "No monitored URLs found for automatic analysis",
                "summary": self._summary(0, 0, 0),
                "results": [],
            }

        logger.info("Found %d monitored URLs for automatic analysis", len(targets))
        results: list[dict[str, Any]] = []
        successful = 0
        failed = 0

        for index, target in enumerate(targets):
            if index:
                await self._sleep(self.delay_seconds)
            try:
                result = await self._sweep_target(target)
            except asyncio.CancelledError:
                logger.info("Sweep cancelled while analyzing %s", target.url)
                raise
            except LunaError as exc:
                failed += 1
                logger.warning("Failed to analyze %s: %s", target.url, exc.message)
                result = self._result(target, "error", exc.message)
            except Exception as exc:
                failed += 1
                logger.exception("Unexpected error analyzing %s", target.url)
                result = self._result(target, "error", str(exc) or exc.__class__.__name__)
            else:
                successful += 1
            results.append(result)

        logger.info(
            "Sweep complete: %d total, %d successful, %d failed",
            len(targets), successful, failed,
        )

        failures = [result for result in results if result["status"] == "error"]
        if failures:
            await self._alert(failures, len(targets))

        return {
            "success": True,
            "message": "Daily automatic analysis completed",
            "summary": self._summary(len(targets), successful, failed),
            "results": results,
        }

    async def _sweep_target(self, target: MonitoredTarget) -> dict[str, Any]:
        logger.info("Starting analysis for %s", target.url)
        await self.analysis.analyze(
            target.url,
            url_id=target.id,
            is_quick_test=False,
            request_type="cron",
        )
        logger.info("Successfully analyzed %s", target.url)

        if not self.capture_screenshots or self.screenshots is None:
            return self._result(target, "success", "Analysis completed successfully")

        try:
            await self.screenshots.capture(target.url, target.id)
        except LunaError as exc:
            logger.warning("Screenshot failed for %s, but analysis succeeded: %s", target.url, exc.message)
            return self._result(target, "success", "Analysis completed successfully (screenshot failed)")
        return self._result(target, "success", "Analysis and screenshot completed successfully")

    async def _alert(self, failures: list[dict[str, Any]], total: int) -> None:
        if self.alert_bot is None or not self.admin_chat_ids:
            return
        await send_critical_alert(self.alert_bot, self.admin_chat_ids, format_sweep_failures(failures, total))

    @staticmethod
    def _result(target: MonitoredTarget, status: str, message: str) -> dict[str, Any]:
        return {"url_id": target.id, "url": target.url, "status": status, "message": message}

    @staticmethod
    def _summary(total: int, successful: int, failed: int) -> dict[str, Any]:
        return {
            "total": total,
            "successful": successful,
            "failed": failed,
            "execution_time": datetime.now(UTC).isoformat(),
        }
