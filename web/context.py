"""Per-process service container handed to request handlers through the app."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from aiogram import Bot
from aiohttp import web

from config import Settings, settings
from services.analysis import AnalysisService, ResultPersister
from services.insights import GeminiClient, InsightSummarizer
from services.pagespeed import PageSpeedClient
from services.screenshots import ScreenshotProvider, ScreenshotService, build_screenshot_provider
from services.storage import (
    AnalysisRepository,
    ApiUsageRepository,
    Database,
    QuickTestRepository,
    ScreenshotRepository,
    TargetRepository,
)
from services.sweeper import Sweeper


@dataclass(slots=True)
class Services:
    database: Database
    targets: TargetRepository
    analyses: AnalysisRepository
    quick_tests: QuickTestRepository
    usage_log: ApiUsageRepository
    screenshot_records: ScreenshotRepository
    fetcher: PageSpeedClient
    analysis: AnalysisService
    gemini: GeminiClient
    insights: InsightSummarizer
    screenshots: ScreenshotService
    sweeper: Sweeper

    async def close(self) -> None:
        await self.fetcher.close()
        await self.gemini.close()
        close = getattr(self.screenshots.provider, "close", None)
        if close is not None:
            await close()


SERVICES_KEY = web.AppKey("services", Services)


def build_services(
    database: Database,
    config: Settings = settings,
    *,
    fetcher: PageSpeedClient | None = None,
    gemini: GeminiClient | None = None,
    screenshot_provider: ScreenshotProvider | None = None,
    alert_bot: Bot | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> Services:
    """Wire repositories and services around one datastore handle."""
    targets = TargetRepository(database)
    analyses = AnalysisRepository(database)
    quick_tests = QuickTestRepository(database)
    usage_log = ApiUsageRepository(database)
    screenshot_records = ScreenshotRepository(database)

    fetcher = fetcher or PageSpeedClient(sleep=sleep)
    gemini = gemini or GeminiClient()
    analysis = AnalysisService(fetcher, ResultPersister(analyses, quick_tests), usage_log)
    screenshots = ScreenshotService(screenshot_provider or build_screenshot_provider(config), screenshot_records)
    insights = InsightSummarizer(gemini, targets, analyses, sleep=sleep)
    sweeper = Sweeper(
        analysis,
        targets,
        screenshots,
        delay_seconds=config.SWEEP_DELAY_SECONDS,
        capture_screenshots=config.SWEEP_CAPTURE_SCREENSHOTS,
        alert_bot=alert_bot,
        admin_chat_ids=config.ADMIN_CHAT_IDS if alert_bot is not None else (),
        sleep=sleep,
    )
    return Services(
        database=database,
        targets=targets,
        analyses=analyses,
        quick_tests=quick_tests,
        usage_log=usage_log,
        screenshot_records=screenshot_records,
        fetcher=fetcher,
        analysis=analysis,
        gemini=gemini,
        insights=insights,
        screenshots=screenshots,
        sweeper=sweeper,
    )
