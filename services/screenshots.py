"""Screenshot providers and capture bookkeeping.

Two providers exist: ``MockScreenshotProvider`` renders an SVG placeholder
locally, ``RemoteScreenshotProvider`` asks an external screenshot service.
The provider is chosen once at startup by ``build_screenshot_provider``.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from html import escape
from typing import Optional, Protocol

import aiohttp

from config import Settings, settings
from services.errors import ScreenshotError
from services.storage import ScreenshotRepository

logger = logging.getLogger(__name__)

VIEWPORT_WIDTH = 1200
VIEWPORT_HEIGHT = 800


@dataclass(slots=True, frozen=True)
class Screenshot:
    content: bytes
    content_type: str

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class ScreenshotProvider(Protocol):
    name: str

    async def capture(self, url: str) -> Screenshot:
        ...


class MockScreenshotProvider:
    """Generates a placeholder image instead of capturing the page."""

    name = "mock"

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay

    async def capture(self, url: str) -> Screenshot:
        if self.delay:
            await asyncio.sleep(self.delay)
        label = escape(url, quote=True)
        svg = (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{VIEWPORT_WIDTH}" height="{VIEWPORT_HEIGHT}" '
            f'viewBox="0 0 {VIEWPORT_WIDTH} {VIEWPORT_HEIGHT}">'
            '<rect width="100%" height="100%" fill="#cccccc"/>'
            '<text x="50%" y="50%" fill="#333333" font-family="sans-serif" font-size="32" '
            f'text-anchor="middle" dominant-baseline="middle">{label}</text>'
            "</svg>"
        )
        return Screenshot(content=svg.encode("utf-8"), content_type="image/svg+xml")


class RemoteScreenshotProvider:
    """Captures the page through an HTTP screenshot service."""

    name = "remote"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        endpoint: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.session = session
        self._owns_session = session is None
        self.endpoint = endpoint or settings.SCREENSHOT_ENDPOINT
        self.timeout = timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(headers=settings.HEADERS)
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    async def capture(self, url: str) -> Screenshot:
        params = {
            "url": url,
            "width": str(VIEWPORT_WIDTH),
            "height": str(VIEWPORT_HEIGHT),
            "output": "image",
            "file_type": "jpeg",
            "wait_for_event": "load",
        }
        session = await self._get_session()
        try:
            async with session.get(
                self.endpoint,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status >= 400:
                    raise ScreenshotError(f"Screenshot service returned HTTP {response.status}")
                content = await response.read()
                content_type = response.content_type or "image/jpeg"
        except asyncio.TimeoutError as exc:
            raise ScreenshotError(f"Screenshot service timed out after {self.timeout:g}s") from exc
        except aiohttp.ClientError as exc:
            raise ScreenshotError(f"Screenshot service request failed: {exc}") from exc

        if not content:
            raise ScreenshotError("Screenshot service returned an empty image")
        return Screenshot(content=content, content_type=content_type)


def build_screenshot_provider(config: Settings = settings) -> ScreenshotProvider:
    if config.SCREENSHOT_PROVIDER == "remote":
        return RemoteScreenshotProvider(endpoint=config.SCREENSHOT_ENDPOINT)
    return MockScreenshotProvider()


def _is_test_capture(url_id: object) -> bool:
    return isinstance(url_id, str) and url_id.startswith("test-")


class ScreenshotService:
    def __init__(self, provider: ScreenshotProvider, repository: ScreenshotRepository) -> None:
        self.provider = provider
        self.repository = repository

    async def capture(self, url: str, url_id: int | str | None = None) -> dict[str, object]:
        """Capture ``url``; metadata is stored only for real monitored targets."""
        logger.info("Starting screenshot capture for %s via %s provider", url, self.provider.name)
        started = time.monotonic()
        screenshot = await self.provider.capture(url)
        image_url = screenshot.data_uri

        if url_id is not None and not _is_test_capture(url_id):
            self.repository.insert(int(url_id), image_url, VIEWPORT_WIDTH, VIEWPORT_HEIGHT)
        else:
            logger.info("Test capture for %s, skipping metadata save", url)

        capture_time = f"{time.monotonic() - started:.1f}"
        logger.info("Screenshot for %s captured in %ss", url, capture_time)
        return {
            "success": True,
            "message": f"Screenshot captured successfully in {capture_time}s ({self.provider.name} provider)",
            "image_url": image_url,
            "capture_time": capture_time,
        }
