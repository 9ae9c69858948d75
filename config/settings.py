"""Configuration helpers for environment-driven settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

if os.getenv("PYTEST_CURRENT_TEST") is None:
    load_dotenv()


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(entry.strip() for entry in value.split(",") if entry.strip())


def _read_float(name: str, default: str, *, minimum: float = 0.0, strict: bool = False) -> float:
    try:
        value = float(os.getenv(name, default))
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if strict and value <= minimum:
        raise ValueError(f"{name} must be positive")
    if value < minimum:
        raise ValueError(f"{name} cannot be negative")
    return value


def _read_int(name: str, default: str) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _read_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    """Runtime application settings sourced from environment variables."""

    HOST: str = field(init=False)
    PORT: int = field(init=False)
    DB_PATH: Path | None = field(init=False)
    PAGESPEED_API_KEY: str = field(init=False)
    PAGESPEED_ENDPOINT: str = field(init=False)
    PAGESPEED_MAX_ATTEMPTS: int = field(init=False)
    PAGESPEED_BASE_TIMEOUT: float = field(init=False)
    PAGESPEED_TIMEOUT_STEP: float = field(init=False)
    RETRY_BASE_DELAY: float = field(init=False)
    GEMINI_API_KEY: str = field(init=False)
    GEMINI_ENDPOINT: str = field(init=False)
    SCREENSHOT_PROVIDER: str = field(init=False)
    SCREENSHOT_ENDPOINT: str = field(init=False)
    SWEEP_DELAY_SECONDS: float = field(init=False)
    SWEEP_HOUR_UTC: int = field(init=False)
    SWEEP_CAPTURE_SCREENSHOTS: bool = field(init=False)
    CRON_USER_AGENT: str = field(init=False)
    CI_USER_AGENT_MARKER: str = field(init=False)
    ALERT_BOT_TOKEN: str = field(init=False)
    ADMIN_CHAT_IDS: Tuple[int, ...] = field(init=False)
    HEADERS: dict[str, str] = field(init=False)

    def __post_init__(self) -> None:
        self.reload()

    def reload(self) -> None:
        self.HOST = os.getenv("HOST", "0.0.0.0").strip() or "0.0.0.0"
        port = _read_int("PORT", "3000")
        if not 0 < port < 65536:
            raise ValueError("PORT must be between 1 and 65535")
        self.PORT = port

        # An explicitly empty DB_PATH leaves the datastore unconfigured.
        db_path_value = os.getenv("DB_PATH", "data/luna.db").strip()
        if db_path_value:
            db_path = Path(db_path_value)
            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path
            self.DB_PATH = db_path
        else:
            self.DB_PATH = None

        self.PAGESPEED_API_KEY = os.getenv("PAGESPEED_API_KEY", "").strip()
        self.PAGESPEED_ENDPOINT = os.getenv(
            "PAGESPEED_ENDPOINT",
            "https://pagespeedonline.googleapis.com/pagespeedonline/v5/runPagespeed",
        ).strip()

        attempts = _read_int("PAGESPEED_MAX_ATTEMPTS", "3")
        if attempts <= 0:
            raise ValueError("PAGESPEED_MAX_ATTEMPTS must be positive")
        self.PAGESPEED_MAX_ATTEMPTS = attempts
        self.PAGESPEED_BASE_TIMEOUT = _read_float("PAGESPEED_BASE_TIMEOUT", "6", strict=True)
        self.PAGESPEED_TIMEOUT_STEP = _read_float("PAGESPEED_TIMEOUT_STEP", "2")
        self.RETRY_BASE_DELAY = _read_float("RETRY_BASE_DELAY", "1")

        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
        self.GEMINI_ENDPOINT = os.getenv(
            "GEMINI_ENDPOINT",
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent",
        ).strip()

        provider = os.getenv("SCREENSHOT_PROVIDER", "mock").strip().lower() or "mock"
        if provider not in {"mock", "remote"}:
            raise ValueError("SCREENSHOT_PROVIDER must be 'mock' or 'remote'")
        self.SCREENSHOT_PROVIDER = provider
        self.SCREENSHOT_ENDPOINT = os.getenv(
            "SCREENSHOT_ENDPOINT", "https://screenshotapi.net/api/v1/screenshot"
        ).strip()

        self.SWEEP_DELAY_SECONDS = _read_float("SWEEP_DELAY_SECONDS", "2")
        hour = _read_int("SWEEP_HOUR_UTC", "9")
        if hour != -1 and not 0 <= hour <= 23:
            raise ValueError("SWEEP_HOUR_UTC must be between 0 and 23, or -1 to disable")
        self.SWEEP_HOUR_UTC = hour
        self.SWEEP_CAPTURE_SCREENSHOTS = _read_bool("SWEEP_CAPTURE_SCREENSHOTS", "true")

        self.CRON_USER_AGENT = os.getenv("CRON_USER_AGENT", "vercel-cron/1.0").strip()
        self.CI_USER_AGENT_MARKER = os.getenv(
            "CI_USER_AGENT_MARKER", "GitHub-Actions-Luna-Analytics"
        ).strip()

        self.ALERT_BOT_TOKEN = os.getenv("ALERT_BOT_TOKEN", "").strip()
        try:
            self.ADMIN_CHAT_IDS = tuple(
                int(chat_id)
                for chat_id in _split_csv(os.getenv("ADMIN_CHAT_IDS", ""))
            )
        except ValueError as exc:
            raise ValueError("ADMIN_CHAT_IDS must be a comma-separated list of integers") from exc

        self.HEADERS = {
            "User-Agent": "Mozilla/5.0 (compatible; Luna Analytics/1.0)",
        }

    @property
    def alerts_enabled(self) -> bool:
        return bool(self.ALERT_BOT_TOKEN and self.ADMIN_CHAT_IDS)

    def validate(self) -> None:
        if self.ALERT_BOT_TOKEN and not self.ADMIN_CHAT_IDS:
            raise ValueError("ADMIN_CHAT_IDS is required when ALERT_BOT_TOKEN is set")

settings = Settings()
