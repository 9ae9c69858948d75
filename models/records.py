"""Data models for rows written by analyses, quick tests and screenshots."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(slots=True)
class AnalysisRecord:
    """One measurement of a monitored target."""

    id: int | None
    url_id: int
    url: str
    created_at: str
    success: bool
    performance_score: int
    fcp_time: int
    lcp_time: int
    speed_index: int
    total_blocking_time: int
    cumulative_layout_shift: float
    load_time: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class QuickTestRecord:
    """A one-off measurement keyed by the tested URL."""

    id: int | None
    url: str
    created_at: str
    success: bool
    performance_score: int
    fcp_time: int
    lcp_time: int
    speed_index: int
    total_blocking_time: int
    cumulative_layout_shift: float
    analysis_result: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ApiUsageLog:
    """Outcome of a single PageSpeed request, kept for operational review."""

    id: int | None
    request_url: str
    request_type: str
    success: bool
    response_time_ms: int
    timestamp: str
    performance_score: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    api_key_used: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ScreenshotRecord:
    id: int | None
    url_id: int
    image_url: str
    captured_at: str
    viewport_width: int = 1200
    viewport_height: int = 800

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
