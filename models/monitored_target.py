"""Data model for URLs under recurring observation."""
from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(slots=True)
class MonitoredTarget:
    """Represents a URL monitored by the daily sweep."""

    id: int | None
    url: str
    name: str
    description: str = ""
    show_on_dashboard: bool = True
    display_order: int = 0
    created_at: str | None = None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)
