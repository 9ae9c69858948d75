"""
Performance metrics extracted from a PageSpeed audit
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True, frozen=True)
class PerformanceMetrics:
    """Metrics of one audit. ``None`` marks a value the audit did not report."""
    performance_score: Optional[int] = None
    fcp_time: Optional[int] = None
    lcp_time: Optional[int] = None
    speed_index: Optional[int] = None
    total_blocking_time: Optional[int] = None
    cumulative_layout_shift: Optional[float] = None

    def stored_values(self) -> dict[str, int | float]:
        """Values as written to the datastore: missing metrics become zero."""
        return {
            "performance_score": self.performance_score or 0,
            "fcp_time": self.fcp_time or 0,
            "lcp_time": self.lcp_time or 0,
            "speed_index": self.speed_index or 0,
            "total_blocking_time": self.total_blocking_time or 0,
            "cumulative_layout_shift": self.cumulative_layout_shift or 0.0,
        }
