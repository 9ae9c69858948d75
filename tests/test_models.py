"""
Tests for data models
"""
import dataclasses

import pytest

from models import AnalysisRecord, MonitoredTarget, PerformanceMetrics, QuickTestRecord


class TestPerformanceMetrics:
    """Test PerformanceMetrics functionality"""

    def test_stored_values_keep_reported_metrics(self):
        metrics = PerformanceMetrics(
            performance_score=87,
            fcp_time=1234,
            lcp_time=2501,
            speed_index=3100,
            total_blocking_time=150,
            cumulative_layout_shift=0.123,
        )

        assert metrics.stored_values() == {
            "performance_score": 87,
            "fcp_time": 1234,
            "lcp_time": 2501,
            "speed_index": 3100,
            "total_blocking_time": 150,
            "cumulative_layout_shift": 0.123,
        }

    def test_missing_metrics_are_stored_as_zero(self):
        """An absent metric is indistinguishable from zero once stored"""
        metrics = PerformanceMetrics(performance_score=55, lcp_time=4000)

        values = metrics.stored_values()

        assert values["performance_score"] == 55
        assert values["lcp_time"] == 4000
        assert values["fcp_time"] == 0
        assert values["cumulative_layout_shift"] == 0.0

    def test_metrics_are_immutable(self):
        metrics = PerformanceMetrics(performance_score=90)

        with pytest.raises(dataclasses.FrozenInstanceError):
            metrics.performance_score = 10  # type: ignore[misc]


class TestRecords:
    """Test record serialization"""

    def test_monitored_target_defaults(self):
        target = MonitoredTarget(id=1, url="https://example.com", name="Example")

        assert target.show_on_dashboard is True
        assert target.display_order == 0
        assert target.to_dict()["url"] == "https://example.com"

    def test_analysis_record_to_dict(self):
        record = AnalysisRecord(
            id=3,
            url_id=1,
            url="https://example.com",
            created_at="2024-01-01T00:00:00+00:00",
            success=True,
            performance_score=87,
            fcp_time=1234,
            lcp_time=2501,
            speed_index=3100,
            total_blocking_time=150,
            cumulative_layout_shift=0.123,
            load_time=6400,
        )

        data = record.to_dict()

        assert data["id"] == 3
        assert data["url_id"] == 1
        assert data["load_time"] == 6400

    def test_quick_test_record_document_defaults_to_empty(self):
        record = QuickTestRecord(
            id=None,
            url="https://example.com",
            created_at="2024-01-01T00:00:00+00:00",
            success=True,
            performance_score=0,
            fcp_time=0,
            lcp_time=0,
            speed_index=0,
            total_blocking_time=0,
            cumulative_layout_shift=0.0,
        )

        assert record.analysis_result == {}
