from __future__ import annotations

import sqlite3

import pytest

from models import PerformanceMetrics
from services.errors import DatastoreNotConfiguredError, InvalidInputError, NotFoundError, PersistenceError
from services.storage import (
    AnalysisRepository,
    Database,
    QuickTestRepository,
    ScreenshotRepository,
    TargetRepository,
)

METRICS = PerformanceMetrics(
    performance_score=87,
    fcp_time=1234,
    lcp_time=2501,
    speed_index=3100,
    total_blocking_time=150,
    cumulative_layout_shift=0.123,
)


def test_add_and_list_targets(temp_db):
    repository = TargetRepository(temp_db)

    first = repository.add_target("https://example.com", "Example")
    second = repository.add_target("https://example.org")

    assert first.id is not None
    assert second.name == "https://example.org"
    assert {target.url for target in repository.list_targets()} == {"https://example.com", "https://example.org"}
    assert [target.id for target in repository.list_sweep_targets()] == [first.id, second.id]


def test_duplicate_target_is_rejected(temp_db):
    repository = TargetRepository(temp_db)
    repository.add_target("https://example.com")

    with pytest.raises(InvalidInputError, match="already monitored"):
        repository.add_target("https://example.com")


def test_dashboard_targets_respect_visibility_and_order(temp_db):
    repository = TargetRepository(temp_db)
    hidden = repository.add_target("https://hidden.example.com", show_on_dashboard=False)
    later = repository.add_target("https://later.example.com")
    first = repository.add_target("https://first.example.com")
    repository.update(later.id, display_order=5)

    dashboard = repository.list_dashboard_targets()

    assert hidden.id not in {target.id for target in dashboard}
    assert [target.id for target in dashboard] == [first.id, later.id]


def test_update_target_fields(temp_db):
    repository = TargetRepository(temp_db)
    target = repository.add_target("https://example.com", "Old name")

    updated = repository.update(target.id, name="  New name ", show_on_dashboard=False, display_order=3)

    assert updated.name == "New name"
    assert updated.show_on_dashboard is False
    assert updated.display_order == 3
    with pytest.raises(InvalidInputError):
        repository.update(target.id, name="   ")
    with pytest.raises(NotFoundError):
        repository.update(999, name="Ghost")


def test_invalid_update_writes_nothing(temp_db):
    repository = TargetRepository(temp_db)
    target = repository.add_target("https://example.com", "Old name")

    with pytest.raises(InvalidInputError, match="Display order cannot be negative"):
        repository.update(target.id, name="Renamed", show_on_dashboard=False, display_order=-1)

    unchanged = repository.get_target(target.id)
    assert unchanged.name == "Old name"
    assert unchanged.show_on_dashboard is True
    assert unchanged.display_order == 0


def test_screenshot_listing_is_limited(temp_db):
    target = TargetRepository(temp_db).add_target("https://example.com")
    screenshots = ScreenshotRepository(temp_db)
    for index in range(3):
        screenshots.insert(target.id, f"data:image/svg+xml;base64,{index}")

    latest = screenshots.list_for_target(target.id, limit=2)

    assert [record.image_url for record in latest] == [
        "data:image/svg+xml;base64,2",
        "data:image/svg+xml;base64,1",
    ]
    assert len(screenshots.list_for_target(target.id)) == 3


def test_each_insert_appends_a_new_row(temp_db):
    targets = TargetRepository(temp_db)
    analyses = AnalysisRepository(temp_db)
    target = targets.add_target("https://example.com")

    first = analyses.insert(target.id, target.url, METRICS, load_time=6400)
    second = analyses.insert(target.id, target.url, METRICS, load_time=6100)

    records = analyses.list_for_target(target.id)
    assert first.id != second.id
    assert [record.id for record in records] == [second.id, first.id]
    assert analyses.count() == 2
    assert records[0].performance_score == 87
    assert records[0].cumulative_layout_shift == pytest.approx(0.123)


def test_missing_metric_is_stored_as_zero(temp_db):
    targets = TargetRepository(temp_db)
    analyses = AnalysisRepository(temp_db)
    target = targets.add_target("https://example.com")

    analyses.insert(target.id, target.url, PerformanceMetrics(performance_score=40, lcp_time=5000), load_time=100)

    stored = analyses.list_for_target(target.id)[0]
    assert stored.fcp_time == 0
    assert stored.lcp_time == 5000


def test_analysis_for_unknown_target_fails(temp_db):
    analyses = AnalysisRepository(temp_db)

    with pytest.raises(PersistenceError, match="Failed to save analysis"):
        analyses.insert(42, "https://example.com", METRICS, load_time=1)


def test_removing_target_cascades_to_history(temp_db):
    targets = TargetRepository(temp_db)
    analyses = AnalysisRepository(temp_db)
    screenshots = ScreenshotRepository(temp_db)
    target = targets.add_target("https://example.com")
    analyses.insert(target.id, target.url, METRICS, load_time=100)
    screenshots.insert(target.id, "data:image/svg+xml;base64,AAAA")

    targets.remove_target(target.id)

    assert analyses.count() == 0
    assert screenshots.list_for_target(target.id) == []
    with sqlite3.connect(temp_db.db_path) as connection:
        assert connection.execute("SELECT COUNT(1) FROM website_screenshots").fetchone()[0] == 0
    with pytest.raises(NotFoundError):
        targets.remove_target(target.id)


def test_latest_for_targets_picks_newest(temp_db):
    targets = TargetRepository(temp_db)
    analyses = AnalysisRepository(temp_db)
    first = targets.add_target("https://a.example.com")
    second = targets.add_target("https://b.example.com")
    analyses.insert(first.id, first.url, PerformanceMetrics(performance_score=40), load_time=1)
    newest = analyses.insert(first.id, first.url, PerformanceMetrics(performance_score=95), load_time=1)

    latest = analyses.latest_for_targets([first.id, second.id])

    assert latest == {first.id: newest}


def test_quick_tests_store_result_document(temp_db):
    quick_tests = QuickTestRepository(temp_db)

    record = quick_tests.insert("https://example.com", METRICS)

    loaded = quick_tests.get(record.id)
    assert loaded.url == "https://example.com"
    assert loaded.analysis_result["performance_metrics"]["performance_score"] == 87
    assert [test.id for test in quick_tests.list_recent()] == [record.id]

    quick_tests.delete(record.id)
    with pytest.raises(NotFoundError):
        quick_tests.get(record.id)


def test_seed_samples_creates_then_updates(temp_db):
    repository = TargetRepository(temp_db)

    first_run = repository.seed_samples()
    second_run = repository.seed_samples()

    assert {entry["status"] for entry in first_run} == {"created"}
    assert {entry["status"] for entry in second_run} == {"updated"}
    assert len(repository.list_targets()) == 2


def test_unconfigured_datastore_reads_empty_and_refuses_writes():
    database = Database(None)
    targets = TargetRepository(database)
    analyses = AnalysisRepository(database)

    assert database.configured is False
    assert targets.list_targets() == []
    assert analyses.list_recent() == []
    assert targets.find_target(1) is None
    with pytest.raises(DatastoreNotConfiguredError):
        analyses.insert(1, "https://example.com", METRICS, load_time=1)
