from __future__ import annotations

import json
import sqlite3
from contextlib import closing, contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator, Sequence

from models import (
    AnalysisRecord,
    ApiUsageLog,
    MonitoredTarget,
    PerformanceMetrics,
    QuickTestRecord,
    ScreenshotRecord,
)
from services.errors import DatastoreNotConfiguredError, InvalidInputError, NotFoundError, PersistenceError

SAMPLE_TARGETS = (
    {
        "url": "https://github.com",
        "name": "GitHub",
        "description": "GitHub homepage performance monitoring",
    },
    {
        "url": "https://vercel.com",
        "name": "Vercel",
        "description": "Vercel homepage performance monitoring",
    },
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS urls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        show_on_dashboard INTEGER NOT NULL DEFAULT 1,
        display_order INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS analysis_results (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url_id INTEGER NOT NULL REFERENCES urls(id) ON DELETE CASCADE,
        url TEXT NOT NULL,
        created_at TEXT NOT NULL,
        success INTEGER NOT NULL,
        performance_score INTEGER NOT NULL,
        fcp_time INTEGER NOT NULL,
        lcp_time INTEGER NOT NULL,
        speed_index INTEGER NOT NULL,
        total_blocking_time INTEGER NOT NULL,
        cumulative_layout_shift REAL NOT NULL,
        load_time INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_analysis_results_url_id ON analysis_results(url_id)",
    """
    CREATE TABLE IF NOT EXISTS quick_tests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT NOT NULL,
        created_at TEXT NOT NULL,
        success INTEGER NOT NULL,
        performance_score INTEGER NOT NULL,
        fcp_time INTEGER NOT NULL,
        lcp_time INTEGER NOT NULL,
        speed_index INTEGER NOT NULL,
        total_blocking_time INTEGER NOT NULL,
        cumulative_layout_shift REAL NOT NULL,
        analysis_result TEXT NOT NULL DEFAULT '{}'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_usage_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_url TEXT NOT NULL,
        request_type TEXT NOT NULL,
        success INTEGER NOT NULL,
        response_time_ms INTEGER NOT NULL,
        performance_score INTEGER,
        error_code TEXT,
        error_message TEXT,
        api_key_used INTEGER NOT NULL DEFAULT 0,
        timestamp TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS website_screenshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url_id INTEGER NOT NULL REFERENCES urls(id) ON DELETE CASCADE,
        image_url TEXT NOT NULL,
        captured_at TEXT NOT NULL,
        viewport_width INTEGER NOT NULL,
        viewport_height INTEGER NOT NULL
    )
    """,
)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Database:
    """Connection handle for the SQLite datastore.

    A database without a path is unconfigured: repositories return empty
    results for reads and raise ``DatastoreNotConfiguredError`` on writes.
    """

    def __init__(self, db_path: Path | None) -> None:
        self.db_path = db_path
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._initialize()

    @property
    def configured(self) -> bool:
        return self.db_path is not None

    def _initialize(self) -> None:
        with self.connect() as connection:
            for statement in _SCHEMA:
                connection.execute(statement)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path is None:
            raise DatastoreNotConfiguredError()
        with closing(sqlite3.connect(self.db_path, timeout=5, check_same_thread=False)) as connection:
            connection.execute("PRAGMA foreign_keys = ON")
            with connection:
                yield connection

    @contextmanager
    def write(self, failure_prefix: str) -> Iterator[sqlite3.Connection]:
        """Connection for inserts/updates; datastore errors become ``PersistenceError``."""
        try:
            with self.connect() as connection:
                yield connection
        except sqlite3.Error as exc:
            raise PersistenceError(f"{failure_prefix}: {exc}") from exc


class _Repository:
    def __init__(self, database: Database) -> None:
        self.database = database

    def _query(self, query: str, parameters: Sequence[Any] = ()) -> list[tuple]:
        if not self.database.configured:
            return []
        try:
            with self.database.connect() as connection:
                return connection.execute(query, parameters).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read from datastore: {exc}") from exc


_TARGET_COLUMNS = "id, url, name, description, show_on_dashboard, display_order, created_at"


def _target_from_row(row: Sequence[Any]) -> MonitoredTarget:
    return MonitoredTarget(
        id=row[0],
        url=row[1],
        name=row[2],
        description=row[3],
        show_on_dashboard=bool(row[4]),
        display_order=row[5],
        created_at=row[6],
    )


class TargetRepository(_Repository):
    def list_targets(self) -> list[MonitoredTarget]:
        rows = self._query(
            f"SELECT {_TARGET_COLUMNS} FROM urls ORDER BY display_order ASC, created_at DESC, id DESC"
        )
        return [_target_from_row(row) for row in rows]

    def list_dashboard_targets(self) -> list[MonitoredTarget]:
        rows = self._query(
            f"SELECT {_TARGET_COLUMNS} FROM urls WHERE show_on_dashboard = 1 "
            "ORDER BY display_order ASC, created_at DESC, id DESC"
        )
        return [_target_from_row(row) for row in rows]

    def list_sweep_targets(self) -> list[MonitoredTarget]:
        """Every target, oldest first, the order the daily sweep walks them."""
        rows = self._query(f"SELECT {_TARGET_COLUMNS} FROM urls ORDER BY created_at ASC, id ASC")
        return [_target_from_row(row) for row in rows]

    def find_target(self, target_id: int) -> MonitoredTarget | None:
        rows = self._query(f"SELECT {_TARGET_COLUMNS} FROM urls WHERE id = ?", (target_id,))
        return _target_from_row(rows[0]) if rows else None

    def get_target(self, target_id: int) -> MonitoredTarget:
        target = self.find_target(target_id)
        if target is None:
            raise NotFoundError("URL not found")
        return target

    def add_target(
        self,
        url: str,
        name: str | None = None,
        description: str = "",
        show_on_dashboard: bool = True,
    ) -> MonitoredTarget:
        final_name = name.strip() if name and name.strip() else url
        timestamp = _now()
        try:
            with self.database.write("Failed to add URL") as connection:
                cursor = connection.execute(
                    """
                    INSERT INTO urls (url, name, description, show_on_dashboard, display_order, created_at)
                    VALUES (?, ?, ?, ?, 0, ?)
                    """,
                    (url, final_name, description or "", int(show_on_dashboard), timestamp),
                )
        except PersistenceError as exc:
            if isinstance(exc.__cause__, sqlite3.IntegrityError):
                raise InvalidInputError("URL is already monitored") from exc
            raise

        return MonitoredTarget(
            id=cursor.lastrowid,
            url=url,
            name=final_name,
            description=description or "",
            show_on_dashboard=show_on_dashboard,
            display_order=0,
            created_at=timestamp,
        )

    def update(
        self,
        target_id: int,
        *,
        name: str | None = None,
        show_on_dashboard: bool | None = None,
        display_order: int | None = None,
    ) -> MonitoredTarget:
        """Apply every given field in one statement; nothing is written if any field is invalid."""
        changes: dict[str, Any] = {}
        if name is not None:
            new_name = name.strip()
            if not new_name:
                raise InvalidInputError("Name cannot be empty")
            changes["name"] = new_name
        if show_on_dashboard is not None:
            changes["show_on_dashboard"] = int(show_on_dashboard)
        if display_order is not None:
            if display_order < 0:
                raise InvalidInputError("Display order cannot be negative")
            changes["display_order"] = display_order

        if not changes:
            return self.get_target(target_id)

        assignments = ", ".join(f"{column} = ?" for column in changes)
        with self.database.write("Failed to update URL") as connection:
            cursor = connection.execute(
                f"UPDATE urls SET {assignments} WHERE id = ?",
                (*changes.values(), target_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError("URL not found")
        return self.get_target(target_id)

    def remove_target(self, target_id: int) -> MonitoredTarget:
        target = self.get_target(target_id)
        with self.database.write("Failed to delete URL") as connection:
            connection.execute("DELETE FROM urls WHERE id = ?", (target_id,))
        return target

    def seed_samples(self) -> list[dict[str, str]]:
        """Insert or refresh the sample targets, reporting what happened to each."""
        results: list[dict[str, str]] = []
        for sample in SAMPLE_TARGETS:
            with self.database.write("Failed to set up sample URL") as connection:
                existing = connection.execute(
                    "SELECT id FROM urls WHERE url = ?", (sample["url"],)
                ).fetchone()
                if existing:
                    connection.execute(
                        "UPDATE urls SET show_on_dashboard = 1, name = ?, description = ? WHERE id = ?",
                        (sample["name"], sample["description"], existing[0]),
                    )
                    status, message = "updated", "URL updated to show on dashboard"
                else:
                    connection.execute(
                        """
                        INSERT INTO urls (url, name, description, show_on_dashboard, display_order, created_at)
                        VALUES (?, ?, ?, 1, 0, ?)
                        """,
                        (sample["url"], sample["name"], sample["description"], _now()),
                    )
                    status, message = "created", "URL created successfully"
            results.append({"url": sample["url"], "status": status, "message": message})
        return results


_RESULT_COLUMNS = (
    "id, url_id, url, created_at, success, performance_score, fcp_time, lcp_time, "
    "speed_index, total_blocking_time, cumulative_layout_shift, load_time"
)


def _analysis_from_row(row: Sequence[Any]) -> AnalysisRecord:
    return AnalysisRecord(
        id=row[0],
        url_id=row[1],
        url=row[2],
        created_at=row[3],
        success=bool(row[4]),
        performance_score=row[5],
        fcp_time=row[6],
        lcp_time=row[7],
        speed_index=row[8],
        total_blocking_time=row[9],
        cumulative_layout_shift=row[10],
        load_time=row[11],
    )


class AnalysisRepository(_Repository):
    def insert(
        self,
        url_id: int,
        url: str,
        metrics: PerformanceMetrics,
        load_time: int,
    ) -> AnalysisRecord:
        values = metrics.stored_values()
        timestamp = _now()
        with self.database.write("Failed to save analysis") as connection:
            cursor = connection.execute(
                """
                INSERT INTO analysis_results (
                    url_id, url, created_at, success, performance_score, fcp_time, lcp_time,
                    speed_index, total_blocking_time, cumulative_layout_shift, load_time
                )
                VALUES (?, ?, ?, 1, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    url_id,
                    url,
                    timestamp,
                    values["performance_score"],
                    values["fcp_time"],
                    values["lcp_time"],
                    values["speed_index"],
                    values["total_blocking_time"],
                    values["cumulative_layout_shift"],
                    load_time,
                ),
            )
        return AnalysisRecord(
            id=cursor.lastrowid,
            url_id=url_id,
            url=url,
            created_at=timestamp,
            success=True,
            load_time=load_time,
            **values,
        )

    def list_for_target(self, url_id: int, limit: int | None = None) -> list[AnalysisRecord]:
        if limit is not None and limit <= 0:
            return []
        query = f"SELECT {_RESULT_COLUMNS} FROM analysis_results WHERE url_id = ? ORDER BY id DESC"
        parameters: list[object] = [url_id]
        if limit is not None:
            query += " LIMIT ?"
            parameters.append(limit)
        return [_analysis_from_row(row) for row in self._query(query, parameters)]

    def list_recent(self, limit: int = 10) -> list[AnalysisRecord]:
        rows = self._query(
            f"SELECT {_RESULT_COLUMNS} FROM analysis_results ORDER BY id DESC LIMIT ?", (limit,)
        )
        return [_analysis_from_row(row) for row in rows]

    def latest_for_targets(self, url_ids: Sequence[int]) -> dict[int, AnalysisRecord]:
        """Most recent successful record per target."""
        latest: dict[int, AnalysisRecord] = {}
        for url_id in url_ids:
            records = self.list_for_target(url_id, limit=1)
            if records:
                latest[url_id] = records[0]
        return latest

    def count(self) -> int:
        rows = self._query("SELECT COUNT(1) FROM analysis_results")
        return rows[0][0] if rows else 0

    def delete(self, record_id: int) -> None:
        with self.database.write("Failed to delete analysis") as connection:
            cursor = connection.execute("DELETE FROM analysis_results WHERE id = ?", (record_id,))
        if cursor.rowcount == 0:
            raise NotFoundError("Analysis result not found")


_QUICK_TEST_COLUMNS = (
    "id, url, created_at, success, performance_score, fcp_time, lcp_time, "
    "speed_index, total_blocking_time, cumulative_layout_shift, analysis_result"
)


def _quick_test_from_row(row: Sequence[Any]) -> QuickTestRecord:
    try:
        document = json.loads(row[10]) if row[10] else {}
    except json.JSONDecodeError:
        document = {}
    return QuickTestRecord(
        id=row[0],
        url=row[1],
        created_at=row[2],
        success=bool(row[3]),
        performance_score=row[4],
        fcp_time=row[5],
        lcp_time=row[6],
        speed_index=row[7],
        total_blocking_time=row[8],
        cumulative_layout_shift=row[9],
        analysis_result=document,
    )


class QuickTestRepository(_Repository):
    def insert(self, url: str, metrics: PerformanceMetrics) -> QuickTestRecord:
        values = metrics.stored_values()
        timestamp = _now()
        document = {
            "url": url,
            "success": True,
            "timestamp": timestamp,
            "performance_metrics": values,
        }
        with self.database.write("Failed to save quick test") as connection:
            cursor = connection.execute(
                """
                INSERT INTO quick_tests (
                    url, created_at, success, performance_score, fcp_time, lcp_time,
                    speed_index, total_blocking_time, cumulative_layout_shift, analysis_result
                )
                VALUES (?, ?, 1, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    url,
                    timestamp,
                    values["performance_score"],
                    values["fcp_time"],
                    values["lcp_time"],
                    values["speed_index"],
                    values["total_blocking_time"],
                    values["cumulative_layout_shift"],
                    json.dumps(document),
                ),
            )
        return QuickTestRecord(
            id=cursor.lastrowid,
            url=url,
            created_at=timestamp,
            success=True,
            analysis_result=document,
            **values,
        )

    def list_recent(self, limit: int | None = 50) -> list[QuickTestRecord]:
        query = f"SELECT {_QUICK_TEST_COLUMNS} FROM quick_tests ORDER BY id DESC"
        parameters: list[object] = []
        if limit is not None:
            query += " LIMIT ?"
            parameters.append(limit)
        return [_quick_test_from_row(row) for row in self._query(query, parameters)]

    def get(self, record_id: int) -> QuickTestRecord:
        rows = self._query(f"SELECT {_QUICK_TEST_COLUMNS} FROM quick_tests WHERE id = ?", (record_id,))
        if not rows:
            raise NotFoundError("Quick test not found")
        return _quick_test_from_row(rows[0])

    def delete(self, record_id: int) -> None:
        with self.database.write("Failed to delete quick test") as connection:
            cursor = connection.execute("DELETE FROM quick_tests WHERE id = ?", (record_id,))
        if cursor.rowcount == 0:
            raise NotFoundError("Quick test not found")


class ApiUsageRepository(_Repository):
    def record(self, entry: ApiUsageLog) -> ApiUsageLog:
        with self.database.write("Failed to record API usage") as connection:
            cursor = connection.execute(
                """
                INSERT INTO api_usage_logs (
                    request_url, request_type, success, response_time_ms, performance_score,
                    error_code, error_message, api_key_used, timestamp
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.request_url,
                    entry.request_type,
                    int(entry.success),
                    entry.response_time_ms,
                    entry.performance_score,
                    entry.error_code,
                    entry.error_message,
                    int(entry.api_key_used),
                    entry.timestamp,
                ),
            )
        entry.id = cursor.lastrowid
        return entry

    def list_recent(self, limit: int = 50) -> list[ApiUsageLog]:
        rows = self._query(
            """
            SELECT id, request_url, request_type, success, response_time_ms, timestamp,
                   performance_score, error_code, error_message, api_key_used
            FROM api_usage_logs
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [
            ApiUsageLog(
                id=row[0],
                request_url=row[1],
                request_type=row[2],
                success=bool(row[3]),
                response_time_ms=row[4],
                timestamp=row[5],
                performance_score=row[6],
                error_code=row[7],
                error_message=row[8],
                api_key_used=bool(row[9]),
            )
            for row in rows
        ]


class ScreenshotRepository(_Repository):
    def insert(self, url_id: int, image_url: str, width: int = 1200, height: int = 800) -> ScreenshotRecord:
        timestamp = _now()
        with self.database.write("Failed to save screenshot metadata") as connection:
            cursor = connection.execute(
                """
                INSERT INTO website_screenshots (url_id, image_url, captured_at, viewport_width, viewport_height)
                VALUES (?, ?, ?, ?, ?)
                """,
                (url_id, image_url, timestamp, width, height),
            )
        return ScreenshotRecord(
            id=cursor.lastrowid,
            url_id=url_id,
            image_url=image_url,
            captured_at=timestamp,
            viewport_width=width,
            viewport_height=height,
        )

    def list_for_target(self, url_id: int, limit: int | None = None) -> list[ScreenshotRecord]:
        if limit is not None and limit <= 0:
            return []
        query = (
            "SELECT id, url_id, image_url, captured_at, viewport_width, viewport_height "
            "FROM website_screenshots WHERE url_id = ? ORDER BY id DESC"
        )
        parameters: list[object] = [url_id]
        if limit is not None:
            query += " LIMIT ?"
            parameters.append(limit)
        return [ScreenshotRecord(*row) for row in self._query(query, parameters)]
