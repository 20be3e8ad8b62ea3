"""
Session stores.

A ``SessionStore`` is the repository every component uses to read and write
``SessionRecord`` objects. It also hands out one ``asyncio.Lock`` per session
so that writers targeting the same session never interleave, while different
sessions never contend.

Two backings are provided:
- InMemorySessionStore: process-local, used by tests and the CLI simulator
- SqliteSessionStore: persistent, with resume and inspection from the CLI
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator

from atelier.exceptions import SessionNotFoundError
from atelier.models.errors import ErrorReport
from atelier.models.session import SessionRecord


class SessionStore(ABC):
    """
    Repository interface for session records.

    Records returned by ``get`` are copies; callers mutate them and write them
    back with ``put`` inside ``session(session_id)``.
    """

    def __init__(self, max_error_reports: int = 100):
        self.max_error_reports = max_error_reports
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def lock(self, session_id: str) -> asyncio.Lock:
        """Get the exclusivity lock for a session."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @asynccontextmanager
    async def session(self, session_id: str) -> AsyncIterator[None]:
        """
        Hold a session's lock for the duration of the block.

        The lock is dropped once no task holds or waits for it, so ids of
        reset or unknown sessions do not accumulate.
        """
        lock = self.lock(session_id)
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._holders[session_id] - 1
            if remaining:
                self._holders[session_id] = remaining
            else:
                del self._holders[session_id]
                if self._locks.get(session_id) is lock:
                    del self._locks[session_id]

    def get(self, session_id: str) -> SessionRecord:
        """
        Load a session record.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        record = self.load(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record

    def exists(self, session_id: str) -> bool:
        return self.load(session_id) is not None

    def delete(self, session_id: str) -> bool:
        """Delete a session and its error reports. Returns False if unknown."""
        return self._delete(session_id)

    @abstractmethod
    def load(self, session_id: str) -> SessionRecord | None:
        """Load a session record, or None if unknown."""

    @abstractmethod
    def put(self, record: SessionRecord) -> None:
        """Insert or replace a session record."""

    @abstractmethod
    def _delete(self, session_id: str) -> bool:
        ...

    @abstractmethod
    def list_ids(self) -> list[str]:
        """List known session ids."""

    @abstractmethod
    def add_error_report(self, report: ErrorReport) -> None:
        """Persist a closed error report, evicting the session's oldest beyond the limit."""

    @abstractmethod
    def get_error_reports(self, session_id: str) -> list[ErrorReport]:
        """Error reports for a session, oldest first."""


class InMemorySessionStore(SessionStore):
    """
    Process-local store.

    Example:
        >>> store = InMemorySessionStore()
        >>> store.put(record)
        >>> store.get(record.session_id).session_id == record.session_id
        True
    """

    def __init__(self, max_error_reports: int = 100):
        super().__init__(max_error_reports)
        self._records: dict[str, SessionRecord] = {}
        self._reports: dict[str, OrderedDict[str, ErrorReport]] = {}

    def load(self, session_id: str) -> SessionRecord | None:
        record = self._records.get(session_id)
        return record.model_copy(deep=True) if record is not None else None

    def put(self, record: SessionRecord) -> None:
        self._records[record.session_id] = record.model_copy(deep=True)

    def _delete(self, session_id: str) -> bool:
        self._reports.pop(session_id, None)
        return self._records.pop(session_id, None) is not None

    def list_ids(self) -> list[str]:
        return list(self._records)

    def add_error_report(self, report: ErrorReport) -> None:
        reports = self._reports.setdefault(report.session_id, OrderedDict())
        reports[report.id] = report.model_copy(deep=True)
        while len(reports) > self.max_error_reports:
            reports.popitem(last=False)

    def get_error_reports(self, session_id: str) -> list[ErrorReport]:
        return [r.model_copy(deep=True) for r in self._reports.get(session_id, {}).values()]


class SqliteSessionStore(SessionStore):
    """
    SQLite-backed store for persistence and resume.

    Stores each session as a JSON document next to a few queryable columns
    used by the CLI listing.

    Example:
        >>> store = SqliteSessionStore("./atelier_data")
        >>> store.put(record)
        >>> store.list_sessions(limit=10)
    """

    def __init__(self, directory: str | Path, max_error_reports: int = 100):
        """
        Initialize the store.

        Args:
            directory: Directory for the database file
            max_error_reports: Error reports kept per session
        """
        super().__init__(max_error_reports)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.db_path = self.directory / "sessions.db"
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    locale TEXT NOT NULL,
                    current_phase TEXT NOT NULL,
                    decision_count INTEGER NOT NULL DEFAULT 0,
                    total_budget REAL NOT NULL,
                    allocated REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    record_json TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS error_reports (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    category TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    report_json TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions(session_id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_reports_session
                ON error_reports(session_id, timestamp)
            """)
            conn.commit()

    def load(self, session_id: str) -> SessionRecord | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                "SELECT record_json FROM sessions WHERE session_id = ?", (session_id,)
            )
            row = cursor.fetchone()

            if not row:
                return None

            return SessionRecord.model_validate(json.loads(row["record_json"]))

    def put(self, record: SessionRecord) -> None:
        now = datetime.now().isoformat()
        record_json = json.dumps(record.model_dump(mode="json"), default=str)
        budget = record.cost_simulation.budget

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sessions
                (session_id, locale, current_phase, decision_count, total_budget,
                 allocated, created_at, updated_at, record_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record.session_id,
                    record.locale,
                    record.continuity.current_phase.value,
                    len(record.decisions),
                    budget.total,
                    budget.allocated,
                    record.created_at.isoformat(),
                    now,
                    record_json,
                ),
            )
            conn.commit()

    def _delete(self, session_id: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM error_reports WHERE session_id = ?", (session_id,))
            cursor = conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            conn.commit()
            return cursor.rowcount > 0

    def list_ids(self) -> list[str]:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("SELECT session_id FROM sessions ORDER BY created_at")
            return [row[0] for row in cursor.fetchall()]

    def list_sessions(self, limit: int = 20) -> list[dict[str, Any]]:
        """
        List session metadata, most recently updated first.

        Args:
            limit: Maximum number of sessions to return

        Returns:
            List of session info dicts
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                """
                SELECT session_id, locale, current_phase, decision_count,
                       total_budget, allocated, created_at, updated_at
                FROM sessions
                ORDER BY updated_at DESC
                LIMIT ?
            """,
                (limit,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def add_error_report(self, report: ErrorReport) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO error_reports
                (id, session_id, timestamp, category, severity, outcome, report_json)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    report.id,
                    report.session_id,
                    report.timestamp.isoformat(),
                    report.classification.category.value,
                    report.classification.severity.value,
                    report.outcome.value,
                    json.dumps(report.model_dump(mode="json"), default=str),
                ),
            )
            # Evict the oldest reports beyond the per-session limit
            conn.execute(
                """
                DELETE FROM error_reports
                WHERE session_id = ? AND id NOT IN (
                    SELECT id FROM error_reports WHERE session_id = ?
                    ORDER BY timestamp DESC LIMIT ?
                )
            """,
                (report.session_id, report.session_id, self.max_error_reports),
            )
            conn.commit()

    def get_error_reports(self, session_id: str) -> list[ErrorReport]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                """
                SELECT report_json FROM error_reports
                WHERE session_id = ?
                ORDER BY timestamp
            """,
                (session_id,),
            )
            return [ErrorReport.model_validate(json.loads(row["report_json"])) for row in cursor.fetchall()]


def create_store(backend: str = "memory", directory: str | Path | None = None, max_error_reports: int = 100) -> SessionStore:
    """
    Build a store for the configured backend.

    Args:
        backend: ``memory`` or ``sqlite``
        directory: Database directory for ``sqlite``
        max_error_reports: Error reports kept per session

    Returns:
        SessionStore
    """
    if backend == "sqlite":
        return SqliteSessionStore(directory or "./atelier_data", max_error_reports=max_error_reports)
    if backend == "memory":
        return InMemorySessionStore(max_error_reports=max_error_reports)
    raise ValueError(f"Unknown storage backend: {backend}")
