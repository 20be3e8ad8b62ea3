"""
Tests for session stores.
"""

import pytest

from atelier.core.store import InMemorySessionStore, SqliteSessionStore, create_store
from atelier.exceptions import SessionNotFoundError
from atelier.models.costs import BudgetState, CostSimulation
from atelier.models.errors import (
    ErrorCategory,
    ErrorClassification,
    ErrorReport,
    ErrorSeverity,
    RecoveryOutcome,
)
from atelier.models.session import SessionRecord


def make_record(session_id="s1", total=1000.0):
    return SessionRecord(
        session_id=session_id,
        cost_simulation=CostSimulation(budget=BudgetState(total=total, remaining=total)),
    )


def make_report(session_id="s1", message="timeout"):
    return ErrorReport(
        session_id=session_id,
        error_name="NetworkError",
        message=message,
        classification=ErrorClassification(
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            user_action_required=False,
        ),
        outcome=RecoveryOutcome.RECOVERED,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, temp_dir):
    """Each store backing with a small report limit."""
    if request.param == "memory":
        return InMemorySessionStore(max_error_reports=2)
    return SqliteSessionStore(temp_dir, max_error_reports=2)


class TestSessionStore:
    """Tests shared by every store backing."""

    def test_put_and_get(self, store):
        """Test a stored record can be loaded back."""
        store.put(make_record())
        record = store.get("s1")
        assert record.session_id == "s1"
        assert record.cost_simulation.budget.total == 1000
        assert store.exists("s1")

    def test_get_unknown(self, store):
        """Test loading an unknown session."""
        assert store.load("missing") is None
        assert not store.exists("missing")
        with pytest.raises(SessionNotFoundError):
            store.get("missing")

    def test_records_are_copies(self, store):
        """Test mutating a loaded record does not change the store."""
        store.put(make_record())
        record = store.get("s1")
        record.cost_simulation.budget.allocated = 500
        assert store.get("s1").cost_simulation.budget.allocated == 0

    def test_replace(self, store):
        """Test put replaces an existing record."""
        store.put(make_record(total=1000))
        store.put(make_record(total=2000))
        assert store.get("s1").cost_simulation.budget.total == 2000
        assert store.list_ids() == ["s1"]

    def test_delete(self, store):
        """Test delete removes the record and its reports."""
        store.put(make_record())
        store.add_error_report(make_report())
        assert store.delete("s1") is True
        assert store.delete("s1") is False
        assert store.get_error_reports("s1") == []

    def test_error_reports_bounded(self, store):
        """Test the oldest reports beyond the limit are evicted."""
        store.put(make_record())
        for message in ("first", "second", "third"):
            store.add_error_report(make_report(message=message))
        reports = store.get_error_reports("s1")
        assert [r.message for r in reports] == ["second", "third"]

    def test_lock_per_session(self, store):
        """Test each session has its own lock."""
        assert store.lock("s1") is store.lock("s1")
        assert store.lock("s1") is not store.lock("s2")

    @pytest.mark.asyncio
    async def test_session_lock_dropped_when_idle(self, store):
        """Test a session lock is kept while held and dropped afterwards."""
        store.put(make_record())
        async with store.session("s1"):
            assert store.lock("s1").locked()
            store.delete("s1")
        assert "s1" not in store._locks

    @pytest.mark.asyncio
    async def test_session_lock_released_on_error(self, store):
        """Test a failing block still releases and drops the lock."""
        with pytest.raises(SessionNotFoundError):
            async with store.session("ghost"):
                store.get("ghost")
        assert "ghost" not in store._locks


class TestSqliteSessionStore:
    """Tests specific to the SQLite store."""

    def test_persists_across_instances(self, temp_dir):
        """Test a second store on the same directory sees the data."""
        SqliteSessionStore(temp_dir).put(make_record())
        assert SqliteSessionStore(temp_dir).get("s1").session_id == "s1"

    def test_list_sessions(self, temp_dir):
        """Test session metadata listing."""
        store = SqliteSessionStore(temp_dir)
        store.put(make_record("s1"))
        store.put(make_record("s2", total=500))
        sessions = store.list_sessions(limit=10)
        assert {s["session_id"] for s in sessions} == {"s1", "s2"}
        s2 = next(s for s in sessions if s["session_id"] == "s2")
        assert s2["total_budget"] == 500
        assert s2["current_phase"] == "strategy-analysis"
        assert s2["decision_count"] == 0
        assert len(store.list_sessions(limit=1)) == 1


class TestCreateStore:
    """Tests for create_store."""

    def test_memory(self):
        """Test the memory backend."""
        assert isinstance(create_store("memory"), InMemorySessionStore)

    def test_sqlite(self, temp_dir):
        """Test the sqlite backend."""
        store = create_store("sqlite", temp_dir)
        assert isinstance(store, SqliteSessionStore)
        assert store.db_path.exists()

    def test_unknown(self):
        """Test an unknown backend is rejected."""
        with pytest.raises(ValueError):
            create_store("redis")
