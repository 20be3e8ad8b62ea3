"""
Tests for the state update scheduler.
"""

import pytest

from atelier.core.scheduler import (
    DEFAULT_SLICES,
    ProgressiveStage,
    SliceConfig,
    UpdateFrequency,
    UpdateScheduler,
    UpdateType,
    VirtualClock,
)
from atelier.models.config import SchedulerConfig


class Recorder:
    """Collects notifications."""

    def __init__(self):
        self.calls = []

    def __call__(self, name, changes):
        self.calls.append((name, changes))


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def scheduler(recorder, virtual_clock):
    return UpdateScheduler(recorder, clock=virtual_clock)


class TestVirtualClock:
    """Tests for VirtualClock."""

    def test_timers_fire_in_order(self, virtual_clock):
        """Test due timers fire by due time, then registration order."""
        fired = []
        virtual_clock.call_later(0.2, lambda: fired.append("late"))
        virtual_clock.call_later(0.1, lambda: fired.append("a"))
        virtual_clock.call_later(0.1, lambda: fired.append("b"))
        virtual_clock.advance(0.15)
        assert fired == ["a", "b"]
        assert virtual_clock.now() == pytest.approx(0.15)
        assert virtual_clock.pending == 1

    def test_cancelled_timer_does_not_fire(self, virtual_clock):
        """Test a cancelled timer never fires."""
        fired = []
        handle = virtual_clock.call_later(0.1, lambda: fired.append("x"))
        handle.cancel()
        virtual_clock.advance(1)
        assert fired == []
        assert virtual_clock.pending == 0


class TestSliceConfig:
    """Tests for slice configuration."""

    def test_default_slices(self, scheduler):
        """Test the built-in slice table."""
        names = [s.slice for s in DEFAULT_SLICES]
        assert names == [
            "messages",
            "asset-generation-progress",
            "decisions",
            "cost",
            "expanded-sections",
            "handoff-preparation",
        ]
        assert scheduler.slice_config("messages").update_frequency == UpdateFrequency.HIGH
        assert scheduler.slice_config("decisions").dependencies == ["cost"]

    def test_delays(self, scheduler):
        """Test frequency tiers map to delays."""
        assert scheduler.delay_for("messages") == pytest.approx(0.008)
        assert scheduler.delay_for("cost") == pytest.approx(0.05)
        assert scheduler.delay_for("expanded-sections") == pytest.approx(0.2)

    def test_unknown_slice_defaults(self, scheduler):
        """Test unknown slices get medium frequency without memoization."""
        config = scheduler.slice_config("custom")
        assert config.update_frequency == UpdateFrequency.MEDIUM
        assert not config.memoize
        assert not config.batch_updates

    def test_configure_slice(self, scheduler):
        """Test a slice configuration can be replaced."""
        scheduler.configure_slice(SliceConfig(slice="cost", update_frequency=UpdateFrequency.LOW))
        assert scheduler.delay_for("cost") == pytest.approx(0.2)


class TestSelective:
    """Tests for selective updates."""

    def test_delivers_immediately(self, scheduler, recorder):
        """Test a selective update bypasses coalescing."""
        assert scheduler.update_selective("cost", {"allocated": 800}) is True
        assert recorder.calls == [("cost", {"allocated": 800})]
        assert scheduler.get_state("cost") == {"allocated": 800}

    def test_folds_in_pending_batch(self, scheduler, recorder, virtual_clock):
        """Test pending batched fields go out with the selective write."""
        scheduler.update_batched("messages", {"a": 1})
        scheduler.update_selective("messages", {"b": 2})
        assert recorder.calls == [("messages", {"a": 1, "b": 2})]

        virtual_clock.advance(1)
        assert len(recorder.calls) == 1


class TestBatched:
    """Tests for batched updates."""

    def test_merges_into_one_notification(self, scheduler, recorder, virtual_clock):
        """Test writes within the window deliver one merged notification."""
        scheduler.update_batched("messages", {"a": 1})
        scheduler.update_batched("messages", {"b": 2})
        scheduler.update_batched("messages", {"a": 3})
        assert recorder.calls == []
        assert scheduler.has_pending("messages")

        virtual_clock.advance(0.008)
        assert recorder.calls == [("messages", {"a": 3, "b": 2})]
        assert not scheduler.has_pending()

    def test_window_opens_at_first_write(self, scheduler, recorder, virtual_clock):
        """Test later writes do not extend the window."""
        scheduler.update_batched("decisions", {"a": 1})
        virtual_clock.advance(0.025)
        scheduler.update_batched("decisions", {"b": 2})
        assert recorder.calls == []
        virtual_clock.advance(0.025)
        assert recorder.calls == [("decisions", {"a": 1, "b": 2})]

    def test_non_batching_slice_delivers_each_write(self, recorder, virtual_clock):
        """Test a slice with batching off delivers every write as it arrives."""
        scheduler = UpdateScheduler(
            recorder,
            clock=virtual_clock,
            slices=[SliceConfig(slice="x", update_frequency=UpdateFrequency.HIGH, batch_updates=False)],
        )
        scheduler.update_batched("x", {"a": 1})
        scheduler.update_batched("x", {"b": 2})
        assert recorder.calls == [("x", {"a": 1}), ("x", {"b": 2})]
        assert not scheduler.has_pending("x")
        assert virtual_clock.pending == 0

    def test_non_batching_slice_honors_explicit_delay(self, scheduler, recorder, virtual_clock):
        """Test an explicit delay still batches a non-batching slice."""
        scheduler.update_batched("expanded-sections", {"a": 1}, delay=0.1)
        scheduler.update_batched("expanded-sections", {"b": 2}, delay=0.1)
        assert recorder.calls == []
        virtual_clock.advance(0.1)
        assert recorder.calls == [("expanded-sections", {"a": 1, "b": 2})]

    def test_unknown_slice_uses_default_delay(self, scheduler, recorder, virtual_clock):
        """Test ad hoc slices use the default batch delay."""
        scheduler.update_batched("custom", {"x": 1})
        virtual_clock.advance(0.015)
        assert recorder.calls == []
        virtual_clock.advance(0.002)
        assert recorder.calls == [("custom", {"x": 1})]

    def test_explicit_delay(self, scheduler, recorder, virtual_clock):
        """Test an explicit delay overrides the slice's."""
        scheduler.update_batched("messages", {"x": 1}, delay=1.0)
        virtual_clock.advance(0.5)
        assert recorder.calls == []
        virtual_clock.advance(0.5)
        assert len(recorder.calls) == 1

    def test_flush(self, scheduler, recorder, virtual_clock):
        """Test flush delivers pending batches now."""
        scheduler.update_batched("messages", {"a": 1})
        scheduler.update_batched("custom", {"b": 2})
        assert scheduler.flush() == 2
        assert len(recorder.calls) == 2
        virtual_clock.advance(1)
        assert len(recorder.calls) == 2
        assert scheduler.flush() == 0

    def test_cancel_pending_fields(self, scheduler, recorder, virtual_clock):
        """Test cancelling some pending fields keeps the rest."""
        scheduler.update_batched("custom", {"s1": 1, "s2": 2})
        scheduler.cancel_pending("custom", fields=["s1"])
        virtual_clock.advance(1)
        assert recorder.calls == [("custom", {"s2": 2})]
        assert "s1" not in scheduler.get_state("custom")

    def test_cancel_pending_slice(self, scheduler, recorder, virtual_clock):
        """Test cancelling a whole slice drops its batch."""
        scheduler.update_batched("custom", {"a": 1})
        scheduler.cancel_pending("custom")
        virtual_clock.advance(1)
        assert recorder.calls == []
        assert virtual_clock.pending == 0


class TestMemoized:
    """Tests for memoized updates."""

    def test_duplicate_notifies_once(self, scheduler, recorder, virtual_clock):
        """Test identical writes notify once."""
        assert scheduler.update_memoized("cost", {"allocated": 800}) is True
        virtual_clock.advance(0.05)
        assert scheduler.update_memoized("cost", {"allocated": 800}) is False
        virtual_clock.advance(0.05)
        assert recorder.calls == [("cost", {"allocated": 800})]
        assert scheduler.get_performance_analytics()["summary"]["cache_hits"] == 1

    def test_duplicate_of_pending_value(self, scheduler, recorder, virtual_clock):
        """Test a write equal to the pending value schedules nothing."""
        scheduler.update_memoized("cost", {"allocated": 800})
        assert scheduler.update_memoized("cost", {"allocated": 800}) is False
        virtual_clock.advance(0.05)
        assert len(recorder.calls) == 1

    def test_only_changed_fields_delivered(self, scheduler, recorder, virtual_clock):
        """Test memoized slices deliver only the changed fields."""
        scheduler.update_memoized("cost", {"allocated": 800, "total": 1000})
        virtual_clock.advance(0.05)
        scheduler.update_memoized("cost", {"allocated": 900, "total": 1000})
        virtual_clock.advance(0.05)
        assert recorder.calls[1] == ("cost", {"allocated": 900})

    def test_nested_values_compared_structurally(self, scheduler, recorder, virtual_clock):
        """Test equal nested values are treated as unchanged."""
        scheduler.update_memoized("cost", {"s1": {"total": 1000, "alerts": [1]}})
        virtual_clock.advance(0.05)
        assert scheduler.update_memoized("cost", {"s1": {"total": 1000, "alerts": [1]}}) is False

    def test_write_back_to_delivered_value_is_dropped(self, scheduler, recorder, virtual_clock):
        """Test a batch that ends where it started delivers nothing."""
        scheduler.update_memoized("cost", {"allocated": 100})
        virtual_clock.advance(0.05)
        scheduler.update_memoized("cost", {"allocated": 200})
        scheduler.update_batched("cost", {"allocated": 100})
        virtual_clock.advance(0.05)
        assert recorder.calls == [("cost", {"allocated": 100})]


class TestConditional:
    """Tests for conditional updates."""

    def test_applies_when_predicate_holds(self, scheduler, recorder, virtual_clock):
        """Test the update is scheduled when the predicate is true."""
        applied = scheduler.update_conditional("custom", {"ready": True}, lambda state: True)
        virtual_clock.advance(1)
        assert applied is True
        assert recorder.calls == [("custom", {"ready": True})]

    def test_fallback_when_predicate_fails(self, scheduler, recorder, virtual_clock):
        """Test the fallback runs and nothing is scheduled."""
        fallbacks = []
        applied = scheduler.update_conditional(
            "custom",
            {"ready": True},
            lambda state: state.get("count", 0) > 0,
            fallback=lambda: fallbacks.append("ran"),
        )
        virtual_clock.advance(1)
        assert applied is False
        assert fallbacks == ["ran"]
        assert recorder.calls == []

    def test_predicate_sees_applied_state(self, scheduler):
        """Test the predicate receives the current slice state."""
        scheduler.update_selective("custom", {"count": 2})
        seen = []
        scheduler.update_conditional("custom", {"x": 1}, lambda state: seen.append(state) or True)
        assert seen == [{"count": 2}]


class TestProgressive:
    """Tests for progressive updates."""

    @pytest.mark.asyncio
    async def test_delivers_every_stage(self, scheduler, recorder, virtual_clock):
        """Test each stage is delivered in order."""
        await scheduler.update_progressive("asset-generation-progress", [
            ProgressiveStage({"progress": 0.25}, delay=0.1),
            ProgressiveStage({"progress": 0.5}, delay=0.1),
            ProgressiveStage({"progress": 1.0}, delay=0.1),
        ])
        assert [c[1]["progress"] for c in recorder.calls] == [0.25, 0.5, 1.0]
        # No pause after the final stage
        assert virtual_clock.now() == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_progressive_metrics(self, scheduler):
        """Test progressive deliveries are recorded with their type."""
        await scheduler.update_progressive("custom", [ProgressiveStage({"a": 1}), ProgressiveStage({"a": 2})])
        assert [m.update_type for m in scheduler.metrics] == [UpdateType.PROGRESSIVE] * 2


class TestFaultTolerance:
    """Tests for observer failures."""

    def test_raising_observer_does_not_break_scheduler(self, virtual_clock):
        """Test a failing notify callback is logged and scheduling continues."""
        calls = []

        def notify(name, changes):
            calls.append(changes)
            raise RuntimeError("observer broke")

        scheduler = UpdateScheduler(notify, clock=virtual_clock)
        scheduler.update_batched("messages", {"a": 1})
        virtual_clock.advance(0.01)
        scheduler.update_batched("messages", {"b": 2})
        virtual_clock.advance(0.01)
        assert calls == [{"a": 1}, {"b": 2}]
        assert not scheduler.has_pending()


class TestDiagnostics:
    """Tests for metrics and analytics."""

    def test_metrics_recorded(self, scheduler):
        """Test every delivery records a metric."""
        scheduler.update_selective("cost", {"a": 1})
        scheduler.update_selective("messages", {"b": 1})
        metrics = scheduler.metrics
        assert [m.slice for m in metrics] == ["cost", "messages"]
        assert metrics[0].update_type == UpdateType.SELECTIVE
        assert metrics[0].performance_impact == "minimal"

    def test_metrics_bounded(self, recorder, virtual_clock):
        """Test retained metrics are capped."""
        scheduler = UpdateScheduler(recorder, clock=virtual_clock, config=SchedulerConfig(max_metrics=3))
        for i in range(5):
            scheduler.update_selective("custom", {"i": i})
        assert len(scheduler.metrics) == 3

    def test_performance_analytics(self, scheduler):
        """Test the analytics summary."""
        for i in range(3):
            scheduler.update_selective("messages", {"i": i})
        analytics = scheduler.get_performance_analytics()
        assert analytics["summary"]["total_updates"] == 3
        assert analytics["summary"]["recent_performance"] == "Excellent"
        assert analytics["by_slice"] == {"messages": 3}
        assert analytics["impact_distribution"]["minimal"] == 3
        assert analytics["bottlenecks"] == []
        assert "Slice 'messages' dominates updates; consider a lower frequency tier" in analytics["recommendations"]

    def test_clear_metrics(self, scheduler):
        """Test clearing metrics resets analytics."""
        scheduler.update_selective("cost", {"a": 1})
        scheduler.clear_metrics()
        assert scheduler.get_performance_analytics()["summary"]["total_updates"] == 0

    def test_reset(self, scheduler, recorder, virtual_clock):
        """Test reset forgets delivered state."""
        scheduler.update_memoized("cost", {"a": 1})
        virtual_clock.advance(1)
        scheduler.reset("cost")
        assert scheduler.get_state("cost") == {}
        assert scheduler.update_memoized("cost", {"a": 1}) is True
