"""
State update scheduler.

Decouples how often session state changes from how often observers are told
about it. Each observable slice has a frequency tier (selecting a coalescing
delay) and independent ``memoize`` / ``batch_updates`` flags.

Timers come from an injected ``Clock`` so that tests can drive virtual time
instead of waiting on the wall clock.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Literal, Protocol

from pydantic import BaseModel, Field

from atelier.models.config import SchedulerConfig
from atelier.utils.helpers import deep_equal, diff_fields, generate_id
from atelier.utils.logger import get_logger

logger = get_logger("atelier.scheduler")

NotifyCallback = Callable[[str, dict[str, Any]], Any]


class UpdateFrequency(str, Enum):
    """Frequency tiers for state slices."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class UpdateType(str, Enum):
    SELECTIVE = "selective"
    BATCH = "batch"
    MEMOIZED = "memoized"
    CONDITIONAL = "conditional"
    PROGRESSIVE = "progressive"


class SliceConfig(BaseModel):
    """How one state slice is delivered."""

    slice: str
    update_frequency: UpdateFrequency = UpdateFrequency.MEDIUM
    memoize: bool = False
    batch_updates: bool = False
    dependencies: list[str] = Field(default_factory=list)
    optimization_level: Literal["aggressive", "balanced", "conservative"] = "balanced"


DEFAULT_SLICES: tuple[SliceConfig, ...] = (
    SliceConfig(slice="messages", update_frequency=UpdateFrequency.HIGH, memoize=True, batch_updates=True,
                optimization_level="aggressive"),
    SliceConfig(slice="asset-generation-progress", update_frequency=UpdateFrequency.HIGH, batch_updates=True,
                optimization_level="balanced"),
    SliceConfig(slice="decisions", update_frequency=UpdateFrequency.MEDIUM, memoize=True, batch_updates=True,
                dependencies=["cost"], optimization_level="balanced"),
    SliceConfig(slice="cost", update_frequency=UpdateFrequency.MEDIUM, memoize=True,
                optimization_level="balanced"),
    SliceConfig(slice="expanded-sections", update_frequency=UpdateFrequency.LOW,
                optimization_level="conservative"),
    SliceConfig(slice="handoff-preparation", update_frequency=UpdateFrequency.LOW, memoize=True,
                optimization_level="conservative"),
)


class StateUpdateMetrics(BaseModel):
    """Diagnostics for one delivery. Never consulted for scheduling."""

    update_id: str
    slice: str
    update_type: UpdateType
    notify_count: int
    update_time_ms: float
    performance_impact: Literal["minimal", "moderate", "significant"]
    timestamp: datetime = Field(default_factory=datetime.now)


@dataclass
class ProgressiveStage:
    """One stage of a progressive update."""

    changes: dict[str, Any]
    delay: float = 0.0


# ----------------------------------------------------------------------
# Clock capability
# ----------------------------------------------------------------------

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(ABC):
    """Timer capability injected into the scheduler."""

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""

    @abstractmethod
    async def sleep(self, delay: float) -> None:
        """Suspend the caller for ``delay`` seconds."""


class AsyncioClock(Clock):
    """Clock backed by the running asyncio event loop."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


class _VirtualTimer:
    def __init__(self, clock: "VirtualClock", due: float, seq: int, callback: Callable[[], None]):
        self.clock = clock
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualClock(Clock):
    """
    Deterministic clock for tests and offline replays.

    Time only moves when ``advance`` is called; due timers then fire in order.
    ``sleep`` advances time itself, so progressive updates complete without
    real waiting.

    Example:
        >>> clock = VirtualClock()
        >>> scheduler = UpdateScheduler(notify, clock=clock)
        >>> scheduler.update_batched("messages", {"a": 1})
        >>> clock.advance(0.008)
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = 0
        self._timers: list[_VirtualTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        self._seq += 1
        timer = _VirtualTimer(self, self._now + max(0.0, delay), self._seq, callback)
        self._timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that falls due."""
        target = self._now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._timers.remove(timer)
            self._now = timer.due
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    async def sleep(self, delay: float) -> None:
        self.advance(delay)
        await asyncio.sleep(0)


# ----------------------------------------------------------------------
# Scheduler
# ----------------------------------------------------------------------

@dataclass
class _SliceState:
    config: SliceConfig
    applied: dict[str, Any] = field(default_factory=dict)
    delivered: dict[str, Any] = field(default_factory=dict)
    pending: dict[str, Any] = field(default_factory=dict)
    pending_type: UpdateType = UpdateType.BATCH
    timer: TimerHandle | None = None
    sequence: int = 0
    notify_count: int = 0


class UpdateScheduler:
    """
    Coalesces per-slice state writes into observer notifications.

    Within a slice every write is totally ordered and the newest value of a
    field always wins. Memoized slices only ever deliver the fields that
    changed since the last delivery and never deliver an empty diff.

    Example:
        >>> scheduler = UpdateScheduler(lambda name, changes: print(name, changes))
        >>> scheduler.update_selective("cost", {"allocated": 800})
        cost {'allocated': 800}
    """

    def __init__(
        self,
        notify: NotifyCallback,
        clock: Clock | None = None,
        slices: list[SliceConfig] | tuple[SliceConfig, ...] | None = None,
        config: SchedulerConfig | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            notify: Called as ``notify(slice_name, changes)`` on every delivery
            clock: Timer capability; defaults to the asyncio event loop
            slices: Slice configurations; defaults to the built-in table
            config: Delays and metrics retention
        """
        self.notify = notify
        self.clock = clock or AsyncioClock()
        self.config = config or SchedulerConfig()
        self._configs: dict[str, SliceConfig] = {
            s.slice: s for s in (slices if slices is not None else DEFAULT_SLICES)
        }
        self._slices: dict[str, _SliceState] = {}
        self._metrics: deque[StateUpdateMetrics] = deque(maxlen=self.config.max_metrics)
        self._cache_hits = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure_slice(self, config: SliceConfig) -> None:
        """Register or replace a slice configuration."""
        self._configs[config.slice] = config
        state = self._slices.get(config.slice)
        if state is not None:
            state.config = config

    def slice_config(self, name: str) -> SliceConfig:
        """Configuration for a slice; unknown slices get medium, no memoize, no batching."""
        return self._configs.get(name) or SliceConfig(slice=name)

    def delay_for(self, name: str) -> float:
        """Coalescing delay of a slice in seconds."""
        frequency = self.slice_config(name).update_frequency
        delays = {
            UpdateFrequency.HIGH: self.config.high_delay_ms,
            UpdateFrequency.MEDIUM: self.config.medium_delay_ms,
            UpdateFrequency.LOW: self.config.low_delay_ms,
        }
        return delays[frequency] / 1000

    def _state(self, name: str) -> _SliceState:
        state = self._slices.get(name)
        if state is None:
            state = _SliceState(config=self.slice_config(name))
            self._slices[name] = state
        return state

    def get_state(self, name: str) -> dict[str, Any]:
        """Applied state of a slice, including writes not yet delivered."""
        return dict(self._state(name).applied)

    def has_pending(self, name: str | None = None) -> bool:
        if name is not None:
            state = self._slices.get(name)
            return bool(state and state.pending)
        return any(s.pending for s in self._slices.values())

    # ------------------------------------------------------------------
    # Update operations
    # ------------------------------------------------------------------

    def update_selective(self, name: str, changes: dict[str, Any]) -> bool:
        """
        Apply and deliver now, bypassing coalescing.

        Pending batched fields of the slice are folded in first so nothing
        older can be delivered after this write.

        Returns:
            True if a notification was delivered
        """
        state = self._state(name)
        self._apply(state, changes)
        self._cancel_timer(state)
        return self._deliver(name, state, UpdateType.SELECTIVE)

    def update_batched(self, name: str, changes: dict[str, Any], delay: float | None = None) -> None:
        """
        Enqueue a write and deliver the merged batch after the slice's delay.

        Slices without a registered config use the default batch delay. A
        registered slice with ``batch_updates`` off delivers each write as it
        arrives unless an explicit ``delay`` is given.

        The window opens at the first pending write; later writes merge into it
        field by field, last write wins.

        Args:
            name: Slice name
            changes: Changed fields
            delay: Override the slice's delay, in seconds
        """
        state = self._state(name)
        self._apply(state, changes)
        if delay is None:
            config = self._configs.get(name)
            if config is None:
                delay = self.config.default_batch_delay_ms / 1000
            elif not config.batch_updates:
                self._cancel_timer(state)
                self._deliver(name, state, UpdateType.BATCH)
                return
            else:
                delay = self.delay_for(name)
        self._arm(name, state, delay, UpdateType.BATCH)

    def update_memoized(self, name: str, changes: dict[str, Any]) -> bool:
        """
        Compare before scheduling; identical values schedule nothing.

        Returns:
            False if every field equals what observers already have
        """
        state = self._state(name)
        baseline = {**state.delivered, **state.pending}
        if not diff_fields(baseline, changes):
            self._cache_hits += 1
            return False
        self._schedule(name, state, changes, UpdateType.MEMOIZED)
        return True

    def update_conditional(
        self,
        name: str,
        changes: dict[str, Any],
        predicate: Callable[[dict[str, Any]], bool],
        fallback: Callable[[], Any] | None = None,
    ) -> bool:
        """
        Apply only if ``predicate(current_state)`` holds, otherwise run ``fallback``.

        Returns:
            Whether the update was applied
        """
        state = self._state(name)
        if predicate(dict(state.applied)):
            self._schedule(name, state, changes, UpdateType.CONDITIONAL)
            return True
        if fallback is not None:
            fallback()
        return False

    async def update_progressive(self, name: str, stages: list[ProgressiveStage]) -> None:
        """
        Deliver stages in order, pausing between them but not after the last.
        """
        for index, stage in enumerate(stages):
            state = self._state(name)
            self._apply(state, stage.changes)
            self._cancel_timer(state)
            self._deliver(name, state, UpdateType.PROGRESSIVE)
            if stage.delay > 0 and index < len(stages) - 1:
                await self.clock.sleep(stage.delay)

    def flush(self, name: str | None = None) -> int:
        """
        Deliver pending batches now.

        Args:
            name: Slice to flush; all slices when None

        Returns:
            Number of notifications delivered
        """
        names = [name] if name is not None else list(self._slices)
        delivered = 0
        for slice_name in names:
            state = self._slices.get(slice_name)
            if state is None or not state.pending:
                continue
            self._cancel_timer(state)
            if self._deliver(slice_name, state, state.pending_type):
                delivered += 1
        return delivered

    def cancel_pending(self, name: str | None = None, fields: list[str] | None = None) -> None:
        """
        Drop pending writes without delivering them.

        Args:
            name: Slice to cancel; all slices when None
            fields: Only drop these pending fields, keeping the rest of the batch
        """
        names = [name] if name is not None else list(self._slices)
        for slice_name in names:
            state = self._slices.get(slice_name)
            if state is None:
                continue
            dropped = list(state.pending) if fields is None else [f for f in fields if f in state.pending]
            for key in dropped:
                del state.pending[key]
                if key in state.delivered:
                    state.applied[key] = state.delivered[key]
                else:
                    state.applied.pop(key, None)
            if not state.pending:
                self._cancel_timer(state)

    def reset(self, name: str | None = None) -> None:
        """Forget slice state entirely."""
        self.cancel_pending(name)
        if name is None:
            self._slices.clear()
        else:
            self._slices.pop(name, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, state: _SliceState, changes: dict[str, Any]) -> None:
        state.sequence += 1
        state.applied.update(changes)
        state.pending.update(changes)

    def _schedule(self, name: str, state: _SliceState, changes: dict[str, Any], update_type: UpdateType) -> None:
        self._apply(state, changes)
        self._arm(name, state, self.delay_for(name), update_type)

    def _arm(self, name: str, state: _SliceState, delay: float, update_type: UpdateType) -> None:
        state.pending_type = update_type
        if state.timer is None:
            state.timer = self.clock.call_later(delay, lambda: self._on_timer(name))

    def _on_timer(self, name: str) -> None:
        state = self._slices.get(name)
        if state is None:
            return
        state.timer = None
        self._deliver(name, state, state.pending_type)

    @staticmethod
    def _cancel_timer(state: _SliceState) -> None:
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None

    def _deliver(self, name: str, state: _SliceState, update_type: UpdateType) -> bool:
        pending, state.pending = state.pending, {}
        if not pending:
            return False

        if state.config.memoize:
            payload = diff_fields(state.delivered, pending)
            if not payload:
                self._cache_hits += 1
                return False
        else:
            payload = pending

        started = self.clock.now()
        state.delivered.update(payload)
        state.notify_count += 1
        try:
            self.notify(name, dict(payload))
        except Exception:
            logger.exception("State observer failed for slice %s", name)
        elapsed_ms = (self.clock.now() - started) * 1000

        self._record(name, update_type, state.notify_count, elapsed_ms)
        return True

    def _record(self, name: str, update_type: UpdateType, notify_count: int, elapsed_ms: float) -> None:
        if elapsed_ms <= 2:
            impact = "minimal"
        elif elapsed_ms <= 5:
            impact = "moderate"
        else:
            impact = "significant"
        self._metrics.append(StateUpdateMetrics(
            update_id=generate_id("update", 8),
            slice=name,
            update_type=update_type,
            notify_count=notify_count,
            update_time_ms=elapsed_ms,
            performance_impact=impact,
        ))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def metrics(self) -> list[StateUpdateMetrics]:
        return list(self._metrics)

    def clear_metrics(self) -> None:
        self._metrics.clear()
        self._cache_hits = 0

    def get_performance_analytics(self) -> dict[str, Any]:
        """
        Summarize recorded update metrics.

        Returns:
            Dictionary with summary, per-slice counts, impact distribution,
            recommendations and bottlenecks
        """
        metrics = list(self._metrics)
        total = len(metrics)
        avg_time = sum(m.update_time_ms for m in metrics) / total if total else 0.0
        impacts = Counter(m.performance_impact for m in metrics)
        by_slice = Counter(m.slice for m in metrics)

        recent = metrics[-10:]
        recent_avg = sum(m.update_time_ms for m in recent) / len(recent) if recent else 0.0
        if recent_avg <= 2:
            recent_rating = "Excellent"
        elif recent_avg <= 5:
            recent_rating = "Good"
        elif recent_avg <= 10:
            recent_rating = "Fair"
        else:
            recent_rating = "Needs optimization"

        recommendations = []
        if total and impacts["significant"] / total > 0.1:
            recommendations.append("Consider more aggressive batching for high-frequency updates")
        if total and self._cache_hits < total * 0.2:
            recommendations.append("Enable memoization on slices with repeated identical writes")
        heavy = [name for name, count in by_slice.items() if total and count / total > 0.5]
        for name in heavy:
            recommendations.append(f"Slice '{name}' dominates updates; consider a lower frequency tier")

        slow_slices: dict[str, list[float]] = {}
        for m in metrics:
            slow_slices.setdefault(m.slice, []).append(m.update_time_ms)
        bottlenecks = sorted(
            (
                {"slice": name, "avg_update_time_ms": sum(times) / len(times), "updates": len(times)}
                for name, times in slow_slices.items()
                if sum(times) / len(times) > 5
            ),
            key=lambda b: b["avg_update_time_ms"],
            reverse=True,
        )

        return {
            "summary": {
                "total_updates": total,
                "avg_update_time_ms": avg_time,
                "cache_hits": self._cache_hits,
                "recent_performance": recent_rating,
            },
            "by_slice": dict(by_slice),
            "impact_distribution": {k: impacts.get(k, 0) for k in ("minimal", "moderate", "significant")},
            "recommendations": recommendations,
            "bottlenecks": bottlenecks,
        }
