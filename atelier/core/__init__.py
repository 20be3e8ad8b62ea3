"""
Core package.

This package contains the session core: handoff synthesis, the decision
tracker and cost simulation, the update scheduler, error recovery and the
orchestrator that wires them together.
"""

from atelier.core.handoff import ContextSynthesizer, HandoffService, HandoffValidator
from atelier.core.orchestrator import CreativeSessionOrchestrator
from atelier.core.recovery import ErrorClassifier, RecoveryOrchestrator
from atelier.core.scheduler import AsyncioClock, Clock, SliceConfig, UpdateScheduler, VirtualClock
from atelier.core.store import InMemorySessionStore, SessionStore, SqliteSessionStore, create_store
from atelier.core.tracker import DecisionTracker

__all__ = [
    "CreativeSessionOrchestrator",
    "ContextSynthesizer",
    "HandoffService",
    "HandoffValidator",
    "DecisionTracker",
    "UpdateScheduler",
    "SliceConfig",
    "Clock",
    "AsyncioClock",
    "VirtualClock",
    "ErrorClassifier",
    "RecoveryOrchestrator",
    "SessionStore",
    "InMemorySessionStore",
    "SqliteSessionStore",
    "create_store",
]
