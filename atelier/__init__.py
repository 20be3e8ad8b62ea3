"""
Atelier - Creative Session Orchestration Core

Tracks a creative-production session from the upstream analysis handoff to
finished assets: validates the handoff, records creative decisions as a
dependency graph, simulates the budget they consume, schedules state delivery
to observers, and classifies and recovers from runtime failures.
"""

__version__ = "0.1.0"
__author__ = "Atelier Team"
__license__ = "MIT"

from atelier.models.config import AtelierConfig

__all__ = [
    "__version__",
    "AtelierConfig",
]
