"""Atelier models package."""

from atelier.models.config import (
    AtelierConfig,
    BudgetConfig,
    LLMConfig,
    PricingConfig,
    RecoveryConfig,
    SchedulerConfig,
    StorageConfig,
)
from atelier.models.costs import AlertType, BudgetCategory, CostAlert, CostSimulation, CostTransaction
from atelier.models.decisions import (
    CreativeDecision,
    DecisionCategory,
    DecisionFields,
    DecisionImpact,
    DecisionStatus,
    Implementation,
)
from atelier.models.errors import (
    ErrorCategory,
    ErrorClassification,
    ErrorReport,
    ErrorSeverity,
    HandleErrorResult,
    RecoveryOutcome,
    RecoveryStep,
    RecoveryStrategy,
    UserGuidance,
)
from atelier.models.handoff import AnalysisDocument, ColorMood, HandoffContext, ValidationResult, VisualStyle
from atelier.models.session import CreativePhase, SessionRecord, SessionSnapshot

__all__ = [
    # Config
    "AtelierConfig",
    "BudgetConfig",
    "LLMConfig",
    "PricingConfig",
    "RecoveryConfig",
    "SchedulerConfig",
    "StorageConfig",
    # Handoff
    "AnalysisDocument",
    "ColorMood",
    "HandoffContext",
    "ValidationResult",
    "VisualStyle",
    # Decisions
    "CreativeDecision",
    "DecisionCategory",
    "DecisionFields",
    "DecisionImpact",
    "DecisionStatus",
    "Implementation",
    # Costs
    "AlertType",
    "BudgetCategory",
    "CostAlert",
    "CostSimulation",
    "CostTransaction",
    # Errors
    "ErrorCategory",
    "ErrorClassification",
    "ErrorReport",
    "ErrorSeverity",
    "HandleErrorResult",
    "RecoveryOutcome",
    "RecoveryStep",
    "RecoveryStrategy",
    "UserGuidance",
    # Session
    "CreativePhase",
    "SessionRecord",
    "SessionSnapshot",
]
