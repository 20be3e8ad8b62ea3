"""
Error classification and recovery models.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class ErrorCategory(str, Enum):
    """Failure taxonomy."""

    NETWORK = "network"
    VALIDATION = "validation"
    API = "api"
    GENERATION = "generation"
    STORAGE = "storage"
    PERMISSION = "permission"
    QUOTA = "quota"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    """Severity levels for handled errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def color(self) -> str:
        """Get Rich console color for severity."""
        colors = {
            "critical": "red bold",
            "high": "red",
            "medium": "yellow",
            "low": "blue",
        }
        return colors.get(self.value, "white")

    @property
    def user_impact(self) -> str:
        impacts = {
            "critical": "severe",
            "high": "significant",
            "medium": "moderate",
            "low": "minimal",
        }
        return impacts[self.value]


class RecoveryOutcome(str, Enum):
    RECOVERED = "recovered"
    FAILED = "failed"
    USER_RESOLVED = "user_resolved"
    PENDING = "pending"


class ErrorClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ErrorCategory
    severity: ErrorSeverity
    recoverable: bool
    user_action_required: bool
    affected_systems: tuple[str, ...] = ()


class RecoveryStep(BaseModel):
    """
    One step of a recovery strategy.

    Automated steps name a bound action; manual steps may carry a validation
    callback that decides whether the step counts as done.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    description: str
    type: Literal["automated", "manual"] = "automated"
    action: str | None = None
    timeout: float = Field(default=5.0, gt=0, description="Seconds")
    validation_callback: Callable[[], Any] | None = Field(default=None, exclude=True)


class RecoveryStrategy(BaseModel):
    id: str
    name: str
    description: str = ""
    applicable_errors: list[str] = Field(description="Error categories, or 'all'")
    steps: list[RecoveryStep]
    success_probability: float = Field(ge=0.0, le=1.0)
    estimated_time: float = Field(default=5.0, ge=0, description="Seconds")
    user_involvement: Literal["none", "minimal", "moderate", "significant"] = "none"

    def applies_to(self, category: ErrorCategory) -> bool:
        return category.value in self.applicable_errors or "all" in self.applicable_errors


class StepResult(BaseModel):
    step_id: str
    success: bool
    error: str | None = None
    duration: float = Field(default=0.0, description="Seconds")


class RecoveryAttempt(BaseModel):
    id: str = Field(default_factory=lambda: f"attempt-{uuid4().hex[:8]}")
    strategy_id: str
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    success: bool = False
    step_results: list[StepResult] = Field(default_factory=list)
    failure_reason: str | None = None


class UserAction(BaseModel):
    """A user-invocable action offered alongside guidance."""

    id: str
    label: str
    type: Literal["primary", "secondary", "tertiary"] = "secondary"
    tooltip: str | None = None


class UserGuidance(BaseModel):
    title: str
    message: str
    tone: Literal["reassuring", "informative", "supportive", "urgent"]
    actions: list[UserAction] = Field(default_factory=list)
    locale: str = "en"


class ErrorReport(BaseModel):
    """One handled failure and everything done about it."""

    id: str = Field(default_factory=lambda: f"error-{uuid4().hex[:12]}")
    session_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    error_name: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    classification: ErrorClassification
    recovery_attempts: list[RecoveryAttempt] = Field(default_factory=list)
    user_guidance: UserGuidance | None = None
    outcome: RecoveryOutcome = RecoveryOutcome.PENDING
    closed_at: datetime | None = None

    @property
    def signature(self) -> str:
        """Key of the error pattern this report belongs to."""
        return f"{self.classification.category.value}-{self.error_name}-{self.message[:50]}"


class ErrorPattern(BaseModel):
    signature: str
    category: ErrorCategory
    frequency: int = 0
    last_seen: datetime = Field(default_factory=datetime.now)
    common_causes: list[str] = Field(default_factory=list)
    effective_strategies: list[str] = Field(default_factory=list)
    user_impact: Literal["minimal", "moderate", "significant", "severe"] = "minimal"
    prevention_tips: list[str] = Field(default_factory=list)


class HandleErrorResult(BaseModel):
    recovered: bool
    strategy: RecoveryStrategy | None = None
    user_guidance: UserGuidance | None = None
    error_report: ErrorReport


class PatternSummary(BaseModel):
    signature: str
    frequency: int
    category: ErrorCategory


class CategoryTrend(BaseModel):
    category: ErrorCategory
    count: int
    recovery_rate: float


class ErrorAnalytics(BaseModel):
    total_errors: int = 0
    recovery_rate: float = 0.0
    common_patterns: list[PatternSummary] = Field(default_factory=list)
    recent_trends: list[CategoryTrend] = Field(default_factory=list)
    strategy_stats: dict[str, dict[str, int]] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
