"""
Cost simulation models.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class BudgetCategory(str, Enum):
    """The five buckets a session budget is split into."""

    CONSULTATION = "consultation"
    CONCEPT_DEVELOPMENT = "concept-development"
    ASSET_GENERATION = "asset-generation"
    REVISIONS = "revisions"
    PROJECT_MANAGEMENT = "project-management"


class AlertType(str, Enum):
    """Kinds of advisory cost alert."""

    WARNING = "warning"
    CRITICAL = "critical"
    OPPORTUNITY = "opportunity"
    MILESTONE = "milestone"

    @property
    def color(self) -> str:
        """Get Rich console color for the alert."""
        colors = {
            "warning": "yellow",
            "critical": "red bold",
            "opportunity": "green",
            "milestone": "cyan",
        }
        return colors.get(self.value, "white")


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CostCategory(BaseModel):
    budgeted: float = 0.0
    spent: float = 0.0
    remaining: float = 0.0
    projected: float = 0.0
    items: list[str] = Field(default_factory=list, description="Transaction ids charged here")


class CostTransaction(BaseModel):
    """One charge against the budget. Append-only."""

    id: str = Field(default_factory=lambda: f"txn-{uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=datetime.now)
    category: BudgetCategory
    amount: float = Field(ge=0.0)
    description: str
    decision_id: str | None = None
    source: str = Field(default="decision", description="decision or generation")


class CostAlert(BaseModel):
    id: str = Field(default_factory=lambda: f"alert-{uuid4().hex[:8]}")
    timestamp: datetime = Field(default_factory=datetime.now)
    type: AlertType
    message: str
    action: str = ""
    threshold: float | None = None
    current_value: float | None = None
    resolved: bool = False


class BudgetState(BaseModel):
    total: float = Field(gt=0)
    allocated: float = 0.0
    spent: float = 0.0
    remaining: float = 0.0
    reserved: float = 0.0


class Projections(BaseModel):
    estimated_total: float = 0.0
    confidence_level: float = 0.85
    completion_estimate: datetime | None = None


class Thresholds(BaseModel):
    """Alert thresholds as utilization percentages."""

    warning: float = 75.0
    critical: float = 90.0
    project_hold: float = 100.0


class RoiEstimate(BaseModel):
    estimated_value: float = 0.0
    projected_return: float = 2.5
    time_to_value: str = "3-6 months"
    risk_adjusted_return: float = 2.0


class CostSimulation(BaseModel):
    """Budget model for one session."""

    budget: BudgetState
    breakdown: dict[BudgetCategory, CostCategory] = Field(default_factory=dict)
    transactions: list[CostTransaction] = Field(default_factory=list)
    projections: Projections = Field(default_factory=Projections)
    alerts: list[CostAlert] = Field(default_factory=list)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    roi: RoiEstimate = Field(default_factory=RoiEstimate)

    @property
    def utilization_percent(self) -> float:
        return self.budget.allocated / self.budget.total * 100

    def unresolved_alerts(self, alert_type: AlertType | None = None) -> list[CostAlert]:
        return [
            a for a in self.alerts
            if not a.resolved and (alert_type is None or a.type == alert_type)
        ]


class CostAnalysis(BaseModel):
    budget_utilization: float
    projected_overrun: float
    efficiency: float
    risk_level: RiskLevel


class CostOptimization(BaseModel):
    opportunity: str
    potential_saving: float
    impact: str


class CostSimulationView(BaseModel):
    """Simulation snapshot with derived analysis figures."""

    simulation: CostSimulation
    analysis: CostAnalysis
    optimizations: list[CostOptimization] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
