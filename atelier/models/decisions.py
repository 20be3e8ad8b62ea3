"""
Creative decision models.

A decision is one node of the session's decision graph. Callers submit the
closed ``DecisionFields`` payload; identifiers, timestamps, ordering and
revision history are assigned by the tracker.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from atelier.models.handoff import Locale


class DecisionCategory(str, Enum):
    """Kinds of creative decision."""

    COLOR_PALETTE = "color-palette"
    TYPOGRAPHY = "typography"
    COMPOSITION = "composition"
    IMAGERY_STYLE = "imagery-style"
    BRAND_DIRECTION = "brand-direction"
    ASSET_GENERATION = "asset-generation"
    STYLE_FRAMEWORK = "style-framework"
    BUDGET_ALLOCATION = "budget-allocation"
    TIMELINE_ADJUSTMENT = "timeline-adjustment"
    SCOPE_CHANGE = "scope-change"

    @property
    def budget_category(self) -> str:
        """Budget category a decision of this kind is charged to."""
        mapping = {
            "color-palette": "concept-development",
            "typography": "concept-development",
            "composition": "concept-development",
            "imagery-style": "concept-development",
            "style-framework": "concept-development",
            "brand-direction": "consultation",
            "asset-generation": "asset-generation",
            "budget-allocation": "project-management",
            "timeline-adjustment": "project-management",
            "scope-change": "revisions",
        }
        return mapping[self.value]

    @property
    def phase(self) -> str:
        """Creative phase a decision of this kind belongs to."""
        mapping = {
            "brand-direction": "concept-development",
            "color-palette": "style-definition",
            "typography": "style-definition",
            "composition": "style-definition",
            "imagery-style": "style-definition",
            "style-framework": "asset-planning",
            "asset-generation": "asset-generation",
            "budget-allocation": "strategy-analysis",
            "timeline-adjustment": "refinement",
            "scope-change": "refinement",
        }
        return mapping[self.value]


class DecisionStatus(str, Enum):
    """Lifecycle of a decision."""

    PROPOSED = "proposed"
    APPROVED = "approved"
    IMPLEMENTED = "implemented"
    REVISED = "revised"
    REJECTED = "rejected"

    @property
    def allowed_transitions(self) -> frozenset["DecisionStatus"]:
        """Statuses reachable from this one."""
        table = {
            "proposed": {"approved", "revised", "rejected"},
            "approved": {"implemented", "revised", "rejected"},
            "revised": {"approved", "rejected"},
            "implemented": set(),
            "rejected": set(),
        }
        return frozenset(DecisionStatus(s) for s in table[self.value])


class Tier(str, Enum):
    """Three-step scale used for complexity and risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DecisionImpact(BaseModel):
    """Impact vector; every component lies in [0, 1]."""

    brand_alignment: float = Field(default=0.5, ge=0.0, le=1.0)
    budget_impact: float = Field(default=0.0, ge=0.0, le=1.0)
    timeline_impact: float = Field(default=0.0, ge=0.0, le=1.0)
    quality_impact: float = Field(default=0.5, ge=0.0, le=1.0)
    strategic_value: float = Field(default=0.5, ge=0.0, le=1.0)


class Implementation(BaseModel):
    cost: float = Field(default=0.0, ge=0.0, description="Budget the decision consumes")
    time_required: str = Field(default="", description="Human readable time estimate")
    resources: list[str] = Field(default_factory=list)
    complexity: Tier = Tier.LOW
    risk_level: Tier = Tier.LOW


class DecisionRevision(BaseModel):
    """One entry in a decision's revision history."""

    timestamp: datetime = Field(default_factory=datetime.now)
    previous_value: str
    new_value: str
    reason: str
    cost_impact: float = 0.0


class DecisionFields(BaseModel):
    """Caller-supplied part of a creative decision."""

    category: DecisionCategory
    decision: str = Field(min_length=1)
    reasoning: str = ""
    alternatives_considered: list[str] = Field(default_factory=list)
    impact: DecisionImpact = Field(default_factory=DecisionImpact)
    implementation: Implementation = Field(default_factory=Implementation)
    status: DecisionStatus = DecisionStatus.PROPOSED
    dependencies: list[str] = Field(default_factory=list)
    influences: list[str] = Field(default_factory=list)
    reversible: bool = True
    created_by: Literal["david", "user", "system"] = "david"
    locale: Locale = "en"

    @field_validator("dependencies", "influences")
    @classmethod
    def no_duplicate_ids(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("decision references must not repeat")
        return v


class CreativeDecision(DecisionFields):
    """A tracked decision node."""

    id: str
    session_id: str
    sequence: int = Field(ge=0, description="Position in session order")
    timestamp: datetime = Field(default_factory=datetime.now)
    approved_by: str | None = None
    implemented_at: datetime | None = None
    revision_history: list[DecisionRevision] = Field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status == DecisionStatus.PROPOSED

    def to_summary(self) -> str:
        """Get a brief summary."""
        return f"[{self.category.value}] {self.decision} (${self.implementation.cost:,.2f})"


class DecisionSummary(BaseModel):
    total_decisions: int = 0
    approved_decisions: int = 0
    total_cost_impact: float = 0.0
    avg_quality_impact: float = 0.0
    critical_dependencies: int = 0


class DecisionReport(BaseModel):
    """Decision list with summary figures and recommendations."""

    decisions: list[CreativeDecision] = Field(default_factory=list)
    summary: DecisionSummary = Field(default_factory=DecisionSummary)
    recommendations: list[str] = Field(default_factory=list)
