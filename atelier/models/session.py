"""
Session and continuity models.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from atelier.models.costs import CostSimulation
from atelier.models.decisions import CreativeDecision
from atelier.models.errors import ErrorReport
from atelier.models.handoff import HandoffContext, Locale


class CreativePhase(str, Enum):
    """Phases of a creative-production session."""

    STRATEGY_ANALYSIS = "strategy-analysis"
    CONCEPT_DEVELOPMENT = "concept-development"
    STYLE_DEFINITION = "style-definition"
    ASSET_PLANNING = "asset-planning"
    ASSET_GENERATION = "asset-generation"
    REFINEMENT = "refinement"
    FINALIZATION = "finalization"
    HANDOFF_PREPARATION = "handoff-preparation"

    @property
    def description(self) -> str:
        """Get description for the phase."""
        descriptions = {
            "strategy-analysis": "Reviewing the strategic handoff",
            "concept-development": "Developing the creative concept",
            "style-definition": "Defining palette, type and composition",
            "asset-planning": "Planning the asset set",
            "asset-generation": "Producing assets",
            "refinement": "Refining scope and timeline",
            "finalization": "Finalizing deliverables",
            "handoff-preparation": "Preparing the downstream handoff",
        }
        return descriptions.get(self.value, "Unknown phase")


class Milestone(BaseModel):
    phase: CreativePhase
    reached_at: datetime = Field(default_factory=datetime.now)
    decision_id: str | None = None


class GraphEdge(BaseModel):
    source: str
    target: str
    type: Literal["depends_on", "influences"]
    strength: float = Field(default=1.0, ge=0.0, le=1.0)


class SessionContinuity(BaseModel):
    """Journey through the creative phases plus the decision graph edges."""

    current_phase: CreativePhase = CreativePhase.STRATEGY_ANALYSIS
    completed_phases: list[CreativePhase] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    key_topics: list[str] = Field(default_factory=list)
    unexplored_areas: list[str] = Field(
        default_factory=lambda: ["color-preferences", "style-direction", "budget-priorities"]
    )


class SessionRecord(BaseModel):
    """Everything the core keeps about one session."""

    session_id: str
    locale: Locale = "en"
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    handoff_context: HandoffContext | None = None
    decisions: list[CreativeDecision] = Field(default_factory=list)
    cost_simulation: CostSimulation
    continuity: SessionContinuity = Field(default_factory=SessionContinuity)
    next_sequence: int = 0

    def find_decision(self, decision_id: str) -> CreativeDecision | None:
        for decision in self.decisions:
            if decision.id == decision_id:
                return decision
        return None


class SessionSnapshot(BaseModel):
    """Complete, re-importable export of a session."""

    session_id: str
    locale: Locale = "en"
    exported_at: datetime = Field(default_factory=datetime.now)
    handoff_context: HandoffContext | None = None
    decisions: list[CreativeDecision] = Field(default_factory=list)
    cost_simulation: CostSimulation
    continuity: SessionContinuity = Field(default_factory=SessionContinuity)
    error_reports: list[ErrorReport] = Field(default_factory=list)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=indent)

    def save(self, path: str | Path) -> Path:
        """Write the snapshot as JSON and return the path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: str | Path) -> "SessionSnapshot":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.model_validate(data)
