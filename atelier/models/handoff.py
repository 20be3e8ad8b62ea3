"""
Handoff models.

The upstream analysis stage hands Atelier an ``AnalysisDocument``. The
validator scores it into a ``ValidationResult`` and the synthesizer turns a
valid document into a frozen ``HandoffContext`` that the rest of the session
reads but never mutates.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Locale = Literal["en", "ja"]


class VisualStyle(str, Enum):
    """Visual styles a creative direction can take."""

    MINIMALIST = "minimalist"
    LUXURY = "luxury"
    MODERN = "modern"
    CLASSIC = "classic"
    BOLD = "bold"
    ORGANIC = "organic"
    TECH = "tech"
    ARTISAN = "artisan"
    URBAN = "urban"
    NATURAL = "natural"
    SOPHISTICATED = "sophisticated"
    PLAYFUL = "playful"


class ColorMood(str, Enum):
    """Emotional register of a color palette."""

    ENERGETIC = "energetic"
    CALMING = "calming"
    SOPHISTICATED = "sophisticated"
    WARM = "warm"
    COOL = "cool"
    VIBRANT = "vibrant"
    MUTED = "muted"
    NATURAL = "natural"
    DRAMATIC = "dramatic"
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    PREMIUM = "premium"


# Upstream analysis document

class Demographics(BaseModel):
    age_range: str | None = None
    income: str | None = None
    lifestyle: list[str] = Field(default_factory=list)


class AudienceSegment(BaseModel):
    demographics: Demographics = Field(default_factory=Demographics)


class TargetAudience(BaseModel):
    primary: AudienceSegment | None = None


class ProductInfo(BaseModel):
    name: str = ""
    category: str = Field(description="Product category, e.g. 'skincare'")
    description: str = ""
    key_features: list[str] = Field(default_factory=list)


class AnalysisMetadata(BaseModel):
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    analysis_version: str = "1.0"


class ProductAnalysis(BaseModel):
    """Product analysis produced by the upstream stage."""

    product: ProductInfo
    target_audience: TargetAudience | None = None
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)


class AudienceProfile(BaseModel):
    primary: str = ""
    demographics: list[str] = Field(default_factory=list)
    psychographics: list[str] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    motivations: list[str] = Field(default_factory=list)


class StrategicInsights(BaseModel):
    key_selling_points: list[str] = Field(default_factory=list)
    target_audience_profile: AudienceProfile = Field(default_factory=AudienceProfile)
    competitive_advantages: list[str] = Field(default_factory=list)
    brand_positioning: str = ""


class VisualOpportunities(BaseModel):
    hero_shot_requirements: list[str] = Field(default_factory=list)
    lifestyle_contexts: list[str] = Field(default_factory=list)
    emotional_tones: list[str] = Field(default_factory=list)
    visual_styles: list[str] = Field(default_factory=list)
    color_preferences: list[str] = Field(default_factory=list)


class BudgetAllocation(BaseModel):
    total_budget: float = Field(default=0.0, ge=0)
    creative_budget: float = Field(default=0.0, ge=0)
    asset_generation_budget: float = Field(default=0.0, ge=0)


class CreativeRecommendations(BaseModel):
    priority_assets: list[str] = Field(default_factory=list)
    suggested_styles: list[str] = Field(default_factory=list)
    key_messages: list[str] = Field(default_factory=list)
    visual_hierarchy: list[str] = Field(default_factory=list)


class AnalysisDocument(BaseModel):
    """
    Structured analysis supplied by the upstream stage.

    Every section is optional at the type level so that the validator can
    report what is missing instead of the parser rejecting the document.
    """

    product_analysis: ProductAnalysis | None = None
    commercial_strategy: dict | None = None
    strategic_insights: StrategicInsights | None = None
    visual_opportunities: VisualOpportunities | None = None
    budget_allocation: BudgetAllocation | None = None
    creative_recommendations: CreativeRecommendations | None = None
    source_session_id: str | None = None
    handoff_timestamp: datetime | None = None
    locale: Locale = "en"


# Validation

class CheckStatus(str, Enum):
    """Outcome of one validation rule."""

    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"


class ValidationCheck(BaseModel):
    name: str
    status: CheckStatus
    message: str
    required: bool = True


class ValidationSummary(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0


class ValidationResult(BaseModel):
    """Completeness report for an analysis document."""

    is_valid: bool
    completeness: float = Field(ge=0.0, le=1.0)
    missing_elements: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    checks: list[ValidationCheck] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)


# Synthesized context

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class VisualDirection(_Frozen):
    primary_style: VisualStyle
    secondary_styles: tuple[VisualStyle, ...] = ()
    color_mood: ColorMood
    supporting_moods: tuple[ColorMood, ...] = ()
    style_tags: tuple[VisualStyle, ...] = ()
    color_mood_tags: dict[str, tuple[ColorMood, ...]] = Field(default_factory=dict)
    required_moods: tuple[ColorMood, ...] = ()
    avoid_moods: tuple[ColorMood, ...] = ()
    composition_preferences: tuple[str, ...] = ()


class RequiredAsset(_Frozen):
    type: str
    priority: int
    purpose: str
    requirements: tuple[str, ...] = ()


class AssetBudget(_Frozen):
    asset_type: str
    allocated_budget: float
    estimated_cost: float


class AssetStrategy(_Frozen):
    required_assets: tuple[RequiredAsset, ...] = ()
    budget_distribution: tuple[AssetBudget, ...] = ()


class DecisionFramework(_Frozen):
    must_have: tuple[str, ...] = ()
    should_have: tuple[str, ...] = ()
    could_have: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()


class HandoffContext(_Frozen):
    """
    Immutable strategic summary of a validated analysis document.

    Produced once per session and read-only afterwards.
    """

    product_essence: str
    brand_personality: tuple[str, ...] = ()
    target_emotions: tuple[str, ...] = ()
    key_differentiators: tuple[str, ...] = ()
    budget: float
    locale: Locale = "en"
    source_session_id: str | None = None
    visual_direction: VisualDirection
    asset_strategy: AssetStrategy = Field(default_factory=AssetStrategy)
    decision_framework: DecisionFramework = Field(default_factory=DecisionFramework)

    def to_prompt_summary(self) -> str:
        """Render the context as plain text for a generation prompt."""
        lines = [
            f"Product essence: {self.product_essence}",
            f"Brand personality: {', '.join(self.brand_personality) or 'n/a'}",
            f"Target emotions: {', '.join(self.target_emotions) or 'n/a'}",
            f"Key differentiators: {', '.join(self.key_differentiators) or 'n/a'}",
            f"Primary style: {self.visual_direction.primary_style.value}",
            f"Color mood: {self.visual_direction.color_mood.value}",
            f"Budget: ${self.budget:,.2f}",
        ]
        return "\n".join(lines)


class HandoffOutcome(BaseModel):
    """Result of processing a handoff into a session context."""

    success: bool
    session_id: str
    validation: ValidationResult
    context: HandoffContext | None = None
    error: str | None = None
