"""
Handoff validation and context synthesis.

Turns the upstream analysis document into the frozen ``HandoffContext`` every
other component reads. Both steps are pure: no I/O, no randomness, no clock,
so the same document always yields the same result.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from atelier.exceptions import HandoffValidationError
from atelier.models.handoff import (
    AnalysisDocument,
    AssetBudget,
    AssetStrategy,
    CheckStatus,
    ColorMood,
    CreativeRecommendations,
    DecisionFramework,
    HandoffContext,
    HandoffOutcome,
    RequiredAsset,
    ValidationCheck,
    ValidationResult,
    ValidationSummary,
    VisualDirection,
    VisualOpportunities,
    VisualStyle,
)
from atelier.utils.helpers import deduplicate
from atelier.utils.logger import get_logger

logger = get_logger("atelier.handoff")

MISSING_PENALTY = 0.25
WARNING_PENALTY = 0.1
VALIDATION_COMPLETE = "Handoff data validation complete"
HIGH_CONFIDENCE = 0.8
ESTIMATED_COST_RATIO = 0.8

STYLE_MAP: dict[str, VisualStyle] = {
    "minimalist": VisualStyle.MINIMALIST,
    "luxury": VisualStyle.LUXURY,
    "modern": VisualStyle.MODERN,
    "classic": VisualStyle.CLASSIC,
    "bold": VisualStyle.BOLD,
    "organic": VisualStyle.ORGANIC,
    "tech": VisualStyle.TECH,
    "sophisticated": VisualStyle.SOPHISTICATED,
}

TONE_MOOD_MAP: dict[str, ColorMood] = {
    "energetic": ColorMood.ENERGETIC,
    "calming": ColorMood.CALMING,
    "sophisticated": ColorMood.SOPHISTICATED,
    "warm": ColorMood.WARM,
    "professional": ColorMood.PROFESSIONAL,
    "trustworthy": ColorMood.PROFESSIONAL,
    "innovative": ColorMood.ENERGETIC,
}

PERSONALITY_STYLE_MAP: dict[str, tuple[VisualStyle, ...]] = {
    "innovative": (VisualStyle.MODERN, VisualStyle.TECH, VisualStyle.BOLD),
    "sophisticated": (VisualStyle.SOPHISTICATED, VisualStyle.LUXURY, VisualStyle.CLASSIC),
    "accessible": (VisualStyle.ORGANIC, VisualStyle.MODERN, VisualStyle.MINIMALIST),
    "premium": (VisualStyle.LUXURY, VisualStyle.SOPHISTICATED, VisualStyle.CLASSIC),
    "trustworthy": (VisualStyle.CLASSIC, VisualStyle.SOPHISTICATED, VisualStyle.MODERN),
    "dynamic": (VisualStyle.BOLD, VisualStyle.MODERN, VisualStyle.TECH),
}

# Matched as substrings of each target emotion, in this order.
EMOTION_MOOD_MAP: dict[str, tuple[ColorMood, ...]] = {
    "confidence": (ColorMood.PROFESSIONAL, ColorMood.SOPHISTICATED),
    "trust": (ColorMood.PROFESSIONAL, ColorMood.CALMING),
    "excitement": (ColorMood.ENERGETIC, ColorMood.VIBRANT),
    "calm": (ColorMood.CALMING, ColorMood.NATURAL),
    "luxury": (ColorMood.PREMIUM, ColorMood.SOPHISTICATED),
    "innovation": (ColorMood.ENERGETIC, ColorMood.VIBRANT),
    "reliability": (ColorMood.PROFESSIONAL, ColorMood.WARM),
    "accessibility": (ColorMood.FRIENDLY, ColorMood.WARM),
}

# (positioning keywords, required moods, moods to avoid)
BRAND_MOOD_RULES: tuple[tuple[tuple[str, ...], tuple[ColorMood, ...], tuple[ColorMood, ...]], ...] = (
    (("premium", "luxury"), (ColorMood.PREMIUM, ColorMood.SOPHISTICATED), (ColorMood.FRIENDLY, ColorMood.VIBRANT)),
    (("accessible", "friendly"), (ColorMood.FRIENDLY, ColorMood.WARM), (ColorMood.DRAMATIC, ColorMood.PREMIUM)),
    (("innovative", "tech"), (ColorMood.ENERGETIC, ColorMood.PROFESSIONAL), (ColorMood.MUTED, ColorMood.NATURAL)),
)

COMPLEMENTARY_MOODS: dict[ColorMood, tuple[ColorMood, ColorMood]] = {
    ColorMood.PROFESSIONAL: (ColorMood.SOPHISTICATED, ColorMood.WARM),
    ColorMood.SOPHISTICATED: (ColorMood.PREMIUM, ColorMood.CALMING),
    ColorMood.ENERGETIC: (ColorMood.VIBRANT, ColorMood.FRIENDLY),
    ColorMood.CALMING: (ColorMood.NATURAL, ColorMood.MUTED),
    ColorMood.PREMIUM: (ColorMood.SOPHISTICATED, ColorMood.DRAMATIC),
    ColorMood.FRIENDLY: (ColorMood.WARM, ColorMood.NATURAL),
    ColorMood.WARM: (ColorMood.FRIENDLY, ColorMood.NATURAL),
    ColorMood.COOL: (ColorMood.PROFESSIONAL, ColorMood.CALMING),
    ColorMood.VIBRANT: (ColorMood.ENERGETIC, ColorMood.FRIENDLY),
    ColorMood.MUTED: (ColorMood.SOPHISTICATED, ColorMood.CALMING),
    ColorMood.NATURAL: (ColorMood.WARM, ColorMood.CALMING),
    ColorMood.DRAMATIC: (ColorMood.PREMIUM, ColorMood.SOPHISTICATED),
}

ASSET_PURPOSES: dict[str, str] = {
    "product-hero": "Primary product showcase",
    "lifestyle-scene": "Contextual usage demonstration",
    "background": "Visual foundation and atmosphere",
    "mood-board": "Style and direction reference",
}
DEFAULT_ASSET_PURPOSE = "Supporting visual element"
DEFAULT_ASSET_REQUIREMENTS = ("High quality", "Brand consistent", "Target audience appropriate")


def _plain_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def map_visual_style(value: str | None) -> VisualStyle | None:
    """Map a free-text style suggestion to a ``VisualStyle``."""
    if not value:
        return None
    return STYLE_MAP.get(value.strip().lower())


def map_color_mood(value: str | None) -> ColorMood | None:
    """Map a free-text emotional tone to a ``ColorMood``."""
    if not value:
        return None
    return TONE_MOOD_MAP.get(value.strip().lower())


def map_personality_to_styles(traits: list[str] | tuple[str, ...]) -> tuple[VisualStyle, ...]:
    """
    Collect style tags for brand-personality traits.

    Unknown traits contribute ``modern``. Order follows first appearance.

    Example:
        >>> [s.value for s in map_personality_to_styles(["premium", "Trustworthy"])]
        ['luxury', 'sophisticated', 'classic', 'modern']
    """
    styles: list[VisualStyle] = []
    for trait in traits:
        styles.extend(PERSONALITY_STYLE_MAP.get(trait.strip().lower(), (VisualStyle.MODERN,)))
    return tuple(deduplicate(styles))


def map_emotions_to_moods(emotions: list[str] | tuple[str, ...]) -> dict[str, tuple[ColorMood, ...]]:
    """
    Map each target emotion to color-mood tags by keyword.

    When several keywords occur in one emotion the last matching keyword wins.
    """
    mapping: dict[str, tuple[ColorMood, ...]] = {}
    for emotion in emotions:
        lowered = emotion.lower()
        for keyword, moods in EMOTION_MOOD_MAP.items():
            if keyword in lowered:
                mapping[emotion] = moods
    return mapping


def brand_mood_requirements(positioning: str) -> tuple[tuple[ColorMood, ...], tuple[ColorMood, ...]]:
    """Return ``(required, avoided)`` moods for a brand positioning statement."""
    lowered = positioning.lower()
    for keywords, required, avoided in BRAND_MOOD_RULES:
        if any(k in lowered for k in keywords):
            return required, avoided
    return (ColorMood.PROFESSIONAL,), ()


def select_optimal_mood(
    emotion_moods: dict[str, tuple[ColorMood, ...]],
    required: tuple[ColorMood, ...],
    avoided: tuple[ColorMood, ...],
) -> ColorMood:
    """
    Pick the most frequently suggested mood that is not avoided.

    Ties go to the mood suggested first; with nothing usable the result is
    ``professional``.
    """
    suggested: list[ColorMood] = []
    for moods in emotion_moods.values():
        suggested.extend(moods)
    suggested.extend(required)

    best = ColorMood.PROFESSIONAL
    best_count = 0
    for mood, count in Counter(suggested).items():
        if count > best_count and mood not in avoided:
            best, best_count = mood, count
    return best


class HandoffValidator:
    """
    Scores an analysis document for completeness.

    Missing required sections make the document invalid; missing optional
    detail only lowers the completeness score.

    Example:
        >>> result = HandoffValidator().validate(document)
        >>> result.is_valid, result.completeness
        (True, 1.0)
    """

    def validate(self, document: AnalysisDocument | Mapping[str, Any]) -> ValidationResult:
        """
        Validate an analysis document.

        Args:
            document: Parsed document or a raw mapping

        Returns:
            ValidationResult; never raises for bad input
        """
        if not isinstance(document, AnalysisDocument):
            parsed = self._parse(document)
            if isinstance(parsed, ValidationResult):
                return parsed
            document = parsed

        checks: list[ValidationCheck] = []
        missing: list[str] = []
        warnings: list[str] = []
        recommendations: list[str] = []

        def require(ok: bool, name: str, label: str) -> None:
            if ok:
                checks.append(ValidationCheck(name=name, status=CheckStatus.PASSED, message=f"{label} present"))
            else:
                missing.append(label)
                checks.append(ValidationCheck(name=name, status=CheckStatus.FAILED, message=f"{label} missing"))

        def advise(ok: bool, name: str, warning: str, recommendation: str) -> None:
            if ok:
                checks.append(ValidationCheck(
                    name=name, status=CheckStatus.PASSED, message=f"{name} present", required=False,
                ))
            else:
                warnings.append(warning)
                recommendations.append(recommendation)
                checks.append(ValidationCheck(
                    name=name, status=CheckStatus.WARNING, message=warning, required=False,
                ))

        require(document.product_analysis is not None, "product_analysis", "Product analysis")
        require(document.commercial_strategy is not None, "commercial_strategy", "Commercial strategy")
        require(document.strategic_insights is not None, "strategic_insights", "Strategic insights")

        visual = document.visual_opportunities
        advise(
            visual is not None and len(visual.hero_shot_requirements) > 0,
            "visual_opportunities",
            "Limited visual opportunity data",
            "Consider expanding visual requirements analysis",
        )

        budget = document.budget_allocation
        require(
            budget is not None and budget.creative_budget > 0,
            "budget_allocation",
            "Creative budget allocation",
        )

        creative = document.creative_recommendations
        advise(
            creative is not None and len(creative.priority_assets) > 0,
            "priority_assets",
            "No priority assets specified",
            "Define asset priorities for optimal creative workflow",
        )

        return self._result(checks, missing, warnings, recommendations)

    def _parse(self, raw: Mapping[str, Any]) -> AnalysisDocument | ValidationResult:
        """Parse a raw mapping, reporting unparseable sections as missing."""
        try:
            return AnalysisDocument.model_validate(raw)
        except PydanticValidationError as e:
            sections = deduplicate(str(err["loc"][0]) for err in e.errors() if err["loc"])
            missing = [f"Malformed {section}" for section in sections] or ["Malformed analysis document"]
            checks = [
                ValidationCheck(name=section, status=CheckStatus.FAILED, message=f"{section} could not be parsed")
                for section in sections
            ]
            logger.debug("Analysis document failed to parse: %s", e)
            return self._result(checks, missing, [], [])

    @staticmethod
    def _result(
        checks: list[ValidationCheck],
        missing: list[str],
        warnings: list[str],
        recommendations: list[str],
    ) -> ValidationResult:
        completeness = max(0.0, 1 - len(missing) * MISSING_PENALTY - len(warnings) * WARNING_PENALTY)
        return ValidationResult(
            is_valid=not missing,
            completeness=round(completeness, 6),
            missing_elements=missing,
            warnings=warnings,
            recommendations=recommendations or [VALIDATION_COMPLETE],
            checks=checks,
            summary=ValidationSummary(
                total=len(checks),
                passed=sum(1 for c in checks if c.status == CheckStatus.PASSED),
                failed=sum(1 for c in checks if c.status == CheckStatus.FAILED),
                warnings=sum(1 for c in checks if c.status == CheckStatus.WARNING),
            ),
        )


class ContextSynthesizer:
    """Derives the frozen ``HandoffContext`` from a valid analysis document."""

    def __init__(self, validator: HandoffValidator | None = None):
        self.validator = validator or HandoffValidator()

    def synthesize(self, document: AnalysisDocument | Mapping[str, Any]) -> HandoffContext:
        """
        Build the session context.

        Args:
            document: A document that passes validation

        Returns:
            HandoffContext

        Raises:
            HandoffValidationError: If the document is not valid
        """
        result = self.validator.validate(document)
        if not result.is_valid:
            raise HandoffValidationError(result)
        if not isinstance(document, AnalysisDocument):
            document = AnalysisDocument.model_validate(document)

        analysis = document.product_analysis
        insights = document.strategic_insights
        budget = document.budget_allocation
        assert analysis is not None and insights is not None and budget is not None

        visual = document.visual_opportunities or VisualOpportunities()
        creative = document.creative_recommendations or CreativeRecommendations()

        personality = self._brand_personality(document)
        target_emotions = tuple(insights.target_audience_profile.motivations[:3])

        return HandoffContext(
            product_essence=self._product_essence(document),
            brand_personality=personality,
            target_emotions=target_emotions,
            key_differentiators=tuple(insights.competitive_advantages),
            budget=budget.creative_budget,
            locale=document.locale,
            source_session_id=document.source_session_id,
            visual_direction=self._visual_direction(visual, personality, insights.brand_positioning, target_emotions),
            asset_strategy=self._asset_strategy(creative, visual, budget.asset_generation_budget),
            decision_framework=self._decision_framework(document, creative),
        )

    @staticmethod
    def _product_essence(document: AnalysisDocument) -> str:
        analysis = document.product_analysis
        lifestyle = "consumers"
        audience = analysis.target_audience
        if audience and audience.primary and audience.primary.demographics.lifestyle:
            lifestyle = audience.primary.demographics.lifestyle[0] or "consumers"
        features = " and ".join(analysis.product.key_features[:2])
        return f"{analysis.product.category} solution targeting {lifestyle} with {features} capabilities"

    @staticmethod
    def _brand_personality(document: AnalysisDocument) -> tuple[str, ...]:
        analysis = document.product_analysis
        insights = document.strategic_insights
        traits: list[str] = []
        if analysis.metadata.confidence_score > HIGH_CONFIDENCE:
            traits.append(analysis.product.category)
        traits.append(insights.brand_positioning)
        traits.extend(insights.competitive_advantages[:2])
        return tuple(t for t in traits if t)

    @staticmethod
    def _visual_direction(
        visual: VisualOpportunities,
        personality: tuple[str, ...],
        positioning: str,
        target_emotions: tuple[str, ...],
    ) -> VisualDirection:
        styles = visual.visual_styles
        primary = map_visual_style(styles[0] if styles else None) or VisualStyle.MODERN
        secondary = tuple(s for s in (map_visual_style(v) for v in styles[1:3]) if s is not None)

        tones = visual.emotional_tones
        color_mood = map_color_mood(tones[0] if tones else None) or ColorMood.PROFESSIONAL

        emotion_moods = map_emotions_to_moods(target_emotions)
        required, avoided = brand_mood_requirements(positioning)
        optimal = select_optimal_mood(emotion_moods, required, avoided)

        return VisualDirection(
            primary_style=primary,
            secondary_styles=secondary,
            color_mood=color_mood,
            supporting_moods=COMPLEMENTARY_MOODS.get(optimal, (ColorMood.SOPHISTICATED, ColorMood.WARM)),
            style_tags=map_personality_to_styles(personality),
            color_mood_tags=emotion_moods,
            required_moods=required,
            avoid_moods=avoided,
            composition_preferences=tuple(visual.hero_shot_requirements),
        )

    @staticmethod
    def _asset_strategy(
        creative: CreativeRecommendations,
        visual: VisualOpportunities,
        asset_budget: float,
    ) -> AssetStrategy:
        requirements = tuple(visual.hero_shot_requirements) or DEFAULT_ASSET_REQUIREMENTS
        assets = tuple(
            RequiredAsset(
                type=asset_type,
                priority=index + 1,
                purpose=ASSET_PURPOSES.get(asset_type, DEFAULT_ASSET_PURPOSE),
                requirements=requirements,
            )
            for index, asset_type in enumerate(creative.priority_assets)
        )
        share = asset_budget / len(assets) if assets else 0.0
        distribution = tuple(
            AssetBudget(
                asset_type=asset.type,
                allocated_budget=share,
                estimated_cost=share * ESTIMATED_COST_RATIO,
            )
            for asset in assets
        )
        return AssetStrategy(required_assets=assets, budget_distribution=distribution)

    @staticmethod
    def _decision_framework(document: AnalysisDocument, creative: CreativeRecommendations) -> DecisionFramework:
        insights = document.strategic_insights
        asset_budget = document.budget_allocation.asset_generation_budget
        return DecisionFramework(
            must_have=(*insights.key_selling_points[:2], *creative.priority_assets[:3]),
            should_have=(*creative.key_messages, *creative.suggested_styles[:2]),
            could_have=(
                *insights.competitive_advantages[2:],
                "Enhanced visual effects",
                "Additional asset variations",
            ),
            constraints=(
                f"Budget limit: ${_plain_amount(asset_budget)}",
                "Brand guideline compliance",
                "Target audience appropriateness",
                "Commercial viability",
            ),
        )


class HandoffService:
    """Validates and synthesizes a handoff without raising on bad input."""

    def __init__(self, synthesizer: ContextSynthesizer | None = None):
        self.synthesizer = synthesizer or ContextSynthesizer()
        self.validator = self.synthesizer.validator

    def process(self, session_id: str, document: AnalysisDocument | Mapping[str, Any]) -> HandoffOutcome:
        validation = self.validator.validate(document)
        if not validation.is_valid:
            logger.warning(
                "Handoff for session %s rejected: missing %s",
                session_id, ", ".join(validation.missing_elements),
            )
            return HandoffOutcome(
                success=False,
                session_id=session_id,
                validation=validation,
                error=f"Missing required elements: {', '.join(validation.missing_elements)}",
            )

        context = self.synthesizer.synthesize(document)
        logger.info(
            "Handoff for session %s accepted (completeness %.0f%%)",
            session_id, validation.completeness * 100,
        )
        return HandoffOutcome(success=True, session_id=session_id, validation=validation, context=context)
