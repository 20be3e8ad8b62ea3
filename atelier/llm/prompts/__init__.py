"""Prompt templates for creative generation."""

from atelier.llm.prompts.creative import (
    CREATIVE_DIRECTOR_SYSTEM_PROMPT,
    CREATIVE_TURN_PROMPT,
    INTENT_INSTRUCTIONS,
    build_creative_prompt,
)

__all__ = [
    "CREATIVE_DIRECTOR_SYSTEM_PROMPT",
    "CREATIVE_TURN_PROMPT",
    "INTENT_INSTRUCTIONS",
    "build_creative_prompt",
]
