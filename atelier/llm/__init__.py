"""Atelier LLM package - language generation via LiteLLM."""

from atelier.llm.client import GenerationService, LLMClient, StaticGenerator
from atelier.llm.structured import (
    CreativeReply,
    GenerationRequest,
    GenerationResponse,
    GenerationUsage,
)

__all__ = [
    "LLMClient",
    "GenerationService",
    "StaticGenerator",
    "CreativeReply",
    "GenerationRequest",
    "GenerationResponse",
    "GenerationUsage",
]
