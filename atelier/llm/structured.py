"""
Request and response schemas for the language-generation capability.

The session core only ever sees these models; which provider produced the
text is the client's concern.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from atelier.models.config import PricingConfig


class GenerationUsage(BaseModel):
    """Token usage reported by a generation call."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def cost(self, pricing: PricingConfig) -> float:
        """
        Budget cost of this usage.

        Args:
            pricing: Per-1k-token prices

        Returns:
            (input * input price + output * output price) / 1000

        Example:
            >>> GenerationUsage(input_tokens=1000, output_tokens=1000).cost(PricingConfig())
            0.000625
        """
        return (
            self.input_tokens * pricing.input_token_cost
            + self.output_tokens * pricing.output_token_cost
        ) / 1000


class GenerationRequest(BaseModel):
    """A prompt for the generation capability."""

    prompt: str = Field(description="User-facing prompt")
    system_prompt: str | None = Field(default=None, description="Optional system instructions")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)

    def to_messages(self) -> list[dict[str, str]]:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": self.prompt})
        return messages


class GenerationResponse(BaseModel):
    """Generated text and, when the provider reports it, token usage."""

    text: str
    usage: GenerationUsage | None = None

    def cost(self, pricing: PricingConfig) -> float:
        """Cost of the response; missing usage costs nothing."""
        return self.usage.cost(pricing) if self.usage is not None else 0.0


class CreativeReply(BaseModel):
    """Text produced for one creative-direction turn."""

    session_id: str
    intent: Literal["brainstorm", "refine", "critique", "summarize", "chat"] = "chat"
    text: str
    cost: float = 0.0
    usage: GenerationUsage | None = None
