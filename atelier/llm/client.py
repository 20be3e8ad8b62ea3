"""
LiteLLM client wrapper for the language-generation capability.

Any provider LiteLLM supports can back creative text generation:
- Google (Gemini)
- OpenAI (GPT-4o)
- Anthropic (Claude)
- Ollama (local models)
"""

from __future__ import annotations

import os
from typing import Any, Protocol, runtime_checkable

import litellm
from tenacity import retry, stop_after_attempt, wait_exponential

from atelier.llm.structured import GenerationRequest, GenerationResponse, GenerationUsage
from atelier.models.config import LLMConfig

# Suppress LiteLLM's verbose logging
litellm.suppress_debug_info = True


@runtime_checkable
class GenerationService(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        ...


class LLMClient:
    """
    Multi-provider LLM client using LiteLLM.

    Tracks token usage across calls and implements ``GenerationService``.

    Example:
        >>> client = LLMClient(LLMConfig(provider="gemini", model="gemini-1.5-flash"))
        >>> response = await client.generate(GenerationRequest(prompt="Name three moods"))
        >>> response.usage.input_tokens
        12
    """

    def __init__(self, config: LLMConfig):
        """
        Initialize the LLM client.

        Args:
            config: LLM configuration including provider, model, and settings
        """
        self.config = config
        self.model_string = config.get_model_string()

        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        self.total_tokens = 0
        self.calls = 0

        self._setup_api_keys()

    def _setup_api_keys(self) -> None:
        """Set up API keys from config."""
        if self.config.api_key:
            env_map = {
                "openai": "OPENAI_API_KEY",
                "anthropic": "ANTHROPIC_API_KEY",
                "gemini": "GEMINI_API_KEY",
                "google": "GOOGLE_API_KEY",
                "groq": "GROQ_API_KEY",
                "mistral": "MISTRAL_API_KEY",
            }
            env_var = env_map.get(self.config.provider)
            if env_var:
                os.environ[env_var] = self.config.api_key

    @staticmethod
    def _extract_usage(response: Any) -> GenerationUsage | None:
        usage = getattr(response, "usage", None)
        if not usage:
            return None
        return GenerationUsage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

    def _track_usage(self, usage: GenerationUsage | None) -> None:
        self.calls += 1
        if usage is None:
            return
        self.total_prompt_tokens += usage.input_tokens
        self.total_completion_tokens += usage.output_tokens
        self.total_tokens += usage.total_tokens

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> GenerationResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Override default temperature
            max_tokens: Override default max tokens
            **kwargs: Additional arguments passed to LiteLLM

        Returns:
            GenerationResponse with the text and reported usage
        """
        if self.config.api_base:
            kwargs.setdefault("api_base", self.config.api_base)

        response = await litellm.acompletion(
            model=self.model_string,
            messages=messages,
            temperature=temperature if temperature is not None else self.config.temperature,
            max_tokens=max_tokens or self.config.max_tokens,
            timeout=self.config.timeout,
            **kwargs,
        )

        usage = self._extract_usage(response)
        self._track_usage(usage)

        return GenerationResponse(text=response.choices[0].message.content or "", usage=usage)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Generate text for a request."""
        return await self.complete(
            request.to_messages(),
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )

    def get_usage_stats(self) -> dict[str, Any]:
        """
        Get current usage statistics.

        Returns:
            Dictionary with token counts and call count
        """
        return {
            "prompt_tokens": self.total_prompt_tokens,
            "completion_tokens": self.total_completion_tokens,
            "total_tokens": self.total_tokens,
            "calls": self.calls,
            "model": self.model_string,
        }

    def reset_usage(self) -> None:
        """Reset usage tracking counters."""
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        self.total_tokens = 0
        self.calls = 0


class StaticGenerator:
    """
    Deterministic generator for tests and offline simulation.

    Returns the same text for every request and records the prompts it saw.
    A list of exceptions can be queued to make the next calls fail.

    Example:
        >>> generator = StaticGenerator("A calm, premium look.", GenerationUsage(input_tokens=100, output_tokens=50))
        >>> (await generator.generate(GenerationRequest(prompt="hi"))).text
        'A calm, premium look.'
    """

    def __init__(
        self,
        text: str = "Let's explore a refined, minimal direction.",
        usage: GenerationUsage | None = None,
        failures: list[BaseException] | None = None,
    ):
        self.text = text
        self.usage = usage
        self.failures = list(failures or [])
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if self.failures:
            raise self.failures.pop(0)
        return GenerationResponse(text=self.text, usage=self.usage)
