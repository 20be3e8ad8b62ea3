"""
Configuration models for Atelier.

Supports configuration via YAML file, environment variables, or programmatic setup.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseModel):
    """LLM provider configuration.

    The language-generation capability is reached through LiteLLM, so any
    provider it supports works here:
    - openai: GPT-4o, GPT-4o mini
    - anthropic: Claude models
    - google / gemini: Gemini models
    - ollama: Local models
    """

    provider: str = Field(
        default="gemini",
        description="LLM provider (openai, anthropic, gemini, ollama, etc.)"
    )
    model: str = Field(
        default="gemini-1.5-flash",
        description="Model name for the provider"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0.0-2.0)"
    )
    max_tokens: int = Field(
        default=2048,
        ge=1,
        le=128000,
        description="Maximum tokens in response"
    )
    api_key: str | None = Field(
        default=None,
        description="API key (falls back to environment variable)"
    )
    api_base: str | None = Field(
        default=None,
        description="Custom API base URL (for Ollama, proxies, etc.)"
    )
    timeout: int = Field(
        default=60,
        ge=1,
        description="Request timeout in seconds"
    )

    def get_model_string(self) -> str:
        """Get the full model string for LiteLLM."""
        if "/" in self.model:
            return self.model
        return f"{self.provider}/{self.model}"


class PricingConfig(BaseModel):
    """Token pricing used to book generation cost against a session budget."""

    input_token_cost: float = Field(
        default=0.000125,
        ge=0.0,
        description="Cost per 1k input tokens"
    )
    output_token_cost: float = Field(
        default=0.0005,
        ge=0.0,
        description="Cost per 1k output tokens"
    )


class BudgetConfig(BaseModel):
    """Budget split, alert thresholds and ROI defaults for new sessions."""

    default_budget: float = Field(
        default=5000.0,
        gt=0,
        description="Budget used when none is supplied"
    )
    category_split: dict[str, float] = Field(
        default_factory=lambda: {
            "consultation": 0.25,
            "concept-development": 0.30,
            "asset-generation": 0.30,
            "revisions": 0.10,
            "project-management": 0.05,
        },
        description="Share of the total budget assigned to each category"
    )
    warning_threshold: float = Field(
        default=75.0,
        gt=0,
        le=100,
        description="Utilization percentage that raises a warning alert"
    )
    critical_threshold: float = Field(
        default=90.0,
        gt=0,
        le=100,
        description="Utilization percentage that raises a critical alert"
    )
    project_hold_threshold: float = Field(
        default=100.0,
        gt=0,
        description="Utilization percentage at which the project should hold"
    )
    roi_multiplier: float = Field(
        default=2.5,
        ge=0,
        description="Estimated value as a multiple of the budget"
    )
    risk_adjusted_return: float = Field(default=2.0, ge=0)
    time_to_value: str = Field(default="3-6 months")
    projection_confidence: float = Field(default=0.85, ge=0, le=1)

    @field_validator("category_split")
    @classmethod
    def validate_split(cls, v: dict[str, float]) -> dict[str, float]:
        """Split must cover the five categories and sum to one."""
        expected = {
            "consultation",
            "concept-development",
            "asset-generation",
            "revisions",
            "project-management",
        }
        if set(v) != expected:
            raise ValueError(f"category_split must define exactly: {sorted(expected)}")
        if any(share < 0 for share in v.values()):
            raise ValueError("category_split shares must be non-negative")
        if abs(sum(v.values()) - 1.0) > 1e-6:
            raise ValueError("category_split shares must sum to 1.0")
        return v

    @model_validator(mode="after")
    def validate_thresholds(self) -> "BudgetConfig":
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError("warning_threshold must be below critical_threshold")
        return self


class SchedulerConfig(BaseModel):
    """State update scheduler timing."""

    high_delay_ms: float = Field(default=8.0, ge=0, description="Coalescing delay for high-frequency slices")
    medium_delay_ms: float = Field(default=50.0, ge=0, description="Coalescing delay for medium-frequency slices")
    low_delay_ms: float = Field(default=200.0, ge=0, description="Coalescing delay for low-frequency slices")
    default_batch_delay_ms: float = Field(default=16.0, ge=0, description="Delay used for ad hoc batches")
    max_metrics: int = Field(default=1000, ge=1, description="Update metrics retained for diagnostics")


class RecoveryConfig(BaseModel):
    """Error recovery behaviour."""

    recovery_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds a whole recovery attempt may take"
    )
    max_reports: int = Field(
        default=100,
        ge=1,
        description="Error reports retained before the oldest are evicted"
    )
    pattern_threshold: int = Field(
        default=5,
        ge=1,
        description="Frequency at which a pattern counts as common"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made by the retry_request step"
    )
    retry_backoff_min: float = Field(default=1.0, ge=0, description="Minimum retry backoff in seconds")
    retry_backoff_max: float = Field(default=10.0, ge=0, description="Maximum retry backoff in seconds")
    prefer_effective_strategies: bool = Field(
        default=False,
        description="Prefer strategies that previously recovered the same error pattern"
    )


class StorageConfig(BaseModel):
    """Session store backing."""

    backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Where session records are kept"
    )
    directory: str = Field(
        default="./atelier_data",
        description="Directory for the SQLite database"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level"
    )
    file: str | None = Field(
        default=None,
        description="Log file path (None = console only)"
    )
    json_format: bool = Field(
        default=False,
        description="Use JSON format for logs"
    )


class AtelierConfig(BaseSettings):
    """
    Main Atelier configuration.

    Configuration can be loaded from:
    1. YAML file (atelier.yaml or config.yaml)
    2. Environment variables (ATELIER_* prefix, ``__`` for nesting)
    3. Programmatic setup
    """

    model_config = SettingsConfigDict(
        env_prefix="ATELIER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "AtelierConfig":
        """
        Load configuration from file and environment.

        Priority (highest to lowest):
        1. Environment variables
        2. Specified config file
        3. Default config files (atelier.yaml, config.yaml)
        4. Default values
        """
        config_data: dict = {}

        if config_path:
            config_file = Path(config_path)
            if config_file.exists():
                config_data = cls._load_yaml(config_file)
        else:
            for filename in ["atelier.yaml", "config.yaml", "atelier.yml", "config.yml"]:
                config_file = Path(filename)
                if config_file.exists():
                    config_data = cls._load_yaml(config_file)
                    break

        return cls(**config_data)

    @staticmethod
    def _load_yaml(path: Path) -> dict:
        """Load YAML configuration file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if data else {}

    def save(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

    def get_storage_dir(self) -> Path:
        """Get the storage directory, creating it if necessary."""
        storage_dir = Path(self.storage.directory)
        storage_dir.mkdir(parents=True, exist_ok=True)
        return storage_dir
