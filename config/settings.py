"""
STRATEGY-NLP Configuration

### ARCHITECTURAL CONTEXT
Type-safe configuration using pydantic-settings. Every pipeline stage reads
its tuning knobs from a dedicated sub-config so thresholds can be overridden
from environment variables or the project .env file without code changes.

### DESIGN DECISIONS
- pydantic-settings over raw os.environ for validation at startup
- One nested model per pipeline stage (tokenizer, intent, parameters,
  context, cache, processor), each with its own env prefix
- Defaults reproduce the heuristic constants the scoring code was tuned on
- .env file auto-loaded for developer convenience
- Strict input validation by default; permissive mode returns a fallback
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Resolve .env relative to project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class TokenizerConfig(BaseSettings):
    """Tokenizer segmentation and classification options."""

    preserve_case: bool = Field(
        default=False,
        description="Keep original casing in token text (classification is always case-insensitive)",
    )
    min_token_length: int = Field(default=1, ge=1)
    max_token_length: int = Field(default=50, ge=1)
    enable_fuzzy_matching: bool = Field(
        default=True,
        description="Allow the vocabulary's containment fallback (e.g. 'buys' → 'buy')",
    )
    min_token_confidence: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Tokens at or below this confidence are dropped",
    )

    model_config = SettingsConfigDict(env_prefix="TOKENIZER_", env_file=str(_ENV_FILE), extra="ignore")


class IntentConfig(BaseSettings):
    """Intent classification thresholds."""

    min_confidence: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Intent-pattern matches at or below this score are discarded",
    )
    max_patterns: int = Field(default=5, ge=1, description="Max intent-pattern matches kept")
    enable_fallback: bool = Field(
        default=True,
        description="Return a CUSTOM intent at 0.1 instead of raising on internal errors",
    )
    use_knowledge_patterns: bool = Field(
        default=True,
        description="Consult the knowledge pattern library alongside the intent catalogue",
    )

    model_config = SettingsConfigDict(env_prefix="INTENT_", env_file=str(_ENV_FILE), extra="ignore")


class ParameterConfig(BaseSettings):
    """Parameter extraction passes."""

    enable_contextual_inference: bool = Field(
        default=True,
        description="Infer timeframe/stop/quantity from words like 'scalp' or 'conservative'",
    )
    enable_defaults: bool = Field(
        default=True,
        description="Fill in indicator defaults (RSI ⇒ period 14, oversold 30, overbought 70)",
    )

    model_config = SettingsConfigDict(env_prefix="PARAMS_", env_file=str(_ENV_FILE), extra="ignore")


class ContextConfig(BaseSettings):
    """Conversation context engine options."""

    max_history_size: int = Field(default=100, ge=1, description="Oldest entries dropped first")
    enable_reference_resolution: bool = Field(default=True)
    track_user_preferences: bool = Field(default=True)
    reference_window: int = Field(
        default=5,
        ge=1,
        description="Only mentions from the last N history entries resolve pronouns",
    )
    strategy_confidence_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum intent confidence to replace the current strategy outright",
    )

    model_config = SettingsConfigDict(env_prefix="CONTEXT_", env_file=str(_ENV_FILE), extra="ignore")


class CacheConfig(BaseSettings):
    """Bounded TTL caches for the pattern library and knowledge base."""

    pattern_ttl_seconds: float = Field(default=300.0, gt=0, description="5 minutes")
    knowledge_ttl_seconds: float = Field(default=600.0, gt=0, description="10 minutes")
    max_entries: int = Field(default=256, ge=1, description="LRU bound per cache")

    model_config = SettingsConfigDict(env_prefix="CACHE_", env_file=str(_ENV_FILE), extra="ignore")


class ProcessorConfig(BaseSettings):
    """Top-level pipeline orchestration."""

    enable_context_memory: bool = Field(default=True)
    enable_parameter_validation: bool = Field(default=True)
    enable_fallback_processing: bool = Field(
        default=True,
        description="Convert low confidence and internal faults into a fallback result",
    )
    min_confidence_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_processing_time_ms: float = Field(
        default=5000.0,
        gt=0,
        description="Deadline checked between pipeline stages",
    )
    validation_policy: Literal["strict", "permissive"] = Field(
        default="strict",
        description="'strict' raises InputValidationError, 'permissive' returns a fallback result",
    )
    max_request_length: int = Field(default=10_000, ge=1)
    max_suggestions: int = Field(default=5, ge=1, le=5)

    model_config = SettingsConfigDict(env_prefix="NLP_", env_file=str(_ENV_FILE), extra="ignore")


class Settings(BaseSettings):
    """Root configuration aggregating all sub-configs."""

    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    intent: IntentConfig = Field(default_factory=IntentConfig)
    parameters: ParameterConfig = Field(default_factory=ParameterConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)

    # Global
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of text")


def load_settings() -> Settings:
    """Load settings from environment variables with validation."""
    return Settings()
