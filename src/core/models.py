"""
STRATEGY-NLP Domain Models

### ARCHITECTURAL CONTEXT
Immutable data contracts for the natural-language pipeline. The tokenizer
emits Tokens and Entities, the intent extractor a TradingIntent, the parameter
extractor a mapping of ParameterValues, and the processor wraps everything in
a single NLPResult. These models are the shared vocabulary of the system.

### DESIGN DECISIONS
- Pydantic models for runtime validation + serialization
- Frozen=True for immutability (tokens and intents are never mutated after creation)
- Literal types for constrained enums (better than stringly-typed)
- Confidence fields are bounded to [0, 1] at construction
- Durations are reported in milliseconds
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


# ─── Enums as Literals ───────────────────────────────────────────────

TokenType = Literal[
    "indicator", "action", "condition", "parameter", "timeframe",
    "symbol", "number", "operator", "modifier", "unknown",
]

EntityType = Literal[
    "indicator_name", "parameter_value", "timeframe", "symbol",
    "threshold", "percentage", "duration",
]

StrategyType = Literal[
    "trend-following", "mean-reversion", "breakout", "momentum",
    "scalping", "arbitrage", "custom",
]

STRATEGY_TYPES: tuple[StrategyType, ...] = (
    "trend-following", "mean-reversion", "breakout", "momentum",
    "scalping", "arbitrage", "custom",
)

ParameterSource = Literal["explicit", "inferred", "default"]

ParameterKind = Literal["number", "string", "boolean"]

Difficulty = Literal["beginner", "intermediate", "advanced"]

RiskLevel = Literal["very_low", "low", "medium", "high", "very_high"]

ConversationPhase = Literal[
    "greeting", "requirement_gathering", "strategy_building",
    "optimization", "completion",
]


# ─── Tokenizer Output ────────────────────────────────────────────────

class Token(BaseModel, frozen=True):
    """
    A classified fragment of the request text.

    metadata keys (all optional):
        canonical: canonical vocabulary id (e.g. "rsi", "bollinger_bands")
        category: vocabulary category (oscillator, entry, level, ...)
        synonyms: vocabulary synonyms of the matched entry
        multi_word / original_tokens: set on merged multi-word tokens
        value / unit: numeric payload of number tokens
        raw: token text as it appeared in the original casing
    """

    text: str
    type: TokenType
    position: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def canonical(self) -> str:
        """Canonical id if the vocabulary resolved this token, else its text."""
        return str(self.metadata.get("canonical", self.text))


class Entity(BaseModel, frozen=True):
    """Typed, positioned fragment carrying a concrete value."""

    text: str
    type: EntityType
    value: Any = None
    confidence: float = Field(ge=0.0, le=1.0)
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)


class ParsedRequest(BaseModel, frozen=True):
    """Echo of the tokenizer output attached to every NLPResult."""

    original_text: str
    tokens: list[Token] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    processing_time: float = Field(default=0.0, description="Milliseconds")


# ─── Extraction Output ───────────────────────────────────────────────

class TradingIntent(BaseModel, frozen=True):
    """
    Classified strategy archetype and its components.
    Built once per request; the context engine may merge it with the prior
    conversation intent.
    """

    strategy_type: StrategyType = "custom"
    indicators: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    actions: list[str] = Field(default_factory=list)
    risk_management: list[str] = Field(default_factory=list)
    timeframe: str | None = None
    symbol: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    parameters: dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> str:
        """Short human-readable label, e.g. 'rsi mean-reversion strategy'."""
        prefix = " ".join(self.indicators[:2])
        label = f"{prefix} {self.strategy_type}" if prefix else self.strategy_type
        return f"{label} strategy"


class ParameterValue(BaseModel, frozen=True):
    """A single extracted strategy parameter and where it came from."""

    value: float | int | str | bool
    type: ParameterKind = "number"
    confidence: float = Field(ge=0.0, le=1.0)
    source: ParameterSource = "explicit"


StrategyParameters = dict[str, ParameterValue]


# ─── Conversation State ──────────────────────────────────────────────

HistoryEntryType = Literal["user_input", "ai_response"]

MentionType = Literal["indicator", "parameter", "strategy", "condition", "action"]

RiskTolerance = Literal["low", "medium", "high"]


class HistoryEntry(BaseModel, frozen=True):
    timestamp: datetime
    type: HistoryEntryType
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class UserPreferences(BaseModel):
    """Preferences learned over a conversation. Mutated by the context engine only."""

    preferred_timeframes: list[str] = Field(default_factory=lambda: ["1h", "4h"])
    risk_tolerance: RiskTolerance = "medium"
    experience_level: Difficulty = "intermediate"
    favorite_indicators: list[str] = Field(default_factory=list)
    default_parameters: dict[str, Any] = Field(default_factory=dict)


class ConversationFlow(BaseModel):
    phase: ConversationPhase = "greeting"
    last_action: str = ""
    next_suggested_actions: list[str] = Field(default_factory=list)
    completed_steps: list[str] = Field(default_factory=list)


class IntentRecord(BaseModel, frozen=True):
    """One classified user turn."""

    timestamp: datetime
    intent: TradingIntent
    parameters: dict[str, ParameterValue] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    resolved: bool = False


class ContextualMention(BaseModel, frozen=True):
    type: MentionType
    last_mentioned_turn: int = Field(ge=0)
    frequency: int = Field(default=1, ge=1)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class ReferenceMap(BaseModel, frozen=True):
    """
    What pronouns and implicit phrases point at.

    Replaced wholesale on every user turn (see context_engine.update_reference_map);
    never mutated in place.
    """

    pronouns: dict[str, str] = Field(default_factory=dict)  # "it"/"that" → indicator id
    strategy_reference: str | None = None
    mentions: dict[str, ContextualMention] = Field(default_factory=dict)


class ConversationContext(BaseModel):
    """
    Per-conversation state owned by the context engine.

    turn counts every history entry ever appended, so it keeps growing after
    the history is capped; mentions record the turn they were last seen on.
    """

    conversation_id: str
    user_id: str | None = None
    session_id: str
    history: list[HistoryEntry] = Field(default_factory=list)
    turn: int = 0
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    current_strategy: TradingIntent | None = None
    active_indicators: list[str] = Field(default_factory=list)
    mentioned_parameters: dict[str, Any] = Field(default_factory=dict)
    conversation_flow: ConversationFlow = Field(default_factory=ConversationFlow)
    intent_history: list[IntentRecord] = Field(default_factory=list)
    reference_map: ReferenceMap = Field(default_factory=ReferenceMap)
    completed: bool = False
    created_at: datetime


# ─── Processor Output ────────────────────────────────────────────────

class NLPResult(BaseModel, frozen=True):
    """
    Single structured result returned for every processed request.

    Severity is conveyed through confidence, clarifications and
    metadata["fallback"], never through exceptions.
    """

    parsed_request: ParsedRequest
    trading_intent: TradingIntent
    parameters: dict[str, ParameterValue] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list, max_length=5)
    clarifications: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    processing_time: float = Field(default=0.0, description="Milliseconds")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.get("fallback", False))
