"""
STRATEGY-NLP Conversation Context Engine

### ARCHITECTURAL CONTEXT
Node ID: nlp.context_engine

Multi-turn memory for the processor. Keeps one ConversationContext per
conversation id: capped history, the strategy built so far, learned
preferences, the conversation phase and a ReferenceMap used to rewrite
follow-ups like "change it to 21" before tokenization.

### CRITICAL INVARIANTS
1. History never exceeds ContextConfig.max_history_size; oldest entries go first.
2. The reference map is replaced by update_reference_map() on every user
   turn and never mutated in place.
3. Only mentions from the last reference_window history entries resolve
   pronouns.
4. The completion phase is reached only through mark_completed() or a
   "strategy_completed" response action.
5. The context map is guarded by a lock and each conversation has its own
   re-entrant lock, so turns of one conversation apply in arrival order.

### DESIGN DECISIONS
- Pronouns are rewritten only in object position (after a verb or
  preposition) so "it is oversold" stays untouched
- A confident, classified intent replaces the current strategy; anything
  else is merged into it
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from config.settings import ContextConfig
from src.core.models import (
    ContextualMention,
    ConversationContext,
    ConversationPhase,
    HistoryEntry,
    IntentRecord,
    MentionType,
    ParameterValue,
    ReferenceMap,
    TradingIntent,
)

logger = logging.getLogger(__name__)

STRATEGY_COMPLETED = "strategy_completed"

_PRONOUN_OBJECT = re.compile(
    r"\b(make|change|set|use|adjust|modify|increase|decrease|optimize|remove|keep"
    r"|of|for|on|with|to)\s+(it|that)\b",
    re.IGNORECASE,
)
_STRATEGY_PHRASE = re.compile(r"\b(?:the|this)\s+strategy\b", re.IGNORECASE)

_MAX_SUGGESTIONS = 5
_PHASE_LOOKBACK = 3

_PHASE_SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "greeting": (
        "What type of trading strategy would you like to create?",
        "Tell me about your trading goals and risk tolerance",
        "Which indicators are you familiar with?",
    ),
    "requirement_gathering": (
        "What timeframe do you want to trade on?",
        "Do you prefer trend-following or mean-reversion strategies?",
        "What's your risk tolerance level?",
    ),
    "optimization": (
        "Would you like to backtest this strategy?",
        "Let's fine-tune the parameters",
        "Should we add more exit conditions?",
    ),
    "completion": (
        "Would you like to create another strategy?",
        "Let's save this strategy as a template",
        "Any questions about how this strategy works?",
    ),
}


@dataclass
class ConversationSummary:
    conversation_id: str
    total_messages: int
    strategies_discussed: list[str] = field(default_factory=list)
    indicators_used: list[str] = field(default_factory=list)
    parameters_set: dict[str, Any] = field(default_factory=dict)
    conversation_phase: ConversationPhase = "greeting"
    current_strategy: str | None = None
    completed: bool = False
    last_activity: datetime | None = None


# ─── Pure Helpers ────────────────────────────────────────────────────

def _union(first: Iterable[str], second: Iterable[str]) -> list[str]:
    return list(dict.fromkeys([*first, *second]))


def merge_intents(current: TradingIntent, new: TradingIntent) -> TradingIntent:
    """Fold a follow-up intent into the strategy built so far."""
    return TradingIntent(
        strategy_type=current.strategy_type if current.strategy_type != "custom" else new.strategy_type,
        indicators=_union(current.indicators, new.indicators),
        conditions=_union(current.conditions, new.conditions),
        actions=_union(current.actions, new.actions),
        risk_management=_union(current.risk_management, new.risk_management),
        timeframe=new.timeframe or current.timeframe,
        symbol=new.symbol or current.symbol,
        confidence=max(current.confidence, new.confidence),
        parameters={**current.parameters, **new.parameters},
    )


def update_reference_map(
    references: ReferenceMap,
    turn: int,
    intent: TradingIntent,
    parameters: dict[str, ParameterValue],
    current_strategy: TradingIntent | None,
) -> ReferenceMap:
    """Return a new ReferenceMap reflecting the entities mentioned on `turn`."""
    pronouns = dict(references.pronouns)
    if intent.indicators:
        latest = intent.indicators[-1]
        pronouns["it"] = latest
        pronouns["that"] = latest

    mentions = dict(references.mentions)

    def mention(entity: str, kind: MentionType) -> None:
        previous = mentions.get(entity)
        if previous is None:
            mentions[entity] = ContextualMention(type=kind, last_mentioned_turn=turn)
        else:
            mentions[entity] = previous.model_copy(
                update={"last_mentioned_turn": turn, "frequency": previous.frequency + 1}
            )

    for indicator in intent.indicators:
        mention(indicator, "indicator")
    for condition in intent.conditions:
        mention(condition, "condition")
    for action in intent.actions:
        mention(action, "action")
    for name in parameters:
        mention(name, "parameter")
    if intent.strategy_type != "custom":
        mention(intent.strategy_type, "strategy")

    return ReferenceMap(
        pronouns=pronouns,
        strategy_reference=current_strategy.describe() if current_strategy else references.strategy_reference,
        mentions=mentions,
    )


def _risk_tolerance(stop_loss: float) -> str:
    if stop_loss <= 1.5:
        return "low"
    if stop_loss >= 3.0:
        return "high"
    return "medium"


# ─── Engine ──────────────────────────────────────────────────────────

class ContextEngine:
    """
    In-memory conversation state keyed by conversation id.

    Args:
        config: Context options (defaults to ContextConfig()).
        clock: Wall-clock source for history timestamps (injectable for tests).
        logger: Injected logger (defaults to the module logger).

    Usage:
        engine = ContextEngine()
        engine.update_context_with_input("c1", "use rsi", intent, params)
        engine.resolve_references("c1", "change it to 21")  # "change rsi to 21"
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or ContextConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = logger or logging.getLogger(__name__)
        self._contexts: dict[str, ConversationContext] = {}
        self._conversation_locks: dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    def conversation_lock(self, conversation_id: str) -> threading.RLock:
        """Re-entrant lock serialising the turns of one conversation."""
        with self._lock:
            lock = self._conversation_locks.get(conversation_id)
            if lock is None:
                lock = threading.RLock()
                self._conversation_locks[conversation_id] = lock
            return lock

    # ─── Lifecycle ───────────────────────────────────────────────

    def get_or_create_context(
        self,
        conversation_id: str,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> ConversationContext:
        with self._lock:
            context = self._contexts.get(conversation_id)
            if context is None:
                now = self._clock()
                context = ConversationContext(
                    conversation_id=conversation_id,
                    user_id=user_id,
                    session_id=session_id or f"session_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
                    created_at=now,
                )
                self._contexts[conversation_id] = context
                self._log.debug("Created conversation context %s (user=%s)", conversation_id, user_id)
            elif user_id is not None and context.user_id is None:
                context.user_id = user_id
            return context

    def get_context(self, conversation_id: str) -> ConversationContext | None:
        with self._lock:
            return self._contexts.get(conversation_id)

    def clear_context(self, conversation_id: str) -> None:
        with self._lock:
            self._contexts.pop(conversation_id, None)
            self._conversation_locks.pop(conversation_id, None)
        self._log.debug("Cleared conversation context %s", conversation_id)

    def get_active_conversations(self) -> list[str]:
        with self._lock:
            return list(self._contexts)

    # ─── Updates ─────────────────────────────────────────────────

    def update_context_with_input(
        self,
        conversation_id: str,
        text: str,
        intent: TradingIntent,
        parameters: dict[str, ParameterValue],
    ) -> ConversationContext:
        with self.conversation_lock(conversation_id):
            context = self.get_or_create_context(conversation_id)
            now = self._clock()
            self._append(context, HistoryEntry(
                timestamp=now,
                type="user_input",
                content=text,
                metadata={
                    "intent": intent,
                    "parameters": dict(parameters),
                    "confidence": intent.confidence,
                },
            ))

            self._update_strategy(context, intent)
            for indicator in intent.indicators:
                if indicator not in context.active_indicators:
                    context.active_indicators.append(indicator)
            context.mentioned_parameters.update({k: v.value for k, v in parameters.items()})
            context.intent_history.append(IntentRecord(
                timestamp=now,
                intent=intent,
                parameters=dict(parameters),
                confidence=intent.confidence,
                resolved=intent.confidence >= self._config.strategy_confidence_threshold,
            ))
            if len(context.intent_history) > self._config.max_history_size:
                del context.intent_history[: -self._config.max_history_size]

            context.reference_map = update_reference_map(
                context.reference_map, context.turn, intent, parameters, context.current_strategy
            )
            if self._config.track_user_preferences:
                self._update_preferences(context, intent, parameters)
            self._update_flow(context, intent, parameters, last_action="user_input")

            self._log.debug(
                "Context %s: %d entries, phase=%s, strategy=%s",
                conversation_id,
                len(context.history),
                context.conversation_flow.phase,
                context.current_strategy.strategy_type if context.current_strategy else None,
            )
            return context

    def update_context_with_response(
        self,
        conversation_id: str,
        response: str,
        actions: list[str] | None = None,
    ) -> ConversationContext:
        actions = list(actions or [])
        with self.conversation_lock(conversation_id):
            context = self.get_or_create_context(conversation_id)
            self._append(context, HistoryEntry(
                timestamp=self._clock(),
                type="ai_response",
                content=response,
                metadata={"actions": actions},
            ))
            if STRATEGY_COMPLETED in actions:
                self.mark_completed(conversation_id)
            else:
                flow = context.conversation_flow
                flow.last_action = actions[-1] if actions else "ai_response"
            self._log.debug(
                "Context %s: response (%d chars, %d actions)", conversation_id, len(response), len(actions)
            )
            return context

    def mark_completed(self, conversation_id: str) -> ConversationContext:
        with self.conversation_lock(conversation_id):
            context = self.get_or_create_context(conversation_id)
            context.completed = True
            flow = context.conversation_flow
            flow.phase = "completion"
            flow.last_action = STRATEGY_COMPLETED
            if STRATEGY_COMPLETED not in flow.completed_steps:
                flow.completed_steps.append(STRATEGY_COMPLETED)
            flow.next_suggested_actions = list(_PHASE_SUGGESTIONS["completion"])
            self._log.info("Conversation %s marked completed", conversation_id)
            return context

    def _append(self, context: ConversationContext, entry: HistoryEntry) -> None:
        context.turn += 1
        context.history.append(entry)
        overflow = len(context.history) - self._config.max_history_size
        if overflow > 0:
            del context.history[:overflow]

    def _update_strategy(self, context: ConversationContext, intent: TradingIntent) -> None:
        current = context.current_strategy
        confident = (
            intent.strategy_type != "custom"
            and intent.confidence >= self._config.strategy_confidence_threshold
        )
        if current is None or confident:
            context.current_strategy = intent
        else:
            context.current_strategy = merge_intents(current, intent)

    def _update_preferences(
        self,
        context: ConversationContext,
        intent: TradingIntent,
        parameters: dict[str, ParameterValue],
    ) -> None:
        prefs = context.preferences
        for indicator in intent.indicators:
            if indicator not in prefs.favorite_indicators:
                prefs.favorite_indicators.append(indicator)
        if intent.timeframe and intent.timeframe not in prefs.preferred_timeframes:
            prefs.preferred_timeframes.append(intent.timeframe)
        prefs.default_parameters.update({k: v.value for k, v in parameters.items()})

        stop_loss = parameters.get("stopLoss")
        if stop_loss is not None:
            try:
                prefs.risk_tolerance = _risk_tolerance(float(stop_loss.value))
            except (TypeError, ValueError):
                self._log.warning("Ignoring non-numeric stopLoss %r", stop_loss.value)

    def _update_flow(
        self,
        context: ConversationContext,
        intent: TradingIntent,
        parameters: dict[str, ParameterValue],
        last_action: str,
    ) -> None:
        flow = context.conversation_flow
        steps = flow.completed_steps
        if context.current_strategy is not None and "strategy_identified" not in steps:
            steps.append("strategy_identified")
        if context.active_indicators and "indicators_selected" not in steps:
            steps.append("indicators_selected")
        if parameters and "parameters_configured" not in steps:
            steps.append("parameters_configured")
        if intent.risk_management and "risk_management_added" not in steps:
            steps.append("risk_management_added")

        flow.phase = self.derive_phase(context)
        flow.last_action = last_action
        flow.next_suggested_actions = self._phase_suggestions(context, flow.phase)

    # ─── Queries ─────────────────────────────────────────────────

    @staticmethod
    def derive_phase(context: ConversationContext) -> ConversationPhase:
        if context.completed:
            return "completion"
        if not context.history:
            return "greeting"
        if context.current_strategy is None:
            return "requirement_gathering"
        recent_inputs = [e for e in context.history if e.type == "user_input"][-_PHASE_LOOKBACK:]
        if not any(e.metadata.get("parameters") for e in recent_inputs):
            return "strategy_building"
        return "optimization"

    def resolve_references(self, conversation_id: str, text: str) -> str:
        """Rewrite object pronouns and "the/this strategy" using the conversation's references."""
        if not self._config.enable_reference_resolution:
            return text
        context = self.get_context(conversation_id)
        if context is None:
            return text

        with self.conversation_lock(conversation_id):
            references = context.reference_map
            resolved = text

            target = references.pronouns.get("it")
            mention = references.mentions.get(target) if target else None
            if mention is not None and context.turn - mention.last_mentioned_turn < self._config.reference_window:
                resolved = _PRONOUN_OBJECT.sub(lambda m: f"{m.group(1)} {target}", resolved)

            if context.current_strategy is not None:
                description = context.current_strategy.describe()
                resolved = _STRATEGY_PHRASE.sub(description, resolved)

        if resolved != text:
            self._log.debug("Resolved references: %r → %r", text, resolved)
        return resolved

    def get_contextual_suggestions(self, conversation_id: str) -> list[str]:
        context = self.get_context(conversation_id)
        if context is None:
            return list(_PHASE_SUGGESTIONS["greeting"])

        with self.conversation_lock(conversation_id):
            suggestions = self._phase_suggestions(context, self.derive_phase(context))

            favorites = context.preferences.favorite_indicators
            if favorites:
                suggestions.append(f"Would you like to use {favorites[0]} in this strategy?")

            recent: set[str] = set()
            for entry in context.history[-self._config.reference_window:]:
                intent = entry.metadata.get("intent")
                if isinstance(intent, TradingIntent):
                    recent.update(intent.indicators)
            if 0 < len(recent) < 3:
                suggestions.append("Would you like to add confirmation indicators?")

        return list(dict.fromkeys(suggestions))[:_MAX_SUGGESTIONS]

    @staticmethod
    def _phase_suggestions(context: ConversationContext, phase: ConversationPhase) -> list[str]:
        if phase == "strategy_building":
            if context.current_strategy is None:
                return []
            return [
                f"Let's add risk management to your {context.current_strategy.describe()}",
                "Would you like to optimize the parameters?",
                "Should we add confirmation indicators?",
            ]
        return list(_PHASE_SUGGESTIONS[phase])

    def get_conversation_summary(self, conversation_id: str) -> ConversationSummary:
        context = self.get_or_create_context(conversation_id)
        with self.conversation_lock(conversation_id):
            strategies: list[str] = []
            indicators: list[str] = []
            parameters: dict[str, Any] = {}
            for record in context.intent_history:
                strategies = _union(strategies, [record.intent.strategy_type])
                indicators = _union(indicators, record.intent.indicators)
                parameters.update({k: v.value for k, v in record.parameters.items()})

            return ConversationSummary(
                conversation_id=conversation_id,
                total_messages=len(context.history),
                strategies_discussed=strategies,
                indicators_used=indicators,
                parameters_set=parameters,
                conversation_phase=self.derive_phase(context),
                current_strategy=context.current_strategy.describe() if context.current_strategy else None,
                completed=context.completed,
                last_activity=context.history[-1].timestamp if context.history else None,
            )
