"""
STRATEGY-NLP Parameter Extractor

### ARCHITECTURAL CONTEXT
Node ID: nlp.parameter_extractor

Third pipeline stage. Turns tokenizer entities and the raw request into
validated StrategyParameters. Passes run in trust order and never overwrite
a value set by an earlier pass unless stated:

    1. entities          explicit, named via alias context
    2. regex patterns    explicit ("rsi 14", "stop loss 2%", "macd 12/26/9")
    3. contextual        inferred ("scalp" ⇒ 5m, "conservative" ⇒ stop 1.5)
    4. indicator defaults default ("rsi" ⇒ period 14, oversold 30, overbought 70)
    5. validation        range + validator + cross-parameter rules

Confidence:
    mean(parameter confidence) - 0.1 × errors + 0.05 × explicit count,
    clamped to [0, 1]; 0 with no parameters.

### CRITICAL INVARIANTS
1. Range bounds are inclusive (period 200 passes, 201 fails).
2. Validation errors accumulate and never abort extraction.
3. extract() never raises; failure yields an empty extraction with the
   error "Parameter extraction failed".
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from config.settings import ParameterConfig
from src.core.models import Entity, ParameterKind, ParameterSource, ParameterValue, Token

logger = logging.getLogger(__name__)

TIMEFRAME_OPTIONS: tuple[str, ...] = ("1m", "5m", "15m", "30m", "1h", "4h", "1d", "1w")


# ─── Definitions ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParameterDefinition:
    """Name, type, bounds and aliases of a recognised strategy parameter."""

    name: str
    type: ParameterKind
    default: Any = None
    range: tuple[float, float] | None = None
    options: tuple[str, ...] | None = None
    description: str = ""
    aliases: tuple[str, ...] = ()
    integer: bool = False
    validator: Callable[[Any], bool] | None = None

    def validate(self, value: Any) -> bool:
        if self.type == "number":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            if self.integer and not float(value).is_integer():
                return False
            if self.range is not None and not self.range[0] <= value <= self.range[1]:
                return False
        if self.options is not None and value not in self.options:
            return False
        if self.validator is not None and not self.validator(value):
            return False
        return True


def _positive(value: Any) -> bool:
    return value > 0


def _is_quantity(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if "%" in value:
        return True
    try:
        float(value)
    except ValueError:
        return False
    return True


PARAMETER_DEFINITIONS: tuple[ParameterDefinition, ...] = (
    ParameterDefinition(
        "period", "number", 14, (1, 200), description="Period for indicator calculation",
        aliases=("period", "length", "window", "lookback", "days", "bars"),
        integer=True, validator=_positive,
    ),
    ParameterDefinition(
        "threshold", "number", 50, (0, 100), description="Threshold level for conditions",
        aliases=("threshold", "level", "limit", "boundary"),
    ),
    ParameterDefinition(
        "stopLoss", "number", 2.0, (0.1, 20), description="Stop loss percentage",
        aliases=("stop loss", "sl", "stop", "max loss", "risk limit"), validator=_positive,
    ),
    ParameterDefinition(
        "takeProfit", "number", 4.0, (0.1, 50), description="Take profit percentage",
        aliases=("take profit", "tp", "profit target", "target", "profit limit"), validator=_positive,
    ),
    ParameterDefinition(
        "oversoldLevel", "number", 30, (10, 40), description="Oversold threshold for oscillators",
        aliases=("oversold", "buy level"),
    ),
    ParameterDefinition(
        "overboughtLevel", "number", 70, (60, 90), description="Overbought threshold for oscillators",
        aliases=("overbought", "sell level"),
    ),
    ParameterDefinition(
        "fastPeriod", "number", 12, (5, 50), description="Fast period for MACD",
        aliases=("fast",), integer=True, validator=_positive,
    ),
    ParameterDefinition(
        "slowPeriod", "number", 26, (10, 100), description="Slow period for MACD",
        aliases=("slow",), integer=True, validator=_positive,
    ),
    ParameterDefinition(
        "signalPeriod", "number", 9, (3, 30), description="Signal line period",
        aliases=("signal",), integer=True, validator=_positive,
    ),
    ParameterDefinition(
        "standardDeviation", "number", 2.0, (1.0, 3.0),
        description="Standard deviation multiplier for Bollinger Bands",
        aliases=("stddev", "std dev", "deviation", "multiplier"), validator=_positive,
    ),
    ParameterDefinition(
        "timeframe", "string", "1h", options=TIMEFRAME_OPTIONS, description="Chart timeframe",
        aliases=("tf", "interval"),
    ),
    ParameterDefinition(
        "symbol", "string", "BTCUSDT", description="Trading symbol",
        aliases=("pair", "instrument", "asset"),
        validator=lambda v: isinstance(v, str) and len(v) >= 3,
    ),
    ParameterDefinition(
        "quantity", "string", "10%", description="Position size",
        aliases=("size", "amount", "position", "qty"), validator=_is_quantity,
    ),
)


# ─── Regex Patterns ──────────────────────────────────────────────────

_NUM = r"(\d+(?:\.\d+)?)"
_RSI = r"(?:rsi|relative strength index)"

_RSI_PERIOD = re.compile(rf"{_RSI}\s*(?:with\s*period\s*)?\(?\s*(\d+)")
_SMA = r"(?:sma|simple moving average)"
_SMA_PERIOD = (
    re.compile(rf"{_SMA}\s*\(?\s*(\d+)"),
    re.compile(rf"(\d+)\s*-?\s*(?:period\s*)?{_SMA}"),
)
# Keyword-first form is tried before number-first so "stop loss 2% take profit 4%"
# never reads 2 as the take profit
_SL = r"\b(?:stop\s*loss|sl)\b"
_STOP_LOSS = (
    re.compile(rf"{_SL}\s*(?:of\s*|at\s*)?{_NUM}"),
    re.compile(rf"{_NUM}\s*%?\s*{_SL}"),
)
_TP = r"\b(?:take\s*profit|tp)\b"
_TAKE_PROFIT = (
    re.compile(rf"{_TP}\s*(?:of\s*|at\s*)?{_NUM}"),
    re.compile(rf"{_NUM}\s*%?\s*{_TP}"),
)
_OVERSOLD = re.compile(r"oversold\s*(?:at\s*|level\s*|of\s*)?(\d+)")
_OVERBOUGHT = re.compile(r"overbought\s*(?:at\s*|level\s*|of\s*)?(\d+)")
# The comparison must sit in the RSI clause itself: no conjunction or other
# comparison word between "rsi" and it, so "rsi below 30 and price above 70"
# never reads 70 as an RSI level
_RSI_CLAUSE = r"(?:(?!\b(?:and|or|but|then|above|over|greater|below|under|less)\b)[^.,;])*?"
_RSI_BELOW = re.compile(rf"{_RSI}\b{_RSI_CLAUSE}\b(?:below|under|less than)\s*{_NUM}")
_RSI_ABOVE = re.compile(rf"{_RSI}\b{_RSI_CLAUSE}\b(?:above|over|greater than)\s*{_NUM}")
_MACD_TRIPLE = re.compile(r"macd\s*\(?\s*(\d+)\s*[,/\s]\s*(\d+)\s*[,/\s]\s*(\d+)")
_STD_DEV = re.compile(rf"{_NUM}\s*(?:standard deviations?|std\.?\s*devs?|stdev)")

_PERCENT_TARGETS: dict[str, str] = {
    "stop_loss": "stopLoss",
    "take_profit": "takeProfit",
    "size": "quantity",
    "quantity": "quantity",
    "position": "quantity",
}


@dataclass
class ParameterExtraction:
    """Output of a single extract() call."""

    parameters: dict[str, ParameterValue] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def extracted_count(self) -> int:
        return len(self.parameters)


def _value(value: Any, kind: ParameterKind, confidence: float, source: ParameterSource) -> ParameterValue:
    return ParameterValue(value=value, type=kind, confidence=min(1.0, confidence), source=source)


def _number(raw: str) -> int | float:
    value = float(raw)
    return int(value) if value.is_integer() else value


class ParameterExtractor:
    """
    Rule-based parameter extraction and validation.

    Args:
        config: Pass toggles (defaults to ParameterConfig()).
        logger: Injected logger (defaults to the module logger).

    Usage:
        extractor = ParameterExtractor()
        result = extractor.extract(tokens, entities, "buy when rsi(14) is below 30")
        result.parameters["period"].value  # 14
    """

    def __init__(
        self,
        config: ParameterConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or ParameterConfig()
        self._log = logger or logging.getLogger(__name__)
        self._definitions: dict[str, ParameterDefinition] = {d.name: d for d in PARAMETER_DEFINITIONS}

    def extract(self, tokens: list[Token], entities: list[Entity], text: str) -> ParameterExtraction:
        start = time.perf_counter()
        try:
            result = self._extract(tokens, entities, text)
        except Exception as e:
            self._log.error("Parameter extraction failed: %s", e, exc_info=True)
            return ParameterExtraction(
                errors=["Parameter extraction failed"],
                suggestions=["Please specify parameters more clearly"],
            )

        self._log.debug(
            "Extracted %d parameters (%d errors, conf=%.2f, %.2fms)",
            result.extracted_count, len(result.errors), result.confidence,
            (time.perf_counter() - start) * 1000,
        )
        return result

    def _extract(self, tokens: list[Token], entities: list[Entity], text: str) -> ParameterExtraction:
        lowered = text.lower()
        params: dict[str, ParameterValue] = {}
        errors: list[str] = []

        self._from_entities(entities, tokens, params, errors)
        self._from_patterns(lowered, params)
        if self._config.enable_contextual_inference:
            self._from_context(lowered, params)
        if self._config.enable_defaults:
            self._apply_defaults(lowered, params)
        errors.extend(self.validate(params))

        return ParameterExtraction(
            parameters=params,
            errors=errors,
            suggestions=self._suggestions(lowered, params),
            confidence=self._confidence(params, errors),
        )

    # ── Pass 1: Entities ──

    def _from_entities(
        self,
        entities: list[Entity],
        tokens: list[Token],
        params: dict[str, ParameterValue],
        errors: list[str],
    ) -> None:
        by_position = {t.position: i for i, t in enumerate(tokens)}
        for entity in entities:
            index = by_position.get(entity.start_index)
            if entity.type == "parameter_value":
                self._named_number(entity, tokens, index, params, errors)
            elif entity.type == "threshold":
                params["threshold"] = _value(_number(str(entity.value)), "number", entity.confidence, "explicit")
            elif entity.type == "duration":
                params["period"] = _value(_number(str(entity.value)), "number", entity.confidence, "explicit")
            elif entity.type == "timeframe":
                params["timeframe"] = _value(str(entity.value), "string", entity.confidence, "explicit")
            elif entity.type == "symbol":
                params["symbol"] = _value(str(entity.value), "string", entity.confidence, "explicit")
            elif entity.type == "percentage":
                self._percentage(entity, tokens, index, params)

    def _named_number(
        self,
        entity: Entity,
        tokens: list[Token],
        index: int | None,
        params: dict[str, ParameterValue],
        errors: list[str],
    ) -> None:
        value = _number(str(entity.value))
        preceding = tokens[max(0, index - 2):index] if index is not None else []
        context = " ".join([entity.text, *(t.text for t in preceding)]).lower()
        name = self._name_from_aliases(context)
        if name is None:
            key = f"numericParam_{len(params)}"
            params[key] = _value(value, "number", entity.confidence * 0.7, "inferred")
            return
        definition = self._definitions[name]
        if definition.type == "number" and definition.validate(value):
            params[name] = _value(value, "number", entity.confidence, "explicit")
        else:
            errors.append(f"Invalid value {value} for parameter {name}")

    def _name_from_aliases(self, context: str) -> str | None:
        words = context.split()
        for definition in self._definitions.values():
            for alias in definition.aliases:
                if (" " in alias and alias in context) or alias in words:
                    return definition.name
        return None

    @staticmethod
    def _percentage(
        entity: Entity,
        tokens: list[Token],
        index: int | None,
        params: dict[str, ParameterValue],
    ) -> None:
        value = _number(str(entity.value))
        target = None
        if index is not None:
            # Nearest preceding marker wins, then nearest following
            neighbours = [*reversed(tokens[max(0, index - 2):index]), *tokens[index + 1:index + 3]]
            for token in neighbours:
                target = _PERCENT_TARGETS.get(token.canonical) or _PERCENT_TARGETS.get(token.text)
                if target is not None:
                    break
        if target == "quantity":
            params["quantity"] = _value(f"{value}%", "string", entity.confidence, "explicit")
        elif target is not None:
            params[target] = _value(value, "number", entity.confidence, "explicit")
        else:
            params["percentage"] = _value(value, "number", entity.confidence, "inferred")

    # ── Pass 2: Regex Patterns ──

    @staticmethod
    def _from_patterns(text: str, params: dict[str, ParameterValue]) -> None:
        claimed: set[int | float] = set()

        def put(name: str, raw: str, confidence: float) -> None:
            value = _number(raw)
            params[name] = _value(value, "number", confidence, "explicit")
            claimed.add(value)

        single = (
            ((_RSI_PERIOD,), "period"),
            (_SMA_PERIOD, "period"),
            (_STOP_LOSS, "stopLoss"),
            (_TAKE_PROFIT, "takeProfit"),
            ((_STD_DEV,), "standardDeviation"),
        )
        for patterns, name in single:
            for pattern in patterns:
                match = pattern.search(text)
                if match:
                    put(name, match.group(1), 0.9)
                    break

        # Explicit "oversold 25" beats "rsi below 25"
        levels = (
            ("oversoldLevel", _OVERSOLD, _RSI_BELOW),
            ("overboughtLevel", _OVERBOUGHT, _RSI_ABOVE),
        )
        for name, explicit, relative in levels:
            match = explicit.search(text)
            if match:
                put(name, match.group(1), 0.8)
                continue
            match = relative.search(text)
            if match:
                put(name, match.group(1), 0.85)

        match = _MACD_TRIPLE.search(text)
        if match:
            put("fastPeriod", match.group(1), 0.9)
            put("slowPeriod", match.group(2), 0.9)
            put("signalPeriod", match.group(3), 0.9)

        # Unnamed numbers the patterns have now named are dropped
        for key in [k for k, v in params.items() if k.startswith("numericParam_") and v.value in claimed]:
            del params[key]

    # ── Pass 3: Context ──

    @staticmethod
    def _from_context(text: str, params: dict[str, ParameterValue]) -> None:
        if "timeframe" not in params:
            if "scalp" in text or "quick" in text or "fast" in text:
                params["timeframe"] = _value("5m", "string", 0.7, "inferred")
            elif "swing" in text or "daily" in text:
                params["timeframe"] = _value("1d", "string", 0.7, "inferred")
            elif "intraday" in text or "hourly" in text:
                params["timeframe"] = _value("1h", "string", 0.7, "inferred")

        if "stopLoss" not in params:
            if "conservative" in text:
                params["stopLoss"] = _value(1.5, "number", 0.6, "inferred")
            elif "aggressive" in text:
                params["stopLoss"] = _value(3.0, "number", 0.6, "inferred")

        if "quantity" not in params:
            if "small" in text or "conservative" in text:
                params["quantity"] = _value("5%", "string", 0.6, "inferred")
            elif "large" in text or "aggressive" in text:
                params["quantity"] = _value("20%", "string", 0.6, "inferred")

    # ── Pass 4: Defaults ──

    @staticmethod
    def _apply_defaults(text: str, params: dict[str, ParameterValue]) -> None:
        def default(name: str, value: int | float) -> None:
            if name not in params:
                params[name] = _value(value, "number", 0.5, "default")

        if "rsi" in text or "relative strength" in text:
            default("period", 14)
            default("oversoldLevel", 30)
            default("overboughtLevel", 70)
        if "sma" in text or "moving average" in text:
            default("period", 20)
        if "macd" in text:
            default("fastPeriod", 12)
            default("slowPeriod", 26)
            default("signalPeriod", 9)
        if "bollinger" in text:
            default("period", 20)
            default("standardDeviation", 2.0)
        if "stop" in text or "risk" in text:
            default("stopLoss", 2.0)
        if "profit" in text or "target" in text:
            default("takeProfit", 4.0)

    # ── Pass 5: Validation ──

    def validate(self, params: dict[str, ParameterValue]) -> list[str]:
        """Range, validator and cross-parameter checks. Returns error messages."""
        errors: list[str] = []
        for name, param in params.items():
            definition = self._definitions.get(name)
            if definition is not None and not definition.validate(param.value):
                errors.append(f"Parameter {name} value {param.value} is outside valid range")

        fast, slow = params.get("fastPeriod"), params.get("slowPeriod")
        if fast is not None and slow is not None and float(fast.value) >= float(slow.value):
            errors.append("Fast period must be less than slow period for MACD")

        oversold, overbought = params.get("oversoldLevel"), params.get("overboughtLevel")
        if oversold is not None and overbought is not None and float(oversold.value) >= float(overbought.value):
            errors.append("Oversold level must be less than overbought level")
        return errors

    # ── Scoring ──

    @staticmethod
    def _suggestions(text: str, params: dict[str, ParameterValue]) -> list[str]:
        suggestions: list[str] = []
        if "rsi" in text and "oversoldLevel" not in params and "overboughtLevel" not in params:
            suggestions.append('Consider specifying RSI levels (e.g., "buy when RSI below 30")')
        if ("moving average" in text or "sma" in text or "ema" in text) and "period" not in params:
            suggestions.append('Specify the moving average period (e.g., "20-period SMA")')
        if "stopLoss" not in params and "takeProfit" not in params:
            suggestions.append("Add risk management parameters like stop loss and take profit")
        if "timeframe" not in params:
            suggestions.append("Specify a timeframe for the strategy (1h, 4h, 1d, etc.)")
        if len(params) < 3:
            suggestions.append("Provide more specific parameters for better strategy customization")
        return suggestions

    @staticmethod
    def _confidence(params: dict[str, ParameterValue], errors: list[str]) -> float:
        if not params:
            return 0.0
        average = float(np.mean([p.confidence for p in params.values()]))
        explicit = sum(1 for p in params.values() if p.source == "explicit")
        return float(np.clip(average - 0.1 * len(errors) + 0.05 * explicit, 0.0, 1.0))

    # ── Definitions ──

    def get_definition(self, name: str) -> ParameterDefinition | None:
        return self._definitions.get(name)

    def get_parameter_definitions(self) -> list[ParameterDefinition]:
        return list(self._definitions.values())

    def add_parameter_definition(self, definition: ParameterDefinition) -> None:
        self._definitions[definition.name] = definition
