"""
STRATEGY-NLP Trading Text Tokenizer

### ARCHITECTURAL CONTEXT
Node ID: nlp.tokenizer

First pipeline stage. Segments a free-text request into positional tokens,
classifies each one (vocabulary first, regex fallback), merges known
multi-word terms ("moving average", "stop loss") and derives typed entities
that the parameter extractor consumes.

### CRITICAL INVARIANTS
1. confidence ∈ [0, 1] and len(tokens) == 0 ⟺ confidence == 0.
2. Tokens are sorted by position; merged multi-word terms never overlap.
3. tokenize() never raises: any internal failure yields an empty result.
4. Token positions index into the normalized text, so entity spans and
   multi-word scans agree.

### DESIGN DECISIONS
- Symbol detection uses the original casing ("SPY" is a symbol, "spy" is
  not) unless the token is a quote pair like "btcusdt"
- A number becomes a threshold when a comparison operator or level condition
  precedes it within two tokens, and a duration when a unit word follows it
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field

from config.settings import TokenizerConfig
from src.core.models import Entity, EntityType, ParsedRequest, Token, TokenType
from src.nlp.vocabulary import VocabularyMatch, VocabularyMatcher

logger = logging.getLogger(__name__)


# ─── Patterns ────────────────────────────────────────────────────────

_RAW_TOKEN = re.compile(r"\d+(?:\.\d+)?%?(?=[\s.,;:!?()\[\]{}]|$)|[^\s.,;:!?()\[\]{}]+")
_PUNCTUATION_ONLY = re.compile(r"^[.,;:!?()\[\]{}]+$")
_NUMBER = re.compile(r"^\d+(?:\.\d+)?$")
_PERCENTAGE = re.compile(r"^\d+(?:\.\d+)?%$")
_SYMBOL_CASED = re.compile(r"^[A-Z]{2,10}(?:USDT|USD|BTC|ETH)?$")
_SYMBOL_PAIR = re.compile(r"^[a-z]{2,10}(?:usdt|usd|btc|eth)$")
_TIMEFRAME = re.compile(r"^\d+[mhd]$", re.IGNORECASE)
_OPERATOR = re.compile(r"^[><=!]+$")
_NEXT_WORD = re.compile(r"\s+(\w+)")

_CONTRACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bcan't\b", re.IGNORECASE), "cannot"),
    (re.compile(r"\bwon't\b", re.IGNORECASE), "will not"),
    (re.compile(r"\blet's\b", re.IGNORECASE), "let us"),
)

_DURATION_UNITS = frozenset({
    "day", "days", "bar", "bars", "candle", "candles",
    "hour", "hours", "week", "weeks",
})

# Canonical ids / categories that turn a following number into a threshold
_THRESHOLD_OPERATORS = frozenset({"greater_than", "less_than"})
_THRESHOLD_CATEGORIES = frozenset({"level", "cross"})

_TRADING_TYPES: frozenset[str] = frozenset({"indicator", "action", "condition"})


@dataclass
class TokenizationResult:
    """Output of a single tokenize() call."""

    original_text: str
    tokens: list[Token] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)
    confidence: float = 0.0
    processing_time: float = 0.0  # ms

    def to_parsed_request(self) -> ParsedRequest:
        return ParsedRequest(
            original_text=self.original_text,
            tokens=self.tokens,
            entities=self.entities,
            confidence=self.confidence,
            processing_time=self.processing_time,
        )


@dataclass
class _RawToken:
    text: str
    raw: str
    position: int


class Tokenizer:
    """
    Vocabulary-aware tokenizer for trading requests.

    Args:
        config: Tokenizer options (defaults to TokenizerConfig()).
        vocabulary: Shared VocabularyMatcher (one is built if omitted).
        logger: Injected logger (defaults to the module logger).

    Usage:
        tokenizer = Tokenizer()
        result = tokenizer.tokenize("Buy when RSI(14) is below 30")
        [t.canonical for t in result.tokens if t.type == "indicator"]  # ["rsi"]
    """

    def __init__(
        self,
        config: TokenizerConfig | None = None,
        vocabulary: VocabularyMatcher | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or TokenizerConfig()
        self._log = logger or logging.getLogger(__name__)
        self._vocabulary = vocabulary or VocabularyMatcher(
            enable_fuzzy_matching=self._config.enable_fuzzy_matching,
            logger=self._log,
        )
        self._multi_word = [
            (phrase, re.compile(rf"(?<![\w%]){re.escape(phrase)}(?![\w%])", re.IGNORECASE))
            for phrase in self._vocabulary.multi_word_terms()
        ]

    @property
    def vocabulary(self) -> VocabularyMatcher:
        return self._vocabulary

    def tokenize(self, text: str) -> TokenizationResult:
        """
        Tokenize a trading request.

        Returns:
            TokenizationResult. On internal failure the result is empty with
            confidence 0.
        """
        start = time.perf_counter()
        try:
            normalized, cased = self._preprocess(text)
            raw_tokens = self._extract_raw_tokens(normalized, cased)
            tokens = [self._classify(raw) for raw in raw_tokens]
            tokens = self._merge_multi_word(tokens, normalized)
            tokens = self._post_process(tokens)
            entities = self._extract_entities(tokens, normalized)
            confidence = self._calculate_confidence(tokens)
        except Exception as e:
            self._log.error("Tokenization failed: %s", e)
            return TokenizationResult(
                original_text=text,
                processing_time=(time.perf_counter() - start) * 1000,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._log.debug(
            "Tokenized %d chars → %d tokens, %d entities (conf=%.2f, %.2fms)",
            len(text), len(tokens), len(entities), confidence, elapsed_ms,
        )
        return TokenizationResult(
            original_text=text,
            tokens=tokens,
            entities=entities,
            confidence=confidence,
            processing_time=elapsed_ms,
        )

    # ── Stage 1: Normalization ──

    def _preprocess(self, text: str) -> tuple[str, str]:
        """Return (working text, cased text) with identical character offsets."""
        processed = " ".join(text.split())
        for pattern, replacement in _CONTRACTIONS:
            processed = pattern.sub(replacement, processed)
        processed = re.sub(r"([><=!]+)", r" \1 ", processed)
        processed = re.sub(r"(\d+(?:\.\d+)?)\s*%", r"\1%", processed)
        cased = " ".join(processed.split())

        if self._config.preserve_case:
            return cased, cased
        lowered = cased.lower()
        if len(lowered) != len(cased):
            # Offsets would drift; fall back to lowercase for symbol detection
            return lowered, lowered
        return lowered, cased

    # ── Stage 2: Segmentation ──

    def _extract_raw_tokens(self, normalized: str, cased: str) -> list[_RawToken]:
        tokens: list[_RawToken] = []
        for match in _RAW_TOKEN.finditer(normalized):
            word = match.group(0)
            if _PUNCTUATION_ONLY.match(word):
                continue
            if not self._config.min_token_length <= len(word) <= self._config.max_token_length:
                continue
            tokens.append(_RawToken(
                text=word,
                raw=cased[match.start():match.end()],
                position=match.start(),
            ))
        return tokens

    # ── Stage 3: Classification ──

    def _classify(self, raw: _RawToken) -> Token:
        match = self._vocabulary.find_match(raw.text)
        if match is not None:
            return self._vocabulary_token(raw.text, raw.position, match, raw=raw.raw)

        token_type, confidence, metadata = self._classify_by_pattern(raw)
        metadata["raw"] = raw.raw
        return Token(
            text=raw.text,
            type=token_type,
            position=raw.position,
            confidence=confidence,
            metadata=metadata,
        )

    @staticmethod
    def _vocabulary_token(
        text: str,
        position: int,
        match: VocabularyMatch,
        **extra: object,
    ) -> Token:
        entry = match.entry
        metadata: dict[str, object] = {
            **entry.metadata,
            "canonical": entry.canonical_id,
            "category": entry.category,
            "synonyms": list(entry.synonyms),
            "match": match.match_kind,
            **extra,
        }
        return Token(
            text=text,
            type=entry.token_type,
            position=position,
            confidence=min(1.0, match.confidence),
            metadata=metadata,
        )

    @staticmethod
    def _classify_by_pattern(raw: _RawToken) -> tuple[TokenType, float, dict[str, object]]:
        text = raw.text
        if _NUMBER.match(text):
            return "number", 0.95, {"value": float(text)}
        if _PERCENTAGE.match(text):
            return "number", 0.95, {"value": float(text[:-1]), "unit": "percentage"}
        if _SYMBOL_CASED.match(raw.raw) or (len(text) >= 5 and _SYMBOL_PAIR.match(text.lower())):
            return "symbol", 0.8, {"symbol": text.upper()}
        if _TIMEFRAME.match(text):
            return "timeframe", 0.9, {"timeframe": text.lower(), "canonical": text.lower()}
        if _OPERATOR.match(text):
            return "operator", 0.9, {"operator": text, "category": "comparison"}
        return "unknown", 0.1, {}

    # ── Stage 4: Multi-word Merge ──

    def _merge_multi_word(self, tokens: list[Token], normalized: str) -> list[Token]:
        """Splice runs of tokens covering a multi-word vocabulary term into one token."""
        if len(tokens) < 2:
            return tokens

        starts = {t.position: i for i, t in enumerate(tokens)}
        ends = {t.position + len(t.text): i for i, t in enumerate(tokens)}
        claimed: set[int] = set()
        spans: list[tuple[int, int, str]] = []

        # Longest phrases first; a token belongs to at most one merged term
        for phrase, pattern in self._multi_word:
            for m in pattern.finditer(normalized):
                first = starts.get(m.start())
                last = ends.get(m.end())
                if first is None or last is None or last <= first:
                    continue
                covered = set(range(first, last + 1))
                if covered & claimed:
                    continue
                claimed |= covered
                spans.append((first, last, phrase))

        if not spans:
            return tokens

        merged = list(tokens)
        for first, last, phrase in sorted(spans, reverse=True):
            match = self._vocabulary.find_match(phrase)
            if match is None:
                continue
            run = merged[first:last + 1]
            token = self._vocabulary_token(
                " ".join(t.text for t in run),
                run[0].position,
                match,
                multi_word=True,
                original_tokens=len(run),
                raw=" ".join(str(t.metadata.get("raw", t.text)) for t in run),
            )
            merged[first:last + 1] = [token]
        return merged

    # ── Stage 5: Cleanup ──

    def _post_process(self, tokens: list[Token]) -> list[Token]:
        threshold = self._config.min_token_confidence
        kept = [t for t in tokens if t.confidence > threshold]
        kept.sort(key=lambda t: t.position)
        return kept

    # ── Stage 6: Entities ──

    def _extract_entities(self, tokens: list[Token], normalized: str) -> list[Entity]:
        entities: list[Entity] = []
        for index, token in enumerate(tokens):
            entity = self._token_to_entity(tokens, index, normalized)
            if entity is not None:
                entities.append(entity)
        return entities

    def _token_to_entity(self, tokens: list[Token], index: int, normalized: str) -> Entity | None:
        token = tokens[index]
        entity_type: EntityType | None = None
        value: object = token.text
        text = token.text
        end = token.position + len(token.text)

        if token.type == "indicator":
            entity_type = "indicator_name"
            value = token.canonical
        elif token.type == "number":
            value = token.metadata.get("value", 0.0)
            # Unit words are dropped as unknown tokens, so read them from the text
            unit = _NEXT_WORD.match(normalized, end)
            if token.metadata.get("unit") == "percentage":
                entity_type = "percentage"
            elif unit is not None and unit.group(1).lower() in _DURATION_UNITS:
                entity_type = "duration"
                text = f"{token.text} {unit.group(1)}"
                end = unit.end(1)
            elif self._preceded_by_comparison(tokens, index):
                entity_type = "threshold"
            else:
                entity_type = "parameter_value"
        elif token.type == "timeframe":
            entity_type = "timeframe"
            value = token.metadata.get("timeframe", token.canonical)
        elif token.type == "symbol":
            entity_type = "symbol"
            value = token.metadata.get("symbol", token.text.upper())
        elif token.type == "parameter" and "%" in token.text:
            entity_type = "percentage"
            value = float(re.sub(r"[^\d.]", "", token.text) or 0)

        if entity_type is None:
            return None
        return Entity(
            text=text,
            type=entity_type,
            value=value,
            confidence=token.confidence,
            start_index=token.position,
            end_index=end,
        )

    @staticmethod
    def _preceded_by_comparison(tokens: list[Token], index: int) -> bool:
        for prev in tokens[max(0, index - 2):index]:
            if prev.type == "operator" and prev.canonical in _THRESHOLD_OPERATORS:
                return True
            if prev.type == "condition" and prev.metadata.get("category") in _THRESHOLD_CATEGORIES:
                return True
        return False

    # ── Confidence ──

    @staticmethod
    def _calculate_confidence(tokens: list[Token]) -> float:
        if not tokens:
            return 0.0
        average = sum(t.confidence for t in tokens) / len(tokens)
        trading_terms = sum(1 for t in tokens if t.type in _TRADING_TYPES)
        return min(1.0, average + min(0.3, 0.1 * trading_terms))

    def get_statistics(self) -> dict[str, int]:
        return {
            "vocabulary_size": len(self._vocabulary.get_all_terms()),
            "multi_word_terms": len(self._multi_word),
        }
