"""
STRATEGY-NLP Tests: Trading Vocabulary

Node ID: tests.unit.test_vocabulary
Graph Link: tested_by → nlp.vocabulary

Tests cover:
- Exact, synonym and containment (fuzzy) lookup
- Fuzzy ratio threshold and confidence scaling
- Canonical ids for multi-word terms
- Category / token-type queries and the multi-word term list
"""

from __future__ import annotations

import pytest

from src.nlp.vocabulary import VocabularyMatcher, canonical_id


@pytest.fixture
def vocab() -> VocabularyMatcher:
    return VocabularyMatcher()


class TestFindMatch:
    def test_exact_term(self, vocab):
        match = vocab.find_match("RSI")
        assert match is not None
        assert match.match_kind == "exact"
        assert match.canonical_id == "rsi"
        assert match.token_type == "indicator"
        assert match.confidence == pytest.approx(0.95)

    def test_synonym(self, vocab):
        match = vocab.find_match("relative strength index")
        assert match.match_kind == "synonym"
        assert match.canonical_id == "rsi"

    def test_whitespace_is_normalised(self, vocab):
        match = vocab.find_match("  moving   average ")
        assert match.canonical_id == "sma"

    def test_fuzzy_inflection(self, vocab):
        match = vocab.find_match("buys")
        assert match.match_kind == "fuzzy"
        assert match.canonical_id == "buy"
        # confidence scaled by len("buy") / len("buys")
        assert match.confidence == pytest.approx(0.95 * 0.75)

    def test_fuzzy_rejects_low_ratio(self, vocab):
        # "buy" covers only 3/9 of the word
        assert vocab.find_match("buyerxxxx") is None

    def test_fuzzy_truncated_word(self, vocab):
        match = vocab.find_match("bollinge")
        assert match.match_kind == "fuzzy"
        assert match.canonical_id == "bollinger_bands"
        assert match.matched_key == "bollinger"
        # confidence scaled by len("bollinge") / len("bollinger")
        assert match.confidence == pytest.approx(0.9 * 8 / 9)

        match = vocab.find_match("stochasti")
        assert match.canonical_id == "stochastic"
        assert match.confidence == pytest.approx(0.9 * 0.9)

    def test_short_word_does_not_grab_longer_key(self, vocab):
        assert vocab.find_match("the") is None

    def test_fragment_does_not_grab_phrase(self, vocab):
        # "hours" sits inside "4 hours" at 5/7, but phrases need the full words
        assert vocab.find_match("hours") is None

    def test_fuzzy_disabled(self):
        vocab = VocabularyMatcher(enable_fuzzy_matching=False)
        assert vocab.find_match("buys") is None
        assert vocab.find_match("buy") is not None

    def test_unknown_and_empty(self, vocab):
        assert vocab.find_match("zebra") is None
        assert vocab.find_match("") is None
        assert vocab.find_match("   ") is None

    def test_operator_synonym(self, vocab):
        match = vocab.find_match("below")
        assert match.token_type == "operator"
        assert match.canonical_id == "less_than"


class TestCanonicalId:
    def test_spaces_become_underscores(self):
        assert canonical_id("Bollinger Bands") == "bollinger_bands"

    def test_entry_canonical_id(self, vocab):
        assert vocab.find_match("bb").canonical_id == "bollinger_bands"


class TestQueries:
    def test_find_by_category(self, vocab):
        ids = {e.canonical_id for e in vocab.find_by_category("oscillator")}
        assert {"rsi", "stochastic", "cci", "williams_r"} <= ids

    def test_find_by_token_type(self, vocab):
        timeframes = {e.term for e in vocab.find_by_token_type("timeframe")}
        assert timeframes == {"1m", "5m", "15m", "1h", "4h", "1d"}

    def test_multi_word_terms_longest_first(self, vocab):
        phrases = vocab.multi_word_terms()
        assert all(" " in p for p in phrases)
        assert phrases[0] == "moving average convergence divergence"
        lengths = [len(p) for p in phrases]
        assert lengths == sorted(lengths, reverse=True)

    def test_all_terms_deduplicated(self, vocab):
        terms = vocab.get_all_terms()
        assert len(terms) == len(set(terms))
