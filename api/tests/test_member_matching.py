"""Player name matching tests (pure functions, no DB)."""

import pytest

from tennisclub.services.member_matching import (
    STRATEGY_EXACT,
    STRATEGY_FUZZY,
    STRATEGY_SUBSTRING,
    STRATEGY_TOKEN,
    MatchConfig,
    classify,
    levenshtein,
    similarity,
)

MEMBERS = ["John Dela Cruz", "Maria Santos", "Andres Reyes"]


class TestSimilarity:
    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_identical_is_one(self):
        assert similarity("maria", "maria") == 1.0

    def test_empty_is_zero(self):
        assert similarity("", "maria") == 0.0
        assert similarity("maria", "") == 0.0

    def test_single_edit(self):
        assert similarity("jon dela cruz", "john dela cruz") == pytest.approx(13 / 14)


class TestClassify:
    @pytest.mark.parametrize("typed", ["John Dela Cruz", "  john dela cruz ", "JOHN DELA CRUZ"])
    def test_exact_ignores_case_and_whitespace(self, typed):
        result = classify(typed, MEMBERS)
        assert result.matched is True
        assert result.matched_name == "John Dela Cruz"
        assert result.confidence == 1.0
        assert result.strategy == STRATEGY_EXACT

    def test_fuzzy_typo(self):
        result = classify("Jon Dela Cruz", MEMBERS)
        assert result.matched is True
        assert result.matched_name == "John Dela Cruz"
        assert result.strategy == STRATEGY_FUZZY
        assert result.confidence == pytest.approx(0.93, abs=0.01)

    def test_fuzzy_picks_best_candidate(self):
        result = classify("Maria Santo", ["Mario Santos", "Maria Santos"])
        assert result.matched_name == "Maria Santos"

    def test_substring(self):
        result = classify("Mari", MEMBERS)
        assert result.matched is True
        assert result.matched_name == "Maria Santos"
        assert result.strategy == STRATEGY_SUBSTRING
        assert result.confidence == pytest.approx(4 / 12)

    def test_token_match(self):
        result = classify("Andrez", MEMBERS)
        assert result.matched is True
        assert result.matched_name == "Andres Reyes"
        assert result.strategy == STRATEGY_TOKEN

    def test_short_fragment_is_not_a_match(self):
        assert classify("Jo", MEMBERS).matched is False

    def test_stranger(self):
        result = classify("Pedro Penduko", MEMBERS)
        assert result.matched is False
        assert result.matched_name is None
        assert result.confidence == 0.0

    def test_blank_name(self):
        assert classify("   ", MEMBERS).matched is False

    def test_thresholds_are_configurable(self):
        strict = MatchConfig(similarity_threshold=0.95, token_threshold=0.99)
        assert classify("Jon Dela Cruz", MEMBERS, strict).strategy != STRATEGY_FUZZY

    def test_to_dict(self):
        data = classify("Jon Dela Cruz", MEMBERS).to_dict()
        assert data["is_member"] is True
        assert data["player_name"] == "Jon Dela Cruz"
