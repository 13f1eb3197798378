"""
Trigram similarity + synonym ranking (pure half of the menu search).

Covers:
  similarity():
  - pg_trgm-compatible scores ("CHIK" vs "CHICKEN" = 0.3)
  - identical strings score 1.0, empty strings 0.0
  - case-insensitive, word-split on non-alphanumerics

  rank_synonym_matches():
  - fuzzy tier surfaces "CHICKEN" for "CHIK" without prefix/substring
  - prefix / substring hits kept even below the threshold
  - one row per canonical item (best synonym wins)
  - ordering by score, not by tier; ties by item id
  - limit of 3
  - blank query -> []
"""

from __future__ import annotations

import pytest

from storage.parsers.trigram import (
    SEARCH_LIMIT,
    rank_synonym_matches,
    similarity,
    trigrams,
)


def _row(synonym, item_id, name):
    return {"synonym": synonym, "menu_item_id": item_id, "name": name}


class TestSimilarity:

    def test_chik_chicken(self):
        assert similarity("CHIK", "CHICKEN") == pytest.approx(0.3)

    def test_identical(self):
        assert similarity("BURGER", "burger") == 1.0

    def test_empty(self):
        assert similarity("", "BURGER") == 0.0
        assert similarity("--", "--") == 0.0

    def test_symmetric(self):
        assert similarity("BURGR", "BURGER") == similarity("BURGER", "BURGR")

    def test_trigram_padding(self):
        assert trigrams("ab") == frozenset({"  a", " ab", "ab "})

    def test_words_split(self):
        assert trigrams("a-b") == trigrams("a b")


class TestRanking:

    def test_fuzzy_tier(self):
        corpus = [_row("CHICKEN", 1, "CHICKEN CURRY"), _row("COKE", 2, "COKE")]
        matches = rank_synonym_matches("chik", corpus)
        assert [m.menu_item_id for m in matches] == [1]
        assert matches[0].tier == "fuzzy"
        assert matches[0].matched_synonym == "CHICKEN"
        assert matches[0].to_suggestion() == {"id": 1, "name": "CHICKEN CURRY"}

    def test_prefix_below_threshold_kept(self):
        corpus = [_row("BURGRXYZABCDEFGH", 2, "MYSTERY BURGER")]
        matches = rank_synonym_matches("BURGR", corpus)
        assert len(matches) == 1
        assert matches[0].tier == "prefix"
        assert matches[0].score < 0.3

    def test_substring_tier(self):
        matches = rank_synonym_matches("ATTE", [_row("LATTE", 4, "CAFFE LATTE")])
        assert [(m.menu_item_id, m.tier) for m in matches] == [(4, "substring")]

    def test_score_beats_tier(self):
        corpus = [
            _row("BURGRXYZABCDEFGH", 2, "MYSTERY BURGER"),
            _row("BURGER", 1, "BEEF BURGER"),
        ]
        matches = rank_synonym_matches("BURGR", corpus)
        assert [m.menu_item_id for m in matches] == [1, 2]
        assert matches[0].tier == "fuzzy"

    def test_one_row_per_item(self):
        corpus = [
            _row("CHICKEN", 1, "CHICKEN CURRY"),
            _row("CHIKEN", 1, "CHICKEN CURRY"),
        ]
        matches = rank_synonym_matches("CHIKEN", corpus)
        assert len(matches) == 1
        assert matches[0].matched_synonym == "CHIKEN"
        assert matches[0].score == 1.0

    def test_ties_by_item_id(self):
        corpus = [_row("COLA", 7, "COLA"), _row("COLA", 3, "DIET COLA")]
        matches = rank_synonym_matches("COLA", corpus)
        assert [m.menu_item_id for m in matches] == [3, 7]

    def test_limit(self):
        corpus = [_row(f"BURGER{i}", i, f"BURGER {i}") for i in range(1, 6)]
        assert len(rank_synonym_matches("BURGER", corpus)) == SEARCH_LIMIT
        assert len(rank_synonym_matches("BURGER", corpus, limit=5)) == 5

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_blank_query(self, query):
        assert rank_synonym_matches(query, [_row("CHICKEN", 1, "CHICKEN")]) == []

    def test_no_match(self):
        assert rank_synonym_matches("ZZZ", [_row("CHICKEN", 1, "CHICKEN")]) == []
