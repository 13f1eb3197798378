# storage/parsers/trigram.py
"""
Trigram similarity + synonym ranking.

similarity() follows PostgreSQL pg_trgm: lower-case the text, split it into
alphanumeric words, pad each word with two leading blanks and one trailing
blank, take the set of 3-character windows, and score
shared / (total distinct across both sets).

rank_synonym_matches() is the pure half of the guest-facing menu search:
prefix, substring and fuzzy hits are alternatives (not a cascade), results
are collapsed to one row per canonical item and ordered by score only.
"""

from __future__ import annotations

import re
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping

from ..ocr_types import SynonymMatch

SIMILARITY_THRESHOLD = 0.3   # pg_trgm.similarity_threshold default
SEARCH_LIMIT = 3

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)


def trigrams(text: str) -> FrozenSet[str]:
    grams = set()
    for word in _WORD_RE.findall((text or "").lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return frozenset(grams)


def similarity(a: str, b: str) -> float:
    ta, tb = trigrams(a), trigrams(b)
    if not ta or not tb:
        return 0.0
    shared = len(ta & tb)
    return shared / float(len(ta) + len(tb) - shared)


def normalize_query(query: str) -> str:
    return (query or "").strip().upper()


def _tier(synonym: str, query: str, score: float, threshold: float) -> str:
    if synonym.startswith(query):
        return "prefix"
    if query in synonym:
        return "substring"
    if score >= threshold:
        return "fuzzy"
    return ""


def rank_synonym_matches(
    query: str,
    corpus: Iterable[Mapping[str, Any]],
    *,
    limit: int = SEARCH_LIMIT,
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[SynonymMatch]:
    """Rank canonical items for a free-text query.

    corpus rows need: synonym, menu_item_id, name (the canonical item name).
    """
    q = normalize_query(query)
    if not q:
        return []

    best: Dict[int, SynonymMatch] = {}
    for row in corpus:
        synonym = str(row["synonym"] or "").upper()
        if not synonym:
            continue
        score = similarity(synonym, q)
        tier = _tier(synonym, q, score, threshold)
        if not tier:
            continue
        item_id = int(row["menu_item_id"])
        current = best.get(item_id)
        if current is None or score > current.score:
            best[item_id] = SynonymMatch(
                menu_item_id=item_id,
                name=str(row["name"]),
                matched_synonym=synonym,
                score=round(score, 6),
                tier=tier,
            )

    ranked = sorted(best.values(), key=lambda m: (-m.score, m.menu_item_id))
    return ranked[:max(limit, 0)]
