"""Candidate scoring of a work item against price catalog entries."""
from __future__ import annotations

from typing import List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from .models import CandidateMatch, CatalogEntry, WorkItem
from .normalization import UnitNormalizer, normalize_text, token_sort

# Minimum similarity for a candidate to count as a match. Shared by the
# candidate filter and the unified matcher's acceptance check.
MATCH_THRESHOLD = 0.6
DEFAULT_TOP_N = 5


def levenshtein_similarity(first: str, second: str) -> float:
    """``1 - distance / max(len)``; two empty strings are identical."""

    if not first and not second:
        return 1.0
    if not first or not second:
        return 0.0
    distance = Levenshtein.distance(first, second)
    return 1.0 - distance / max(len(first), len(second))


def token_sort_similarity(first: str, second: str) -> float:
    return levenshtein_similarity(" ".join(token_sort(first)), " ".join(token_sort(second)))


def score_entry(name: str, entry: CatalogEntry) -> float:
    """Best of: name similarity, any alias similarity, token-sort similarity."""

    normalized = normalize_text(name)
    scores = [levenshtein_similarity(normalized, normalize_text(entry.name))]
    for alias in entry.aliases:
        scores.append(levenshtein_similarity(normalized, normalize_text(alias)))
    scores.append(token_sort_similarity(name, entry.name))
    return max(scores)


def find_candidates(
    item: WorkItem,
    catalog: Sequence[CatalogEntry],
    top_n: int = DEFAULT_TOP_N,
    *,
    threshold: Optional[float] = MATCH_THRESHOLD,
    units: Optional[UnitNormalizer] = None,
) -> List[CandidateMatch]:
    """
    Rank catalog entries for ``item``.

    Entries whose unit is not equivalent to the item's unit are dropped
    before scoring. Surviving entries scoring at least ``threshold`` are
    returned best-first; equal scores keep catalog order. Pass
    ``threshold=None`` to rank every unit-compatible entry.
    """

    units = units or UnitNormalizer.default()
    item_unit = units.normalize(item.unit).lower()
    candidates: List[CandidateMatch] = []
    for index, entry in enumerate(catalog):
        if units.normalize(entry.unit).lower() != item_unit:
            continue
        score = score_entry(item.name, entry)
        if threshold is not None and score < threshold:
            continue
        candidates.append(CandidateMatch(entry=entry, score=score, catalog_index=index))

    candidates.sort(key=lambda c: c.score, reverse=True)
    if top_n is None or top_n < 0:
        return candidates
    return candidates[:top_n]


__all__ = [
    "DEFAULT_TOP_N",
    "MATCH_THRESHOLD",
    "find_candidates",
    "levenshtein_similarity",
    "score_entry",
    "token_sort_similarity",
]
