"""
Cross-document matching that keeps one catalog entry per unified key.

Every work item is reduced to ``normalize_text(name) | normalize_unit(unit)``.
The first occurrence of a key is scored against the catalog; every later
occurrence, in any document, reuses that decision. Manual overrides replace
the decision for the whole key, never for a single item.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np

from .errors import ValidationError
from .matching import DEFAULT_TOP_N, MATCH_THRESHOLD, find_candidates
from .models import (
    BoqDocument,
    CanonicalMatch,
    CatalogEntry,
    MatchAssignment,
    MatchStatistics,
    UnifiedCandidate,
    UnifiedMatchResult,
    WorkItem,
)
from .normalization import UnitNormalizer, normalize_text

logger = logging.getLogger(__name__)


def unified_key(name: str, unit: str, units: Optional[UnitNormalizer] = None) -> str:
    units = units or UnitNormalizer.default()
    return f"{normalize_text(name)}|{units.normalize(unit).lower()}"


def compute_statistics(
    assignments: Dict[str, MatchAssignment],
    unmatched: Sequence[WorkItem],
    canonical: Dict[str, CanonicalMatch],
) -> MatchStatistics:
    scores = [a.score for a in assignments.values() if a.entry is not None]
    return MatchStatistics(
        total_items=len(assignments),
        matched_items=len(scores),
        unmatched_items=len(unmatched),
        unique_keys=len(canonical),
        average_score=float(np.mean(scores)) if scores else 0.0,
    )


def _check_unique_ids(documents: Sequence[BoqDocument]) -> None:
    seen: Dict[str, str] = {}
    for doc in documents:
        for item in doc.items:
            if item.item_id in seen:
                raise ValidationError(
                    f"Item id {item.item_id!r} appears in both {seen[item.item_id]} and {doc.file_name}"
                )
            seen[item.item_id] = doc.file_name


class MatchingSession:
    """
    Matching state for one project.

    The session owns the canonical ``key -> match`` map of the latest run.
    Each public call holds the session lock for its whole duration, so two
    calls on the same session never interleave.
    """

    def __init__(
        self,
        units: Optional[UnitNormalizer] = None,
        *,
        threshold: float = MATCH_THRESHOLD,
        top_n: int = DEFAULT_TOP_N,
    ) -> None:
        self.units = units or UnitNormalizer.default()
        self.threshold = threshold
        self.top_n = top_n
        self._canonical: Dict[str, CanonicalMatch] = {}
        self._lock = threading.Lock()

    @property
    def canonical(self) -> Dict[str, CanonicalMatch]:
        with self._lock:
            return dict(self._canonical)

    def key_for(self, item: WorkItem) -> str:
        return unified_key(item.name, item.unit, self.units)

    def match_all(
        self,
        documents: Sequence[BoqDocument],
        catalog: Sequence[CatalogEntry],
    ) -> UnifiedMatchResult:
        """
        Match every item of every document, reusing decisions per unified key.

        Item ids must be unique across all documents; a repeated id raises
        :class:`ValidationError` before any session state changes.
        """

        _check_unique_ids(documents)
        with self._lock:
            self._canonical.clear()
            failed_keys: set[str] = set()
            assignments: Dict[str, MatchAssignment] = {}
            unmatched: List[WorkItem] = []

            for doc in documents:
                for item in doc.items:
                    key = self.key_for(item)
                    existing = self._canonical.get(key)
                    if existing is None and key not in failed_keys:
                        candidates = find_candidates(
                            item, catalog, self.top_n, threshold=self.threshold, units=self.units
                        )
                        if candidates and candidates[0].score >= self.threshold:
                            best = candidates[0]
                            existing = CanonicalMatch(entry=best.entry, score=best.score, manual=False)
                            self._canonical[key] = existing
                            logger.debug("matched %r -> %r (%.3f)", key, best.entry.name, best.score)
                        else:
                            failed_keys.add(key)
                            logger.debug("no candidate >= %.2f for %r", self.threshold, key)

                    if existing is None:
                        unmatched.append(item)
                        assignments[item.item_id] = MatchAssignment(item=item, unified_key=key)
                    else:
                        assignments[item.item_id] = MatchAssignment(
                            item=item,
                            unified_key=key,
                            entry=existing.entry,
                            score=existing.score,
                            manual=existing.manual,
                        )

            canonical = dict(self._canonical)
            statistics = compute_statistics(assignments, unmatched, canonical)
            logger.info(
                "Matched %d/%d items (%d unmatched, %d unique keys, mean score %.3f)",
                statistics.matched_items,
                statistics.total_items,
                statistics.unmatched_items,
                statistics.unique_keys,
                statistics.average_score,
            )
            return UnifiedMatchResult(
                documents=tuple(documents),
                assignments=assignments,
                canonical=canonical,
                unmatched=unmatched,
                statistics=statistics,
            )

    def override_match(
        self,
        item_id: str,
        entry: CatalogEntry,
        result: UnifiedMatchResult,
    ) -> UnifiedMatchResult:
        """
        Point the unified key of ``item_id`` at ``entry`` for every item sharing it.

        ``result`` is updated in place and returned. Raises ``KeyError`` when
        the item is not part of ``result``.
        """

        with self._lock:
            assignment = result.assignments.get(item_id)
            if assignment is None:
                raise KeyError(f"Item {item_id} not found in match results")

            key = assignment.unified_key
            manual = CanonicalMatch(entry=entry, score=1.0, manual=True)
            self._canonical[key] = manual
            result.canonical[key] = manual

            updated = 0
            for other in result.assignments.values():
                if other.unified_key != key:
                    continue
                other.entry = entry
                other.score = 1.0
                other.manual = True
                updated += 1

            result.unmatched[:] = [
                item for item in result.unmatched if result.assignments[item.item_id].unified_key != key
            ]
            result.statistics = compute_statistics(result.assignments, result.unmatched, result.canonical)
            logger.info("Override %r -> %r applied to %d item(s)", key, entry.name, updated)
            return result

    def unmatched_candidates(
        self,
        result: UnifiedMatchResult,
        catalog: Sequence[CatalogEntry],
        limit: int = DEFAULT_TOP_N,
    ) -> List[UnifiedCandidate]:
        """Ranked suggestions per unmatched key, most frequent keys first."""

        with self._lock:
            occurrences = Counter(a.unified_key for a in result.assignments.values())
            samples: Dict[str, WorkItem] = {}
            for item in result.unmatched:
                samples.setdefault(self.key_for(item), item)

            candidates = []
            for key, sample in samples.items():
                suggestions = find_candidates(sample, catalog, limit, threshold=None, units=self.units)
                candidates.append(
                    UnifiedCandidate(
                        unified_key=key,
                        name=sample.name,
                        unit=sample.unit,
                        occurrence_count=occurrences.get(key, 0),
                        suggestions=tuple(suggestions),
                    )
                )
            candidates.sort(key=lambda c: c.occurrence_count, reverse=True)
            return candidates


__all__ = ["MatchingSession", "compute_statistics", "unified_key"]
