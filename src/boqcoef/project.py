"""
Project-level workflow: match, review, optimize, compare iterations.

A :class:`Project` owns everything one estimating job needs between calls:
the parsed documents, the deduplicated price catalog, the stage forecasts,
its own :class:`MatchingSession` and the append-only iteration history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .catalog import deduplicate_catalog
from .config import Config, default_config
from .errors import ValidationError
from .history import IterationHistory
from .models import (
    BoqDocument,
    CatalogEntry,
    Hyperparameters,
    IterationResult,
    StageForecasts,
    UnifiedCandidate,
    UnifiedMatchResult,
)
from .optimizer import optimize
from .unified import MatchingSession

logger = logging.getLogger(__name__)


@dataclass
class Project:
    name: str
    documents: List[BoqDocument]
    catalog: List[CatalogEntry]
    forecasts: Optional[StageForecasts] = None
    config: Config = field(default_factory=default_config)
    session: Optional[MatchingSession] = None
    history: IterationHistory = field(default_factory=IterationHistory)
    match_result: Optional[UnifiedMatchResult] = None

    def __post_init__(self) -> None:
        units = self.config.unit_normalizer()
        if self.session is None:
            self.session = MatchingSession(
                units,
                threshold=self.config.match_threshold,
                top_n=self.config.top_n,
            )
        self.catalog = deduplicate_catalog(self.catalog, units)

    def set_forecasts(self, forecasts: StageForecasts) -> None:
        """Replace the stage forecasts, e.g. after manual operator entry."""

        self.forecasts = forecasts

    def run_matching(self) -> UnifiedMatchResult:
        self.match_result = self.session.match_all(self.documents, self.catalog)
        return self.match_result

    def _require_match(self) -> UnifiedMatchResult:
        if self.match_result is None:
            raise ValidationError("Matching has not been run for this project")
        return self.match_result

    def find_entry(self, name: str, unit: str) -> CatalogEntry:
        for entry in self.catalog:
            if entry.name == name and entry.unit == unit:
                return entry
        raise KeyError(f"Catalog entry {name!r} ({unit}) not found")

    def override(self, item_id: str, entry: CatalogEntry) -> UnifiedMatchResult:
        return self.session.override_match(item_id, entry, self._require_match())

    def unmatched_candidates(self) -> List[UnifiedCandidate]:
        return self.session.unmatched_candidates(
            self._require_match(), self.catalog, limit=self.config.suggestion_limit
        )

    def run_optimization(self, hyperparameters: Optional[Hyperparameters] = None) -> IterationResult:
        """Solve the next iteration and append it to the history."""

        match_result = self._require_match()
        number = self.history.next_number
        logger.info("Starting optimization iteration %d for project %s", number, self.name)
        result = optimize(
            match_result,
            self.forecasts,
            number,
            self.history.latest,
            hyperparameters=hyperparameters,
            time_limit_seconds=self.config.solver_time_limit_seconds,
            strict_forecasts=self.config.strict_forecasts,
        )
        self.history.append(result)
        return result

    def select_iteration(self, number: int) -> IterationResult:
        return self.history.get(number)

    @property
    def iterations(self) -> Sequence[IterationResult]:
        return list(self.history)


__all__ = ["Project"]
