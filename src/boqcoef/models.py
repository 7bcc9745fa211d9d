from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, Optional, Tuple

CENT = Decimal("0.01")


def to_decimal(value: object) -> Decimal:
    """Coerce ``value`` to :class:`Decimal` without going through binary floats."""

    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    if isinstance(value, float):
        return Decimal(repr(value))
    text = str(value).strip().replace(" ", "").replace(",", ".")
    return Decimal(text or "0")


def round_money(value: Decimal) -> Decimal:
    """Round to two decimals, halves away from zero."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class WorkItem:
    """A single bill-of-quantities line as produced by the document parser."""

    item_id: str
    stage_code: str
    name: str
    unit: str
    quantity: Decimal
    source_file_id: str = ""
    source_row: int = 0
    source_sheet: Optional[str] = None


@dataclass(frozen=True)
class StageInfo:
    code: str
    name: str = ""


@dataclass(frozen=True)
class BoqDocument:
    """One uploaded КСС file: its declared stages and its work items."""

    document_id: str
    file_name: str
    source_file_id: str
    stages: Tuple[StageInfo, ...] = ()
    items: Tuple[WorkItem, ...] = ()


@dataclass(frozen=True)
class CatalogEntry:
    """Price catalog row. Shared read-only across matching runs."""

    name: str
    unit: str
    base_price: Decimal
    aliases: Tuple[str, ...] = ()
    source_file_id: str = ""
    source_row: int = 0
    category: Optional[str] = None


@dataclass(frozen=True)
class CandidateMatch:
    entry: CatalogEntry
    score: float
    catalog_index: int = 0


@dataclass
class MatchAssignment:
    """Per-item match record. Only the matching session mutates it."""

    item: WorkItem
    unified_key: str
    entry: Optional[CatalogEntry] = None
    score: float = 0.0
    manual: bool = False

    @property
    def matched(self) -> bool:
        return self.entry is not None


@dataclass(frozen=True)
class CanonicalMatch:
    entry: CatalogEntry
    score: float
    manual: bool = False


@dataclass(frozen=True)
class MatchStatistics:
    total_items: int
    matched_items: int
    unmatched_items: int
    unique_keys: int
    average_score: float


@dataclass
class UnifiedMatchResult:
    """Outcome of one matching run across all documents of a project."""

    documents: Tuple[BoqDocument, ...]
    assignments: Dict[str, MatchAssignment]
    canonical: Dict[str, CanonicalMatch]
    unmatched: List[WorkItem]
    statistics: MatchStatistics

    def assignments_for_key(self, unified_key: str) -> List[MatchAssignment]:
        return [a for a in self.assignments.values() if a.unified_key == unified_key]


@dataclass(frozen=True)
class UnifiedCandidate:
    unified_key: str
    name: str
    unit: str
    occurrence_count: int
    suggestions: Tuple[CandidateMatch, ...] = ()


@dataclass(frozen=True)
class StageForecast:
    code: str
    name: str
    forecast: Decimal


@dataclass(frozen=True)
class StageForecasts:
    """Forecast budget per stage, from the instructions document or manual entry."""

    stages: Mapping[str, StageForecast]
    source_file_id: str = ""

    @property
    def total_forecast(self) -> Decimal:
        return sum((s.forecast for s in self.stages.values()), Decimal("0"))

    def get(self, code: str) -> Optional[StageForecast]:
        return self.stages.get(code)

    def __contains__(self, code: object) -> bool:
        return code in self.stages

    def __len__(self) -> int:
        return len(self.stages)

    @classmethod
    def from_mapping(
        cls,
        budgets: Mapping[str, object],
        names: Optional[Mapping[str, str]] = None,
        source_file_id: str = "manual",
    ) -> "StageForecasts":
        """Build forecasts from a ``stage code -> budget`` mapping entered by an operator."""

        names = names or {}
        stages = {
            str(code): StageForecast(code=str(code), name=names.get(code, ""), forecast=to_decimal(value))
            for code, value in budgets.items()
        }
        return cls(stages=stages, source_file_id=source_file_id)


@dataclass(frozen=True)
class Hyperparameters:
    min_coeff: float
    max_coeff: float
    penalty: float


@dataclass(frozen=True)
class CoefficientEntry:
    """Solved coefficient for one unified key.

    ``work_price`` is rounded here, once; every downstream consumer reads it
    from this record instead of rounding again.
    """

    unified_key: str
    name: str
    unit: str
    base_price: Decimal
    coefficient: float
    work_price: Decimal = field(init=False)

    def __post_init__(self) -> None:
        price = round_money(self.base_price * to_decimal(self.coefficient))
        object.__setattr__(self, "work_price", price)


@dataclass(frozen=True)
class ItemResult:
    item_id: str
    name: str
    unit: str
    quantity: Decimal
    base_price: Decimal
    coefficient: float
    work_price: Decimal
    unified_key: str = ""

    @property
    def value(self) -> Decimal:
        return self.quantity * self.work_price

    @property
    def matched(self) -> bool:
        return self.coefficient != 0


@dataclass(frozen=True)
class StageResult:
    stage_code: str
    stage_name: str
    forecast: Decimal
    proposed: Decimal
    items: Tuple[ItemResult, ...] = ()
    has_forecast: bool = True

    @property
    def gap(self) -> Decimal:
        return self.forecast - self.proposed

    @property
    def ok(self) -> bool:
        return self.gap >= 0


@dataclass(frozen=True)
class FileResult:
    file_id: str
    file_name: str
    stages: Tuple[StageResult, ...]
    total_proposed: Decimal
    total_forecast: Decimal

    @property
    def gap(self) -> Decimal:
        return self.total_forecast - self.total_proposed

    @property
    def ok(self) -> bool:
        return self.gap >= 0


@dataclass(frozen=True)
class IterationResult:
    """Immutable snapshot of one optimization run."""

    iteration_number: int
    timestamp: datetime
    hyperparameters: Hyperparameters
    coefficients: Mapping[str, CoefficientEntry]
    files: Mapping[str, FileResult]
    overall_proposed: Decimal
    overall_forecast: Decimal
    solver_status: str
    solve_duration_ms: int
    objective: float
    warnings: Tuple[str, ...] = ()

    @property
    def overall_gap(self) -> Decimal:
        return self.overall_forecast - self.overall_proposed

    @property
    def gap_percent(self) -> Optional[float]:
        if self.overall_forecast <= 0:
            return None
        return float(self.overall_gap / self.overall_forecast * 100)

    @property
    def ok(self) -> bool:
        return self.overall_gap >= 0
