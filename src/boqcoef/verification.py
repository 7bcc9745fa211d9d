"""Post-solve checks that an iteration's reported numbers are self-consistent."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from .models import IterationResult

# Relative solver tolerance on stage budgets.
BUDGET_TOLERANCE = Decimal("1e-6")


@dataclass
class VerificationReport:
    iteration_number: int
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def verify_iteration(iteration: IterationResult) -> VerificationReport:
    """
    Recompute every aggregate from item-level results and compare exactly.

    Also checks that each coefficient lies inside the iteration's bounds,
    that item work prices are the ones stored on the coefficient entries,
    and that rounded stage totals stay within their forecast up to the
    relative solver tolerance.
    """

    report = VerificationReport(iteration_number=iteration.iteration_number)
    params = iteration.hyperparameters

    for key, coeff in iteration.coefficients.items():
        if not params.min_coeff <= coeff.coefficient <= params.max_coeff:
            report.problems.append(
                f"coefficient {coeff.coefficient} for {key!r} outside [{params.min_coeff}, {params.max_coeff}]"
            )

    stage_totals: Dict[str, Decimal] = {}
    stage_forecast: Dict[str, Decimal] = {}
    overall = Decimal("0")
    for file_id, file_result in iteration.files.items():
        file_total = Decimal("0")
        for stage in file_result.stages:
            recomputed = Decimal("0")
            for item in stage.items:
                coeff = iteration.coefficients.get(item.unified_key)
                if coeff is not None and item.work_price != coeff.work_price:
                    report.problems.append(
                        f"{file_id}/{stage.stage_code}/{item.item_id}: work price {item.work_price} "
                        f"differs from coefficient entry {coeff.work_price}"
                    )
                recomputed += item.quantity * item.work_price
            if recomputed != stage.proposed:
                report.problems.append(
                    f"{file_id}/{stage.stage_code}: proposed {stage.proposed} != recomputed {recomputed}"
                )
            file_total += recomputed
            if stage.has_forecast:
                stage_totals[stage.stage_code] = stage_totals.get(stage.stage_code, Decimal("0")) + recomputed
                stage_forecast[stage.stage_code] = stage.forecast
        if file_total != file_result.total_proposed:
            report.problems.append(
                f"{file_id}: total proposed {file_result.total_proposed} != recomputed {file_total}"
            )
        overall += file_total

    if overall != iteration.overall_proposed:
        report.problems.append(f"overall proposed {iteration.overall_proposed} != recomputed {overall}")

    for code, proposed in stage_totals.items():
        forecast = stage_forecast[code]
        slack = abs(forecast) * BUDGET_TOLERANCE
        if proposed > forecast + slack:
            report.problems.append(f"stage {code}: proposed {proposed} exceeds forecast {forecast}")

    return report


__all__ = ["BUDGET_TOLERANCE", "VerificationReport", "verify_iteration"]
