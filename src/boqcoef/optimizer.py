"""
Unified coefficient optimization across all documents of a project.

One coefficient ``c_k`` is solved per matched unified key, so the same
(name, unit) carries the same coefficient in every file. The LP is::

    maximize   sum(qty * base_price * c_k) - penalty * sum(d+_k + d-_k)
    subject to c_k - d+_k + d-_k = 1                       for every key
               sum over stage items (qty * base_price * c_k) <= forecast[stage] - 0.005 * sum(|qty|)
               min_coeff <= c_k <= max_coeff,  d+_k, d-_k >= 0

``d+_k + d-_k`` equals ``|c_k - 1|`` at the optimum, which turns the L1
pull towards 1.0 into linear terms. The half-cent per unit of quantity
taken off each budget covers the rounding of work prices to cents, so the
rounded stage totals stay within the forecast. Solved with OR-Tools GLOP.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import numpy as np
from ortools.linear_solver import pywraplp

from .errors import SolverInfeasible, SolverTimeout, SolverUnavailable, ValidationError
from .models import (
    BoqDocument,
    CoefficientEntry,
    FileResult,
    Hyperparameters,
    ItemResult,
    IterationResult,
    MatchAssignment,
    StageForecasts,
    StageResult,
    UnifiedMatchResult,
)
from .tuning import previous_gap_percent, select_hyperparameters

logger = logging.getLogger(__name__)

SOLVER_BACKEND = "GLOP"
ZERO = Decimal("0")
ROUNDING_MARGIN = Decimal("0.005")

_STATUS_NAMES = {
    pywraplp.Solver.OPTIMAL: "OPTIMAL",
    pywraplp.Solver.FEASIBLE: "FEASIBLE",
    pywraplp.Solver.INFEASIBLE: "INFEASIBLE",
    pywraplp.Solver.UNBOUNDED: "UNBOUNDED",
    pywraplp.Solver.ABNORMAL: "ABNORMAL",
    pywraplp.Solver.NOT_SOLVED: "NOT_SOLVED",
    pywraplp.Solver.MODEL_INVALID: "MODEL_INVALID",
}
_SUCCESS = {pywraplp.Solver.OPTIMAL, pywraplp.Solver.FEASIBLE}


@dataclass
class _Model:
    solver: pywraplp.Solver
    coefficients: Dict[str, pywraplp.Variable] = field(default_factory=dict)
    unconstrained_stages: List[str] = field(default_factory=list)


def _value_weight(assignment: MatchAssignment) -> Decimal:
    return assignment.item.quantity * assignment.entry.base_price


def _build_model(
    match_result: UnifiedMatchResult,
    forecasts: StageForecasts,
    params: Hyperparameters,
) -> _Model:
    solver = pywraplp.Solver.CreateSolver(SOLVER_BACKEND)
    if solver is None:
        raise SolverUnavailable(f"Could not create {SOLVER_BACKEND} solver")
    model = _Model(solver=solver)
    infinity = solver.infinity()
    objective = solver.Objective()

    for index, (key, match) in enumerate(match_result.canonical.items()):
        if match.entry is None:
            continue
        c = solver.NumVar(params.min_coeff, params.max_coeff, f"c_{index}")
        d_plus = solver.NumVar(0.0, infinity, f"dp_{index}")
        d_minus = solver.NumVar(0.0, infinity, f"dm_{index}")
        abs_link = solver.Constraint(1.0, 1.0, f"abs_{index}")
        abs_link.SetCoefficient(c, 1.0)
        abs_link.SetCoefficient(d_plus, -1.0)
        abs_link.SetCoefficient(d_minus, 1.0)
        objective.SetCoefficient(d_plus, -params.penalty)
        objective.SetCoefficient(d_minus, -params.penalty)
        model.coefficients[key] = c

    # SetCoefficient overwrites, so weights are summed per key before use.
    total_weight: Dict[str, Decimal] = defaultdict(Decimal)
    stage_weight: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
    stage_quantity: Dict[str, Decimal] = defaultdict(Decimal)
    for assignment in match_result.assignments.values():
        if assignment.entry is None or assignment.unified_key not in model.coefficients:
            continue
        weight = _value_weight(assignment)
        total_weight[assignment.unified_key] += weight
        stage_weight[assignment.item.stage_code][assignment.unified_key] += weight
        stage_quantity[assignment.item.stage_code] += abs(assignment.item.quantity)

    for key, weight in total_weight.items():
        objective.SetCoefficient(model.coefficients[key], float(weight))
    objective.SetMaximization()

    for position, (code, forecast) in enumerate(forecasts.stages.items()):
        # each work price may round up by half a cent after the solve
        limit = forecast.forecast - stage_quantity.get(code, ZERO) * ROUNDING_MARGIN
        budget = solver.Constraint(-infinity, float(limit), f"budget_{position}")
        for key, weight in stage_weight.get(code, {}).items():
            budget.SetCoefficient(model.coefficients[key], float(weight))

    model.unconstrained_stages = sorted(code for code in stage_weight if code not in forecasts)
    return model


def _solve(model: _Model, time_limit_seconds: Optional[float]) -> Tuple[int, str, int]:
    if time_limit_seconds:
        model.solver.SetTimeLimit(int(time_limit_seconds * 1000))
    started = time.perf_counter()
    status = model.solver.Solve()
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    name = _STATUS_NAMES.get(status, str(status))
    return status, name, elapsed_ms


def _snap(value: float, params: Hyperparameters) -> float:
    return float(np.clip(round(value, 9), params.min_coeff, params.max_coeff))


def _item_result(assignment: MatchAssignment, coefficients: Dict[str, CoefficientEntry]) -> ItemResult:
    item = assignment.item
    coeff = coefficients.get(assignment.unified_key) if assignment.entry is not None else None
    if coeff is None:
        return ItemResult(
            item_id=item.item_id,
            name=item.name,
            unit=item.unit,
            quantity=item.quantity,
            base_price=ZERO,
            coefficient=0.0,
            work_price=ZERO,
            unified_key=assignment.unified_key,
        )
    return ItemResult(
        item_id=item.item_id,
        name=item.name,
        unit=item.unit,
        quantity=item.quantity,
        base_price=coeff.base_price,
        coefficient=coeff.coefficient,
        work_price=coeff.work_price,
        unified_key=assignment.unified_key,
    )


def item_results(
    match_result: UnifiedMatchResult,
    coefficients: Dict[str, CoefficientEntry],
) -> List[ItemResult]:
    """Item-level results in matching order; unmatched items carry zero price."""

    return [_item_result(a, coefficients) for a in match_result.assignments.values()]


def _file_result(
    doc: BoqDocument,
    match_result: UnifiedMatchResult,
    coefficients: Dict[str, CoefficientEntry],
    forecasts: StageForecasts,
) -> FileResult:
    stage_names = {stage.code: stage.name for stage in doc.stages}
    stage_codes = [stage.code for stage in doc.stages]
    for item in doc.items:
        if item.stage_code not in stage_names:
            stage_names[item.stage_code] = ""
            stage_codes.append(item.stage_code)

    by_stage: Dict[str, List[ItemResult]] = defaultdict(list)
    for item in doc.items:
        assignment = match_result.assignments.get(item.item_id)
        if assignment is None:
            continue
        by_stage[item.stage_code].append(_item_result(assignment, coefficients))

    stages = []
    for code in stage_codes:
        items = tuple(by_stage.get(code, ()))
        forecast = forecasts.get(code)
        stages.append(
            StageResult(
                stage_code=code,
                stage_name=stage_names[code] or (forecast.name if forecast else ""),
                forecast=forecast.forecast if forecast else ZERO,
                proposed=sum((r.value for r in items), ZERO),
                items=items,
                has_forecast=forecast is not None,
            )
        )
    return FileResult(
        file_id=doc.source_file_id or doc.document_id,
        file_name=doc.file_name,
        stages=tuple(stages),
        total_proposed=sum((s.proposed for s in stages), ZERO),
        total_forecast=sum((s.forecast for s in stages), ZERO),
    )


def optimize(
    match_result: UnifiedMatchResult,
    forecasts: Optional[StageForecasts],
    iteration_number: int,
    previous_iteration: Optional[IterationResult] = None,
    *,
    hyperparameters: Optional[Hyperparameters] = None,
    time_limit_seconds: Optional[float] = None,
    strict_forecasts: bool = False,
    now: Optional[datetime] = None,
) -> IterationResult:
    """
    Solve one optimization iteration.

    ``hyperparameters`` replaces the adaptive ladder when a caller retries
    with its own bounds/penalty. Raises :class:`ValidationError` for unusable
    input, :class:`SolverInfeasible` / :class:`SolverTimeout` when the solver
    does not deliver; no fallback coefficients are ever produced.
    """

    if forecasts is None or len(forecasts) == 0:
        raise ValidationError("No forecasts available. Load stage forecasts first.")
    if iteration_number < 1:
        raise ValidationError(f"Iteration number must be >= 1, got {iteration_number}")
    if hyperparameters is not None and hyperparameters.min_coeff > hyperparameters.max_coeff:
        raise ValidationError("min_coeff must not exceed max_coeff")

    prev_gap = previous_gap_percent(previous_iteration)
    params = hyperparameters or select_hyperparameters(iteration_number, prev_gap)
    logger.info(
        "Iteration %d: coefficient range [%.2f, %.2f], penalty %.0f (previous gap %s)",
        iteration_number,
        params.min_coeff,
        params.max_coeff,
        params.penalty,
        f"{prev_gap:.2f}%" if prev_gap is not None else "n/a",
    )

    warnings: List[str] = []
    model = _build_model(match_result, forecasts, params)
    if model.unconstrained_stages:
        message = "Stages without forecast left unconstrained: " + ", ".join(model.unconstrained_stages)
        if strict_forecasts:
            raise ValidationError(message)
        logger.warning(message)
        warnings.append(message)
    unmatched = match_result.statistics.unmatched_items
    if unmatched:
        message = f"{unmatched} unmatched item(s) excluded from optimization"
        logger.warning(message)
        warnings.append(message)

    status, status_name, elapsed_ms = _solve(model, time_limit_seconds)
    objective_value = model.solver.Objective().Value() if status in _SUCCESS else 0.0
    logger.info(
        "Solver finished: status=%s, time=%dms, objective=%.2f",
        status_name,
        elapsed_ms,
        objective_value,
    )
    if status not in _SUCCESS:
        if time_limit_seconds and elapsed_ms >= time_limit_seconds * 1000:
            raise SolverTimeout(time_limit_seconds, status=status_name)
        raise SolverInfeasible(status_name)

    coefficients: Dict[str, CoefficientEntry] = {}
    for key, variable in model.coefficients.items():
        entry = match_result.canonical[key].entry
        coefficients[key] = CoefficientEntry(
            unified_key=key,
            name=entry.name,
            unit=entry.unit,
            base_price=entry.base_price,
            coefficient=_snap(variable.solution_value(), params),
        )

    files: Dict[str, FileResult] = {}
    for doc in match_result.documents:
        result = _file_result(doc, match_result, coefficients, forecasts)
        files[result.file_id if result.file_id not in files else doc.document_id] = result

    overall_proposed = sum((f.total_proposed for f in files.values()), ZERO)
    overall_forecast = forecasts.total_forecast
    iteration = IterationResult(
        iteration_number=iteration_number,
        timestamp=now or datetime.now(timezone.utc),
        hyperparameters=params,
        coefficients=coefficients,
        files=files,
        overall_proposed=overall_proposed,
        overall_forecast=overall_forecast,
        solver_status=status_name,
        solve_duration_ms=elapsed_ms,
        objective=objective_value,
        warnings=tuple(warnings),
    )
    logger.info(
        "Results: forecast=%s, proposed=%s, gap=%s (%s)",
        f"{overall_forecast:,.2f}",
        f"{overall_proposed:,.2f}",
        f"{iteration.overall_gap:,.2f}",
        f"{iteration.gap_percent:.2f}%" if iteration.gap_percent is not None else "n/a",
    )
    return iteration


__all__ = ["SOLVER_BACKEND", "item_results", "optimize"]
