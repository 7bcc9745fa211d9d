"""Iteration-over-iteration choice of coefficient bounds and L1 penalty."""
from __future__ import annotations

from typing import Optional

from .errors import ValidationError
from .models import Hyperparameters, IterationResult

FIRST_ITERATION = Hyperparameters(min_coeff=0.70, max_coeff=1.30, penalty=500.0)
SECOND_ITERATION = Hyperparameters(min_coeff=0.75, max_coeff=1.25, penalty=100.0)
STABILIZE = Hyperparameters(min_coeff=0.80, max_coeff=1.20, penalty=400.0)
FINE_TUNE = Hyperparameters(min_coeff=0.80, max_coeff=1.20, penalty=150.0)
PUSH = Hyperparameters(min_coeff=0.75, max_coeff=1.25, penalty=80.0)

STABILIZE_BELOW_PERCENT = 0.5
FINE_TUNE_BELOW_PERCENT = 1.0


def previous_gap_percent(iteration: Optional[IterationResult]) -> Optional[float]:
    """``|overall gap| / overall forecast * 100`` of a finished iteration."""

    if iteration is None or iteration.overall_forecast <= 0:
        return None
    return float(abs(iteration.overall_gap) / iteration.overall_forecast * 100)


def select_hyperparameters(
    iteration_number: int,
    previous_gap: Optional[float] = None,
) -> Hyperparameters:
    """
    Pick ``(min_coeff, max_coeff, penalty)`` for an iteration.

    Iteration 1 starts wide with a moderate penalty, iteration 2 drops the
    penalty to close the gap, later iterations react to the previous gap:
    below 0.5% they stabilize, below 1% they fine tune, otherwise they push.
    A missing previous gap on iteration 3+ counts as 0%.
    """

    if iteration_number < 1:
        raise ValidationError(f"Iteration number must be >= 1, got {iteration_number}")
    if iteration_number == 1:
        return FIRST_ITERATION
    if iteration_number == 2:
        return SECOND_ITERATION
    gap = previous_gap if previous_gap is not None else 0.0
    if gap < STABILIZE_BELOW_PERCENT:
        return STABILIZE
    if gap < FINE_TUNE_BELOW_PERCENT:
        return FINE_TUNE
    return PUSH


__all__ = [
    "FINE_TUNE",
    "FIRST_ITERATION",
    "PUSH",
    "SECOND_ITERATION",
    "STABILIZE",
    "previous_gap_percent",
    "select_hyperparameters",
]
