from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from boqcoef.errors import ValidationError
from boqcoef.history import IterationHistory
from boqcoef.models import IterationResult
from boqcoef.tuning import FIRST_ITERATION


@pytest.fixture
def base_iteration() -> IterationResult:
    return IterationResult(
        iteration_number=1,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        hyperparameters=FIRST_ITERATION,
        coefficients={},
        files={},
        overall_proposed=Decimal("900"),
        overall_forecast=Decimal("1000"),
        solver_status="OPTIMAL",
        solve_duration_ms=3,
        objective=900.0,
    )


def test_empty_history() -> None:
    history = IterationHistory()
    assert history.next_number == 1
    assert history.latest is None
    assert len(history) == 0


def test_append_and_lookup(base_iteration) -> None:
    history = IterationHistory()
    history.append(base_iteration)
    second = replace(base_iteration, iteration_number=2)
    history.append(second)
    assert history.next_number == 3
    assert history.latest is second
    assert history.get(1) is base_iteration
    assert 2 in history and 5 not in history
    assert [it.iteration_number for it in history] == [1, 2]


def test_iterations_are_never_overwritten(base_iteration) -> None:
    history = IterationHistory()
    history.append(base_iteration)
    with pytest.raises(ValidationError):
        history.append(replace(base_iteration, overall_proposed=Decimal("1")))
    assert history.get(1).overall_proposed == Decimal("900")


def test_numbers_must_increase(base_iteration) -> None:
    history = IterationHistory()
    history.append(replace(base_iteration, iteration_number=3))
    with pytest.raises(ValidationError):
        history.append(replace(base_iteration, iteration_number=2))


def test_unknown_iteration() -> None:
    with pytest.raises(KeyError):
        IterationHistory().get(4)
