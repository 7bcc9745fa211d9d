from decimal import Decimal

import pytest

from boqcoef.errors import ValidationError
from boqcoef.models import StageForecasts
from boqcoef.project import Project
from boqcoef.tuning import FIRST_ITERATION, SECOND_ITERATION, STABILIZE

from conftest import make_document, make_entry, make_item


@pytest.fixture
def project(scenario_a_document, catalog, forecasts_1000, config) -> Project:
    return Project(
        name="object-12",
        documents=[scenario_a_document],
        catalog=catalog + [make_entry("изкопни  работи", "куб.м", "99")],
        forecasts=forecasts_1000,
        config=config,
    )


def test_catalog_deduplicated_first_wins(project) -> None:
    prices = [e.base_price for e in project.catalog if e.name.lower().startswith("изкопни")]
    assert prices == [Decimal("50")]


def test_optimization_requires_matching(project) -> None:
    with pytest.raises(ValidationError):
        project.run_optimization()


def test_successive_iterations_use_ladder(project) -> None:
    project.run_matching()
    first = project.run_optimization()
    second = project.run_optimization()
    third = project.run_optimization()
    assert [it.iteration_number for it in project.iterations] == [1, 2, 3]
    assert first.hyperparameters == FIRST_ITERATION
    assert second.hyperparameters == SECOND_ITERATION
    # iteration 2 lands at 1.25 * 750 = 937.50, a 6.25% gap
    assert second.overall_proposed == Decimal("937.50")
    assert third.hyperparameters != STABILIZE
    assert project.select_iteration(2) is second


def test_manual_forecasts_and_override(project) -> None:
    project.run_matching()
    project.set_forecasts(StageForecasts.from_mapping({"S1": "600"}))
    project.override("1", project.find_entry("Изкопни работи", "м3"))
    result = project.run_optimization()
    (coeff,) = result.coefficients.values()
    assert coeff.coefficient == pytest.approx(599.925 / 750, abs=1e-7)
    assert result.overall_proposed <= Decimal("600")


def test_find_entry_unknown(project) -> None:
    with pytest.raises(KeyError):
        project.find_entry("Няма такава", "бр")


def test_unmatched_candidates_use_config_limit(catalog, forecasts_1000, config) -> None:
    doc = make_document("doc-1", [make_item("1", "Монтаж на PVC дограма", "м3", 1)])
    project = Project(name="p", documents=[doc], catalog=catalog, forecasts=forecasts_1000, config=config)
    project.run_matching()
    (candidate,) = project.unmatched_candidates()
    assert len(candidate.suggestions) == 2
