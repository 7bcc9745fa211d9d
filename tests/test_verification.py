from dataclasses import replace
from decimal import Decimal

from boqcoef.models import CoefficientEntry, Hyperparameters, StageForecasts
from boqcoef.optimizer import optimize
from boqcoef.unified import MatchingSession
from boqcoef.verification import verify_iteration

from conftest import make_document, make_entry, make_item


def _solved(document, catalog, forecast="1000"):
    match = MatchingSession().match_all([document], catalog)
    return optimize(match, StageForecasts.from_mapping({"S1": forecast}), 1)


def test_solved_iteration_verifies(scenario_a_document, catalog) -> None:
    report = verify_iteration(_solved(scenario_a_document, catalog))
    assert report.ok
    assert report.iteration_number == 1


def test_tampered_stage_total_reported(scenario_a_document, catalog) -> None:
    result = _solved(scenario_a_document, catalog)
    file_result = result.files["doc-1"]
    stage = replace(file_result.stages[0], proposed=file_result.stages[0].proposed + Decimal("1"))
    tampered = replace(result, files={"doc-1": replace(file_result, stages=(stage,))})
    report = verify_iteration(tampered)
    assert not report.ok
    assert any("recomputed" in p for p in report.problems)


def test_out_of_bounds_coefficient_reported(scenario_a_document, catalog) -> None:
    result = _solved(scenario_a_document, catalog)
    (key,) = result.coefficients
    entry = result.coefficients[key]
    wild = CoefficientEntry(key, entry.name, entry.unit, entry.base_price, 2.0)
    report = verify_iteration(
        replace(result, coefficients={key: wild}, hyperparameters=Hyperparameters(0.7, 1.3, 500.0))
    )
    assert any("outside" in p for p in report.problems)
    assert any("differs from coefficient entry" in p for p in report.problems)


def test_budget_overrun_reported(scenario_a_document, catalog) -> None:
    result = _solved(scenario_a_document, catalog, forecast="900")
    file_result = result.files["doc-1"]
    stage = replace(file_result.stages[0], forecast=Decimal("800"))
    report = verify_iteration(replace(result, files={"doc-1": replace(file_result, stages=(stage,))}))
    assert any("exceeds forecast" in p for p in report.problems)


def test_budget_check_allows_only_relative_tolerance() -> None:
    doc = make_document("doc-1", [make_item("1", "Изкопни работи", "м3", 7)])
    result = _solved(doc, [make_entry("Изкопни работи", "м3", "100")], forecast="800")
    file_result = result.files["doc-1"]
    (stage,) = file_result.stages
    assert stage.proposed == Decimal("799.96")
    assert verify_iteration(result).ok

    # one cent over is far above 1e-6 of the forecast
    over = replace(stage, forecast=stage.proposed - Decimal("0.01"))
    report = verify_iteration(replace(result, files={"doc-1": replace(file_result, stages=(over,))}))
    assert any("exceeds forecast" in p for p in report.problems)

    within = replace(stage, forecast=stage.proposed - Decimal("0.0005"))
    report = verify_iteration(replace(result, files={"doc-1": replace(file_result, stages=(within,))}))
    assert report.ok, report.problems
