"""Tabular views of match and iteration results for exporters and review screens.

Money columns hold the same ``Decimal`` objects as the results they come
from, so an exporter writing these frames never re-rounds a work price.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .models import CatalogEntry, IterationResult, UnifiedCandidate, UnifiedMatchResult
from .normalization import UnitNormalizer, normalize_text


def coefficients_frame(iteration: IterationResult) -> pd.DataFrame:
    rows = [
        {
            "UNIFIED_KEY": c.unified_key,
            "NAME": c.name,
            "UNIT": c.unit,
            "BASE_PRICE": c.base_price,
            "COEFFICIENT": c.coefficient,
            "WORK_PRICE": c.work_price,
        }
        for c in iteration.coefficients.values()
    ]
    return pd.DataFrame(rows, columns=["UNIFIED_KEY", "NAME", "UNIT", "BASE_PRICE", "COEFFICIENT", "WORK_PRICE"])


def stage_frame(iteration: IterationResult) -> pd.DataFrame:
    rows = []
    for file_result in iteration.files.values():
        for stage in file_result.stages:
            rows.append(
                {
                    "FILE_ID": file_result.file_id,
                    "FILE_NAME": file_result.file_name,
                    "STAGE_CODE": stage.stage_code,
                    "STAGE_NAME": stage.stage_name,
                    "FORECAST": stage.forecast,
                    "PROPOSED": stage.proposed,
                    "GAP": stage.gap,
                    "OK": stage.ok,
                    "HAS_FORECAST": stage.has_forecast,
                }
            )
    columns = ["FILE_ID", "FILE_NAME", "STAGE_CODE", "STAGE_NAME", "FORECAST", "PROPOSED", "GAP", "OK", "HAS_FORECAST"]
    return pd.DataFrame(rows, columns=columns)


def item_frame(iteration: IterationResult) -> pd.DataFrame:
    rows = []
    for file_result in iteration.files.values():
        for stage in file_result.stages:
            for item in stage.items:
                rows.append(
                    {
                        "FILE_ID": file_result.file_id,
                        "STAGE_CODE": stage.stage_code,
                        "ITEM_ID": item.item_id,
                        "NAME": item.name,
                        "UNIT": item.unit,
                        "QUANTITY": item.quantity,
                        "BASE_PRICE": item.base_price,
                        "COEFFICIENT": item.coefficient,
                        "WORK_PRICE": item.work_price,
                        "VALUE": item.value,
                    }
                )
    columns = [
        "FILE_ID",
        "STAGE_CODE",
        "ITEM_ID",
        "NAME",
        "UNIT",
        "QUANTITY",
        "BASE_PRICE",
        "COEFFICIENT",
        "WORK_PRICE",
        "VALUE",
    ]
    return pd.DataFrame(rows, columns=columns)


def price_check_frame(
    iteration: IterationResult,
    match_result: UnifiedMatchResult,
    catalog: Sequence[CatalogEntry],
    units: Optional[UnitNormalizer] = None,
) -> pd.DataFrame:
    """
    One row per catalog entry, one column per stage, holding the working price.

    Cells stay empty where the entry is not used in that stage.
    """

    units = units or UnitNormalizer.default()
    stage_codes: List[str] = []
    for doc in match_result.documents:
        for item in doc.items:
            if item.stage_code not in stage_codes:
                stage_codes.append(item.stage_code)
    stage_codes.sort()

    def _entry_key(entry: CatalogEntry) -> tuple[str, str]:
        return normalize_text(entry.name), units.normalize(entry.unit).lower()

    prices: dict[tuple[str, str], dict[str, object]] = {}
    for assignment in match_result.assignments.values():
        if assignment.entry is None:
            continue
        coeff = iteration.coefficients.get(assignment.unified_key)
        if coeff is None:
            continue
        prices.setdefault(_entry_key(assignment.entry), {})[assignment.item.stage_code] = coeff.work_price

    rows = []
    for entry in catalog:
        row: dict[str, object] = {"NAME": entry.name, "UNIT": entry.unit, "BASE_PRICE": entry.base_price}
        used = prices.get(_entry_key(entry), {})
        for code in stage_codes:
            row[code] = used.get(code)
        row["MATCHED"] = bool(used)
        rows.append(row)
    return pd.DataFrame(rows, columns=["NAME", "UNIT", "BASE_PRICE", *stage_codes, "MATCHED"])


def match_statistics_frame(result: UnifiedMatchResult) -> pd.DataFrame:
    stats = result.statistics
    return pd.DataFrame(
        [
            {
                "TOTAL_ITEMS": stats.total_items,
                "MATCHED_ITEMS": stats.matched_items,
                "UNMATCHED_ITEMS": stats.unmatched_items,
                "UNIQUE_KEYS": stats.unique_keys,
                "AVERAGE_SCORE": round(stats.average_score, 3),
            }
        ]
    )


def unmatched_frame(candidates: Iterable[UnifiedCandidate]) -> pd.DataFrame:
    rows = []
    for candidate in candidates:
        best = candidate.suggestions[0] if candidate.suggestions else None
        rows.append(
            {
                "UNIFIED_KEY": candidate.unified_key,
                "NAME": candidate.name,
                "UNIT": candidate.unit,
                "OCCURRENCES": candidate.occurrence_count,
                "BEST_SUGGESTION": best.entry.name if best else None,
                "BEST_SCORE": round(best.score, 3) if best else None,
                "SUGGESTIONS": len(candidate.suggestions),
            }
        )
    columns = ["UNIFIED_KEY", "NAME", "UNIT", "OCCURRENCES", "BEST_SUGGESTION", "BEST_SCORE", "SUGGESTIONS"]
    return pd.DataFrame(rows, columns=columns)


def iteration_comparison_frame(iterations: Iterable[IterationResult]) -> pd.DataFrame:
    rows = [
        {
            "ITERATION": it.iteration_number,
            "TIMESTAMP": it.timestamp,
            "MIN_COEFF": it.hyperparameters.min_coeff,
            "MAX_COEFF": it.hyperparameters.max_coeff,
            "PENALTY": it.hyperparameters.penalty,
            "FORECAST": it.overall_forecast,
            "PROPOSED": it.overall_proposed,
            "GAP": it.overall_gap,
            "GAP_PCT": it.gap_percent,
            "STATUS": it.solver_status,
            "SOLVE_MS": it.solve_duration_ms,
            "OBJECTIVE": it.objective,
        }
        for it in iterations
    ]
    columns = [
        "ITERATION",
        "TIMESTAMP",
        "MIN_COEFF",
        "MAX_COEFF",
        "PENALTY",
        "FORECAST",
        "PROPOSED",
        "GAP",
        "GAP_PCT",
        "STATUS",
        "SOLVE_MS",
        "OBJECTIVE",
    ]
    return pd.DataFrame(rows, columns=columns)


def make_summary_text(iteration: IterationResult) -> str:
    coeffs = coefficients_frame(iteration)
    if not coeffs.empty:
        coeffs = coeffs.assign(DEVIATION=(coeffs["COEFFICIENT"] - 1.0).abs())
        top = coeffs.sort_values("DEVIATION", ascending=False, kind="stable").head(5)[
            ["NAME", "UNIT", "BASE_PRICE", "COEFFICIENT", "WORK_PRICE"]
        ]
        top_text = top.to_string(index=False)
    else:
        top_text = "(no matched positions)"
    gap_pct = iteration.gap_percent
    gap_text = f" ({gap_pct:.2f}%)" if gap_pct is not None else ""
    stages = stage_frame(iteration)
    over = int((~stages["OK"].astype(bool)).sum()) if not stages.empty else 0
    return (
        f"Iteration {iteration.iteration_number}: status {iteration.solver_status} "
        f"in {iteration.solve_duration_ms} ms.\n"
        f"Forecast {iteration.overall_forecast:,.2f}, proposed {iteration.overall_proposed:,.2f}, "
        f"gap {iteration.overall_gap:,.2f}{gap_text}.\n"
        f"{len(iteration.coefficients)} unified coefficients; {over} stage row(s) over budget.\n"
        f"Largest coefficient deviations:\n{top_text}\n"
    )


__all__ = [
    "coefficients_frame",
    "item_frame",
    "iteration_comparison_frame",
    "make_summary_text",
    "match_statistics_frame",
    "price_check_frame",
    "stage_frame",
    "unmatched_frame",
]
