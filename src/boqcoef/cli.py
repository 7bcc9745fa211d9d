import argparse
import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from .config import Config
from .config import load_config as load_runtime_config
from .errors import BoqCoefError, ValidationError
from .inputs import load_payload_file
from .models import IterationResult, UnifiedMatchResult
from .project import Project
from .reporting import make_summary_text, unmatched_frame
from .verification import verify_iteration

logger = logging.getLogger(__name__)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def match_result_to_dict(result: UnifiedMatchResult) -> Dict[str, Any]:
    stats = result.statistics
    return {
        "statistics": {
            "total_items": stats.total_items,
            "matched_items": stats.matched_items,
            "unmatched_items": stats.unmatched_items,
            "unique_keys": stats.unique_keys,
            "average_score": round(stats.average_score, 4),
        },
        "assignments": [
            {
                "item_id": a.item.item_id,
                "stage": a.item.stage_code,
                "name": a.item.name,
                "unit": a.item.unit,
                "unified_key": a.unified_key,
                "catalog_name": a.entry.name if a.entry else None,
                "base_price": _money(a.entry.base_price) if a.entry else None,
                "score": round(a.score, 4),
                "manual": a.manual,
            }
            for a in result.assignments.values()
        ],
        "unmatched": [item.item_id for item in result.unmatched],
    }


def iteration_to_dict(iteration: IterationResult) -> Dict[str, Any]:
    params = iteration.hyperparameters
    return {
        "iteration": iteration.iteration_number,
        "timestamp": iteration.timestamp.isoformat(),
        "hyperparameters": {
            "min_coeff": params.min_coeff,
            "max_coeff": params.max_coeff,
            "penalty": params.penalty,
        },
        "solver_status": iteration.solver_status,
        "solve_duration_ms": iteration.solve_duration_ms,
        "objective": iteration.objective,
        "overall_forecast": _money(iteration.overall_forecast),
        "overall_proposed": _money(iteration.overall_proposed),
        "overall_gap": _money(iteration.overall_gap),
        "coefficients": [
            {
                "unified_key": c.unified_key,
                "name": c.name,
                "unit": c.unit,
                "base_price": _money(c.base_price),
                "coefficient": round(c.coefficient, 6),
                "work_price": _money(c.work_price),
            }
            for c in iteration.coefficients.values()
        ],
        "files": [
            {
                "file_id": f.file_id,
                "file_name": f.file_name,
                "total_forecast": _money(f.total_forecast),
                "total_proposed": _money(f.total_proposed),
                "stages": [
                    {
                        "code": s.stage_code,
                        "name": s.stage_name,
                        "forecast": _money(s.forecast),
                        "proposed": _money(s.proposed),
                        "has_forecast": s.has_forecast,
                    }
                    for s in f.stages
                ],
            }
            for f in iteration.files.values()
        ],
        "warnings": list(iteration.warnings),
    }


def _write_json(payload: Dict[str, Any], output: Optional[str], default_name: str, config: Config) -> Path:
    if output:
        path = Path(output).expanduser().resolve()
    else:
        path = config.output_dir / default_name
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    logger.info("Wrote %s", path)
    return path


def _load_project(path: str, config: Config) -> Project:
    name, documents, catalog, forecasts = load_payload_file(Path(path))
    return Project(name=name, documents=documents, catalog=catalog, forecasts=forecasts, config=config)


def run_match(args: argparse.Namespace, config: Config) -> int:
    project = _load_project(args.project, config)
    result = project.run_matching()
    candidates = project.unmatched_candidates()
    if candidates:
        logger.info("Unmatched positions:\n%s", unmatched_frame(candidates).to_string(index=False))
    _write_json(match_result_to_dict(result), args.output, f"{project.name}_match.json", config)
    return 0


def run_optimize(args: argparse.Namespace, config: Config) -> int:
    if args.iterations < 1:
        raise ValidationError("--iterations must be at least 1")
    project = _load_project(args.project, config)
    if project.forecasts is None:
        raise ValidationError("Project payload has no stage forecasts")
    project.run_matching()
    exit_code = 0
    for _ in range(args.iterations):
        iteration = project.run_optimization()
        logger.info(make_summary_text(iteration))
        report = verify_iteration(iteration)
        for problem in report.problems:
            logger.warning("Verification: %s", problem)
        if not report.ok:
            exit_code = 2
    payload = {
        "project": project.name,
        "iterations": [iteration_to_dict(it) for it in project.iterations],
    }
    _write_json(payload, args.output, f"{project.name}_iterations.json", config)
    return exit_code


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Match BOQ positions to a price catalog and optimize price coefficients")
    parser.add_argument("--output-dir", help="Directory for generated outputs")
    parser.add_argument("--units-yaml", help="Optional unit alias YAML")
    parser.add_argument("--match-threshold", type=float, help="Minimum similarity score to accept a match")
    parser.add_argument("--time-limit", type=float, help="Solver wall-clock limit in seconds")
    parser.add_argument(
        "--strict-forecasts",
        action="store_true",
        help="Fail when a stage with matched items has no forecast",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    sub = parser.add_subparsers(dest="command", required=True)

    match = sub.add_parser("match", help="Run unified matching and report unmatched positions")
    match.add_argument("project", help="Project payload JSON")
    match.add_argument("--output", help="Result JSON path")
    match.set_defaults(handler=run_match)

    opt = sub.add_parser("optimize", help="Match and run one or more optimization iterations")
    opt.add_argument("project", help="Project payload JSON")
    opt.add_argument("--iterations", type=int, default=1, help="Number of successive iterations to run")
    opt.add_argument("--output", help="Result JSON path")
    opt.set_defaults(handler=run_optimize)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    args = parse_args(argv)
    runtime_cfg = load_runtime_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return args.handler(args, runtime_cfg)
    except BoqCoefError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # pragma: no cover - defensive
        logger.exception("Fatal error during coefficient run")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
