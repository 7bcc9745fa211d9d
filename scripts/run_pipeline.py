"""Helper script to match a project payload and run successive optimization iterations."""
from __future__ import annotations

import argparse

from boqcoef.cli import main


def _parse_args(argv: list[str] | None = None) -> tuple[argparse.Namespace, list[str]]:
    parser = argparse.ArgumentParser(description="Run the coefficient pipeline for one project payload")
    parser.add_argument("project", help="Project payload JSON")
    parser.add_argument("--iterations", type=int, default=3, help="Number of iterations to run")
    return parser.parse_known_args(argv)


if __name__ == "__main__":  # pragma: no cover
    args, remaining = _parse_args()
    forward_args: list[str] = list(remaining)
    forward_args.extend(["optimize", args.project, "--iterations", str(args.iterations)])
    raise SystemExit(main(forward_args))
