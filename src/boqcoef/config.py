from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Mapping, Optional

from .matching import DEFAULT_TOP_N, MATCH_THRESHOLD
from .normalization import UnitNormalizer


_BOOLEAN_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    base_dir: Path
    output_dir: Path
    units_yaml: Optional[Path]
    match_threshold: float = MATCH_THRESHOLD
    top_n: int = DEFAULT_TOP_N
    suggestion_limit: int = DEFAULT_TOP_N
    solver_time_limit_seconds: Optional[float] = None
    strict_forecasts: bool = False
    verbose: bool = False

    def unit_normalizer(self) -> UnitNormalizer:
        if self.units_yaml is None:
            return UnitNormalizer.default()
        return UnitNormalizer.from_yaml(self.units_yaml)


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).replace(",", ".").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOLEAN_TRUE


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options."""

    base_dir = Path.cwd().resolve()
    default_output_dir = (base_dir / "outputs").resolve()

    output_dir = _to_path(env.get("BOQCOEF_OUTPUT_DIR")) or default_output_dir
    units_yaml = _to_path(env.get("BOQCOEF_UNITS_YAML"))
    match_threshold = _to_float(env.get("BOQCOEF_MATCH_THRESHOLD"))
    if match_threshold is None:
        match_threshold = MATCH_THRESHOLD
    top_n = _to_int(env.get("BOQCOEF_TOP_N")) or DEFAULT_TOP_N
    suggestion_limit = _to_int(env.get("BOQCOEF_SUGGESTIONS")) or DEFAULT_TOP_N
    time_limit = _to_float(env.get("BOQCOEF_SOLVER_TIME_LIMIT"))
    strict_forecasts = _flag(env.get("BOQCOEF_STRICT_FORECASTS"))
    verbose = False

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "output_dir", None):
        output_dir = _to_path(cli_ns.output_dir) or output_dir
    if getattr(cli_ns, "units_yaml", None):
        units_yaml = _to_path(cli_ns.units_yaml)
    if getattr(cli_ns, "match_threshold", None) is not None:
        match_threshold = float(cli_ns.match_threshold)
    if getattr(cli_ns, "time_limit", None) is not None:
        time_limit = float(cli_ns.time_limit)
    if getattr(cli_ns, "strict_forecasts", False):
        strict_forecasts = True
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    if time_limit is not None and time_limit <= 0:
        time_limit = None

    return Config(
        base_dir=base_dir,
        output_dir=output_dir,
        units_yaml=units_yaml,
        match_threshold=min(1.0, max(0.0, match_threshold)),
        top_n=max(1, top_n),
        suggestion_limit=max(1, suggestion_limit),
        solver_time_limit_seconds=time_limit,
        strict_forecasts=strict_forecasts,
        verbose=verbose,
    )


def default_config() -> Config:
    return load_config(os.environ, None)


__all__ = ["Config", "default_config", "load_config"]
