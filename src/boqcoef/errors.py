"""Error kinds raised by matching and optimization."""
from __future__ import annotations

from typing import Optional


class BoqCoefError(Exception):
    """Base class for all errors raised by the package."""


class ValidationError(BoqCoefError):
    """Input is unusable as given; retrying will not help."""


class SolverError(BoqCoefError):
    """The LP solve did not produce a usable solution."""

    def __init__(self, message: str, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class SolverUnavailable(SolverError):
    """The requested LP backend could not be created."""


class SolverInfeasible(SolverError):
    """Solver finished with a status other than OPTIMAL or FEASIBLE."""

    def __init__(self, status: str) -> None:
        super().__init__(f"Optimization failed with status: {status}", status=status)


class SolverTimeout(SolverError):
    """Solver hit the configured wall-clock limit without a solution."""

    def __init__(self, limit_seconds: float, status: Optional[str] = None) -> None:
        super().__init__(
            f"Solver timed out after {limit_seconds:g}s (status: {status or 'unknown'})",
            status=status,
        )
        self.limit_seconds = limit_seconds


__all__ = [
    "BoqCoefError",
    "SolverError",
    "SolverInfeasible",
    "SolverTimeout",
    "SolverUnavailable",
    "ValidationError",
]
