"""Unified BOQ position matching and price-coefficient optimization."""

from .errors import BoqCoefError, SolverError, SolverInfeasible, SolverTimeout, SolverUnavailable, ValidationError
from .matching import find_candidates
from .normalization import UnitNormalizer, normalize_text
from .optimizer import optimize
from .project import Project
from .tuning import select_hyperparameters
from .unified import MatchingSession
from .verification import verify_iteration

__all__ = [
    "BoqCoefError",
    "MatchingSession",
    "Project",
    "SolverError",
    "SolverInfeasible",
    "SolverTimeout",
    "SolverUnavailable",
    "UnitNormalizer",
    "ValidationError",
    "find_candidates",
    "normalize_text",
    "optimize",
    "select_hyperparameters",
    "verify_iteration",
]
