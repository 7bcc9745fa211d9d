"""Append-only record of optimization iterations for one project."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .errors import ValidationError
from .models import IterationResult


@dataclass
class IterationHistory:
    _iterations: Dict[int, IterationResult] = field(default_factory=dict)
    _order: List[int] = field(default_factory=list)

    @property
    def next_number(self) -> int:
        return (self._order[-1] + 1) if self._order else 1

    @property
    def latest(self) -> Optional[IterationResult]:
        if not self._order:
            return None
        return self._iterations[self._order[-1]]

    def append(self, iteration: IterationResult) -> None:
        number = iteration.iteration_number
        if number in self._iterations:
            raise ValidationError(f"Iteration {number} already recorded; iterations are never overwritten")
        if self._order and number <= self._order[-1]:
            raise ValidationError(f"Iteration {number} is not after iteration {self._order[-1]}")
        self._iterations[number] = iteration
        self._order.append(number)

    def get(self, number: int) -> IterationResult:
        try:
            return self._iterations[number]
        except KeyError:
            raise KeyError(f"Iteration {number} not found") from None

    def __contains__(self, number: object) -> bool:
        return number in self._iterations

    def __iter__(self) -> Iterator[IterationResult]:
        return (self._iterations[n] for n in self._order)

    def __len__(self) -> int:
        return len(self._order)


__all__ = ["IterationHistory"]
