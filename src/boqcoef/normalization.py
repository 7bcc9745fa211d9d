"""
Text and unit normalization producing comparable matching keys.

Unit aliases follow the ``units.yaml`` layout used by the bid documents::

    aliases:
      - canonical: "м3"
        variants: ["m3", "куб.м"]

When no alias file is configured the built-in table below is used.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import yaml

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]|_")

DEFAULT_UNIT_ALIASES: Mapping[str, Sequence[str]] = {
    "бр": ("бр.", "брой", "броя", "pcs", "pc", "ea"),
    "м": ("м.", "m", "л.м", "л.м.", "лм", "м.л."),
    "м2": ("м²", "m2", "m²", "кв.м", "кв.м.", "кв. м.", "кв м", "sqm"),
    "м3": ("м³", "m3", "m³", "куб.м", "куб.м.", "куб. м.", "куб м", "cbm"),
    "кг": ("кг.", "kg", "килограм"),
    "т": ("т.", "тон", "тона", "t", "ton"),
    "л": ("л.", "литър", "l"),
    "компл": ("компл.", "комплект", "к-т", "set"),
    "ч": ("ч.", "час", "h"),
}


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, turn punctuation into spaces, collapse whitespace and trim."""

    if text is None or not str(text).strip():
        return ""
    normalized = str(text).lower()
    normalized = _PUNCTUATION.sub(" ", normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    return normalized.strip()


def token_sort(text: Optional[str]) -> List[str]:
    """Normalized tokens in lexicographic order, for word-order-insensitive comparison."""

    return sorted(token for token in normalize_text(text).split(" ") if token)


class UnitNormalizer:
    """Case-insensitive alias -> canonical unit lookup."""

    def __init__(self, aliases: Optional[Mapping[str, Iterable[str]]] = None) -> None:
        self._variant_to_canonical: Dict[str, str] = {}
        for canonical, variants in (aliases or {}).items():
            self.add(canonical, variants)

    def add(self, canonical: str, variants: Iterable[str] = ()) -> None:
        canonical = str(canonical).strip()
        self._variant_to_canonical[canonical.lower()] = canonical
        for variant in variants or ():
            self._variant_to_canonical[str(variant).strip().lower()] = canonical

    def normalize(self, unit: Optional[str]) -> str:
        if unit is None or not str(unit).strip():
            return ""
        trimmed = str(unit).strip()
        return self._variant_to_canonical.get(trimmed.lower(), trimmed.lower())

    def equivalent(self, first: Optional[str], second: Optional[str]) -> bool:
        return self.normalize(first).lower() == self.normalize(second).lower()

    def __len__(self) -> int:
        return len(self._variant_to_canonical)

    @classmethod
    def from_yaml(cls, path: Path) -> "UnitNormalizer":
        """Load aliases from a ``units.yaml`` file."""

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"units.yaml not found at {path}")
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        normalizer = cls()
        for alias in raw.get("aliases") or []:
            canonical = alias.get("canonical")
            if not canonical:
                continue
            normalizer.add(canonical, alias.get("variants") or ())
        return normalizer

    @classmethod
    def default(cls) -> "UnitNormalizer":
        return _default_normalizer()


@lru_cache(maxsize=1)
def _default_normalizer() -> UnitNormalizer:
    return UnitNormalizer(DEFAULT_UNIT_ALIASES)


def normalize_unit(unit: Optional[str], normalizer: Optional[UnitNormalizer] = None) -> str:
    return (normalizer or _default_normalizer()).normalize(unit)


def units_equivalent(
    first: Optional[str],
    second: Optional[str],
    normalizer: Optional[UnitNormalizer] = None,
) -> bool:
    return (normalizer or _default_normalizer()).equivalent(first, second)


__all__ = [
    "DEFAULT_UNIT_ALIASES",
    "UnitNormalizer",
    "normalize_text",
    "normalize_unit",
    "token_sort",
    "units_equivalent",
]
