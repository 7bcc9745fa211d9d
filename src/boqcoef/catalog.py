"""Price catalog assembly from already-parsed catalog rows."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .models import CatalogEntry, to_decimal
from .normalization import UnitNormalizer, normalize_text

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = ("NAME", "UNIT", "BASE_PRICE")


def _parse_price(value: object) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, float) and value != value:
        return None
    text = str(value).strip().replace("\u00a0", "").replace(" ", "")
    if not text:
        return None
    if "," in text and "." in text:
        # whichever separator comes last is the decimal point
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "")
        else:
            text = text.replace(",", "")
    try:
        price = to_decimal(text)
    except (InvalidOperation, ValueError):
        return None
    return price if price.is_finite() else None


def _split_aliases(value: object) -> Tuple[str, ...]:
    if value is None or (isinstance(value, float) and value != value):
        return ()
    if isinstance(value, (list, tuple)):
        parts = [str(v) for v in value]
    else:
        parts = str(value).split(";")
    return tuple(p.strip() for p in parts if p and p.strip())


def deduplicate_catalog(
    entries: Iterable[CatalogEntry],
    units: Optional[UnitNormalizer] = None,
) -> List[CatalogEntry]:
    """
    Drop repeated (name, unit) pairs, keeping the first in input order.

    Duplicates are compared on normalized name and canonical unit and are
    only reported through a warning.
    """

    units = units or UnitNormalizer.default()
    seen: Dict[Tuple[str, str], CatalogEntry] = {}
    duplicates: Dict[Tuple[str, str], int] = {}
    kept: List[CatalogEntry] = []
    for entry in entries:
        key = (normalize_text(entry.name), units.normalize(entry.unit).lower())
        if key in seen:
            duplicates[key] = duplicates.get(key, 1) + 1
            continue
        seen[key] = entry
        kept.append(entry)

    if duplicates:
        logger.warning("Found %d duplicate entries across price base files:", len(duplicates))
        for (name, unit), count in list(duplicates.items())[:5]:
            first = seen[(name, unit)]
            logger.warning(
                "  - %s (%s): %d occurrences; keeping %s row %s",
                first.name,
                first.unit,
                count,
                first.source_file_id or "(input)",
                first.source_row,
            )
    return kept


def catalog_from_rows(
    rows: Iterable[Mapping[str, object]],
    source_file_id: str = "",
) -> List[CatalogEntry]:
    """
    Build catalog entries from ``{"name", "unit", "base_price", "aliases"}`` rows.

    Blank names are skipped silently; prices that cannot be read (after
    accepting a comma decimal separator) are skipped with a warning.
    """

    entries: List[CatalogEntry] = []
    for position, row in enumerate(rows, start=1):
        lowered = {str(k).strip().lower(): v for k, v in row.items()}
        name = str(lowered.get("name") or "").strip()
        if not name:
            continue
        raw_price = lowered.get("base_price", lowered.get("price"))
        price = _parse_price(raw_price)
        source_row = int(lowered.get("source_row") or position)
        if price is None:
            logger.warning("Could not parse price %r at row %s; skipping %s", raw_price, source_row, name)
            continue
        entries.append(
            CatalogEntry(
                name=name,
                unit=str(lowered.get("unit") or "").strip(),
                base_price=price,
                aliases=_split_aliases(lowered.get("aliases")),
                source_file_id=str(lowered.get("source_file_id") or source_file_id),
                source_row=source_row,
                category=(str(lowered["category"]).strip() or None) if lowered.get("category") else None,
            )
        )
    return entries


def catalog_from_frame(frame: pd.DataFrame, source_file_id: str = "") -> List[CatalogEntry]:
    """Catalog entries from a DataFrame with NAME/UNIT/BASE_PRICE (+ optional ALIASES) columns."""

    missing = [col for col in CATALOG_COLUMNS if col not in frame.columns]
    if missing:
        raise ValueError(f"Catalog frame missing columns: {', '.join(missing)}")
    cleaned = frame.astype(object)
    records = cleaned.where(pd.notna(cleaned), None).to_dict(orient="records")
    return catalog_from_rows(records, source_file_id=source_file_id)


def merge_catalogs(
    catalogs: Sequence[Sequence[CatalogEntry]],
    units: Optional[UnitNormalizer] = None,
) -> List[CatalogEntry]:
    """Concatenate several price base files in order, then deduplicate."""

    merged: List[CatalogEntry] = []
    for entries in catalogs:
        merged.extend(entries)
    return deduplicate_catalog(merged, units)


__all__ = ["catalog_from_frame", "catalog_from_rows", "deduplicate_catalog", "merge_catalogs"]
