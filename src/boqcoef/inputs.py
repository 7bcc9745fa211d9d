"""
Build in-memory project structures from already-structured payloads.

The payload is what the document parsers hand over, serialized as JSON::

    {
      "name": "Object 12",
      "documents": [{"id": "kss-1", "file_name": "kss-1.xlsx",
                     "stages": [{"code": "S1", "name": "Earthworks"}],
                     "items": [{"id": "1", "stage": "S1", "name": "...",
                                "unit": "м3", "quantity": "10.5", "row": 7}]}],
      "catalog": [{"name": "...", "unit": "м3", "base_price": "50.00",
                   "aliases": ["..."]}],
      "forecasts": {"S1": "1000.00"}
    }

Item ids only need to be unique within their document; they are stored as
``"<document id>:<item id>"``.
"""

from __future__ import annotations

import json
from decimal import InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .catalog import catalog_from_rows
from .errors import ValidationError
from .models import BoqDocument, CatalogEntry, StageForecast, StageForecasts, StageInfo, WorkItem, to_decimal


def _require(mapping: Mapping[str, Any], key: str, context: str) -> Any:
    if key not in mapping or mapping[key] in (None, ""):
        raise ValidationError(f"{context}: missing '{key}'")
    return mapping[key]


def _decimal(value: Any, context: str):
    try:
        return to_decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{context}: invalid number {value!r}") from exc


def document_from_dict(raw: Mapping[str, Any], position: int = 0) -> BoqDocument:
    doc_id = str(raw.get("id") or raw.get("document_id") or f"doc-{position + 1}")
    source_file_id = str(raw.get("source_file_id") or doc_id)
    stages = tuple(
        StageInfo(code=str(_require(s, "code", f"{doc_id} stage")), name=str(s.get("name") or ""))
        for s in raw.get("stages") or []
    )
    items: List[WorkItem] = []
    for index, item in enumerate(raw.get("items") or [], start=1):
        context = f"{doc_id} item {index}"
        items.append(
            WorkItem(
                item_id=f"{doc_id}:{item.get('id') or index}",
                stage_code=str(_require(item, "stage", context)),
                name=str(_require(item, "name", context)),
                unit=str(item.get("unit") or ""),
                quantity=_decimal(item.get("quantity", 0), context),
                source_file_id=source_file_id,
                source_row=int(item.get("row") or index),
                source_sheet=item.get("sheet"),
            )
        )
    return BoqDocument(
        document_id=doc_id,
        file_name=str(raw.get("file_name") or doc_id),
        source_file_id=source_file_id,
        stages=stages,
        items=tuple(items),
    )


def forecasts_from_payload(raw: Any, source_file_id: str = "payload") -> Optional[StageForecasts]:
    """Accept either ``{"S1": 1000}`` or ``[{"code", "name", "forecast"}]``."""

    if not raw:
        return None
    if isinstance(raw, Mapping):
        budgets = {str(code): _decimal(value, f"forecast {code}") for code, value in raw.items()}
        return StageForecasts.from_mapping(budgets, source_file_id=source_file_id)
    stages: Dict[str, StageForecast] = {}
    for entry in raw:
        code = str(_require(entry, "code", "forecast"))
        stages[code] = StageForecast(
            code=code,
            name=str(entry.get("name") or ""),
            forecast=_decimal(_require(entry, "forecast", f"forecast {code}"), f"forecast {code}"),
        )
    return StageForecasts(stages=stages, source_file_id=source_file_id)


def load_payload(
    payload: Mapping[str, Any],
) -> Tuple[str, List[BoqDocument], List[CatalogEntry], Optional[StageForecasts]]:
    if not isinstance(payload, Mapping):
        raise ValidationError("Project payload must be a JSON object")
    name = str(payload.get("name") or "project")
    documents = [document_from_dict(raw, i) for i, raw in enumerate(payload.get("documents") or [])]
    catalog = catalog_from_rows(payload.get("catalog") or [], source_file_id="catalog")
    forecasts = forecasts_from_payload(payload.get("forecasts"))
    return name, documents, catalog, forecasts


def load_payload_file(path: Path):
    with Path(path).open("r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{path}: invalid JSON ({exc})") from exc
    return load_payload(payload)


__all__ = ["document_from_dict", "forecasts_from_payload", "load_payload", "load_payload_file"]
