import json
from decimal import Decimal

import pytest

from boqcoef.errors import ValidationError
from boqcoef.inputs import document_from_dict, forecasts_from_payload, load_payload, load_payload_file


def test_document_from_dict_defaults() -> None:
    doc = document_from_dict(
        {
            "id": "kss-1",
            "stages": [{"code": "S1", "name": "Earthworks"}],
            "items": [
                {"stage": "S1", "name": "Изкопни работи", "unit": "м3", "quantity": "10,5", "row": 7},
                {"id": "x", "stage": "S2", "name": "Кофраж", "unit": "м2", "quantity": 3},
            ],
        }
    )
    assert doc.file_name == "kss-1"
    assert doc.source_file_id == "kss-1"
    first, second = doc.items
    assert first.item_id == "kss-1:1"
    assert first.quantity == Decimal("10.5")
    assert first.source_row == 7
    assert second.item_id == "kss-1:x"
    assert second.source_row == 2


def test_missing_item_fields_rejected() -> None:
    with pytest.raises(ValidationError):
        document_from_dict({"id": "d", "items": [{"name": "no stage"}]})
    with pytest.raises(ValidationError):
        document_from_dict({"id": "d", "items": [{"stage": "S1", "name": "x", "quantity": "abc"}]})


def test_forecasts_mapping_and_list_forms() -> None:
    mapped = forecasts_from_payload({"S1": "1000,50", "S2": 200})
    assert mapped.total_forecast == Decimal("1200.50")
    listed = forecasts_from_payload([{"code": "S1", "name": "Earthworks", "forecast": 900}])
    assert listed.get("S1").name == "Earthworks"
    assert forecasts_from_payload(None) is None
    with pytest.raises(ValidationError):
        forecasts_from_payload([{"code": "S1"}])


def test_load_payload_and_file(tmp_path) -> None:
    payload = {
        "name": "object-12",
        "documents": [{"id": "kss-1", "items": [{"stage": "S1", "name": "Изкоп", "unit": "м3", "quantity": 1}]}],
        "catalog": [{"name": "Изкоп", "unit": "м3", "base_price": "50"}],
        "forecasts": {"S1": 100},
    }
    name, documents, catalog, forecasts = load_payload(payload)
    assert name == "object-12"
    assert len(documents) == 1 and len(catalog) == 1
    assert forecasts.total_forecast == Decimal("100")

    path = tmp_path / "project.json"
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    assert load_payload_file(path)[0] == "object-12"

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_payload_file(broken)
    with pytest.raises(ValidationError):
        load_payload([1, 2])
