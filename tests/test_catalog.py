import logging
from decimal import Decimal

import pandas as pd
import pytest

from boqcoef.catalog import catalog_from_frame, catalog_from_rows, deduplicate_catalog, merge_catalogs

from conftest import make_entry


def test_rows_accept_comma_decimals_and_aliases() -> None:
    entries = catalog_from_rows(
        [
            {"Name": "Изкопни работи", "Unit": "м3", "Base_Price": "50,25", "Aliases": "Изкоп; Изкоп с багер"},
            {"name": "Бетон", "unit": "м3", "price": "1 234,50"},
            {"name": "Кофраж", "unit": "м2", "base_price": "1.234,50"},
            {"name": "Арматура", "unit": "кг", "base_price": 2.1},
        ],
        source_file_id="prices-1",
    )
    assert [e.base_price for e in entries] == [
        Decimal("50.25"),
        Decimal("1234.50"),
        Decimal("1234.50"),
        Decimal("2.1"),
    ]
    assert entries[0].aliases == ("Изкоп", "Изкоп с багер")
    assert entries[0].source_file_id == "prices-1"
    assert entries[1].source_row == 2


def test_rows_skip_blank_names_and_bad_prices(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="boqcoef.catalog"):
        entries = catalog_from_rows(
            [
                {"name": "", "unit": "м3", "base_price": "10"},
                {"name": "Бетон", "unit": "м3", "base_price": "n/a"},
                {"name": "Кофраж", "unit": "м2", "base_price": "32,5"},
            ]
        )
    assert [e.name for e in entries] == ["Кофраж"]
    assert "Could not parse price" in caplog.text


def test_deduplicate_keeps_first_and_warns(caplog) -> None:
    first = make_entry("Изкопни работи", "м3", "50")
    entries = [first, make_entry("ИЗКОПНИ РАБОТИ", "куб.м", "70"), make_entry("Изкопни работи", "м2", "10")]
    with caplog.at_level(logging.WARNING, logger="boqcoef.catalog"):
        kept = deduplicate_catalog(entries)
    assert kept[0] is first
    assert len(kept) == 2
    assert "duplicate entries" in caplog.text


def test_merge_catalogs_in_order() -> None:
    merged = merge_catalogs([[make_entry("A", "бр", "1")], [make_entry("a", "бр", "2"), make_entry("B", "бр", "3")]])
    assert [(e.name, e.base_price) for e in merged] == [("A", Decimal("1")), ("B", Decimal("3"))]


def test_catalog_from_frame() -> None:
    frame = pd.DataFrame(
        {
            "NAME": ["Изкопни работи", "Бетон", None],
            "UNIT": ["м3", "м3", "бр"],
            "BASE_PRICE": ["50,00", 180.0, 1.0],
            "ALIASES": [None, "Бетон C20/25", None],
        }
    )
    entries = catalog_from_frame(frame)
    assert [e.name for e in entries] == ["Изкопни работи", "Бетон"]
    assert entries[0].aliases == ()
    assert entries[1].aliases == ("Бетон C20/25",)
    assert entries[1].base_price == Decimal("180.0")


def test_catalog_from_frame_missing_columns() -> None:
    with pytest.raises(ValueError):
        catalog_from_frame(pd.DataFrame({"NAME": ["x"]}))
