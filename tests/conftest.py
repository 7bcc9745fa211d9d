from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence, Tuple

import pytest

from boqcoef.config import Config
from boqcoef.models import BoqDocument, CatalogEntry, StageForecasts, StageInfo, WorkItem

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_item(item_id: str, name: str, unit: str, quantity, stage: str = "S1", source: str = "doc-1") -> WorkItem:
    return WorkItem(
        item_id=item_id,
        stage_code=stage,
        name=name,
        unit=unit,
        quantity=Decimal(str(quantity)),
        source_file_id=source,
    )


def make_document(doc_id: str, items: Iterable[WorkItem], stages: Sequence[Tuple[str, str]] = (("S1", "Stage 1"),)) -> BoqDocument:
    return BoqDocument(
        document_id=doc_id,
        file_name=f"{doc_id}.xlsx",
        source_file_id=doc_id,
        stages=tuple(StageInfo(code=code, name=name) for code, name in stages),
        items=tuple(items),
    )


def make_entry(name: str, unit: str, price, aliases: Sequence[str] = ()) -> CatalogEntry:
    return CatalogEntry(name=name, unit=unit, base_price=Decimal(str(price)), aliases=tuple(aliases))


@pytest.fixture
def excavation_entry() -> CatalogEntry:
    return make_entry("Изкопни работи", "м3", "50")


@pytest.fixture
def catalog(excavation_entry: CatalogEntry) -> list:
    return [
        excavation_entry,
        make_entry("Бетон C20/25", "м3", "180.00", aliases=["Доставка и полагане на бетон"]),
        make_entry("Кофраж на стени", "м2", "32.50"),
        make_entry("Арматура стомана B500", "кг", "2.10"),
    ]


@pytest.fixture
def scenario_a_document() -> BoqDocument:
    return make_document(
        "doc-1",
        [
            make_item("1", "Изкопни работи", "м3", 10),
            make_item("2", "Изкопни работи", "м3", 5),
        ],
    )


@pytest.fixture
def forecasts_1000() -> StageForecasts:
    return StageForecasts.from_mapping({"S1": "1000"}, names={"S1": "Stage 1"})


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(base_dir=tmp_path, output_dir=tmp_path / "outputs", units_yaml=None)
