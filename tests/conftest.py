from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from studyseries.domain import FLASHCARD, MCQ, TABLE, ItemMetadata, ReferenceTable  # noqa: E402
from studyseries.metrics import MetricsRegistry  # noqa: E402
from studyseries.services import SeriesService  # noqa: E402
from studyseries.storage import InMemoryItemCatalog, InMemorySeriesRepository  # noqa: E402


TABLE_ITEM_ID = 100


def reference_table_payload() -> dict:
    return {
        "rows": 2,
        "columns": 2,
        "cells": [
            {"row": 0, "column": 0, "text": "Organ", "isHeader": True},
            {"row": 0, "column": 1, "text": "Function", "isHeader": True},
            {"row": 1, "column": 0, "text": "Heart", "isHeader": False},
            {"row": 1, "column": 1, "text": "Pumps blood", "isHeader": False},
        ],
    }


@pytest.fixture
def catalog() -> InMemoryItemCatalog:
    items = [
        ItemMetadata(item_id=1, kind=FLASHCARD, subject="Biology", chapter="Cells", section="Membranes"),
        ItemMetadata(item_id=2, kind=FLASHCARD, subject="Biology", chapter="Cells", section="Nucleus"),
        ItemMetadata(item_id=3, kind=FLASHCARD, subject="Biology", chapter="Genetics", section="DNA"),
        ItemMetadata(item_id=4, kind=FLASHCARD, subject="Chemistry", chapter="Bonds", section=""),
        ItemMetadata(item_id=5, kind=FLASHCARD, subject="Chemistry", chapter="Acids", section="pH"),
        ItemMetadata(item_id=10, kind=MCQ, subject="Physics", chapter="Optics", section="Lenses"),
        ItemMetadata(
            item_id=TABLE_ITEM_ID,
            kind=TABLE,
            subject="Anatomy",
            chapter="Circulation",
            section="Heart",
            table=ReferenceTable.from_dict(reference_table_payload()),
        ),
    ]
    return InMemoryItemCatalog(items)


@pytest.fixture
def repository() -> InMemorySeriesRepository:
    return InMemorySeriesRepository()


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def service(repository, catalog, metrics) -> SeriesService:
    return SeriesService(repository, catalog=catalog, metrics=metrics)


@pytest.fixture
def bare_service(metrics) -> SeriesService:
    """Service without an item catalog, accepting any item ids."""
    return SeriesService(InMemorySeriesRepository(), metrics=metrics)


def flashcard_payload(result: str = "Right", **overrides) -> dict:
    payload = {"result": result, "difficulty": "Medium", "confidence": "High", "timeSpent": 20}
    payload.update(overrides)
    return payload
