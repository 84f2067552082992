"""Concrete repository implementations backed by memory and SQLite."""
from __future__ import annotations

import copy
import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from loguru import logger

from .domain import ItemMetadata, ReferenceTable, Series
from .errors import ConflictError
from .repositories import ItemCatalog, SeriesRepository, SeriesTransaction


CATALOG_ATTRIBUTES = ("subject", "chapter", "section")


class _SeriesLocks:
    """One lock per series id so unrelated series never wait on each other.

    An entry lives only while some caller holds or waits on it, so lookups of
    unknown or deleted ids leave nothing behind.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, series_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(series_id)
            if entry is None:
                entry = self._locks[series_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[series_id]


class InMemorySeriesRepository(SeriesRepository):
    """Keeps series documents in process memory."""

    def __init__(self) -> None:
        self._documents: Dict[str, dict] = {}
        self._guard = threading.Lock()
        self._locks = _SeriesLocks()

    def create(self, series: Series) -> None:
        with self._guard:
            if series.id in self._documents:
                raise ConflictError(f"Series {series.id} already exists")
            self._documents[series.id] = series.to_dict()

    def get(self, series_id: str) -> Series:
        with self._guard:
            document = self._documents[series_id]
            return Series.from_dict(copy.deepcopy(document))

    def list_all(self) -> List[Series]:
        with self._guard:
            documents = [copy.deepcopy(document) for document in self._documents.values()]
        return [Series.from_dict(document) for document in documents]

    def delete(self, series_id: str) -> None:
        with self._locks.hold(series_id):
            with self._guard:
                del self._documents[series_id]

    @contextmanager
    def transaction(self, series_id: str) -> Iterator[SeriesTransaction]:
        with self._locks.hold(series_id):
            tx = SeriesTransaction(series=self.get(series_id))
            yield tx
            with self._guard:
                if tx.deleted:
                    del self._documents[series_id]
                else:
                    self._documents[series_id] = tx.series.to_dict()


class SqliteSeriesRepository(SeriesRepository):
    """Stores series documents as JSON rows guarded by a version column."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._locks = _SeriesLocks()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialise_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _initialise_schema(self) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS series (
                    series_id TEXT PRIMARY KEY,
                    started_at TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_series_started_at ON series (started_at);
                """
            )
            self._conn.commit()

    def _load(self, series_id: str) -> sqlite3.Row:
        with self._lock:
            row = self._conn.execute(
                "SELECT payload_json, version FROM series WHERE series_id = ?",
                (series_id,),
            ).fetchone()
        if row is None:
            raise KeyError(series_id)
        return row

    def create(self, series: Series) -> None:
        payload = json.dumps(series.to_dict())
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO series (series_id, started_at, payload_json, version)
                    VALUES (?, ?, ?, 0)
                    """,
                    (series.id, series.started_at.isoformat(), payload),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(f"Series {series.id} already exists") from exc
            self._conn.commit()

    def get(self, series_id: str) -> Series:
        row = self._load(series_id)
        return Series.from_dict(json.loads(row["payload_json"]))

    def list_all(self) -> List[Series]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT payload_json FROM series ORDER BY started_at DESC"
            ).fetchall()
        return [Series.from_dict(json.loads(row["payload_json"])) for row in rows]

    def delete(self, series_id: str) -> None:
        with self._locks.hold(series_id):
            with self._lock:
                cursor = self._conn.execute("DELETE FROM series WHERE series_id = ?", (series_id,))
                if cursor.rowcount == 0:
                    self._conn.rollback()
                    raise KeyError(series_id)
                self._conn.commit()

    @contextmanager
    def transaction(self, series_id: str) -> Iterator[SeriesTransaction]:
        with self._locks.hold(series_id):
            row = self._load(series_id)
            version = row["version"]
            tx = SeriesTransaction(series=Series.from_dict(json.loads(row["payload_json"])))
            yield tx
            with self._lock:
                if tx.deleted:
                    cursor = self._conn.execute(
                        "DELETE FROM series WHERE series_id = ? AND version = ?",
                        (series_id, version),
                    )
                else:
                    cursor = self._conn.execute(
                        """
                        UPDATE series
                           SET payload_json = ?, version = version + 1
                         WHERE series_id = ? AND version = ?
                        """,
                        (json.dumps(tx.series.to_dict()), series_id, version),
                    )
                if cursor.rowcount == 0:
                    self._conn.rollback()
                    logger.warning("Series {} changed concurrently at version {}", series_id, version)
                    raise ConflictError(f"Series {series_id} was modified concurrently")
                self._conn.commit()


class InMemoryItemCatalog(ItemCatalog):
    """Catalog stand-in holding item metadata in a dictionary."""

    def __init__(self, items: Optional[Iterable[ItemMetadata]] = None) -> None:
        self._items: Dict[int, ItemMetadata] = {}
        for item in items or []:
            self.add(item)

    def add(self, item: ItemMetadata) -> None:
        self._items[item.item_id] = item

    def get_by_ids(self, item_ids: Iterable[int]) -> List[ItemMetadata]:
        return [self._items[item_id] for item_id in item_ids if item_id in self._items]

    def get_reference_table(self, item_id: int) -> Optional[ReferenceTable]:
        item = self._items.get(item_id)
        return item.table if item is not None else None

    def distinct(self, attribute: str) -> List[str]:
        if attribute not in CATALOG_ATTRIBUTES:
            raise ValueError(f"Unsupported catalog attribute: {attribute}")
        values = {getattr(item, attribute) for item in self._items.values()}
        return sorted(value for value in values if value and value.strip())


__all__ = ["InMemoryItemCatalog", "InMemorySeriesRepository", "SqliteSeriesRepository"]
