"""Repository interfaces for series persistence and the external item catalog."""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .domain import ItemMetadata, ReferenceTable, Series


@dataclass
class SeriesTransaction:
    """Working copy of one series inside an atomic read-modify-write."""

    series: Series
    deleted: bool = False

    def delete(self) -> None:
        """Remove the whole series when the transaction commits."""
        self.deleted = True


class SeriesRepository(ABC):
    """Persist series documents with per-series atomic updates."""

    @abstractmethod
    def create(self, series: Series) -> None:
        """Insert a new series document."""

    @abstractmethod
    def get(self, series_id: str) -> Series:
        """Return a snapshot of the series; raises KeyError if unknown."""

    @abstractmethod
    def list_all(self) -> List[Series]:
        """Return snapshots of every stored series."""

    @abstractmethod
    def delete(self, series_id: str) -> None:
        """Remove a series; raises KeyError if unknown."""

    @abstractmethod
    def transaction(self, series_id: str) -> AbstractContextManager[SeriesTransaction]:
        """Serialize a read-modify-write against one series.

        Changes made to ``tx.series`` are committed when the block exits
        normally and discarded when it raises. Raises KeyError if unknown.
        """


class ItemCatalog(ABC):
    """Read-only lookup of item metadata owned by another service."""

    @abstractmethod
    def get_by_ids(self, item_ids: Iterable[int]) -> List[ItemMetadata]:
        """Return metadata for the known ids, silently skipping unknown ones."""

    @abstractmethod
    def get_reference_table(self, item_id: int) -> Optional[ReferenceTable]:
        """Return the reference layout of a table quiz, if the catalog holds one."""

    @abstractmethod
    def distinct(self, attribute: str) -> List[str]:
        """Return distinct values of subject, chapter or section."""


__all__ = ["ItemCatalog", "SeriesRepository", "SeriesTransaction"]
