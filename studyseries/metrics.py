"""Simple in-process metrics registry for lifecycle instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import List


@dataclass
class MetricsRegistry:
    """Holds counters and histograms exposed by the service."""

    series_created: int = 0
    series_deleted: int = 0
    sessions_started: int = 0
    sessions_completed: int = 0
    sessions_deleted: int = 0
    sessions_edited: int = 0
    sessions_repaired: int = 0
    interactions_recorded: Counter = field(default_factory=Counter)
    conflicts: Counter = field(default_factory=Counter)
    table_accuracies: List[int] = field(default_factory=list)

    def record_series_created(self) -> None:
        self.series_created += 1

    def record_series_deleted(self) -> None:
        self.series_deleted += 1

    def record_session_started(self) -> None:
        self.sessions_started += 1

    def record_session_completed(self) -> None:
        self.sessions_completed += 1

    def record_session_deleted(self) -> None:
        self.sessions_deleted += 1

    def record_session_edited(self) -> None:
        self.sessions_edited += 1

    def record_sessions_repaired(self, count: int) -> None:
        self.sessions_repaired += count

    def record_interaction(self, kind: str) -> None:
        self.interactions_recorded[kind] += 1

    def record_conflict(self, reason: str) -> None:
        self.conflicts[reason] += 1

    def record_table_accuracy(self, accuracy: int) -> None:
        self.table_accuracies.append(accuracy)

    @property
    def average_table_accuracy(self) -> float:
        if not self.table_accuracies:
            return 0.0
        return sum(self.table_accuracies) / len(self.table_accuracies)


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
