"""Placement validation for table-quiz mode.

A learner rebuilds a reference table by dragging content cells onto a grid whose
header cells are fixed. Grading compares every non-header grid position with the
reference cell declared at that same coordinate.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .domain import (
    EMPTY_TEXT,
    GridCell,
    PlacementResult,
    Position,
    ReferenceCell,
    ReferenceTable,
    UserGrid,
    WrongPlacement,
    dump_grid,
)


STRONG_ACCURACY = 80
WEAK_ACCURACY = 60
FAST_TABLE_SECONDS = 60
SLOW_TABLE_SECONDS = 120


def percentage(part: int, whole: int) -> int:
    """Whole-number percentage rounded half up; zero when ``whole`` is zero."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def _grid_cell(grid: UserGrid, row: int, column: int) -> Optional[GridCell]:
    if row >= len(grid) or column >= len(grid[row]):
        return None
    return grid[row][column]


def _locate_text(cells: Sequence[ReferenceCell], text: str) -> Optional[Position]:
    # Duplicate texts resolve to the first declared cell.
    for cell in cells:
        if (cell.text or "") == text:
            return cell.row, cell.column
    return None


def validate_placement(user_grid: UserGrid, reference: ReferenceTable) -> PlacementResult:
    """Grade ``user_grid`` against ``reference`` by grid coordinate.

    Only the reference area is graded; placements outside it are ignored.
    Header status comes from the reference alone, so a client-fixed cell on a
    content position is still graded.
    """

    rows = reference.rows
    columns = reference.columns
    content_cells = reference.content_cells()

    correct_placements = 0
    total_cells = 0
    wrong_placements: List[WrongPlacement] = []
    correctness_grid: List[Tuple[bool, ...]] = []

    for row in range(rows):
        flags: List[bool] = []
        for column in range(columns):
            placed = _grid_cell(user_grid, row, column)
            declared = reference.cell_at(row, column)
            if declared is not None and declared.is_header:
                flags.append(True)
                continue

            total_cells += 1
            placed_text = (placed.text if placed is not None else None) or ""
            expected_text = (declared.text if declared is not None else None) or ""
            if placed_text == expected_text:
                correct_placements += 1
                flags.append(True)
                continue

            flags.append(False)
            wrong_placements.append(
                WrongPlacement(
                    cell_text=placed_text or EMPTY_TEXT,
                    placed_at=(row, column),
                    correct_cell_text=expected_text or EMPTY_TEXT,
                    correct_position=_locate_text(content_cells, placed_text),
                )
            )
        correctness_grid.append(tuple(flags))

    return PlacementResult(
        correct_placements=correct_placements,
        total_cells=total_cells,
        accuracy=percentage(correct_placements, total_cells),
        wrong_placements=tuple(wrong_placements),
        correctness_grid=tuple(correctness_grid),
    )


def create_initial_grid(reference: ReferenceTable) -> UserGrid:
    """Empty rows x columns grid with the reference headers already fixed."""

    grid: UserGrid = [[None] * reference.columns for _ in range(reference.rows)]
    for header in reference.header_cells():
        if header.row < reference.rows and header.column < reference.columns:
            grid[header.row][header.column] = GridCell(text=header.text, is_fixed=True)
    return grid


def is_droppable(grid: UserGrid, row: int, column: int) -> bool:
    cell = _grid_cell(grid, row, column)
    return cell is None or not cell.is_fixed


def fisher_yates_shuffle(cells: List[ReferenceCell], seed: int) -> List[ReferenceCell]:
    """Runs a deterministic Fisher-Yates shuffle on palette cells."""

    shuffled = cells[:]
    rng = random.Random(seed)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def create_cell_palette(reference: ReferenceTable, seed: Optional[int] = None) -> List[dict]:
    """Shuffled draggable cells; blank cells are shown as EMPTY."""

    if seed is None:
        seed = random.randrange(2**32)
    palette = []
    for cell in fisher_yates_shuffle(reference.content_cells(), seed):
        payload = cell.to_dict()
        payload["displayText"] = cell.text or EMPTY_TEXT
        payload["cellType"] = "content" if cell.text else "empty"
        palette.append(payload)
    return palette


def table_layout(reference: ReferenceTable, seed: Optional[int] = None) -> dict:
    """Everything a client needs to start a table quiz."""

    grid = create_initial_grid(reference)
    return {
        "rows": reference.rows,
        "columns": reference.columns,
        "initialGrid": dump_grid(grid),
        "droppable": [
            [is_droppable(grid, row, column) for column in range(reference.columns)]
            for row in range(reference.rows)
        ],
        "palette": create_cell_palette(reference, seed=seed),
    }


@dataclass
class TableSessionSummary:
    """Post-study aggregation over every graded table in a session."""

    total_tables: int = 0
    total_cells: int = 0
    total_correct_cells: int = 0
    overall_accuracy: int = 0
    average_time_per_table: float = 0.0
    perfect_tables: int = 0
    strong_performance: List[str] = field(default_factory=list)
    needs_improvement: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalTables": self.total_tables,
            "totalCells": self.total_cells,
            "totalCorrectCells": self.total_correct_cells,
            "overallAccuracy": self.overall_accuracy,
            "averageTimePerTable": self.average_time_per_table,
            "perfectTables": self.perfect_tables,
            "strongPerformance": list(self.strong_performance),
            "needsImprovement": list(self.needs_improvement),
        }


def summarize_table_session(results: Iterable[Tuple[PlacementResult, int]]) -> TableSessionSummary:
    """Aggregate ``(placement result, seconds spent)`` pairs for one session."""

    entries = list(results)
    if not entries:
        return TableSessionSummary()

    total_tables = len(entries)
    total_cells = sum(result.total_cells for result, _ in entries)
    total_correct = sum(result.correct_placements for result, _ in entries)
    overall_accuracy = percentage(total_correct, total_cells)
    average_time = sum(seconds for _, seconds in entries) / total_tables
    perfect_tables = sum(1 for result, _ in entries if result.is_perfect)

    strong: List[str] = []
    weak: List[str] = []
    if perfect_tables > total_tables * 0.5:
        strong.append(f"{perfect_tables} perfect tables - excellent spatial memory!")
    if overall_accuracy >= STRONG_ACCURACY:
        strong.append("High overall accuracy - great pattern recognition")
    if average_time < FAST_TABLE_SECONDS:
        strong.append("Fast completion times - efficient processing")

    if overall_accuracy < WEAK_ACCURACY:
        weak.append("Focus on understanding table relationships")
    if perfect_tables == 0:
        weak.append("Practice complete table reconstruction")
    if average_time > SLOW_TABLE_SECONDS:
        weak.append("Work on faster pattern recognition")

    return TableSessionSummary(
        total_tables=total_tables,
        total_cells=total_cells,
        total_correct_cells=total_correct,
        overall_accuracy=overall_accuracy,
        average_time_per_table=average_time,
        perfect_tables=perfect_tables,
        strong_performance=strong,
        needs_improvement=weak,
    )


__all__ = [
    "TableSessionSummary",
    "create_cell_palette",
    "create_initial_grid",
    "fisher_yates_shuffle",
    "is_droppable",
    "percentage",
    "summarize_table_session",
    "table_layout",
    "validate_placement",
]
