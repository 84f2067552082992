from studyseries.domain import GridCell, ReferenceTable, load_grid
from studyseries.placement import (
    create_cell_palette,
    create_initial_grid,
    fisher_yates_shuffle,
    is_droppable,
    percentage,
    summarize_table_session,
    table_layout,
    validate_placement,
)

from conftest import reference_table_payload


def _two_cell_reference() -> ReferenceTable:
    return ReferenceTable.from_dict(
        {"cells": [{"row": 0, "col": 0, "text": "A"}, {"row": 0, "col": 1, "text": "B"}]}
    )


def test_swapped_cells_report_where_content_belongs() -> None:
    reference = _two_cell_reference()
    grid = [[GridCell(text="B"), GridCell(text="A")]]

    result = validate_placement(grid, reference)

    assert result.correct_placements == 0
    assert result.total_cells == 2
    assert result.accuracy == 0
    first = result.wrong_placements[0]
    assert first.cell_text == "B"
    assert first.placed_at == (0, 0)
    assert first.correct_cell_text == "A"
    assert first.correct_position == (0, 1)
    assert result.wrong_placements[1].correct_position == (0, 0)
    assert result.correctness_grid == ((False, False),)


def test_perfect_grid_scores_one_hundred() -> None:
    reference = _two_cell_reference()
    result = validate_placement([[GridCell(text="A"), GridCell(text="B")]], reference)
    assert result.accuracy == 100
    assert result.is_perfect
    assert result.wrong_placements == ()


def test_all_header_table_has_zero_accuracy() -> None:
    reference = ReferenceTable.from_dict(
        {
            "rows": 1,
            "columns": 2,
            "cells": [
                {"row": 0, "column": 0, "text": "X", "isHeader": True},
                {"row": 0, "column": 1, "text": "Y", "isHeader": True},
            ],
        }
    )
    result = validate_placement(create_initial_grid(reference), reference)
    assert result.total_cells == 0
    assert result.accuracy == 0
    assert result.correctness_grid == ((True, True),)


def test_headers_are_excluded_and_graded_by_grid_coordinate() -> None:
    reference = ReferenceTable.from_dict(reference_table_payload())
    grid = create_initial_grid(reference)
    grid[1][0] = GridCell(text="Heart")
    grid[1][1] = GridCell(text="Heart")

    result = validate_placement(grid, reference)

    assert result.total_cells == 2
    assert result.correct_placements == 1
    assert result.accuracy == 50
    wrong = result.wrong_placements[0]
    assert wrong.placed_at == (1, 1)
    assert wrong.correct_cell_text == "Pumps blood"
    assert wrong.correct_position == (1, 0)


def test_empty_text_matches_missing_cell() -> None:
    reference = ReferenceTable.from_dict(
        {
            "rows": 1,
            "columns": 2,
            "cells": [{"row": 0, "column": 0, "text": "A"}, {"row": 0, "column": 1, "text": ""}],
        }
    )
    grid = load_grid([[{"text": "A"}, None]])
    result = validate_placement(grid, reference)
    assert result.correct_placements == 2
    assert result.accuracy == 100


def test_unplaced_content_is_reported_as_empty() -> None:
    reference = _two_cell_reference()
    result = validate_placement([[GridCell(text="A"), None]], reference)
    wrong = result.wrong_placements[0]
    assert wrong.cell_text == "EMPTY"
    assert wrong.correct_cell_text == "B"
    assert wrong.correct_position is None


def test_unknown_text_has_no_correct_position() -> None:
    reference = _two_cell_reference()
    result = validate_placement([[GridCell(text="Z"), GridCell(text="B")]], reference)
    assert result.wrong_placements[0].correct_position is None
    assert result.accuracy == 50


def test_percentage_rounds_half_up() -> None:
    assert percentage(1, 8) == 13
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(5, 0) == 0


def test_initial_grid_and_droppable_positions() -> None:
    reference = ReferenceTable.from_dict(reference_table_payload())
    grid = create_initial_grid(reference)
    assert grid[0][0] == GridCell(text="Organ", is_fixed=True)
    assert grid[1][0] is None
    assert not is_droppable(grid, 0, 1)
    assert is_droppable(grid, 1, 1)
    assert is_droppable(grid, 5, 5)


def test_palette_holds_only_content_cells_and_is_deterministic_per_seed() -> None:
    reference = ReferenceTable.from_dict(
        {
            "rows": 2,
            "columns": 2,
            "cells": [
                {"row": 0, "column": 0, "text": "H", "isHeader": True},
                {"row": 0, "column": 1, "text": "A"},
                {"row": 1, "column": 0, "text": ""},
                {"row": 1, "column": 1, "text": "B"},
            ],
        }
    )
    palette = create_cell_palette(reference, seed=7)
    assert sorted(cell["displayText"] for cell in palette) == ["A", "B", "EMPTY"]
    assert {cell["cellType"] for cell in palette} == {"content", "empty"}
    assert palette == create_cell_palette(reference, seed=7)
    cells = reference.content_cells()
    assert sorted(fisher_yates_shuffle(cells, 3), key=lambda c: (c.row, c.column)) == cells


def test_session_summary_counts_and_feedback() -> None:
    reference = _two_cell_reference()
    perfect = validate_placement([[GridCell(text="A"), GridCell(text="B")]], reference)
    half = validate_placement([[GridCell(text="A"), None]], reference)

    summary = summarize_table_session([(perfect, 40), (perfect, 50), (half, 30)])

    assert summary.total_tables == 3
    assert summary.total_cells == 6
    assert summary.total_correct_cells == 5
    assert summary.overall_accuracy == 83
    assert summary.perfect_tables == 2
    assert summary.average_time_per_table == 40
    assert len(summary.strong_performance) == 3
    assert summary.needs_improvement == []


def test_session_summary_flags_weak_sessions() -> None:
    reference = _two_cell_reference()
    wrong = validate_placement([[GridCell(text="B"), GridCell(text="A")]], reference)

    summary = summarize_table_session([(wrong, 200)])

    assert summary.overall_accuracy == 0
    assert summary.strong_performance == []
    assert len(summary.needs_improvement) == 3
    assert summarize_table_session([]).to_dict()["totalTables"] == 0


def test_client_fixed_flag_does_not_exempt_content_cells() -> None:
    reference = _two_cell_reference()
    grid = [[GridCell(text="A"), GridCell(text="WRONG", is_fixed=True)]]

    result = validate_placement(grid, reference)

    assert result.total_cells == 2
    assert result.correct_placements == 1
    assert result.accuracy == 50
    assert result.wrong_placements[0].cell_text == "WRONG"
    assert result.correctness_grid == ((True, False),)


def test_positions_outside_reference_are_not_graded() -> None:
    reference = _two_cell_reference()
    grid = [
        [GridCell(text="B"), GridCell(text="A"), None, None],
        [None, None, None, None],
    ]

    result = validate_placement(grid, reference)

    assert result.total_cells == 2
    assert result.correct_placements == 0
    assert result.accuracy == 0
    assert result.correctness_grid == ((False, False),)


def test_undersized_grid_counts_missing_positions_as_empty() -> None:
    reference = _two_cell_reference()
    result = validate_placement([[GridCell(text="A")]], reference)
    assert result.total_cells == 2
    assert result.accuracy == 50
    assert result.wrong_placements[0].placed_at == (0, 1)


def test_table_layout_bundles_grid_droppable_and_palette() -> None:
    reference = ReferenceTable.from_dict(reference_table_payload())

    layout = table_layout(reference, seed=11)

    assert (layout["rows"], layout["columns"]) == (2, 2)
    assert layout["initialGrid"][0][0] == {"text": "Organ", "isFixed": True}
    assert layout["initialGrid"][1] == [None, None]
    assert layout["droppable"] == [[False, False], [True, True]]
    assert sorted(cell["displayText"] for cell in layout["palette"]) == ["Heart", "Pumps blood"]
    assert layout["palette"] == table_layout(reference, seed=11)["palette"]
