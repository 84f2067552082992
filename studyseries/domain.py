"""Domain models shared across services and repositories."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


ACTIVE = "active"
COMPLETED = "completed"
STATUSES = (ACTIVE, COMPLETED)

FLASHCARD = "flashcard"
MCQ = "mcq"
TABLE = "table"
SERIES_KINDS = (FLASHCARD, MCQ, TABLE)

RIGHT = "Right"
WRONG = "Wrong"
RESULTS = (RIGHT, WRONG)
DIFFICULTIES = ("Easy", "Medium", "Hard")
CONFIDENCES = ("High", "Low")

EMPTY_TEXT = "EMPTY"

Position = Tuple[int, int]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _load_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _dump_position(position: Optional[Position]) -> Optional[Dict[str, int]]:
    if position is None:
        return None
    return {"row": position[0], "column": position[1]}


def _load_position(payload: Optional[Dict[str, int]]) -> Optional[Position]:
    if payload is None:
        return None
    return int(payload["row"]), int(payload["column"])


@dataclass(frozen=True)
class ReferenceCell:
    """One declared cell of a reference table."""

    row: int
    column: int
    text: str = ""
    is_header: bool = False

    def to_dict(self) -> dict:
        return {"row": self.row, "column": self.column, "text": self.text, "isHeader": self.is_header}

    @classmethod
    def from_dict(cls, payload: dict) -> "ReferenceCell":
        return cls(
            row=int(payload["row"]),
            column=int(payload.get("column", payload.get("col", 0))),
            text=payload.get("text") or "",
            is_header=bool(payload.get("isHeader", False)),
        )


@dataclass(frozen=True)
class ReferenceTable:
    """Layout the learner has to reconstruct in table-quiz mode."""

    rows: int
    columns: int
    cells: Tuple[ReferenceCell, ...]

    def cell_at(self, row: int, column: int) -> Optional[ReferenceCell]:
        for cell in self.cells:
            if cell.row == row and cell.column == column:
                return cell
        return None

    def header_cells(self) -> List[ReferenceCell]:
        return [cell for cell in self.cells if cell.is_header]

    def content_cells(self) -> List[ReferenceCell]:
        return [cell for cell in self.cells if not cell.is_header]

    def to_dict(self) -> dict:
        return {
            "rows": self.rows,
            "columns": self.columns,
            "cells": [cell.to_dict() for cell in self.cells],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ReferenceTable":
        cells = tuple(ReferenceCell.from_dict(cell) for cell in payload.get("cells") or [])
        rows = payload.get("rows")
        columns = payload.get("columns")
        if rows is None:
            rows = max((cell.row for cell in cells), default=-1) + 1
        if columns is None:
            columns = max((cell.column for cell in cells), default=-1) + 1
        return cls(rows=int(rows), columns=int(columns), cells=cells)


@dataclass(frozen=True)
class GridCell:
    """A cell the learner placed on the grid, or a fixed header."""

    text: Optional[str] = None
    is_fixed: bool = False

    def to_dict(self) -> dict:
        return {"text": self.text, "isFixed": self.is_fixed}

    @classmethod
    def from_dict(cls, payload: Any) -> Optional["GridCell"]:
        if payload is None:
            return None
        if isinstance(payload, str):
            return cls(text=payload)
        return cls(
            text=payload.get("text"),
            is_fixed=bool(payload.get("isFixed", payload.get("isHeader", False))),
        )


UserGrid = List[List[Optional[GridCell]]]


def dump_grid(grid: UserGrid) -> List[List[Optional[dict]]]:
    return [[cell.to_dict() if cell is not None else None for cell in row] for row in grid]


def load_grid(payload: Optional[List[List[Any]]]) -> UserGrid:
    return [[GridCell.from_dict(cell) for cell in row] for row in payload or []]


@dataclass(frozen=True)
class WrongPlacement:
    """Diagnostic for a cell whose content does not match the reference."""

    cell_text: str
    placed_at: Position
    correct_cell_text: str
    correct_position: Optional[Position]

    def to_dict(self) -> dict:
        return {
            "cellText": self.cell_text,
            "placedAt": _dump_position(self.placed_at),
            "correctCellText": self.correct_cell_text,
            "correctPosition": _dump_position(self.correct_position),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "WrongPlacement":
        return cls(
            cell_text=payload.get("cellText", ""),
            placed_at=_load_position(payload["placedAt"]),
            correct_cell_text=payload.get("correctCellText", ""),
            correct_position=_load_position(payload.get("correctPosition")),
        )


@dataclass(frozen=True)
class PlacementResult:
    """Outcome of grading one submitted grid."""

    correct_placements: int
    total_cells: int
    accuracy: int
    wrong_placements: Tuple[WrongPlacement, ...] = ()
    correctness_grid: Tuple[Tuple[bool, ...], ...] = ()

    @property
    def is_perfect(self) -> bool:
        return self.accuracy == 100

    def to_dict(self) -> dict:
        return {
            "correctPlacements": self.correct_placements,
            "totalCells": self.total_cells,
            "accuracy": self.accuracy,
            "wrongPlacements": [wrong.to_dict() for wrong in self.wrong_placements],
            "correctnessGrid": [list(row) for row in self.correctness_grid],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "PlacementResult":
        return cls(
            correct_placements=int(payload["correctPlacements"]),
            total_cells=int(payload["totalCells"]),
            accuracy=int(payload["accuracy"]),
            wrong_placements=tuple(
                WrongPlacement.from_dict(wrong) for wrong in payload.get("wrongPlacements") or []
            ),
            correctness_grid=tuple(
                tuple(bool(value) for value in row) for row in payload.get("correctnessGrid") or []
            ),
        )


@dataclass
class Interaction:
    """One scored attempt at one item.

    Flashcards carry ``result``, MCQs carry ``is_correct`` and table quizzes carry
    the submitted grid together with its placement results.
    """

    difficulty: str
    confidence: str
    time_spent: int
    recorded_at: datetime = field(default_factory=utcnow)
    result: Optional[str] = None
    is_correct: Optional[bool] = None
    selected_answer: Optional[str] = None
    user_grid: Optional[UserGrid] = None
    placement_results: Optional[PlacementResult] = None

    @property
    def outcome(self) -> Optional[str]:
        """Right/Wrong regardless of which variant recorded the attempt."""
        if self.result is not None:
            return self.result
        if self.is_correct is not None:
            return RIGHT if self.is_correct else WRONG
        if self.placement_results is not None:
            return RIGHT if self.placement_results.is_perfect else WRONG
        return None

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {
            "difficulty": self.difficulty,
            "confidence": self.confidence,
            "timeSpent": self.time_spent,
            "recordedAt": _dump_time(self.recorded_at),
        }
        if self.result is not None:
            payload["result"] = self.result
        if self.is_correct is not None:
            payload["isCorrect"] = self.is_correct
        if self.selected_answer is not None:
            payload["selectedAnswer"] = self.selected_answer
        if self.user_grid is not None:
            payload["userGrid"] = dump_grid(self.user_grid)
        if self.placement_results is not None:
            payload["placementResults"] = self.placement_results.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "Interaction":
        results = payload.get("placementResults")
        grid = payload.get("userGrid")
        return cls(
            difficulty=payload["difficulty"],
            confidence=payload.get("confidence", payload.get("confidenceWhileSolving")),
            time_spent=int(payload["timeSpent"]),
            recorded_at=_load_time(payload.get("recordedAt")) or utcnow(),
            result=payload.get("result"),
            is_correct=payload.get("isCorrect"),
            selected_answer=payload.get("selectedAnswer"),
            user_grid=load_grid(grid) if grid is not None else None,
            placement_results=PlacementResult.from_dict(results) if results else None,
        )


@dataclass
class ItemSlot:
    """Placeholder for one item inside a session, filled once answered."""

    item_id: int
    interaction: Optional[Interaction] = None

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "interaction": self.interaction.to_dict() if self.interaction else None,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ItemSlot":
        interaction = payload.get("interaction")
        return cls(
            item_id=int(payload["itemId"]),
            interaction=Interaction.from_dict(interaction) if interaction else None,
        )


@dataclass
class Session:
    """One bounded study attempt over a fixed item set."""

    session_id: int
    items: List[ItemSlot]
    status: str = ACTIVE
    generated_from: Optional[int] = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    @property
    def item_ids(self) -> List[int]:
        return [slot.item_id for slot in self.items]

    def find_slot(self, item_id: int) -> Optional[ItemSlot]:
        for slot in self.items:
            if slot.item_id == item_id:
                return slot
        return None

    def answered_slots(self) -> List[ItemSlot]:
        return [slot for slot in self.items if slot.interaction is not None]

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "status": self.status,
            "generatedFrom": self.generated_from,
            "items": [slot.to_dict() for slot in self.items],
            "startedAt": _dump_time(self.started_at),
            "completedAt": _dump_time(self.completed_at),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Session":
        return cls(
            session_id=int(payload["sessionId"]),
            items=[ItemSlot.from_dict(slot) for slot in payload.get("items") or []],
            status=payload.get("status", ACTIVE),
            generated_from=payload.get("generatedFrom"),
            started_at=_load_time(payload.get("startedAt")) or utcnow(),
            completed_at=_load_time(payload.get("completedAt")),
        )


@dataclass
class Series:
    """A titled collection of study sessions on one topic."""

    id: str
    title: str
    kind: str = FLASHCARD
    status: str = ACTIVE
    sessions: List[Session] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    session_high_water: int = 0

    def get_session(self, session_id: int) -> Optional[Session]:
        for session in self.sessions:
            if session.session_id == session_id:
                return session
        return None

    def active_sessions(self) -> List[Session]:
        return [session for session in self.sessions if session.is_active]

    def active_session(self) -> Optional[Session]:
        """Return the active session; with legacy duplicates, the newest one."""
        active = self.active_sessions()
        if not active:
            return None
        return max(active, key=lambda session: (session.started_at, session.session_id))

    @property
    def completed_count(self) -> int:
        return sum(1 for session in self.sessions if session.status == COMPLETED)

    def next_session_id(self) -> int:
        highest = max((session.session_id for session in self.sessions), default=0)
        return max(highest, self.session_high_water) + 1

    def add_session(self, session: Session) -> None:
        self.sessions.append(session)
        self.session_high_water = max(self.session_high_water, session.session_id)

    def remove_session(self, session_id: int) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise KeyError(session_id)
        self.sessions.remove(session)
        return session

    def refresh_status(self) -> None:
        """Recompute series status from the sessions it still holds.

        A series stays completed only if it was explicitly completed before
        (``completed_at`` set) and every remaining session is completed; any
        other case reopens it and clears ``completed_at``. Removing sessions
        never completes a series on its own.
        """
        if self.completed_at is not None and self.completed_count == len(self.sessions):
            self.status = COMPLETED
        else:
            self.status = ACTIVE
            self.completed_at = None

    def all_item_ids(self) -> List[int]:
        seen: Dict[int, None] = {}
        for session in self.sessions:
            for slot in session.items:
                seen.setdefault(slot.item_id, None)
        return list(seen)

    def to_dict(self) -> dict:
        return {
            "seriesId": self.id,
            "title": self.title,
            "kind": self.kind,
            "status": self.status,
            "sessions": [session.to_dict() for session in self.sessions],
            "startedAt": _dump_time(self.started_at),
            "completedAt": _dump_time(self.completed_at),
            "sessionHighWater": self.session_high_water,
            "sessionCount": len(self.sessions),
            "completedSessions": self.completed_count,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Series":
        return cls(
            id=str(payload.get("seriesId", payload.get("id"))),
            title=payload["title"],
            kind=payload.get("kind", FLASHCARD),
            status=payload.get("status", ACTIVE),
            sessions=[Session.from_dict(session) for session in payload.get("sessions") or []],
            started_at=_load_time(payload.get("startedAt")) or utcnow(),
            completed_at=_load_time(payload.get("completedAt")),
            session_high_water=int(payload.get("sessionHighWater", 0)),
        )


@dataclass
class ItemMetadata:
    """Catalog entry for a flashcard, MCQ or table quiz, referenced by id only."""

    item_id: int
    kind: str = FLASHCARD
    subject: str = ""
    chapter: str = ""
    section: str = ""
    tags: List[str] = field(default_factory=list)
    title: str = ""
    table: Optional[ReferenceTable] = None

    def to_dict(self) -> dict:
        payload = {
            "itemId": self.item_id,
            "kind": self.kind,
            "subject": self.subject,
            "chapter": self.chapter,
            "section": self.section,
            "tags": list(self.tags),
            "title": self.title,
        }
        if self.table is not None:
            payload["table"] = self.table.to_dict()
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "ItemMetadata":
        table = payload.get("table")
        return cls(
            item_id=int(payload["itemId"]),
            kind=payload.get("kind", FLASHCARD),
            subject=payload.get("subject") or "",
            chapter=payload.get("chapter") or "",
            section=payload.get("section") or "",
            tags=list(payload.get("tags") or []),
            title=payload.get("title") or "",
            table=ReferenceTable.from_dict(table) if table else None,
        )


__all__ = [
    "ACTIVE",
    "COMPLETED",
    "CONFIDENCES",
    "DIFFICULTIES",
    "EMPTY_TEXT",
    "FLASHCARD",
    "GridCell",
    "Interaction",
    "ItemMetadata",
    "ItemSlot",
    "MCQ",
    "PlacementResult",
    "Position",
    "RESULTS",
    "RIGHT",
    "ReferenceCell",
    "ReferenceTable",
    "SERIES_KINDS",
    "STATUSES",
    "Series",
    "Session",
    "TABLE",
    "UserGrid",
    "WRONG",
    "WrongPlacement",
    "dump_grid",
    "load_grid",
    "utcnow",
]
