"""Pydantic models for the study series HTTP boundary."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


SeriesKind = Literal["flashcard", "mcq", "table"]
TimeBucket = Literal["any", "fast", "medium", "slow"]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSeriesRequest(WireModel):
    title: str
    kind: SeriesKind = "flashcard"


class SeriesCreatedResponse(WireModel):
    series_id: str
    title: str
    kind: SeriesKind
    status: str
    started_at: datetime


class StartSessionRequest(WireModel):
    item_ids: List[int]
    generated_from: Optional[int] = None


class EditSessionRequest(WireModel):
    item_ids: List[int]


class SessionStartedResponse(WireModel):
    session_id: int
    status: str
    generated_from: Optional[int] = None
    started_at: datetime
    item_count: int


class GridCellModel(WireModel):
    text: Optional[str] = None
    is_fixed: bool = Field(
        default=False,
        validation_alias=AliasChoices("isFixed", "isHeader", "is_fixed"),
        serialization_alias="isFixed",
    )

    @model_validator(mode="before")
    @classmethod
    def accept_plain_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"text": value}
        return value


class RecordInteractionRequest(WireModel):
    """Interaction payload; which outcome field is required depends on the series kind."""

    item_id: int
    difficulty: str
    confidence: str = Field(
        validation_alias=AliasChoices("confidence", "confidenceWhileSolving"),
    )
    time_spent: int
    result: Optional[str] = None
    is_correct: Optional[bool] = None
    selected_answer: Optional[str] = None
    user_grid: Optional[List[List[Optional[GridCellModel]]]] = None
    placement_results: Optional[Dict[str, Any]] = None

    @field_validator("time_spent")
    @classmethod
    def validate_time_spent(cls, value: int) -> int:
        if value < 0:
            raise ValueError("timeSpent must be a non-negative integer (seconds)")
        return value

    @model_validator(mode="after")
    def validate_outcome(self) -> "RecordInteractionRequest":
        if self.result is None and self.is_correct is None and self.user_grid is None:
            raise ValueError("One of result, isCorrect or userGrid must be provided")
        return self

    def interaction_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"item_id"})


class RecordInteractionResponse(WireModel):
    accepted: bool = True
    item_id: int
    interaction: Dict[str, Any]


class CompleteSessionResponse(WireModel):
    session_id: int
    status: str
    completed_at: Optional[datetime] = None


class DeleteSessionResponse(WireModel):
    series_deleted: bool
    remaining_sessions: int


class RecipeFilterRequest(WireModel):
    result: List[str] = Field(default_factory=list)
    is_correct: List[str] = Field(default_factory=list)
    difficulty: List[str] = Field(default_factory=list)
    confidence: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("confidence", "confidenceWhileSolving"),
    )
    time_spent: TimeBucket = "any"

    def filter_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ReferenceCellModel(WireModel):
    row: int
    column: int = Field(validation_alias=AliasChoices("column", "col"))
    text: Optional[str] = ""
    is_header: bool = False


class ReferenceTableModel(WireModel):
    rows: Optional[int] = None
    columns: Optional[int] = None
    cells: List[ReferenceCellModel]

    @model_validator(mode="after")
    def validate_bounds(self) -> "ReferenceTableModel":
        for cell in self.cells:
            if cell.row < 0 or cell.column < 0:
                raise ValueError("Reference cells must have non-negative coordinates")
            if self.rows is not None and cell.row >= self.rows:
                raise ValueError(f"Reference cell row {cell.row} is outside the table")
            if self.columns is not None and cell.column >= self.columns:
                raise ValueError(f"Reference cell column {cell.column} is outside the table")
        return self


class ValidatePlacementRequest(WireModel):
    user_grid: List[List[Optional[GridCellModel]]]
    reference_table: ReferenceTableModel


class FilterOptionsResponse(WireModel):
    subjects: List[str]
    chapters: List[str]
    sections: List[str]


class ErrorResponse(WireModel):
    success: bool = False
    error: str
    message: str


__all__ = [
    "CompleteSessionResponse",
    "CreateSeriesRequest",
    "DeleteSessionResponse",
    "EditSessionRequest",
    "ErrorResponse",
    "FilterOptionsResponse",
    "GridCellModel",
    "RecipeFilterRequest",
    "RecordInteractionRequest",
    "RecordInteractionResponse",
    "ReferenceCellModel",
    "ReferenceTableModel",
    "SeriesCreatedResponse",
    "SessionStartedResponse",
    "StartSessionRequest",
    "ValidatePlacementRequest",
]
