"""Validation utilities applied to lifecycle input prior to any mutation."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .domain import (
    CONFIDENCES,
    DIFFICULTIES,
    FLASHCARD,
    MCQ,
    RESULTS,
    SERIES_KINDS,
    TABLE,
    PlacementResult,
    load_grid,
)
from .errors import ValidationError
from .recipe import ANY, RESULT_ALIASES, TIME_BUCKETS, RecipeFilter


SELECTED_ANSWERS = ("A", "B", "C", "D", "E")
FILTER_KEYS = {"result", "isCorrect", "difficulty", "confidence", "confidenceWhileSolving", "timeSpent"}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _coerce_non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not _is_int(value) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def validate_id(value: Any, name: str) -> int:
    if not _is_int(value) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def validate_title(title: Any, max_length: int = 200) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required and must be a non-empty string")
    title = title.strip()
    if len(title) > max_length:
        raise ValidationError(f"title cannot exceed {max_length} characters")
    return title


def validate_kind(kind: Any) -> str:
    if kind not in SERIES_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(SERIES_KINDS)}")
    return kind


def validate_item_ids(item_ids: Any) -> List[int]:
    """Return the ids as integers, de-duplicated in first-seen order."""

    if isinstance(item_ids, (str, bytes)) or not isinstance(item_ids, Iterable):
        raise ValidationError("itemIds must be an array")
    ids = list(item_ids)
    if not ids:
        raise ValidationError("itemIds array cannot be empty")
    invalid = [str(value) for value in ids if not _is_int(value) or value < 0]
    if invalid:
        raise ValidationError(f"Invalid itemIds: {', '.join(invalid)}. Must be non-negative integers.")
    return list(dict.fromkeys(ids))


def _assert_choice(value: Any, choices: Tuple[str, ...], name: str) -> str:
    if value not in choices:
        raise ValidationError(f"{name} must be one of {', '.join(choices)}")
    return value


def validate_interaction(kind: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize an interaction payload for a series of the given kind."""

    difficulty = _assert_choice(payload.get("difficulty"), DIFFICULTIES, "difficulty")
    confidence = payload.get("confidence", payload.get("confidenceWhileSolving"))
    confidence = _assert_choice(confidence, CONFIDENCES, "confidence")
    if payload.get("timeSpent") is None:
        raise ValidationError("timeSpent is required")
    time_spent = _coerce_non_negative_int(payload.get("timeSpent"), "timeSpent")

    fields: Dict[str, Any] = {
        "difficulty": difficulty,
        "confidence": confidence,
        "time_spent": time_spent,
    }

    if kind == FLASHCARD:
        fields["result"] = _assert_choice(payload.get("result"), RESULTS, "result")
    elif kind == MCQ:
        is_correct = payload.get("isCorrect")
        if not isinstance(is_correct, bool):
            raise ValidationError("isCorrect must be a boolean")
        fields["is_correct"] = is_correct
        selected = payload.get("selectedAnswer")
        if selected is not None:
            fields["selected_answer"] = _assert_choice(selected, SELECTED_ANSWERS, "selectedAnswer")
    elif kind == TABLE:
        grid = payload.get("userGrid")
        if not isinstance(grid, list) or not all(isinstance(row, list) for row in grid):
            raise ValidationError("userGrid must be a two-dimensional array")
        try:
            fields["user_grid"] = load_grid(grid)
        except (AttributeError, TypeError) as exc:
            raise ValidationError("userGrid cells must be null, a string or an object") from exc
        results = payload.get("placementResults")
        if results is not None:
            try:
                fields["placement_results"] = PlacementResult.from_dict(results)
            except (KeyError, TypeError, ValueError) as exc:
                raise ValidationError("placementResults is malformed") from exc
    else:
        validate_kind(kind)
    return fields


def _string_set(payload: Mapping[str, Any], key: str) -> List[Any]:
    values = payload.get(key) or []
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError(f"filter '{key}' must be an array")
    if not all(isinstance(value, (str, bool)) for value in values):
        raise ValidationError(f"filter '{key}' must contain strings")
    return list(values)


def parse_recipe_filter(payload: Optional[Mapping[str, Any]]) -> RecipeFilter:
    """Build a RecipeFilter from its wire form, rejecting unknown values."""

    if payload is None:
        return RecipeFilter()
    if not isinstance(payload, Mapping):
        raise ValidationError("filter must be an object")
    unknown = set(payload) - FILTER_KEYS
    if unknown:
        raise ValidationError(f"Unknown filter keys: {', '.join(sorted(unknown))}")

    results = set()
    for value in _string_set(payload, "result") + _string_set(payload, "isCorrect"):
        if isinstance(value, bool):
            value = "correct" if value else "incorrect"
        if value not in RESULT_ALIASES:
            raise ValidationError(f"Unknown result filter value: {value}")
        results.add(RESULT_ALIASES[value])

    difficulties = set(_string_set(payload, "difficulty"))
    for value in difficulties:
        _assert_choice(value, DIFFICULTIES, "difficulty filter")

    confidences = set(_string_set(payload, "confidence") + _string_set(payload, "confidenceWhileSolving"))
    for value in confidences:
        _assert_choice(value, CONFIDENCES, "confidence filter")

    time_spent = payload.get("timeSpent") or ANY
    _assert_choice(time_spent, TIME_BUCKETS, "timeSpent filter")

    return RecipeFilter(
        results=frozenset(results),
        difficulties=frozenset(difficulties),
        confidences=frozenset(confidences),
        time_spent=time_spent,
    )


def validate_pagination(limit: Any, skip: Any, max_limit: int = 100) -> Tuple[int, int]:
    limit = _coerce_non_negative_int(limit, "limit")
    skip = _coerce_non_negative_int(skip, "skip")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    return limit, skip


__all__ = [
    "ValidationError",
    "parse_recipe_filter",
    "validate_interaction",
    "validate_id",
    "validate_item_ids",
    "validate_kind",
    "validate_pagination",
    "validate_title",
]
