"""Recipe filter deriving session candidates from the latest interaction per item."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from .domain import RIGHT, WRONG, Session


ANY = "any"
FAST = "fast"
MEDIUM = "medium"
SLOW = "slow"
TIME_BUCKETS = (ANY, FAST, MEDIUM, SLOW)

FAST_LIMIT_SECONDS = 30
SLOW_LIMIT_SECONDS = 90

# MCQ screens spell outcomes as correct/incorrect.
RESULT_ALIASES = {
    RIGHT: RIGHT,
    WRONG: WRONG,
    "correct": RIGHT,
    "incorrect": WRONG,
}


def time_bucket(seconds: int) -> str:
    if seconds < FAST_LIMIT_SECONDS:
        return FAST
    if seconds < SLOW_LIMIT_SECONDS:
        return MEDIUM
    return SLOW


@dataclass(frozen=True)
class RecipeFilter:
    """Set-membership predicates; an empty set leaves that dimension open."""

    results: FrozenSet[str] = field(default_factory=frozenset)
    difficulties: FrozenSet[str] = field(default_factory=frozenset)
    confidences: FrozenSet[str] = field(default_factory=frozenset)
    time_spent: str = ANY

    def matches(self, candidate: "RecipeCandidate") -> bool:
        if self.results and candidate.latest_result not in self.results:
            return False
        if self.difficulties and candidate.latest_difficulty not in self.difficulties:
            return False
        if self.confidences and candidate.latest_confidence not in self.confidences:
            return False
        if self.time_spent != ANY and time_bucket(candidate.latest_time_spent) != self.time_spent:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "result": sorted(self.results),
            "difficulty": sorted(self.difficulties),
            "confidence": sorted(self.confidences),
            "timeSpent": self.time_spent,
        }


@dataclass
class RecipeCandidate:
    """Latest known state of one item across a series' history."""

    item_id: int
    latest_result: Optional[str]
    latest_difficulty: str
    latest_confidence: str
    latest_time_spent: int
    source_session_id: int
    metadata: Optional[dict] = None

    def to_dict(self) -> dict:
        payload = {
            "itemId": self.item_id,
            "latestResult": self.latest_result,
            "latestDifficulty": self.latest_difficulty,
            "latestConfidence": self.latest_confidence,
            "latestTimeSpent": self.latest_time_spent,
            "sourceSessionId": self.source_session_id,
        }
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload


def latest_item_states(sessions: Iterable[Session]) -> Dict[int, RecipeCandidate]:
    """Keep, per item, the interaction from the highest session id holding one."""

    latest: Dict[int, RecipeCandidate] = {}
    for session in sessions:
        for slot in session.items:
            interaction = slot.interaction
            if interaction is None:
                continue
            current = latest.get(slot.item_id)
            if current is not None and current.source_session_id >= session.session_id:
                continue
            latest[slot.item_id] = RecipeCandidate(
                item_id=slot.item_id,
                latest_result=interaction.outcome,
                latest_difficulty=interaction.difficulty,
                latest_confidence=interaction.confidence,
                latest_time_spent=interaction.time_spent,
                source_session_id=session.session_id,
            )
    return latest


def build_recipe(sessions: Iterable[Session], recipe_filter: Optional[RecipeFilter] = None) -> List[RecipeCandidate]:
    """Filtered candidates ordered by item id."""

    recipe_filter = recipe_filter or RecipeFilter()
    states = latest_item_states(sessions)
    return [states[item_id] for item_id in sorted(states) if recipe_filter.matches(states[item_id])]


__all__ = [
    "ANY",
    "FAST",
    "MEDIUM",
    "RESULT_ALIASES",
    "RecipeCandidate",
    "RecipeFilter",
    "SLOW",
    "TIME_BUCKETS",
    "build_recipe",
    "latest_item_states",
    "time_bucket",
]
