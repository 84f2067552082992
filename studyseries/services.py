"""Core services implementing the series and session lifecycle."""
from __future__ import annotations

import math
from collections import Counter
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence
from uuid import uuid4

from loguru import logger

from .domain import (
    COMPLETED,
    CONFIDENCES,
    DIFFICULTIES,
    FLASHCARD,
    RIGHT,
    STATUSES,
    TABLE,
    WRONG,
    Interaction,
    ItemMetadata,
    ItemSlot,
    Series,
    Session,
    utcnow,
)
from .errors import ConflictError, NotFoundError, ValidationError
from .metrics import METRICS, MetricsRegistry
from .placement import percentage, summarize_table_session, table_layout, validate_placement
from .recipe import RecipeCandidate, build_recipe
from .repositories import ItemCatalog, SeriesRepository, SeriesTransaction
from .validators import (
    parse_recipe_filter,
    validate_id,
    validate_interaction,
    validate_item_ids,
    validate_kind,
    validate_pagination,
    validate_title,
)


@dataclass
class ServiceConfig:
    """Tunable limits applied by the lifecycle service."""

    max_title_length: int = 200
    default_page_limit: int = 10
    max_page_limit: int = 100
    database_path: Optional[str] = None


@dataclass
class SessionDeletion:
    """Outcome of deleting one session."""

    series_deleted: bool
    remaining_sessions: int

    def to_dict(self) -> dict:
        return {"seriesDeleted": self.series_deleted, "remainingSessions": self.remaining_sessions}


@dataclass
class SeriesPage:
    """One page of the series listing."""

    data: List[Series]
    total: int
    limit: int
    skip: int
    filters: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def pagination(self) -> dict:
        pages = math.ceil(self.total / self.limit) if self.limit else 0
        return {
            "current": self.skip // self.limit + 1,
            "pages": pages,
            "total": self.total,
            "limit": self.limit,
            "hasNext": self.skip + self.limit < self.total,
            "hasPrev": self.skip > 0,
        }

    def to_dict(self) -> dict:
        return {
            "data": [series.to_dict() for series in self.data],
            "pagination": self.pagination,
            "filters": dict(self.filters),
        }


class SeriesService:
    """Owns series and session state transitions.

    Every mutation runs inside a per-series transaction of the repository, so the
    "at most one active session" check and the insert it guards cannot interleave
    with another request against the same series.
    """

    def __init__(
        self,
        repository: SeriesRepository,
        catalog: Optional[ItemCatalog] = None,
        config: Optional[ServiceConfig] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._config = config or ServiceConfig()
        self._metrics = metrics or METRICS

    # region Helpers
    @contextmanager
    def _transaction(self, series_id: str) -> Iterator[SeriesTransaction]:
        with ExitStack() as stack:
            try:
                tx = stack.enter_context(self._repository.transaction(series_id))
            except KeyError as exc:
                raise NotFoundError(f"Series {series_id} not found") from exc
            yield tx

    def _conflict(self, reason: str, message: str) -> ConflictError:
        self._metrics.record_conflict(reason)
        logger.warning("Rejected lifecycle operation ({}): {}", reason, message)
        return ConflictError(message)

    @staticmethod
    def _require_session(series: Series, session_id: int) -> Session:
        session = series.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found in series {series.id}")
        return session

    def _check_catalog(self, item_ids: Sequence[int]) -> None:
        if self._catalog is None:
            return
        known = {item.item_id for item in self._catalog.get_by_ids(item_ids)}
        missing = [str(item_id) for item_id in item_ids if item_id not in known]
        if missing:
            raise ValidationError(f"Unknown itemIds: {', '.join(missing)}")

    def _metadata_by_id(self, item_ids: Sequence[int]) -> Dict[int, ItemMetadata]:
        if self._catalog is None or not item_ids:
            return {}
        return {item.item_id: item for item in self._catalog.get_by_ids(item_ids)}

    def _build_interaction(self, kind: str, item_id: int, payload: Mapping[str, Any]) -> Interaction:
        fields = validate_interaction(kind, payload)
        if kind == TABLE:
            reference = self._catalog.get_reference_table(item_id) if self._catalog else None
            if reference is not None:
                fields["placement_results"] = validate_placement(fields["user_grid"], reference)
            elif fields.get("placement_results") is None:
                raise ValidationError(
                    f"No reference table for item {item_id}; placementResults are required"
                )
            fields["is_correct"] = fields["placement_results"].is_perfect
        return Interaction(**fields)

    # endregion

    # region Series
    def create_series(self, title: str, kind: str = FLASHCARD) -> Series:
        title = validate_title(title, self._config.max_title_length)
        kind = validate_kind(kind)
        series = Series(id=str(uuid4()), title=title, kind=kind)
        self._repository.create(series)
        self._metrics.record_series_created()
        logger.info("Created {} series {}", kind, series.id)
        return series

    def get_series(self, series_id: str) -> Series:
        try:
            return self._repository.get(series_id)
        except KeyError as exc:
            raise NotFoundError(f"Series {series_id} not found") from exc

    def delete_series(self, series_id: str) -> None:
        try:
            self._repository.delete(series_id)
        except KeyError as exc:
            raise NotFoundError(f"Series {series_id} not found") from exc
        self._metrics.record_series_deleted()
        logger.info("Deleted series {}", series_id)

    def complete_series(self, series_id: str) -> Series:
        with self._transaction(series_id) as tx:
            series = tx.series
            if series.status == COMPLETED:
                return series
            if series.active_sessions():
                raise self._conflict(
                    "series_has_active_session",
                    f"Series {series_id} still has an active session",
                )
            series.status = COMPLETED
            series.completed_at = utcnow()
        logger.info("Completed series {}", series_id)
        return series

    def list_series(
        self,
        limit: Optional[int] = None,
        skip: int = 0,
        status: Optional[str] = None,
        search: Optional[str] = None,
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        section: Optional[str] = None,
    ) -> SeriesPage:
        """Newest-first listing with title search and catalog content filters."""

        if limit is None:
            limit = self._config.default_page_limit
        limit, skip = validate_pagination(limit, skip, self._config.max_page_limit)
        if status is not None and status not in STATUSES:
            raise ValidationError(f"status must be one of {', '.join(STATUSES)}")
        content_filters = {
            key: value.lower()
            for key, value in (("subject", subject), ("chapter", chapter), ("section", section))
            if value
        }
        if content_filters and self._catalog is None:
            raise ValidationError("Content filters require an item catalog")

        series_list = sorted(
            self._repository.list_all(), key=lambda series: series.started_at, reverse=True
        )
        if status is not None:
            series_list = [series for series in series_list if series.status == status]
        if search:
            needle = search.lower()
            series_list = [series for series in series_list if needle in series.title.lower()]
        if content_filters:
            series_list = [
                series for series in series_list if self._matches_content(series, content_filters)
            ]

        return SeriesPage(
            data=series_list[skip : skip + limit],
            total=len(series_list),
            limit=limit,
            skip=skip,
            filters={
                "status": status,
                "search": search,
                "subject": subject,
                "chapter": chapter,
                "section": section,
            },
        )

    def _matches_content(self, series: Series, content_filters: Dict[str, str]) -> bool:
        item_ids = series.all_item_ids()
        if not item_ids:
            return False
        for item in self._catalog.get_by_ids(item_ids):
            if all(needle in (getattr(item, key) or "").lower() for key, needle in content_filters.items()):
                return True
        return False

    def filter_options(self) -> Dict[str, List[str]]:
        if self._catalog is None:
            return {"subjects": [], "chapters": [], "sections": []}
        return {
            "subjects": self._catalog.distinct("subject"),
            "chapters": self._catalog.distinct("chapter"),
            "sections": self._catalog.distinct("section"),
        }

    def table_layout(self, item_id: int, seed: Optional[int] = None) -> Dict[str, Any]:
        """Initial grid, droppable positions and shuffled palette of a table quiz."""

        validate_id(item_id, "itemId")
        reference = self._catalog.get_reference_table(item_id) if self._catalog else None
        if reference is None:
            raise NotFoundError(f"No reference table for item {item_id}")
        layout = table_layout(reference, seed=seed)
        layout["itemId"] = item_id
        return layout

    # endregion

    # region Sessions
    def get_session(self, series_id: str, session_id: int) -> Session:
        return self._require_session(self.get_series(series_id), session_id)

    def start_session(
        self, series_id: str, item_ids: Sequence[int], generated_from: Optional[int] = None
    ) -> Session:
        """Create the series' single active session with one empty slot per item."""

        item_ids = validate_item_ids(item_ids)
        if generated_from is not None:
            validate_id(generated_from, "generatedFrom")
        self._check_catalog(item_ids)

        with self._transaction(series_id) as tx:
            series = tx.series
            if series.status == COMPLETED:
                raise self._conflict("series_completed", f"Series {series_id} is already completed")
            if series.active_sessions():
                raise self._conflict(
                    "active_session_exists",
                    f"An active session already exists for series {series_id}",
                )
            session = Session(
                session_id=series.next_session_id(),
                items=[ItemSlot(item_id=item_id) for item_id in item_ids],
                generated_from=generated_from,
            )
            series.add_session(session)

        self._metrics.record_session_started()
        logger.info(
            "Started session {} in series {} with {} items", session.session_id, series_id, len(item_ids)
        )
        return session

    def record_interaction(
        self, series_id: str, session_id: int, item_id: int, payload: Mapping[str, Any]
    ) -> Interaction:
        """Overwrite the interaction of one slot in an active session."""

        validate_id(session_id, "sessionId")
        validate_id(item_id, "itemId")
        kind = self.get_series(series_id).kind
        interaction = self._build_interaction(kind, item_id, payload)

        with self._transaction(series_id) as tx:
            session = self._require_session(tx.series, session_id)
            if not session.is_active:
                raise self._conflict(
                    "session_completed",
                    f"Cannot record interaction on completed session {session_id}",
                )
            slot = session.find_slot(item_id)
            if slot is None:
                raise self._conflict(
                    "slot_missing", f"Item {item_id} is not part of session {session_id}"
                )
            slot.interaction = interaction

        self._metrics.record_interaction(kind)
        if interaction.placement_results is not None:
            self._metrics.record_table_accuracy(interaction.placement_results.accuracy)
        logger.info("Recorded interaction for item {} in session {} of series {}", item_id, session_id, series_id)
        return interaction

    def complete_session(self, series_id: str, session_id: int) -> Session:
        """Mark a session completed; repeating the call changes nothing."""

        validate_id(session_id, "sessionId")
        with self._transaction(series_id) as tx:
            session = self._require_session(tx.series, session_id)
            if session.status == COMPLETED:
                return session
            session.status = COMPLETED
            session.completed_at = utcnow()

        self._metrics.record_session_completed()
        logger.info("Completed session {} in series {}", session_id, series_id)
        return session

    def edit_session(self, series_id: str, session_id: int, new_item_ids: Sequence[int]) -> Session:
        """Replace a session by a fresh one holding ``new_item_ids``.

        The old session and its interactions are dropped; the replacement gets a
        new session id and records the old one in ``generated_from``.
        """

        validate_id(session_id, "sessionId")
        new_item_ids = validate_item_ids(new_item_ids)
        self._check_catalog(new_item_ids)

        with self._transaction(series_id) as tx:
            series = tx.series
            self._require_session(series, session_id)
            series.remove_session(session_id)
            if series.status == COMPLETED:
                raise self._conflict("series_completed", f"Series {series_id} is already completed")
            if series.active_sessions():
                raise self._conflict(
                    "active_session_exists",
                    f"An active session already exists for series {series_id}",
                )
            session = Session(
                session_id=series.next_session_id(),
                items=[ItemSlot(item_id=item_id) for item_id in new_item_ids],
                generated_from=session_id,
            )
            series.add_session(session)

        self._metrics.record_session_edited()
        logger.info(
            "Replaced session {} with session {} in series {}", session_id, session.session_id, series_id
        )
        return session

    def delete_session(self, series_id: str, session_id: int) -> SessionDeletion:
        """Remove a session, and the series with it when nothing else remains."""

        validate_id(session_id, "sessionId")
        with self._transaction(series_id) as tx:
            series = tx.series
            self._require_session(series, session_id)
            series.remove_session(session_id)
            if not series.sessions:
                tx.delete()
            else:
                series.refresh_status()

        self._metrics.record_session_deleted()
        if tx.deleted:
            self._metrics.record_series_deleted()
            logger.info("Deleted session {} and its now empty series {}", session_id, series_id)
        else:
            logger.info("Deleted session {} from series {}", session_id, series_id)
        return SessionDeletion(series_deleted=tx.deleted, remaining_sessions=len(series.sessions))

    def repair_active_sessions(self, series_id: Optional[str] = None) -> Dict[str, List[int]]:
        """Complete all but the newest active session of series holding several.

        Only legacy documents can be in this state; returns the completed
        session ids per repaired series.
        """

        if series_id is not None:
            candidates = [self.get_series(series_id)]
        else:
            candidates = self._repository.list_all()

        repaired: Dict[str, List[int]] = {}
        for candidate in candidates:
            if len(candidate.active_sessions()) <= 1:
                continue
            with self._transaction(candidate.id) as tx:
                series = tx.series
                keep = series.active_session()
                closed = []
                for session in series.active_sessions():
                    if session is keep:
                        continue
                    session.status = COMPLETED
                    session.completed_at = utcnow()
                    closed.append(session.session_id)
            if closed:
                repaired[series.id] = closed
                self._metrics.record_sessions_repaired(len(closed))
                logger.warning(
                    "Series {} had {} active sessions; kept {} and completed {}",
                    series.id,
                    len(closed) + 1,
                    keep.session_id,
                    closed,
                )
        return repaired

    # endregion

    # region Recipe and stats
    def preview_recipe(
        self, series_id: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[RecipeCandidate]:
        """Latest-state candidates of a series matching ``filters``."""

        recipe_filter = parse_recipe_filter(filters)
        series = self.get_series(series_id)
        candidates = build_recipe(series.sessions, recipe_filter)
        metadata = self._metadata_by_id([candidate.item_id for candidate in candidates])
        for candidate in candidates:
            item = metadata.get(candidate.item_id)
            if item is not None:
                candidate.metadata = item.to_dict()
        return candidates

    def session_stats(self, series_id: str, session_id: int) -> Dict[str, Any]:
        series = self.get_series(series_id)
        session = self._require_session(series, session_id)
        answered = [slot.interaction for slot in session.answered_slots()]
        outcomes = Counter(interaction.outcome for interaction in answered)
        total_time = sum(interaction.time_spent for interaction in answered)
        difficulty = Counter(interaction.difficulty for interaction in answered)
        confidence = Counter(interaction.confidence for interaction in answered)

        stats: Dict[str, Any] = {
            "sessionId": session.session_id,
            "status": session.status,
            "totalItems": len(session.items),
            "answered": len(answered),
            "unanswered": len(session.items) - len(answered),
            "correct": outcomes[RIGHT],
            "incorrect": outcomes[WRONG],
            "accuracy": percentage(outcomes[RIGHT], len(answered)),
            "totalTimeSpent": total_time,
            "averageTimeSpent": total_time / len(answered) if answered else 0.0,
            "difficulty": {level: difficulty[level] for level in DIFFICULTIES},
            "confidence": {level: confidence[level] for level in CONFIDENCES},
        }
        if series.kind == TABLE:
            stats["tables"] = summarize_table_session(
                (interaction.placement_results, interaction.time_spent)
                for interaction in answered
                if interaction.placement_results is not None
            ).to_dict()
        return stats

    # endregion


__all__ = [
    "SeriesPage",
    "SeriesService",
    "ServiceConfig",
    "SessionDeletion",
]
