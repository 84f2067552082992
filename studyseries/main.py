"""FastAPI application wiring for the study series service."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from .domain import ReferenceTable, load_grid
from .errors import ConflictError, NotFoundError, StudyError, ValidationError
from .models import (
    CompleteSessionResponse,
    CreateSeriesRequest,
    DeleteSessionResponse,
    EditSessionRequest,
    ErrorResponse,
    FilterOptionsResponse,
    RecipeFilterRequest,
    RecordInteractionRequest,
    RecordInteractionResponse,
    SeriesCreatedResponse,
    SessionStartedResponse,
    StartSessionRequest,
    ValidatePlacementRequest,
)
from .placement import validate_placement
from .repositories import ItemCatalog, SeriesRepository
from .services import SeriesService, ServiceConfig
from .storage import InMemorySeriesRepository, SqliteSeriesRepository


ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
}


def config_from_env() -> ServiceConfig:
    return ServiceConfig(
        max_title_length=int(os.getenv("STUDYSERIES_MAX_TITLE_LENGTH", "200")),
        default_page_limit=int(os.getenv("STUDYSERIES_DEFAULT_PAGE_LIMIT", "10")),
        max_page_limit=int(os.getenv("STUDYSERIES_MAX_PAGE_LIMIT", "100")),
        database_path=os.getenv("STUDYSERIES_DATABASE_PATH") or None,
    )


def _error_body(code: str, message: str) -> Dict[str, Any]:
    return ErrorResponse(error=code, message=message).model_dump()


def get_series_service(request: Request) -> SeriesService:
    return request.app.state.series_service


def create_app(
    repository: Optional[SeriesRepository] = None,
    catalog: Optional[ItemCatalog] = None,
    config: Optional[ServiceConfig] = None,
) -> FastAPI:
    config = config or config_from_env()
    if repository is None:
        if config.database_path:
            repository = SqliteSeriesRepository(config.database_path)
        else:
            repository = InMemorySeriesRepository()

    app = FastAPI(title="Study Series", version="0.1.0")
    app.state.config = config
    app.state.repository = repository
    app.state.catalog = catalog
    app.state.series_service = SeriesService(repository, catalog=catalog, config=config)

    @app.exception_handler(StudyError)
    async def handle_study_error(request: Request, exc: StudyError) -> JSONResponse:
        status_code = next(
            (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500
        )
        if status_code >= 500:
            logger.error("Unhandled study error on {}: {}", request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content=_error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return JSONResponse(
            status_code=400,
            content=_error_body(ValidationError.code, "; ".join(messages)),
        )

    @app.post("/v1/series", response_model=SeriesCreatedResponse, status_code=201)
    def create_series(
        request: CreateSeriesRequest, service: SeriesService = Depends(get_series_service)
    ) -> SeriesCreatedResponse:
        series = service.create_series(request.title, kind=request.kind)
        return SeriesCreatedResponse(
            series_id=series.id,
            title=series.title,
            kind=series.kind,
            status=series.status,
            started_at=series.started_at,
        )

    @app.get("/v1/series")
    def list_series(
        limit: Optional[int] = None,
        skip: int = 0,
        status: Optional[str] = None,
        search: Optional[str] = None,
        subject: Optional[str] = None,
        chapter: Optional[str] = None,
        section: Optional[str] = None,
        service: SeriesService = Depends(get_series_service),
    ) -> Dict[str, Any]:
        page = service.list_series(
            limit=limit,
            skip=skip,
            status=status,
            search=search,
            subject=subject,
            chapter=chapter,
            section=section,
        )
        return page.to_dict()

    @app.get("/v1/series/filter-options", response_model=FilterOptionsResponse)
    def filter_options(service: SeriesService = Depends(get_series_service)) -> FilterOptionsResponse:
        return FilterOptionsResponse(**service.filter_options())

    @app.get("/v1/series/{series_id}")
    def get_series(series_id: str, service: SeriesService = Depends(get_series_service)) -> Dict[str, Any]:
        return service.get_series(series_id).to_dict()

    @app.delete("/v1/series/{series_id}")
    def delete_series(series_id: str, service: SeriesService = Depends(get_series_service)) -> Dict[str, Any]:
        service.delete_series(series_id)
        return {"seriesDeleted": True}

    @app.put("/v1/series/{series_id}/complete")
    def complete_series(series_id: str, service: SeriesService = Depends(get_series_service)) -> Dict[str, Any]:
        series = service.complete_series(series_id)
        return {"status": series.status, "completedAt": series.completed_at, "totalSessions": len(series.sessions)}

    @app.post(
        "/v1/series/{series_id}/sessions", response_model=SessionStartedResponse, status_code=201
    )
    def start_session(
        series_id: str,
        request: StartSessionRequest,
        service: SeriesService = Depends(get_series_service),
    ) -> SessionStartedResponse:
        session = service.start_session(series_id, request.item_ids, generated_from=request.generated_from)
        return SessionStartedResponse(
            session_id=session.session_id,
            status=session.status,
            generated_from=session.generated_from,
            started_at=session.started_at,
            item_count=len(session.items),
        )

    @app.get("/v1/series/{series_id}/sessions/{session_id}")
    def get_session(
        series_id: str, session_id: int, service: SeriesService = Depends(get_series_service)
    ) -> Dict[str, Any]:
        return service.get_session(series_id, session_id).to_dict()

    @app.put(
        "/v1/series/{series_id}/sessions/{session_id}", response_model=SessionStartedResponse
    )
    def edit_session(
        series_id: str,
        session_id: int,
        request: EditSessionRequest,
        service: SeriesService = Depends(get_series_service),
    ) -> SessionStartedResponse:
        session = service.edit_session(series_id, session_id, request.item_ids)
        return SessionStartedResponse(
            session_id=session.session_id,
            status=session.status,
            generated_from=session.generated_from,
            started_at=session.started_at,
            item_count=len(session.items),
        )

    @app.delete(
        "/v1/series/{series_id}/sessions/{session_id}", response_model=DeleteSessionResponse
    )
    def delete_session(
        series_id: str, session_id: int, service: SeriesService = Depends(get_series_service)
    ) -> DeleteSessionResponse:
        outcome = service.delete_session(series_id, session_id)
        return DeleteSessionResponse(
            series_deleted=outcome.series_deleted, remaining_sessions=outcome.remaining_sessions
        )

    @app.post(
        "/v1/series/{series_id}/sessions/{session_id}/interactions",
        response_model=RecordInteractionResponse,
    )
    def record_interaction(
        series_id: str,
        session_id: int,
        request: RecordInteractionRequest,
        service: SeriesService = Depends(get_series_service),
    ) -> RecordInteractionResponse:
        interaction = service.record_interaction(
            series_id, session_id, request.item_id, request.interaction_payload()
        )
        return RecordInteractionResponse(item_id=request.item_id, interaction=interaction.to_dict())

    @app.put(
        "/v1/series/{series_id}/sessions/{session_id}/complete",
        response_model=CompleteSessionResponse,
    )
    def complete_session(
        series_id: str, session_id: int, service: SeriesService = Depends(get_series_service)
    ) -> CompleteSessionResponse:
        session = service.complete_session(series_id, session_id)
        return CompleteSessionResponse(
            session_id=session.session_id, status=session.status, completed_at=session.completed_at
        )

    @app.get("/v1/series/{series_id}/sessions/{session_id}/stats")
    def session_stats(
        series_id: str, session_id: int, service: SeriesService = Depends(get_series_service)
    ) -> Dict[str, Any]:
        return service.session_stats(series_id, session_id)

    @app.post("/v1/series/{series_id}/recipe")
    def preview_recipe(
        series_id: str,
        request: RecipeFilterRequest,
        service: SeriesService = Depends(get_series_service),
    ) -> Dict[str, Any]:
        candidates = service.preview_recipe(series_id, request.filter_payload())
        return {"data": [candidate.to_dict() for candidate in candidates], "total": len(candidates)}

    @app.post("/v1/maintenance/repair-active-sessions")
    def repair_active_sessions(
        series_id: Optional[str] = Query(default=None, alias="seriesId"),
        service: SeriesService = Depends(get_series_service),
    ) -> Dict[str, List[int]]:
        return service.repair_active_sessions(series_id)

    @app.get("/v1/table-items/{item_id}/layout")
    def table_layout(
        item_id: int,
        seed: Optional[int] = None,
        service: SeriesService = Depends(get_series_service),
    ) -> Dict[str, Any]:
        return service.table_layout(item_id, seed=seed)

    @app.post("/v1/placement/validate")
    def validate_table_placement(request: ValidatePlacementRequest) -> Dict[str, Any]:
        grid = load_grid(request.model_dump(by_alias=True)["userGrid"])
        reference = ReferenceTable.from_dict(request.reference_table.model_dump(by_alias=True))
        return validate_placement(grid, reference).to_dict()

    return app


app = create_app()


__all__ = ["app", "config_from_env", "create_app", "get_series_service"]
