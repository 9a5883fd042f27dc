"""FastAPI application exposing the devpilot session workflow."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import DevPilotConfig, load_config
from ..errors import (
    CloneFailedError,
    DevPilotError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
    SessionNotReadyError,
)
from ..logging import get_logger, uvicorn_log_level
from ..models import isoformat, result_summary, utcnow
from ..workflow import AnalysisService
from .progress import ProgressBroadcaster

logger = get_logger("service")

_STATUS_CODES = (
    (InputValidationError, 400),
    (NotFoundError, 404),
    (SessionNotReadyError, 409),
    (InvalidTransitionError, 409),
    (CloneFailedError, 502),
)


def status_code_for(exc: DevPilotError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CloneRequest(_CamelModel):
    repo_url: str = Field(alias="repoUrl")
    auth_token: Optional[str] = Field(default=None, alias="authToken")


class CloneResponse(_CamelModel):
    success: bool
    session_id: str = Field(alias="sessionId")
    repo_name: str = Field(alias="repoName")
    path: str
    local_path: str = Field(alias="localPath")
    message: str


class AnalyzeRequest(_CamelModel):
    session_id: str = Field(alias="sessionId")
    wait: bool = False


class OneShotRequest(_CamelModel):
    repo_url: str = Field(alias="repoUrl")
    auth_token: Optional[str] = Field(default=None, alias="authToken")
    user_id: Optional[str] = Field(default=None, alias="userId")


class HealthResponse(BaseModel):
    status: str
    timestamp: str


def create_app(
    service: AnalysisService | None = None,
    broadcaster: ProgressBroadcaster | None = None,
    *,
    config: DevPilotConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application; collaborators are built from config when omitted."""
    config = config or load_config()
    broadcaster = broadcaster or ProgressBroadcaster()
    if service is None:
        service = AnalysisService.from_config(config, events=broadcaster.publish)
    elif service.events is None:
        service.events = broadcaster.publish
    analysis_tasks: Set[asyncio.Task[Any]] = set()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        sweeper: Optional[asyncio.Task[None]] = None
        if config.sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(_sweep_forever(service, config.sweep_interval_seconds))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
            for task in list(analysis_tasks):
                task.cancel()

    app = FastAPI(title="DevPilot Service", version="0.1.0", lifespan=lifespan)
    app.state.service = service
    app.state.broadcaster = broadcaster
    app.state.analysis_tasks = analysis_tasks
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.service.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="healthy", timestamp=isoformat(utcnow()) or "")

    @app.post("/api/clone-repo")
    async def clone_repo(payload: CloneRequest) -> Dict[str, Any]:
        session = await service.clone(payload.repo_url, payload.auth_token)
        response = CloneResponse(
            success=True,
            session_id=session.session_id,
            repo_name=session.repo_name,
            path=str(session.local_path),
            local_path=str(session.local_path),
            message="Repository cloned successfully",
        )
        return response.model_dump(by_alias=True)

    @app.post("/api/analyze")
    async def analyze(payload: AnalyzeRequest) -> Any:
        service.start_analysis(payload.session_id)
        if payload.wait:
            state = await service.run_analysis(payload.session_id)
            return result_summary(state)

        task = asyncio.create_task(_run_in_background(service, payload.session_id))
        analysis_tasks.add(task)
        task.add_done_callback(analysis_tasks.discard)
        return JSONResponse(
            status_code=202,
            content={
                "sessionId": payload.session_id,
                "status": "analyzing",
                "message": "Analysis started",
            },
        )

    @app.get("/api/files/{session_id}")
    async def files(session_id: str) -> Dict[str, Any]:
        return service.files(session_id)

    @app.get("/api/files/{session_id}/{name}")
    async def artifact(session_id: str, name: str) -> PlainTextResponse:
        filename, content, media_type = service.artifact(session_id, name)
        return PlainTextResponse(
            content,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/api/status/{session_id}")
    async def status(session_id: str) -> Dict[str, Any]:
        return service.status(session_id)

    @app.get("/api/sessions")
    async def sessions() -> Dict[str, List[Dict[str, Any]]]:
        return {"sessions": service.list_sessions()}

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, service.cleanup, session_id)
        return {"success": True, "message": "Session cleaned up successfully"}

    @app.post("/api/devpilot")
    async def devpilot(payload: OneShotRequest) -> Dict[str, Any]:
        return await service.one_shot(payload.repo_url, payload.auth_token, user_id=payload.user_id)

    @app.websocket("/ws/progress")
    async def progress(websocket: WebSocket, sessionId: Optional[str] = None) -> None:
        await broadcaster.connect(websocket, sessionId)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await broadcaster.disconnect(websocket)

    @app.exception_handler(DevPilotError)
    async def devpilot_error_handler(_: Request, exc: DevPilotError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("%s: %s", exc.kind, exc)
        return JSONResponse(status_code=status_code, content={"error": exc.kind, "message": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(part) for part in error.get("loc", ())[1:]) for error in exc.errors()]
        message = f"Missing or invalid fields: {', '.join(field for field in fields if field)}"
        return JSONResponse(
            status_code=400,
            content={"error": InputValidationError.kind, "message": message},
        )

    return app


async def _run_in_background(service: AnalysisService, session_id: str) -> None:
    try:
        await service.run_analysis(session_id)
    except DevPilotError as exc:
        logger.warning("Analysis for session %s ended with %s: %s", session_id, exc.kind, exc)


async def _sweep_forever(service: AnalysisService, interval: float) -> None:
    loop = asyncio.get_running_loop()
    while True:
        await asyncio.sleep(interval)
        try:
            await loop.run_in_executor(None, service.sweep)
        except Exception:
            logger.exception("Session sweep failed")


def run_service(config: DevPilotConfig | None = None) -> None:  # pragma: no cover - integration path
    import uvicorn

    config = config or load_config()
    app = create_app(config=config)
    uvicorn.run(
        app, host=config.service.host, port=config.service.port, log_level=uvicorn_log_level()
    )
