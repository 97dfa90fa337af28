from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response

from leafcam.errors import (
    CaptureFailure,
    CaptureNotReady,
    InvalidTransition,
    LeafScanError,
    SessionBusy,
)
from leafcam.logging_utils import SessionLogBufferHandler
from leafcam.main import EXPORT_FILENAME
from leafcam.session import CaptureSession

from .schemas import CameraStartRequest, LogsResponse, SessionResponse


logger = logging.getLogger(__name__)

_CONFLICT_ERRORS = (SessionBusy, CaptureNotReady, InvalidTransition)


def _raise_http(exc: LeafScanError) -> None:
    if isinstance(exc, _CONFLICT_ERRORS):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, CaptureFailure):
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(
    session: CaptureSession,
    log_buffer: SessionLogBufferHandler | None = None,
) -> FastAPI:
    """Expose one capture session over HTTP for a browser or kiosk front end."""
    app = FastAPI(title="LeafScan", version="0.1.0")
    app.state.session = session
    app.state.log_buffer = log_buffer

    logger.info("API server initialised state=%s", session.state)

    def _snapshot() -> SessionResponse:
        return SessionResponse.from_snapshot(session.snapshot())

    @app.get("/health", response_model=dict[str, str])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/session", response_model=SessionResponse)
    async def read_session() -> SessionResponse:
        return _snapshot()

    @app.post("/v1/camera/start", response_model=SessionResponse)
    async def start_camera(payload: CameraStartRequest | None = None) -> SessionResponse:
        facing = payload.facing if payload is not None else None
        try:
            await session.start_camera(preferred_facing=facing)
        except LeafScanError as exc:
            _raise_http(exc)
        return _snapshot()

    @app.post("/v1/camera/stop", response_model=SessionResponse)
    async def stop_camera() -> SessionResponse:
        session.stop_camera()
        return _snapshot()

    @app.post("/v1/capture", response_model=SessionResponse)
    async def capture() -> SessionResponse:
        try:
            await session.capture()
        except LeafScanError as exc:
            logger.info("Capture rejected: %s", exc)
            _raise_http(exc)
        return _snapshot()

    @app.post("/v1/upload", response_model=SessionResponse)
    async def upload(
        request: Request,
        filename: str | None = Query(default=None, description="Original file name"),
    ) -> SessionResponse:
        data = await request.body()
        if not data:
            raise HTTPException(status_code=400, detail="No file content received")
        content_type = request.headers.get("content-type", "")
        mime_type = content_type if content_type.startswith("image/") else None
        try:
            await session.select_file(data, filename=filename, mime_type=mime_type)
        except LeafScanError as exc:
            _raise_http(exc)
        return _snapshot()

    @app.post("/v1/clear", response_model=SessionResponse)
    async def clear() -> SessionResponse:
        session.clear()
        return _snapshot()

    @app.get("/v1/export")
    async def export_frame() -> Response:
        image = session.export_current_frame()
        if image is None:
            raise HTTPException(status_code=404, detail="Nothing captured to export")
        return Response(
            content=image.data,
            media_type=image.mime_type,
            headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
        )

    @app.get("/v1/logs", response_model=LogsResponse)
    async def read_logs(limit: int = Query(default=100, ge=0, le=1000)) -> LogsResponse:
        buffer: SessionLogBufferHandler | None = app.state.log_buffer
        if buffer is None:
            return LogsResponse(lines=[])
        return LogsResponse(lines=buffer.lines(limit))

    @app.on_event("shutdown")
    async def _release_camera() -> None:
        session.close()

    return app


__all__ = ["create_app"]
