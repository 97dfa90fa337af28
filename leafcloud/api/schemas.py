from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from leafcam.session import SessionSnapshot


class PredictionModel(BaseModel):
    label: str = Field(..., description="Selected class label or 'undefined'")
    confidence: float = Field(..., ge=0.0, le=1.0)
    undefined: bool = False


class SessionResponse(BaseModel):
    state: str
    mode: str
    busy: bool
    camera_ready: bool
    camera_error: str | None = None
    last_error: str | None = None
    error_kind: str | None = None
    has_frame: bool = False
    preview_mime_type: str | None = None
    preview_size: int = 0
    generation: int = 0
    result: PredictionModel | None = None

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> "SessionResponse":
        result = None
        if snapshot.result is not None:
            result = PredictionModel(
                label=snapshot.result.label,
                confidence=snapshot.result.confidence,
                undefined=snapshot.result.is_undefined,
            )
        preview = snapshot.preview
        return cls(
            state=snapshot.state.value,
            mode=snapshot.mode,
            busy=snapshot.busy,
            camera_ready=snapshot.camera_ready,
            camera_error=snapshot.camera_error,
            last_error=snapshot.last_error,
            error_kind=snapshot.error_kind,
            has_frame=snapshot.has_frame,
            preview_mime_type=preview.mime_type if preview is not None else None,
            preview_size=preview.size if preview is not None else 0,
            generation=snapshot.generation,
            result=result,
        )


class CameraStartRequest(BaseModel):
    facing: str | None = Field(default=None, description="Preferred camera: environment or user")


class LogsResponse(BaseModel):
    lines: List[str] = Field(default_factory=list)


__all__ = ["PredictionModel", "SessionResponse", "CameraStartRequest", "LogsResponse"]
