from __future__ import annotations

import base64
import enum
from dataclasses import dataclass, field

import numpy as np


JPEG_MIME_TYPE = "image/jpeg"


def _blank_pixels(width: int, height: int) -> np.ndarray:
    return np.zeros((height, width, 4), dtype=np.uint8)


@dataclass
class CaptureFrame:
    """RGBA raster buffer holding the most recent still snapshot."""

    width: int = 0
    height: int = 0
    pixels: np.ndarray = field(default_factory=lambda: _blank_pixels(0, 0), repr=False)

    @classmethod
    def blank(cls, width: int, height: int) -> "CaptureFrame":
        return cls(width=width, height=height, pixels=_blank_pixels(width, height))

    def clear(self) -> None:
        self.pixels[...] = 0

    def replace(self, pixels: np.ndarray) -> None:
        height, width = pixels.shape[:2]
        self.width = width
        self.height = height
        self.pixels = pixels


@dataclass(frozen=True)
class EncodedImage:
    """Transmittable image payload."""

    data: bytes
    mime_type: str = JPEG_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_empty(self) -> bool:
        return not self.data

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


EMPTY_IMAGE = EncodedImage(data=b"", mime_type=JPEG_MIME_TYPE)


@dataclass
class CameraState:
    """Observable camera lifecycle. The stream handle itself stays inside the manager."""

    ready: bool = False
    last_error: str | None = None
    error_kind: str | None = None
    facing: str | None = None
    width: int = 0
    height: int = 0


class SessionState(enum.Enum):
    IDLE = "idle"
    ACQUIRING_CAMERA = "acquiring_camera"
    CAMERA_READY = "camera_ready"
    CAPTURED = "captured"
    CLASSIFYING = "classifying"
    RESULT_READY = "result_ready"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


__all__ = [
    "CaptureFrame",
    "EncodedImage",
    "EMPTY_IMAGE",
    "JPEG_MIME_TYPE",
    "CameraState",
    "SessionState",
]
