from __future__ import annotations

import asyncio
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Mapping, Protocol

import numpy as np
from PIL import Image

from .errors import (
    CameraAcquisitionFailed,
    CameraError,
    CameraUnsupported,
    CaptureNotReady,
    PermissionDenied,
)
from .models import CameraState


logger = logging.getLogger(__name__)

DEFAULT_FACING = "environment"
FALLBACK_RESOLUTION = (1280, 720)


@dataclass(frozen=True)
class StreamConstraints:
    """What to ask the host camera API for."""

    video: bool = True
    audio: bool = False
    width: int | None = None
    height: int | None = None
    facing: str | None = None

    @property
    def is_basic(self) -> bool:
        return self.width is None and self.height is None and self.facing is None


BASIC_CONSTRAINTS = StreamConstraints()


def fallback_constraints(facing: str | None = DEFAULT_FACING) -> StreamConstraints:
    width, height = FALLBACK_RESOLUTION
    return StreamConstraints(width=width, height=height, facing=facing)


class MediaTrack(Protocol):
    kind: str

    def stop(self) -> None: ...


class VideoStream(Protocol):
    def get_tracks(self) -> list[MediaTrack]: ...

    def read_frame(self) -> np.ndarray | None: ...


class MediaDevices(Protocol):
    def open_stream(self, constraints: StreamConstraints) -> VideoStream: ...


# -- OpenCV host adapter -------------------------------------------------


class _OpenCVVideoTrack:
    kind = "video"

    def __init__(self, capture, cv2_module) -> None:
        self._cap = capture
        self._cv2 = cv2_module

    def read(self) -> np.ndarray | None:
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return self._cv2.cvtColor(frame, self._cv2.COLOR_BGR2RGB)

    def stop(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class OpenCVVideoStream:
    def __init__(self, track: _OpenCVVideoTrack) -> None:
        self._track = track

    def get_tracks(self) -> list[MediaTrack]:
        return [self._track]

    def read_frame(self) -> np.ndarray | None:
        return self._track.read()


# Names accepted for ``--camera-backend``, mapped to OpenCV capture API constants.
CAPTURE_APIS = {
    "any": "CAP_ANY",
    "dshow": "CAP_DSHOW",
    "msmf": "CAP_MSMF",
    "v4l2": "CAP_V4L2",
    "avfoundation": "CAP_AVFOUNDATION",
}


def resolve_capture_api(cv2_module, backend: str | int | None) -> int:
    """Turn a backend name or numeric id into the ``apiPreference`` for ``VideoCapture``."""
    if isinstance(backend, int):
        return backend
    name = (backend or "").strip().lower()
    if not name:
        return cv2_module.CAP_ANY
    if name.isdigit():
        return int(name)
    if name not in CAPTURE_APIS:
        raise CameraUnsupported(
            f"Unknown OpenCV backend {backend!r}; expected one of {', '.join(CAPTURE_APIS)}"
        )
    api = getattr(cv2_module, CAPTURE_APIS[name], None)
    if api is None:
        logger.warning("This OpenCV build lacks the %s capture API; using CAP_ANY", name)
        return cv2_module.CAP_ANY
    return api


class OpenCVMediaDevices:
    """Open local cameras (USB/RTSP) through OpenCV."""

    def __init__(
        self,
        source: int | str = 0,
        *,
        facing_sources: Mapping[str, int | str] | None = None,
        backend: str | int | None = None,
    ) -> None:
        self._source = source
        self._facing_sources = dict(facing_sources or {})
        self._backend = backend

    def _load_cv2(self):
        try:
            import cv2  # type: ignore
        except ImportError as exc:  # pragma: no cover - depends on optional dep
            raise CameraUnsupported(
                "Camera API is not supported: opencv-python is not installed"
            ) from exc
        return cv2

    def _resolve_source(self, constraints: StreamConstraints) -> int | str:
        if constraints.facing and constraints.facing in self._facing_sources:
            return self._facing_sources[constraints.facing]
        return self._source

    def open_stream(self, constraints: StreamConstraints) -> VideoStream:
        if not constraints.video:
            raise CameraAcquisitionFailed("Video must be requested")
        cv2 = self._load_cv2()
        source = self._resolve_source(constraints)
        try:
            capture = cv2.VideoCapture(source, resolve_capture_api(cv2, self._backend))
        except cv2.error as exc:
            raise CameraAcquisitionFailed(f"Unable to open camera source {source!r}: {exc}") from exc
        if not capture.isOpened():
            capture.release()
            raise CameraAcquisitionFailed(f"Unable to open camera source {source!r}")
        if constraints.width and constraints.height:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, float(constraints.width))
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, float(constraints.height))
        return OpenCVVideoStream(_OpenCVVideoTrack(capture, cv2))


# -- Stub host adapter ---------------------------------------------------


class _StillTrack:
    kind = "video"

    def __init__(self) -> None:
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


class StillImageStream:
    """Serves the same still image on every read, like a frozen camera."""

    def __init__(self, frame: np.ndarray) -> None:
        self._frame = frame
        self._track = _StillTrack()

    @property
    def stopped(self) -> bool:
        return self._track.stopped

    def get_tracks(self) -> list[MediaTrack]:
        return [self._track]

    def read_frame(self) -> np.ndarray | None:
        if self._track.stopped:
            return None
        return self._frame.copy()


@dataclass
class StubMediaDevices:
    """Camera stand-in backed by a sample image file or a plain green placeholder."""

    sample_path: pathlib.Path | None = None
    fail_times: int = 0
    failure: type[CameraError] = CameraAcquisitionFailed
    placeholder_size: tuple[int, int] = (640, 480)
    requests: list[StreamConstraints] = field(default_factory=list)
    streams: list[StillImageStream] = field(default_factory=list)

    def _load_frame(self) -> np.ndarray:
        if self.sample_path and self.sample_path.exists():
            with Image.open(self.sample_path) as image:
                return np.asarray(image.convert("RGB"))
        image = Image.new("RGB", self.placeholder_size, (46, 139, 87))
        return np.asarray(image)

    def open_stream(self, constraints: StreamConstraints) -> VideoStream:
        self.requests.append(constraints)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.failure(f"Stub camera refused constraints {constraints}")
        stream = StillImageStream(self._load_frame())
        self.streams.append(stream)
        return stream


# -- Device manager ------------------------------------------------------


def _frame_size(frame: np.ndarray | None) -> tuple[int, int]:
    if frame is None or frame.ndim < 2:
        return 0, 0
    height, width = frame.shape[:2]
    return int(width), int(height)


class CameraDeviceManager:
    """Owns the single live camera stream of a session.

    Callers observe :attr:`state`; acquisition failures never escape
    :meth:`acquire`. :meth:`release` must run before the owner goes away or the
    device stays locked by the process.
    """

    def __init__(
        self,
        devices: MediaDevices,
        *,
        default_facing: str = DEFAULT_FACING,
        warmup_frames: int = 2,
    ) -> None:
        self._devices = devices
        self._default_facing = default_facing
        self._warmup_frames = max(1, warmup_frames)
        self._stream: VideoStream | None = None
        self._state = CameraState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CameraState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state.ready

    @property
    def width(self) -> int:
        return self._state.width

    @property
    def height(self) -> int:
        return self._state.height

    @property
    def has_stream(self) -> bool:
        return self._stream is not None

    async def acquire(self, preferred_facing: str | None = None) -> CameraState:
        facing = preferred_facing or self._default_facing
        async with self._lock:
            self.release()
            self._state = CameraState(facing=facing)
            logger.info("Starting camera facing=%s", facing)
            loop = asyncio.get_running_loop()
            try:
                stream, (width, height) = await loop.run_in_executor(
                    None, self._open_with_fallback, facing
                )
            except CameraError as exc:
                self._record_failure(exc)
                return self._state
            except Exception as exc:
                self._record_failure(CameraAcquisitionFailed(f"Failed to access camera: {exc}"))
                return self._state
            self._stream = stream
            self._state.ready = True
            self._state.width = width
            self._state.height = height
            logger.info("Camera ready %dx%d", width, height)
            return self._state

    def _record_failure(self, exc: CameraError) -> None:
        self._state.ready = False
        self._state.last_error = str(exc) or "Failed to access camera"
        self._state.error_kind = type(exc).__name__
        logger.error("Error accessing camera: %s", self._state.last_error)

    def _open_with_fallback(self, facing: str) -> tuple[VideoStream, tuple[int, int]]:
        try:
            return self._open(BASIC_CONSTRAINTS)
        except (CameraUnsupported, PermissionDenied):
            raise
        except Exception as exc:
            logger.warning("Failed with basic constraints, trying fallback: %s", exc)
        return self._open(fallback_constraints(facing))

    def _open(self, constraints: StreamConstraints) -> tuple[VideoStream, tuple[int, int]]:
        stream = self._devices.open_stream(constraints)
        try:
            for _ in range(self._warmup_frames):
                width, height = _frame_size(stream.read_frame())
                if width and height:
                    return stream, (width, height)
        except Exception as exc:
            _stop_tracks(stream)
            raise CameraAcquisitionFailed(f"Failed to play video stream: {exc}") from exc
        _stop_tracks(stream)
        raise CameraAcquisitionFailed("Failed to play video stream: no frames received")

    def read_frame(self) -> np.ndarray:
        """Current frame of the live stream; only for capture."""
        if self._stream is None or not self._state.ready:
            raise CaptureNotReady("Camera is not ready for capture")
        frame = self._stream.read_frame()
        if frame is None:
            raise CaptureNotReady("Camera did not deliver a frame")
        return frame

    def release(self) -> None:
        if self._stream is None:
            self._state.ready = False
            return
        logger.info("Stopping camera")
        _stop_tracks(self._stream)
        self._stream = None
        self._state.ready = False
        self._state.width = 0
        self._state.height = 0


def _stop_tracks(stream: VideoStream) -> None:
    for track in stream.get_tracks():
        logger.debug("Stopping track: %s", track.kind)
        track.stop()


__all__ = [
    "BASIC_CONSTRAINTS",
    "CAPTURE_APIS",
    "DEFAULT_FACING",
    "FALLBACK_RESOLUTION",
    "CameraDeviceManager",
    "MediaDevices",
    "MediaTrack",
    "OpenCVMediaDevices",
    "StillImageStream",
    "StreamConstraints",
    "StubMediaDevices",
    "VideoStream",
    "fallback_constraints",
    "resolve_capture_api",
]
