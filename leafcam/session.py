from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from leafcloud.ai.selector import select_best
from leafcloud.ai.types import ClassificationResult, Classifier, Prediction

from . import capture as frame_capture
from .camera import CameraDeviceManager
from .encoding import DEFAULT_JPEG_QUALITY, encode, encode_upload
from .errors import (
    CaptureFailure,
    CaptureNotReady,
    InvalidEncoding,
    InvalidTransition,
    NetworkError,
    SessionBusy,
)
from .models import CameraState, CaptureFrame, EncodedImage, SessionState


logger = logging.getLogger(__name__)

S = SessionState

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    S.IDLE: frozenset({S.ACQUIRING_CAMERA, S.CAPTURED}),
    S.ACQUIRING_CAMERA: frozenset({S.CAMERA_READY, S.ERROR, S.IDLE}),
    S.CAMERA_READY: frozenset({S.CAPTURED, S.IDLE}),
    S.CAPTURED: frozenset({S.CLASSIFYING, S.CAMERA_READY, S.IDLE}),
    S.CLASSIFYING: frozenset({S.RESULT_READY, S.ERROR, S.CAMERA_READY, S.IDLE}),
    S.RESULT_READY: frozenset({S.CAPTURED, S.ACQUIRING_CAMERA, S.CAMERA_READY, S.IDLE}),
    S.ERROR: frozenset({S.ACQUIRING_CAMERA, S.CAPTURED, S.CAMERA_READY, S.IDLE}),
}

MODE_CAMERA = "camera"
MODE_UPLOAD = "upload"


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything a presentation layer needs to render the session."""

    state: SessionState
    mode: str
    camera_ready: bool
    camera_error: str | None
    last_error: str | None
    error_kind: str | None
    result: ClassificationResult | None
    preview: EncodedImage | None
    has_frame: bool
    generation: int

    @property
    def busy(self) -> bool:
        return self.state is S.CLASSIFYING


class CaptureSession:
    """Coordinates camera, capture, encoding and classification.

    Runs on a single event loop. The two blocking steps (opening the camera and
    the classification round trip) are handed to the loop's executor; their
    completions are applied only if the session has not moved on since they
    were issued.
    """

    def __init__(
        self,
        camera: CameraDeviceManager,
        classifier: Classifier,
        *,
        jpeg_quality: float = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self._camera = camera
        self._classifier = classifier
        self._quality = jpeg_quality
        self._state = S.IDLE
        self._mode = MODE_CAMERA
        self._frame = CaptureFrame()
        self._encoded: EncodedImage | None = None
        self._result: ClassificationResult | None = None
        self._last_error: str | None = None
        self._error_kind: str | None = None
        self._generation = 0
        self._camera_token = 0

    # -- observable state -------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def camera_state(self) -> CameraState:
        return self._camera.state

    @property
    def result(self) -> ClassificationResult | None:
        return self._result if self._state is S.RESULT_READY else None

    @property
    def preview(self) -> EncodedImage | None:
        return self._encoded

    @property
    def frame(self) -> CaptureFrame:
        return self._frame

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> SessionSnapshot:
        camera = self._camera.state
        return SessionSnapshot(
            state=self._state,
            mode=self._mode,
            camera_ready=camera.ready,
            camera_error=camera.last_error,
            last_error=self._last_error,
            error_kind=self._error_kind,
            result=self.result,
            preview=self._encoded,
            has_frame=not frame_capture.is_empty(self._frame),
            generation=self._generation,
        )

    # -- transitions -----------------------------------------------------

    def _transition(self, target: SessionState) -> None:
        if target is self._state:
            return
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransition(self._state, target)
        logger.debug("Session %s -> %s", self._state, target)
        self._state = target

    def _record_error(self, exc: Exception) -> None:
        self._last_error = str(exc)
        self._error_kind = type(exc).__name__

    def _reset_error(self) -> None:
        self._last_error = None
        self._error_kind = None

    def _discard_capture(self) -> None:
        self._frame.clear()
        self._encoded = None
        self._result = None

    def _reject_if_busy(self) -> None:
        if self._state is S.CLASSIFYING:
            raise SessionBusy("A classification request is already in progress")

    # -- camera ----------------------------------------------------------

    async def start_camera(self, preferred_facing: str | None = None) -> CameraState:
        self._reject_if_busy()
        if self._state is S.ACQUIRING_CAMERA or self._camera.ready:
            return self._camera.state

        self._discard_capture()
        self._reset_error()
        self._transition(S.ACQUIRING_CAMERA)
        self._mode = MODE_CAMERA
        self._camera_token += 1
        token = self._camera_token

        camera_state = await self._camera.acquire(preferred_facing)

        if token != self._camera_token:
            logger.info("Camera became available after the session moved on; releasing it")
            self._camera.release()
            return self._camera.state

        if camera_state.ready:
            self._transition(S.CAMERA_READY)
        else:
            self._last_error = camera_state.last_error
            self._error_kind = camera_state.error_kind
            self._transition(S.ERROR)
        return camera_state

    def stop_camera(self) -> None:
        """Release the device and return to idle. Always safe."""
        self._generation += 1
        self._camera_token += 1
        self._camera.release()
        self._discard_capture()
        self._reset_error()
        self._state = S.IDLE
        logger.info("Session stopped")

    def close(self) -> None:
        self.stop_camera()

    # -- capture / upload ------------------------------------------------

    async def capture(self) -> ClassificationResult | None:
        """Snapshot the live camera and classify it.

        Returns the result, or ``None`` when the request failed or was
        superseded; the session state tells which.
        """
        self._reject_if_busy()
        try:
            frame_capture.capture(self._camera, self._frame)
        except (CaptureNotReady, CaptureFailure) as exc:
            logger.error("Failed to capture image: %s", exc)
            self._record_error(exc)
            raise

        try:
            encoded = encode(self._frame, self._quality)
        except (InvalidEncoding, OSError, ValueError) as exc:
            failure = CaptureFailure(f"Error encoding captured image: {exc}")
            self._record_error(failure)
            raise failure from exc

        logger.info("Captured image %d bytes", encoded.size)
        self._mode = MODE_CAMERA
        return await self._classify(encoded)

    async def select_file(
        self,
        data: bytes,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> ClassificationResult | None:
        """Classify an uploaded image. Empty selections are ignored."""
        if not data:
            logger.debug("No file selected")
            return None
        self._reject_if_busy()
        if self._state is S.ACQUIRING_CAMERA:
            raise SessionBusy("Camera is still starting")

        encoded = encode_upload(data, filename=filename, mime_type=mime_type)
        try:
            frame_capture.frame_from_image_bytes(data, self._frame)
        except InvalidEncoding as exc:
            # Still sent as-is; the service decides whether it is an image.
            logger.warning("Uploaded file has no previewable raster: %s", exc)
            self._frame.clear()

        logger.info("Selected file %s (%d bytes)", filename or "<upload>", encoded.size)
        self._mode = MODE_UPLOAD
        return await self._classify(encoded)

    async def _classify(self, encoded: EncodedImage) -> ClassificationResult | None:
        self._transition(S.CAPTURED)
        self._encoded = encoded
        self._result = None
        self._reset_error()
        self._generation += 1
        request_id = self._generation
        self._transition(S.CLASSIFYING)

        loop = asyncio.get_running_loop()
        try:
            predictions: dict[str, Prediction] = await loop.run_in_executor(
                None, self._classifier.classify, encoded
            )
        except Exception as exc:
            if request_id != self._generation:
                logger.info("Discarding failure of superseded request %d", request_id)
                return None
            error = exc if isinstance(exc, NetworkError) else NetworkError(str(exc) or type(exc).__name__)
            logger.error("Error analyzing image: %s", error)
            self._record_error(error)
            self._transition(S.ERROR)
            return None

        if request_id != self._generation:
            logger.info("Discarding stale result of request %d", request_id)
            return None

        best = select_best(predictions)
        result = ClassificationResult(
            prediction=best, predictions=dict(predictions), request_id=request_id
        )
        logger.info("Best prediction: %s (%.3f)", best.label, best.confidence)
        self._result = result
        self._transition(S.RESULT_READY)
        return result

    # -- reset / export --------------------------------------------------

    def clear(self) -> None:
        """Drop the current capture and result; keep the camera running."""
        if self._state is S.IDLE:
            self._discard_capture()
            return
        self._generation += 1
        if self._state is S.ACQUIRING_CAMERA:
            self._camera_token += 1
        self._discard_capture()
        self._reset_error()
        self._transition(S.CAMERA_READY if self._camera.ready else S.IDLE)
        logger.info("Session cleared")

    def export_current_frame(self) -> EncodedImage | None:
        if frame_capture.is_empty(self._frame):
            logger.error("Buffer is empty, nothing to export")
            return None
        return encode(self._frame, self._quality)


__all__ = [
    "CaptureSession",
    "SessionSnapshot",
    "MODE_CAMERA",
    "MODE_UPLOAD",
]
