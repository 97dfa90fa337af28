from __future__ import annotations

import io
import logging
from typing import Protocol

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import CaptureFailure, CaptureNotReady, InvalidEncoding
from .models import CaptureFrame


logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    @property
    def ready(self) -> bool: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def read_frame(self) -> np.ndarray: ...


def _to_rgba(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    image = Image.fromarray(np.ascontiguousarray(frame)).convert("RGBA")
    if image.size != (width, height):
        image = image.resize((width, height))
    return np.array(image, dtype=np.uint8)


def capture(source: FrameSource, buffer: CaptureFrame | None = None) -> CaptureFrame:
    """Copy the source's current frame into ``buffer`` (or a new one).

    The buffer is resized to the source's native dimensions and its contents
    are replaced wholesale. On failure the buffer is left untouched.
    """
    if not source.ready:
        raise CaptureNotReady("Video is not ready for capture")
    width, height = source.width, source.height
    if width <= 0 or height <= 0:
        raise CaptureNotReady("Video source reports zero dimensions")

    frame = source.read_frame()
    try:
        pixels = _to_rgba(frame, width, height)
    except (TypeError, ValueError, OSError) as exc:
        raise CaptureFailure(f"Error drawing frame to buffer: {exc}") from exc

    if buffer is None:
        buffer = CaptureFrame()
    buffer.replace(pixels)
    logger.debug("Captured frame %dx%d", width, height)
    return buffer


def is_empty(buffer: CaptureFrame | None) -> bool:
    """True when every packed 32-bit pixel is zero."""
    if buffer is None or buffer.pixels.size == 0:
        return True
    packed = np.ascontiguousarray(buffer.pixels).view(np.uint32)
    return not packed.any()


def frame_from_image_bytes(data: bytes, buffer: CaptureFrame | None = None) -> CaptureFrame:
    """Decode uploaded image content into a raster buffer."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            pixels = np.array(image.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InvalidEncoding(f"Uploaded content is not a readable image: {exc}") from exc
    if buffer is None:
        buffer = CaptureFrame()
    buffer.replace(pixels)
    return buffer


__all__ = ["FrameSource", "capture", "is_empty", "frame_from_image_bytes"]
