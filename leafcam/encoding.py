from __future__ import annotations

import base64
import binascii
import io
import logging
import mimetypes
import re

from PIL import Image

from .errors import InvalidEncoding
from .models import EMPTY_IMAGE, JPEG_MIME_TYPE, CaptureFrame, EncodedImage


logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 0.9

_MIME_PATTERN = re.compile(r":(.*?);")


def _pillow_quality(quality: float) -> int:
    # Pillow accepts 1..95 for JPEG; anything above 95 disables some tables.
    return max(1, min(95, int(round(quality * 100))))


def encode(frame: CaptureFrame, quality: float = DEFAULT_JPEG_QUALITY) -> EncodedImage:
    """Serialize an RGBA raster buffer to a JPEG payload."""
    if frame.width == 0 or frame.height == 0:
        raise InvalidEncoding("Cannot encode a zero-sized frame")
    if not 0.0 < quality <= 1.0:
        raise ValueError("quality must be in (0, 1]")
    image = Image.fromarray(frame.pixels).convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=_pillow_quality(quality))
    return EncodedImage(data=buffer.getvalue(), mime_type=JPEG_MIME_TYPE)


def _split_data_uri(uri: str) -> EncodedImage:
    parts = uri.split(",", 1)
    if len(parts) < 2:
        raise InvalidEncoding("Invalid data URI format")
    header, segment = parts
    match = _MIME_PATTERN.search(header)
    if not match:
        raise InvalidEncoding("Could not extract MIME type")
    try:
        data = base64.b64decode("".join(segment.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidEncoding(f"Data segment is not valid base64: {exc}") from exc
    return EncodedImage(data=data, mime_type=match.group(1))


def decode_from_data_uri(uri: str, *, strict: bool = False) -> EncodedImage:
    """Turn a ``data:`` URI back into an :class:`EncodedImage`.

    Malformed input raises :class:`InvalidEncoding` when ``strict`` is set.
    Otherwise the failure is logged and the empty JPEG payload is returned, so
    callers must check ``is_empty`` to notice the fallback.
    """
    try:
        return _split_data_uri(uri)
    except InvalidEncoding as exc:
        if strict:
            raise
        logger.error("Error converting data URI to image payload: %s", exc)
        return EMPTY_IMAGE


def encode_upload(
    data: bytes,
    filename: str | None = None,
    mime_type: str | None = None,
) -> EncodedImage:
    """Wrap uploaded bytes as-is; the file picker is trusted for format."""
    resolved = mime_type
    if not resolved and filename:
        resolved, _ = mimetypes.guess_type(filename)
    return EncodedImage(data=bytes(data), mime_type=resolved or JPEG_MIME_TYPE)


__all__ = [
    "DEFAULT_JPEG_QUALITY",
    "encode",
    "decode_from_data_uri",
    "encode_upload",
]
