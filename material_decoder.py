"""Response decoding: turn a successful transport outcome into payload bytes.

Backends answer in different shapes. The local server returns the payload
directly; the hosted one either points at a signed download URL or wraps the
image as base64 inside a JSON envelope. Each shape is a ResponseShape subclass
so a new backend only needs a new shape, not a new code path.

Also home to the Pillow helpers that turn bytes into DecodedImage values and
back.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import os
from typing import Any, Optional

from PIL import Image, UnidentifiedImageError

from material_types import DecodedImage, Failure, Outcome, Success

log = logging.getLogger(__name__)

DOWNLOAD_URL_MISSING = "Download URL is missing."
IMAGE_LOAD_FAILED = "Failed to load image from response."


class ImageDecodeError(Exception):
    """Bytes did not form a readable image."""


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------

class ResponseShape:
    """How to read the body of a successful response."""

    async def resolve(self, payload: bytes, transport: Any) -> Outcome[bytes]:
        raise NotImplementedError

    def image_failure(self, exc: Exception) -> Failure:
        """Failure reported when the resolved bytes are not an image."""
        return Failure(IMAGE_LOAD_FAILED)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class RawBytes(ResponseShape):
    async def resolve(self, payload: bytes, transport: Any) -> Outcome[bytes]:
        return Success(payload)


class SignedUrlIndirection(ResponseShape):
    """Body is JSON naming a URL; the payload lives behind a second GET."""

    def __init__(self, field: str = "download_url") -> None:
        self.field = field

    async def resolve(self, payload: bytes, transport: Any) -> Outcome[bytes]:
        try:
            url = _load_json_object(payload).get(self.field)
        except ValueError as exc:
            return Failure(f"Failed to parse download URL: {exc}")

        if not isinstance(url, str) or not url.strip():
            return Failure(DOWNLOAD_URL_MISSING)

        log.debug("Following signed download URL from field %r", self.field)
        return await transport.get(url)

    def __repr__(self) -> str:
        return f"SignedUrlIndirection({self.field!r})"


class Base64Envelope(ResponseShape):
    """Body is a JSON envelope with the payload base64-encoded in one field.

    Matches the API-gateway proxy format:
    ``{"statusCode": 200, "headers": {...}, "isBase64Encoded": true, "body": "..."}``
    """

    def __init__(self, field: str = "body") -> None:
        self.field = field

    async def resolve(self, payload: bytes, transport: Any) -> Outcome[bytes]:
        try:
            envelope = _load_json_object(payload)
            if self.field not in envelope:
                raise KeyError(self.field)
            encoded = envelope[self.field]
            if not isinstance(encoded, str):
                raise TypeError(f"field {self.field!r} is not a string")
            return Success(base64.b64decode(encoded, validate=True))
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            return Failure(f"Failed to parse or load image: {exc}")

    def image_failure(self, exc: Exception) -> Failure:
        return Failure(f"Failed to parse or load image: {exc}")

    def __repr__(self) -> str:
        return f"Base64Envelope({self.field!r})"


async def decode(outcome: Outcome[bytes], shape: ResponseShape, transport: Any) -> Outcome[bytes]:
    """Resolve *outcome* according to *shape*. Failures pass through untouched."""
    if isinstance(outcome, Failure):
        return outcome
    return await shape.resolve(outcome.value, transport)


def _load_json_object(payload: bytes) -> dict:
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


# ---------------------------------------------------------------------------
# Image helpers (Pillow)
# ---------------------------------------------------------------------------

def decode_image(data: bytes) -> DecodedImage:
    """Decode PNG/JPEG/... bytes into an RGBA DecodedImage."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return _from_pil(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageDecodeError(str(exc) or type(exc).__name__) from exc


def to_rgba_image(source: Any) -> Optional[DecodedImage]:
    """Default reference-image converter.

    Accepts a DecodedImage, a Pillow image, encoded image bytes or a path.
    Returns None when there is nothing usable to upload.
    """
    if source is None:
        log.warning("Reference image converter called with no source")
        return None

    try:
        if isinstance(source, DecodedImage):
            return source if source.is_valid else None
        if isinstance(source, Image.Image):
            return _from_pil(source)
        if isinstance(source, (bytes, bytearray)):
            return decode_image(bytes(source))
        if isinstance(source, (str, os.PathLike)):
            with Image.open(source) as img:
                img.load()
                return _from_pil(img)
    except (ImageDecodeError, Image.DecompressionBombError, OSError, ValueError) as exc:
        log.warning("Reference image could not be read: %s", exc)
        return None

    log.warning("Unsupported reference image type: %s", type(source).__name__)
    return None


def _from_pil(img: Image.Image) -> DecodedImage:
    rgba = img if img.mode == "RGBA" else img.convert("RGBA")
    return DecodedImage(width=rgba.width, height=rgba.height, rgba=rgba.tobytes())
