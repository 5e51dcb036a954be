"""Core material generation client. Used by the CLI and by embedding hosts."""

from __future__ import annotations

import logging
import os
import time
import zipfile
from typing import Any, Callable, Dict, Optional

from material_archive import build_bundle, unpack
from material_decoder import (
    Base64Envelope,
    ImageDecodeError,
    RawBytes,
    ResponseShape,
    SignedUrlIndirection,
    decode,
    decode_image,
    to_rgba_image,
)
from material_transport import DEFAULT_TIMEOUT, FilePart, JsonBody, MultipartBody, TransportClient
from material_types import (
    DecodedImage,
    Failure,
    GenerationRequest,
    MaterialBundle,
    Outcome,
    Success,
)

log = logging.getLogger(__name__)

REFERENCE_INVALID = "Reference image is invalid."

# ---------------------------------------------------------------------------
# Backends and endpoints
# ---------------------------------------------------------------------------

DEFAULT_BACKEND = "local"

BACKENDS: Dict[str, Dict[str, Any]] = {
    "local": {
        "name": "Local server",
        "base_url": "http://localhost:8000/api/v1/generate",
        "material_shape": RawBytes(),
        "texture_shape": RawBytes(),
    },
    "hosted": {
        "name": "Hosted API",
        "base_url": None,  # must come from MATERIAL_API_BASE_URL or --base-url
        "material_shape": SignedUrlIndirection("download_url"),
        "texture_shape": Base64Envelope("body"),
    },
}

# operation -> endpoint without image, endpoint with image, upload filename
ENDPOINTS: Dict[str, Dict[str, str]] = {
    "material": {
        "text": "generate-zip-from-text",
        "image": "generate-zip-from-image",
        "filename": "ref.png",
    },
    "base_texture": {
        "text": "generate-base-image",
        "image": "generate-base-image-with-image",
        "filename": "input.png",
    },
}


def load_settings() -> Dict[str, Any]:
    """Read generator settings from the environment (.env already loaded)."""
    return {
        "backend": os.environ.get("MATERIAL_BACKEND", DEFAULT_BACKEND),
        "base_url": os.environ.get("MATERIAL_API_BASE_URL") or None,
        "api_token": os.environ.get("MATERIAL_API_TOKEN", ""),
        "timeout": float(os.environ.get("MATERIAL_API_TIMEOUT", DEFAULT_TIMEOUT)),
        "max_attempts": int(os.environ.get("MATERIAL_MAX_ATTEMPTS", 3)),
    }


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class MaterialGenerator:
    """Issues generation requests and turns responses into decoded textures."""

    def __init__(
        self,
        settings: Optional[Dict] = None,
        transport: Optional[TransportClient] = None,
        converter: Callable[[Any], Optional[DecodedImage]] = to_rgba_image,
        progress_cb: Optional[Callable[[Dict], None]] = None,
    ) -> None:
        settings = settings or {}
        self.backend: str = settings.get("backend", DEFAULT_BACKEND)
        if self.backend not in BACKENDS:
            raise ValueError(
                f"Unknown backend {self.backend!r} (expected one of {', '.join(BACKENDS)})"
            )
        backend_cfg = BACKENDS[self.backend]

        base_url = settings.get("base_url") or backend_cfg["base_url"]
        if not base_url:
            raise ValueError(f"Backend {self.backend!r} requires MATERIAL_API_BASE_URL")
        self.base_url: str = base_url.rstrip("/")

        self.material_shape: ResponseShape = backend_cfg["material_shape"]
        self.texture_shape: ResponseShape = backend_cfg["texture_shape"]

        if transport is None:
            headers = {}
            token = settings.get("api_token")
            if token:
                headers["Authorization"] = f"Bearer {token}"
            transport = TransportClient(
                timeout=settings.get("timeout", DEFAULT_TIMEOUT),
                headers=headers,
            )
        self.transport = transport
        self.converter = converter
        self.progress_cb = progress_cb

        log.info(
            "Generator init: backend=%s url=%s material=%r texture=%r",
            self.backend, self.base_url, self.material_shape, self.texture_shape,
        )

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    def _emit(self, stage: str, status: str, message: str, data: Optional[Dict] = None) -> None:
        event: Dict[str, Any] = {
            "stage": stage,
            "status": status,
            "message": message,
            "ts": time.time(),
        }
        if data:
            event["data"] = data
        if self.progress_cb:
            self.progress_cb(event)
        lvl = logging.WARNING if status == "failed" else logging.DEBUG
        log.log(lvl, "%s — %s", stage, message)

    def _fail(self, stage: str, message: str) -> Failure:
        self._emit(stage, "failed", message)
        return Failure(message)

    # ------------------------------------------------------------------
    # Request assembly
    # ------------------------------------------------------------------

    def endpoint_url(self, operation: str, with_image: bool) -> str:
        endpoint = ENDPOINTS[operation]["image" if with_image else "text"]
        return f"{self.base_url}/{endpoint}"

    def _build_body(self, operation: str, request: GenerationRequest) -> Outcome:
        """Return Success((url, body)) or the invalid-reference Failure."""
        if request.reference_image is None:
            return Success((
                self.endpoint_url(operation, with_image=False),
                JsonBody({"prompt": request.prompt}),
            ))

        readable = self.converter(request.reference_image)
        if readable is None:
            return Failure(REFERENCE_INVALID)
        try:
            png = readable.to_png()
        except (ValueError, OSError) as exc:
            log.warning("Reference image could not be encoded: %s", exc)
            return Failure(REFERENCE_INVALID)

        body = MultipartBody(
            fields={"prompt": request.prompt},
            files=[FilePart("image", png, ENDPOINTS[operation]["filename"], "image/png")],
        )
        return Success((self.endpoint_url(operation, with_image=True), body))

    async def _request(self, operation: str, prompt: str, reference_image: Any) -> Outcome[bytes]:
        try:
            request = GenerationRequest(prompt, reference_image)
        except ValueError as exc:
            return Failure(str(exc))

        built = self._build_body(operation, request)
        if isinstance(built, Failure):
            return built
        url, body = built.value

        kind = "image" if isinstance(body, MultipartBody) else "text"
        self._emit(operation, "started", f"Requesting {operation.replace('_', ' ')} from {kind}…")
        return await self.transport.send(url, body)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def generate_material(
        self, prompt: str, reference_image: Any = None
    ) -> Outcome[MaterialBundle]:
        """Generate base, normal and roughness maps as a MaterialBundle."""
        stage = "material"
        outcome = await self._request(stage, prompt, reference_image)
        outcome = await decode(outcome, self.material_shape, self.transport)
        if isinstance(outcome, Failure):
            return self._fail(stage, outcome.message)

        try:
            bundle = build_bundle(unpack(outcome.value))
        except zipfile.BadZipFile as exc:
            return self._fail(stage, f"Failed to read material archive: {exc}")
        except ImageDecodeError as exc:
            return self._fail(stage, f"Failed to load image from {exc}")

        if not len(bundle):
            log.warning("Material archive contained no known texture maps")
        self._emit(
            stage,
            "completed",
            f"Material ready ({len(bundle)}/3 maps)",
            {name: (img.width, img.height) for name, img in bundle.maps().items() if img},
        )
        return Success(bundle)

    async def generate_base_texture(
        self, prompt: str, reference_image: Any = None
    ) -> Outcome[DecodedImage]:
        """Generate a single base color texture."""
        stage = "base_texture"
        outcome = await self._request(stage, prompt, reference_image)
        outcome = await decode(outcome, self.texture_shape, self.transport)
        if isinstance(outcome, Failure):
            return self._fail(stage, outcome.message)

        try:
            image = decode_image(outcome.value)
        except ImageDecodeError as exc:
            return self._fail(stage, self.texture_shape.image_failure(exc).message)

        self._emit(
            stage,
            "completed",
            f"Base texture ready ({image.width}x{image.height})",
            {"base_texture": (image.width, image.height)},
        )
        return Success(image)

    def close(self) -> None:
        self.transport.close()
