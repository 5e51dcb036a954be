"""Plain data types shared by the material generation modules."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union

from PIL import Image

T = TypeVar("T")

# Zip entry names produced by the generation backend
BASE_TEXTURE_ENTRY = "base_texture.png"
NORMAL_MAP_ENTRY = "normal_map.png"
ROUGHNESS_MAP_ENTRY = "roughness_map.png"

_BUNDLE_SLOTS = {
    BASE_TEXTURE_ENTRY: "base_texture",
    NORMAL_MAP_ENTRY: "normal_map",
    ROUGHNESS_MAP_ENTRY: "roughness_map",
}


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    message: str

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success[T], Failure]


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DecodedImage:
    """Width, height and a tightly packed RGBA8 pixel buffer."""

    width: int
    height: int
    rgba: bytes = field(repr=False)

    @property
    def is_valid(self) -> bool:
        return (
            self.width > 0
            and self.height > 0
            and len(self.rgba) == self.width * self.height * 4
        )

    def to_pil(self) -> Image.Image:
        if not self.is_valid:
            raise ValueError(
                f"RGBA buffer of {len(self.rgba)} bytes does not match "
                f"{self.width}x{self.height}"
            )
        return Image.frombytes("RGBA", (self.width, self.height), self.rgba)

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.to_pil().save(buf, format="PNG")
        return buf.getvalue()


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    reference_image: Optional[Any] = None

    def __post_init__(self) -> None:
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValueError("Prompt is required.")


# ---------------------------------------------------------------------------
# Material bundle
# ---------------------------------------------------------------------------

@dataclass
class MaterialBundle:
    base_texture: Optional[DecodedImage] = None
    normal_map: Optional[DecodedImage] = None
    roughness_map: Optional[DecodedImage] = None

    @staticmethod
    def slot_for(entry_name: str) -> Optional[str]:
        return _BUNDLE_SLOTS.get(entry_name)

    def assign(self, entry_name: str, image: DecodedImage) -> bool:
        """Store *image* under the slot matching *entry_name*.

        Returns False when the name is unknown or the slot is already filled;
        the bundle is left untouched in both cases.
        """
        slot = self.slot_for(entry_name)
        if slot is None or getattr(self, slot) is not None:
            return False
        setattr(self, slot, image)
        return True

    def maps(self) -> dict:
        return {
            "base_texture": self.base_texture,
            "normal_map": self.normal_map,
            "roughness_map": self.roughness_map,
        }

    def __len__(self) -> int:
        return sum(1 for img in self.maps().values() if img is not None)


# ---------------------------------------------------------------------------
# Retry bookkeeping
# ---------------------------------------------------------------------------

PENDING = "pending"
SUCCEEDED = "succeeded"
FAILED = "failed"
ABANDONED = "abandoned"


@dataclass
class RetryState:
    max_attempts: int = 3
    attempts: int = 0
    status: str = PENDING
    value: Any = None
    message: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.status in (SUCCEEDED, FAILED)

    @property
    def remaining(self) -> int:
        return self.max_attempts - self.attempts
