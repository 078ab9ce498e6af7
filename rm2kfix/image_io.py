"""PNG decoding into exact-color grids and encoding of indexed results."""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import TYPE_CHECKING, Tuple

import numpy as np
from PIL import Image

from .palette_ops import DecodeFailed, ExactColor
from .png_chunks import decode_deep_samples, read_header

if TYPE_CHECKING:
    from .quantization import IndexedImage


@dataclass(frozen=True, slots=True)
class Bounds:
    """Half-open pixel rectangle, ``max`` exclusive."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @classmethod
    def from_size(cls, width: int, height: int, origin: Tuple[int, int] = (0, 0)) -> "Bounds":
        return cls(origin[0], origin[1], origin[0] + width, origin[1] + height)


@dataclass(frozen=True, slots=True)
class SourceImage:
    pixels: np.ndarray
    bounds: Bounds
    palette_len: int | None = None

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError("pixels must have shape (height, width, 4)")
        if self.pixels.dtype != np.uint16:
            raise ValueError("pixels must be uint16")
        height, width = self.pixels.shape[:2]
        if width < 1 or height < 1:
            raise ValueError("image must be at least 1x1")
        if (self.bounds.width, self.bounds.height) != (width, height):
            raise ValueError("bounds do not match pixel grid size")

    @property
    def width(self) -> int:
        return self.bounds.width

    @property
    def height(self) -> int:
        return self.bounds.height

    @property
    def is_indexed(self) -> bool:
        return self.palette_len is not None

    def color_at(self, x: int, y: int) -> ExactColor:
        """Exact color at absolute coordinate ``(x, y)``."""

        r, g, b, a = self.pixels[y - self.bounds.min_y, x - self.bounds.min_x].tolist()
        return (r, g, b, a)

    @classmethod
    def from_array(
        cls,
        pixels: np.ndarray,
        origin: Tuple[int, int] = (0, 0),
        palette_len: int | None = None,
    ) -> "SourceImage":
        """Wrap an ``(h, w, 4)`` grid; uint8 input is widened to 16 bits."""

        pixels = np.asarray(pixels)
        if pixels.dtype == np.uint8:
            pixels = pixels.astype(np.uint16) * np.uint16(257)
        height, width = pixels.shape[:2]
        return cls(
            pixels=np.ascontiguousarray(pixels, dtype=np.uint16),
            bounds=Bounds.from_size(width, height, origin),
            palette_len=palette_len,
        )


def _palette_len(image: Image.Image) -> int:
    palette = image.getpalette()
    return len(palette) // 3 if palette else 0


def source_from_pil(image: Image.Image, origin: Tuple[int, int] = (0, 0)) -> SourceImage:
    palette_len = _palette_len(image) if image.mode == "P" else None
    pixels = np.asarray(image.convert("RGBA"), dtype=np.uint8)
    return SourceImage.from_array(pixels, origin=origin, palette_len=palette_len)


def decode_png(data: bytes) -> SourceImage:
    """Decode complete PNG bytes. Raises :class:`DecodeFailed` on bad input.

    A file that an editor is still writing usually shows up here as a
    truncated stream, so callers may retry on this error. 16-bit images keep
    their full sample precision.
    """

    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.format != "PNG":
                raise DecodeFailed(f"not a PNG image (format {image.format})")
            image.load()
            header = read_header(data)
            if header.is_deep:
                return SourceImage.from_array(decode_deep_samples(data, header))
            return source_from_pil(image)
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailed(str(exc) or type(exc).__name__) from exc


def encode_png(indexed: "IndexedImage") -> bytes:
    """Encode an indexed image as an 8-bit paletted PNG.

    PLTE holds exactly ``len(indexed.palette.colors)`` entries when there are
    more than 16; Pillow packs smaller palettes below 8 bits unless told
    otherwise, and then pads PLTE to 256 entries.
    """

    image = indexed.to_pil()
    params = {"bits": 8} if indexed.palette.size <= 16 else {}
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", **params)
    return buffer.getvalue()
