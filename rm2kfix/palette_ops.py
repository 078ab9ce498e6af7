"""Palette building and the conversion error taxonomy."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Mapping, Tuple

import numpy as np

if TYPE_CHECKING:
    from .image_io import SourceImage


ColorTuple = Tuple[int, int, int, int]
"""8-bit RGBA palette entry."""

ExactColor = Tuple[int, int, int, int]
"""Straight-alpha RGBA at 16 bits per channel (8-bit sources widened by 257)."""

MAX_PALETTE_LEN = 256

# The RPG Maker 2003 editor blacks out charsets whose palette holds fewer than
# 17 entries (found by trial: 16 was not enough).
MIN_PALETTE_LEN = 17

TRANSPARENT_BLACK: ColorTuple = (0, 0, 0, 0)

CHIPSET_SIZE = (480, 256)
CHIPSET_TRANSPARENT_TILE = (296, 135)


class ConversionErrorKind(Enum):
    DECODE_FAILED = "decode_failed"
    ALREADY_COMPATIBLE = "already_compatible"
    PALETTE_TOO_LARGE = "palette_too_large"
    DIMENSION_MISMATCH = "dimension_mismatch"
    PIXEL_MISMATCH = "pixel_mismatch"
    OPEN_FAILED = "open_failed"
    SWAP_FAILED = "swap_failed"


_TRANSIENT_KINDS = frozenset(
    {ConversionErrorKind.DECODE_FAILED, ConversionErrorKind.OPEN_FAILED}
)
_INTERNAL_KINDS = frozenset(
    {ConversionErrorKind.DIMENSION_MISMATCH, ConversionErrorKind.PIXEL_MISMATCH}
)


def is_transient(kind: ConversionErrorKind) -> bool:
    """Return True for failures caused by a file that is still being written."""

    return kind in _TRANSIENT_KINDS


def is_internal(kind: ConversionErrorKind) -> bool:
    """Return True for failures that point at a defect in the converter itself."""

    return kind in _INTERNAL_KINDS


class ConversionError(RuntimeError):
    """Base class for every failure ``convert`` can report."""

    kind: ConversionErrorKind


class DecodeFailed(ConversionError):
    kind = ConversionErrorKind.DECODE_FAILED

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class AlreadyCompatible(ConversionError):
    """The image is already indexed within budget; nothing to do."""

    kind = ConversionErrorKind.ALREADY_COMPATIBLE

    def __init__(self, palette_len: int, max_len: int = MAX_PALETTE_LEN) -> None:
        if palette_len == max_len:
            message = f"PNG is valid Rm2k png with {palette_len} colors."
        else:
            message = (
                f"PNG is valid Rm2k png with less than {max_len} colors in its "
                f"palette. It has {palette_len}."
            )
        super().__init__(message)
        self.palette_len = palette_len


class PaletteTooLarge(ConversionError):
    kind = ConversionErrorKind.PALETTE_TOO_LARGE

    def __init__(self, palette_len: int) -> None:
        super().__init__(f"Palette size is {palette_len}, which is too big")
        self.palette_len = palette_len


class DimensionMismatch(ConversionError):
    kind = ConversionErrorKind.DIMENSION_MISMATCH

    def __init__(self, dimension: str, expected: int, actual: int) -> None:
        super().__init__(f"Src and dest image do not match in {dimension}")
        self.dimension = dimension
        self.expected = expected
        self.actual = actual


class PixelMismatch(ConversionError):
    kind = ConversionErrorKind.PIXEL_MISMATCH

    def __init__(self, x: int, y: int) -> None:
        super().__init__(f"source and destination do not match at pixel: {x}x{y}")
        self.x = x
        self.y = y


class OpenFailed(ConversionError):
    kind = ConversionErrorKind.OPEN_FAILED

    def __init__(self, path: object, detail: str) -> None:
        super().__init__(detail)
        self.path = path
        self.detail = detail


class SwapFailed(ConversionError):
    kind = ConversionErrorKind.SWAP_FAILED

    def __init__(self, path: object, detail: str) -> None:
        super().__init__(detail)
        self.path = path
        self.detail = detail


@dataclass(slots=True)
class ConvertOptions:
    max_colors: int = MAX_PALETTE_LEN
    min_colors: int = MIN_PALETTE_LEN

    def __post_init__(self) -> None:
        if not 1 <= self.max_colors <= MAX_PALETTE_LEN:
            raise ValueError(f"max_colors must be within 1..{MAX_PALETTE_LEN}")
        if not 1 <= self.min_colors <= self.max_colors:
            raise ValueError("min_colors must be within 1..max_colors")


@dataclass(frozen=True, slots=True)
class Palette:
    """Ordered output palette plus the exact-color lookup it was built from.

    ``colors`` holds 8-bit RGBA entries; index 0 is always the transparency
    color. ``lookup`` maps packed exact colors (see :func:`pack_pixels`) to
    their index and only covers colors found in the source, not padding.
    """

    colors: Tuple[ColorTuple, ...]
    lookup: Mapping[int, int]
    transparent: ExactColor
    natural_size: int

    @property
    def size(self) -> int:
        return len(self.colors)

    def index_of(self, color: ExactColor) -> int | None:
        return self.lookup.get(pack_color(color))


def pack_color(color: ExactColor) -> int:
    r, g, b, a = (int(channel) for channel in color)
    return (r << 48) | (g << 32) | (b << 16) | a


def unpack_color(key: int) -> ExactColor:
    return (
        (key >> 48) & 0xFFFF,
        (key >> 32) & 0xFFFF,
        (key >> 16) & 0xFFFF,
        key & 0xFFFF,
    )


def pack_pixels(pixels: np.ndarray) -> np.ndarray:
    """Pack an ``(h, w, 4)`` uint16 grid into a flat row-major uint64 key array."""

    wide = pixels.reshape(-1, 4).astype(np.uint64)
    return (
        (wide[:, 0] << np.uint64(48))
        | (wide[:, 1] << np.uint64(32))
        | (wide[:, 2] << np.uint64(16))
        | wide[:, 3]
    )


def truncate_color(color: ExactColor) -> ColorTuple:
    """Return the 8-bit palette entry for an exact color (high byte per channel)."""

    r, g, b, a = color
    return (r >> 8, g >> 8, b >> 8, a >> 8)


def transparency_offset(width: int, height: int) -> Tuple[int, int]:
    """Return the (x, y) offset from the bounds origin of the transparent pixel.

    Chipsets keep a reserved transparent tile; everything else (charsets,
    facesets, pictures...) is assumed to have a transparent top-left pixel.
    """

    if (width, height) == CHIPSET_SIZE:
        return CHIPSET_TRANSPARENT_TILE
    return (0, 0)


def build_palette(image: "SourceImage", options: ConvertOptions | None = None) -> Palette:
    """Collect every distinct color of ``image`` into a palette.

    The transparency color goes to index 0, the rest follow in row-major
    discovery order. Raises :class:`PaletteTooLarge` once the whole image has
    been scanned if the palette does not fit ``options.max_colors``.
    """

    options = options or ConvertOptions()
    pixels = image.pixels
    height, width = pixels.shape[:2]
    tx, ty = transparency_offset(width, height)

    keys = pack_pixels(pixels)
    transparent_key = int(keys[ty * width + tx])
    unique, first_seen = np.unique(keys, return_index=True)
    # The transparency pixel is part of the image, so it is already counted.
    if len(unique) > options.max_colors:
        raise PaletteTooLarge(len(unique))

    lookup: Dict[int, int] = {transparent_key: 0}
    transparent = unpack_color(transparent_key)
    colors = [truncate_color(transparent)]
    for key in unique[np.argsort(first_seen, kind="stable")].tolist():
        if key in lookup:
            continue
        lookup[key] = len(colors)
        colors.append(truncate_color(unpack_color(key)))

    natural_size = len(colors)
    while len(colors) < options.min_colors:
        colors.append(TRANSPARENT_BLACK)

    return Palette(
        colors=tuple(colors),
        lookup=MappingProxyType(lookup),
        transparent=transparent,
        natural_size=natural_size,
    )
