"""Lossless redraw of true-color sprites into an indexed buffer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
from PIL import Image

from .image_io import Bounds, SourceImage
from .palette_ops import (
    DimensionMismatch,
    Palette,
    PixelMismatch,
    pack_pixels,
)


@dataclass(frozen=True, slots=True)
class IndexedImage:
    indices: np.ndarray
    palette: Palette
    bounds: Bounds

    @property
    def width(self) -> int:
        return int(self.indices.shape[1])

    @property
    def height(self) -> int:
        return int(self.indices.shape[0])

    def decode(self) -> np.ndarray:
        """Return the ``(h, w, 4)`` uint16 exact colors the indices stand for."""

        table = np.array(self.palette.colors, dtype=np.uint16) * np.uint16(257)
        return table[self.indices]

    def alpha_table(self) -> bytes:
        return bytes(alpha for _r, _g, _b, alpha in self.palette.colors)

    def to_pil(self) -> Image.Image:
        image = Image.frombytes("P", (self.width, self.height), self.indices.tobytes())
        flat: List[int] = []
        for r, g, b, _a in self.palette.colors:
            flat.extend((r, g, b))
        image.putpalette(flat)
        alphas = self.alpha_table()
        if any(alpha < 255 for alpha in alphas):
            image.info["transparency"] = alphas
        return image


def verify_pixels(source: SourceImage, indexed: IndexedImage) -> None:
    """Check that ``indexed`` reproduces ``source`` exactly.

    Width is checked before height; pixels are then compared in row-major
    order and the first mismatch is reported with absolute coordinates.
    """

    if source.width != indexed.width:
        raise DimensionMismatch("width", source.width, indexed.width)
    if source.height != indexed.height:
        raise DimensionMismatch("height", source.height, indexed.height)
    differs = np.any(indexed.decode() != source.pixels, axis=2)
    if differs.any():
        y, x = np.argwhere(differs)[0].tolist()
        raise PixelMismatch(source.bounds.min_x + x, source.bounds.min_y + y)


def reencode(source: SourceImage, palette: Palette) -> IndexedImage:
    """Map every source pixel to its exact palette entry, then verify."""

    keys = pack_pixels(source.pixels)
    unique, inverse = np.unique(keys, return_inverse=True)
    # Colors missing from the palette land on index 0 and fail verification.
    slots = np.array(
        [palette.lookup.get(key, 0) for key in unique.tolist()], dtype=np.uint8
    )
    indices = slots[inverse.reshape(-1)].reshape(source.height, source.width)
    indexed = IndexedImage(
        indices=np.ascontiguousarray(indices),
        palette=palette,
        bounds=source.bounds,
    )
    verify_pixels(source, indexed)
    return indexed
