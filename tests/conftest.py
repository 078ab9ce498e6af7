from __future__ import annotations

import io
import struct
import zlib
from pathlib import Path
from typing import Callable, List, Sequence, Tuple

import numpy as np
import pytest
from PIL import Image


def encode_rgba(pixels: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(np.asarray(pixels, dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


def encode_paletted(indices: np.ndarray, colors: Sequence[Tuple[int, int, int]]) -> bytes:
    image = Image.frombytes(
        "P", (indices.shape[1], indices.shape[0]), np.asarray(indices, dtype=np.uint8).tobytes()
    )
    flat: List[int] = []
    for color in colors:
        flat.extend(color)
    image.putpalette(flat)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


PNG_ADAM7 = (
    (0, 0, 8, 8),
    (4, 0, 8, 8),
    (0, 4, 4, 8),
    (2, 0, 4, 4),
    (0, 2, 2, 4),
    (1, 0, 2, 2),
    (0, 1, 1, 2),
)


def _chunk(tag: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + tag + body + struct.pack(">I", zlib.crc32(tag + body))


def _paeth(left: int, up: int, up_left: int) -> int:
    p = left + up - up_left
    pa, pb, pc = abs(p - left), abs(p - up), abs(p - up_left)
    if pa <= pb and pa <= pc:
        return left
    return up if pb <= pc else up_left


def _filter_row(filter_type: int, row: bytes, prev: bytes, bpp: int) -> bytes:
    out = bytearray([filter_type])
    for i, value in enumerate(row):
        left = row[i - bpp] if i >= bpp else 0
        up_left = prev[i - bpp] if i >= bpp else 0
        predictor = (0, left, prev[i], (left + prev[i]) >> 1, _paeth(left, prev[i], up_left))
        out.append((value - predictor[filter_type]) & 0xFF)
    return bytes(out)


def encode_png16(
    samples: np.ndarray,
    color_type: int,
    *,
    filter_type: int = 0,
    interlace: bool = False,
    trns: bytes | None = None,
) -> bytes:
    """Hand-written 16-bit PNG from an ``(h, w, channels)`` sample grid."""

    samples = np.asarray(samples, dtype=np.uint16)
    height, width, channels = samples.shape
    bpp = channels * 2
    raw = bytearray()
    for x0, y0, dx, dy in PNG_ADAM7 if interlace else ((0, 0, 1, 1),):
        sub = samples[y0::dy, x0::dx]
        if sub.size == 0:
            continue
        prev = bytes(sub.shape[1] * bpp)
        for line in sub:
            row = line.astype(">u2").tobytes()
            raw += _filter_row(filter_type, row, prev, bpp)
            prev = row
    header = struct.pack(">IIBBBBB", width, height, 16, color_type, 0, 0, 1 if interlace else 0)
    chunks = [_chunk(b"IHDR", header)]
    if trns is not None:
        chunks.append(_chunk(b"tRNS", trns))
    chunks.append(_chunk(b"IDAT", zlib.compress(bytes(raw))))
    chunks.append(_chunk(b"IEND", b""))
    return b"\x89PNG\r\n\x1a\n" + b"".join(chunks)


def distinct_colors(count: int) -> np.ndarray:
    """``count`` distinct opaque RGBA colors as a ``(1, count, 4)`` uint8 row."""

    values = np.arange(count)
    row = np.stack(
        [values % 256, values // 256, np.full(count, 7), np.full(count, 255)], axis=-1
    )
    return row.reshape(1, count, 4).astype(np.uint8)


@pytest.fixture
def rgba_png() -> Callable[[np.ndarray], bytes]:
    return encode_rgba


@pytest.fixture
def rm2k_project(tmp_path: Path) -> Path:
    root = tmp_path / "Project1"
    root.mkdir()
    (root / "RPG_RT.exe").write_bytes(b"MZ")
    for name in ("CharSet", "ChipSet", "Picture"):
        (root / name).mkdir()
    return root
