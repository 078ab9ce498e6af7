"""Direct PNG sample decoding for 16-bit images.

Pillow narrows 16-bit RGB, RGBA and grey+alpha PNGs to 8 bits on load, so
those are unpacked here from IDAT to keep every sample exact.
"""
from __future__ import annotations

import struct
import zlib
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .palette_ops import DecodeFailed

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_CHANNELS = {0: 1, 2: 3, 4: 2, 6: 4}

# (x0, y0, dx, dy) per Adam7 pass
_ADAM7 = (
    (0, 0, 8, 8),
    (4, 0, 8, 8),
    (0, 4, 4, 8),
    (2, 0, 4, 4),
    (0, 2, 2, 4),
    (1, 0, 2, 2),
    (0, 1, 1, 2),
)
_PROGRESSIVE = ((0, 0, 1, 1),)


@dataclass(frozen=True, slots=True)
class PngHeader:
    width: int
    height: int
    bit_depth: int
    color_type: int
    interlace: int

    @property
    def is_deep(self) -> bool:
        return self.bit_depth == 16 and self.color_type in _CHANNELS


def read_header(data: bytes) -> PngHeader:
    if not data.startswith(PNG_SIGNATURE) or data[12:16] != b"IHDR" or len(data) < 29:
        raise DecodeFailed("IHDR chunk missing")
    width, height, bit_depth, color_type, _compression, _filter, interlace = struct.unpack(
        ">IIBBBBB", data[16:29]
    )
    return PngHeader(width, height, bit_depth, color_type, interlace)


def _read_chunks(data: bytes) -> Tuple[bytes, bytes | None]:
    offset = len(PNG_SIGNATURE)
    idat: List[bytes] = []
    trns = None
    while offset + 8 <= len(data):
        length, tag = struct.unpack(">I4s", data[offset : offset + 8])
        body = data[offset + 8 : offset + 8 + length]
        offset += 12 + length
        if tag == b"IDAT":
            idat.append(body)
        elif tag == b"tRNS":
            trns = body
        elif tag == b"IEND":
            break
    return b"".join(idat), trns


def _paeth(left: int, up: int, up_left: int) -> int:
    p = left + up - up_left
    pa = abs(p - left)
    pb = abs(p - up)
    pc = abs(p - up_left)
    if pa <= pb and pa <= pc:
        return left
    if pb <= pc:
        return up
    return up_left


def _unfilter_sequential(filter_type: int, line: np.ndarray, prev: np.ndarray, bpp: int) -> np.ndarray:
    current = line.tolist()
    above = prev.tolist()
    out = [0] * len(current)
    for i, value in enumerate(current):
        left = out[i - bpp] if i >= bpp else 0
        if filter_type == 3:
            value += (left + above[i]) >> 1
        else:
            value += _paeth(left, above[i], above[i - bpp] if i >= bpp else 0)
        out[i] = value & 0xFF
    return np.array(out, dtype=np.uint8)


def _unfilter(raw: bytes, offset: int, rows: int, row_bytes: int, bpp: int) -> Tuple[np.ndarray, int]:
    out = np.zeros((rows, row_bytes), dtype=np.uint8)
    prev = np.zeros(row_bytes, dtype=np.uint8)
    for y in range(rows):
        filter_type = raw[offset]
        line = np.frombuffer(raw, dtype=np.uint8, count=row_bytes, offset=offset + 1)
        offset += 1 + row_bytes
        if filter_type == 0:
            recon = line.copy()
        elif filter_type == 1:
            lanes = np.cumsum(line.reshape(-1, bpp), axis=0, dtype=np.uint32)
            recon = (lanes & 0xFF).astype(np.uint8).reshape(-1)
        elif filter_type == 2:
            recon = line + prev
        elif filter_type in (3, 4):
            recon = _unfilter_sequential(filter_type, line, prev, bpp)
        else:
            raise DecodeFailed(f"unknown PNG filter type {filter_type}")
        out[y] = recon
        prev = recon
    return out, offset


def _apply_transparency(samples: np.ndarray, color_type: int, trns: bytes | None) -> np.ndarray:
    if color_type in (4, 6):
        alpha = samples[..., -1]
        color = samples[..., :-1]
    else:
        alpha = np.full(samples.shape[:2], 0xFFFF, dtype=np.uint16)
        color = samples
        if trns:
            key = np.array(struct.unpack(f">{samples.shape[2]}H", trns[: 2 * samples.shape[2]]))
            alpha[np.all(color == key, axis=-1)] = 0
    if color.shape[2] == 1:
        color = np.repeat(color, 3, axis=-1)
    return np.dstack([color, alpha]).astype(np.uint16)


def decode_deep_samples(data: bytes, header: PngHeader) -> np.ndarray:
    """Return an ``(h, w, 4)`` uint16 straight-alpha grid for a 16-bit PNG."""

    channels = _CHANNELS[header.color_type]
    bpp = channels * 2
    compressed, trns = _read_chunks(data)
    try:
        raw = zlib.decompress(compressed)
    except zlib.error as exc:
        raise DecodeFailed(f"PNG image data is corrupt: {exc}") from exc

    width, height = header.width, header.height
    samples = np.zeros((height, width, channels), dtype=np.uint16)
    offset = 0
    for x0, y0, dx, dy in _ADAM7 if header.interlace else _PROGRESSIVE:
        pass_width = max(0, (width - x0 + dx - 1) // dx)
        pass_height = max(0, (height - y0 + dy - 1) // dy)
        if pass_width == 0 or pass_height == 0:
            continue
        row_bytes = pass_width * bpp
        if offset + pass_height * (row_bytes + 1) > len(raw):
            raise DecodeFailed("PNG image data is truncated")
        rows, offset = _unfilter(raw, offset, pass_height, row_bytes, bpp)
        values = rows.view(">u2").reshape(pass_height, pass_width, channels)
        samples[y0::dy, x0::dx] = values
    return _apply_transparency(samples, header.color_type, trns)
