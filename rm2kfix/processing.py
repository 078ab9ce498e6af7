"""High-level PNG conversion pipeline."""
from __future__ import annotations

import logging
import os
from pathlib import Path

from .image_io import SourceImage, decode_png, encode_png
from .palette_ops import (
    AlreadyCompatible,
    ConvertOptions,
    OpenFailed,
    SwapFailed,
    build_palette,
)
from .quantization import IndexedImage, reencode


logger = logging.getLogger(__name__)

AFTER_SUFFIX = ".afterRm2kFix"
BEFORE_SUFFIX = ".beforeRm2kFix"


def convert_image(source: SourceImage, options: ConvertOptions | None = None) -> IndexedImage:
    """Convert a decoded image into a verified indexed image.

    Raises :class:`AlreadyCompatible` if ``source`` is already indexed within
    budget; otherwise any error from palette building or verification.
    """

    options = options or ConvertOptions()
    if source.is_indexed and source.palette_len <= options.max_colors:
        raise AlreadyCompatible(source.palette_len, options.max_colors)
    palette = build_palette(source, options)
    return reencode(source, palette)


def convert(data: bytes, options: ConvertOptions | None = None) -> IndexedImage:
    return convert_image(decode_png(data), options)


def _with_suffix(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def _write_synced(path: Path, payload: bytes) -> None:
    with path.open("wb") as fh:
        fh.write(payload)
        fh.flush()
        os.fsync(fh.fileno())


def convert_file_in_place(path: Path, options: ConvertOptions | None = None) -> IndexedImage:
    """Convert ``path`` and swap the result over the original file.

    The new image is written next to the original first, the original is
    renamed out of the way, the new file takes its name and the backup is
    removed. Read failures raise :class:`OpenFailed` so callers can retry.
    """

    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise OpenFailed(path, str(exc)) from exc

    converted = convert(data, options)
    payload = encode_png(converted)

    after_path = _with_suffix(path, AFTER_SUFFIX)
    before_path = _with_suffix(path, BEFORE_SUFFIX)
    try:
        _write_synced(after_path, payload)
    except OSError as exc:
        after_path.unlink(missing_ok=True)
        raise SwapFailed(path, f"Unable to write converted file: {exc}") from exc
    try:
        path.rename(before_path)
    except OSError as exc:
        after_path.unlink(missing_ok=True)
        raise SwapFailed(path, f"Unable to backup original file: {exc}") from exc
    try:
        after_path.rename(path)
    except OSError as exc:
        raise SwapFailed(path, f"Unable to move converted file into place: {exc}") from exc
    try:
        before_path.unlink()
    except OSError as exc:
        raise SwapFailed(path, f"Unable to remove original: {exc}") from exc

    logger.debug(
        "Swapped converted image path=%s size=%sx%s palette=%s (natural %s)",
        path,
        converted.width,
        converted.height,
        converted.palette.size,
        converted.palette.natural_size,
    )
    return converted
