"""Directory scanning helpers for asset folders."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Sequence, Tuple

_PNG_EXTENSION = ".png"

FileSignature = Tuple[int, int]


def is_png(path: Path) -> bool:
    return path.suffix.lower() == _PNG_EXTENSION


@dataclass(slots=True)
class ScanOptions:
    roots: Sequence[Path]
    recursive: bool = True


def iter_png_files(options: ScanOptions) -> Iterator[Path]:
    """Yield regular ``.png`` files under the given roots.

    The swap's ``.afterRm2kFix``/``.beforeRm2kFix`` files never match since
    their suffix is not ``.png``.
    """

    for root in options.roots:
        root = root.expanduser()
        candidates = root.rglob("*") if options.recursive else root.glob("*")
        for path in candidates:
            if is_png(path) and path.is_file():
                yield path


def snapshot_png_files(options: ScanOptions) -> Dict[Path, FileSignature]:
    """Map each PNG to its ``(mtime_ns, size)``; files that vanish mid-scan are skipped."""

    snapshot: Dict[Path, FileSignature] = {}
    for path in iter_png_files(options):
        try:
            stat = path.stat()
        except FileNotFoundError:
            continue
        snapshot[path] = (stat.st_mtime_ns, stat.st_size)
    return snapshot
