"""Folder polling and per-file conversion policy."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Literal

from .file_scanner import FileSignature, ScanOptions, iter_png_files, snapshot_png_files
from .palette_ops import ConversionError, ConversionErrorKind, ConvertOptions, is_transient
from .processing import convert_file_in_place
from .project_system import ProjectPaths
from .quantization import IndexedImage


logger = logging.getLogger(__name__)

CONVERTED_FILE_TEXT = "Converted file to 8-bit PNG: %s"

OutcomeStatus = Literal["converted", "skipped", "too_large", "failed", "internal"]

_STATUS_BY_KIND: Dict[ConversionErrorKind, OutcomeStatus] = {
    ConversionErrorKind.ALREADY_COMPATIBLE: "skipped",
    ConversionErrorKind.PALETTE_TOO_LARGE: "too_large",
    ConversionErrorKind.DECODE_FAILED: "failed",
    ConversionErrorKind.OPEN_FAILED: "failed",
    ConversionErrorKind.SWAP_FAILED: "failed",
    ConversionErrorKind.DIMENSION_MISMATCH: "internal",
    ConversionErrorKind.PIXEL_MISMATCH: "internal",
}


@dataclass(slots=True)
class ConvertOutcome:
    path: Path
    status: OutcomeStatus
    error: ConversionError | None = None
    attempts: int = 1
    image: IndexedImage | None = None


def convert_with_retry(
    path: Path,
    options: ConvertOptions | None = None,
    *,
    retries: int = 10,
    delay: float = 0.01,
    sleep: Callable[[float], None] = time.sleep,
) -> ConvertOutcome:
    """Convert ``path`` in place, retrying while the file looks half-written.

    Editors keep the file locked (MS Paint on Windows) or flush it in pieces
    (Pinta on macOS) for a few milliseconds after saving, which shows up as
    open or decode failures. Only those kinds are retried.
    """

    attempts = 0
    while True:
        attempts += 1
        try:
            image = convert_file_in_place(path, options)
        except ConversionError as exc:
            if is_transient(exc.kind) and attempts <= retries:
                logger.debug(
                    "Retrying path=%s kind=%s attempt=%s", path, exc.kind.value, attempts
                )
                sleep(delay)
                continue
            return ConvertOutcome(
                path=path, status=_STATUS_BY_KIND[exc.kind], error=exc, attempts=attempts
            )
        return ConvertOutcome(path=path, status="converted", attempts=attempts, image=image)


class FolderWatcher:
    """Reports PNG files created or modified between two polls."""

    def __init__(self, roots: Iterable[Path], recursive: bool = True) -> None:
        self._options = ScanOptions(roots=list(roots), recursive=recursive)
        self._snapshot: Dict[Path, FileSignature] = snapshot_png_files(self._options)

    def poll(self) -> List[Path]:
        current = snapshot_png_files(self._options)
        changed = sorted(
            path for path, signature in current.items() if self._snapshot.get(path) != signature
        )
        self._snapshot = current
        return changed

    def absorb(self, path: Path) -> None:
        """Record the current state of ``path`` so our own rewrite is not reported."""

        try:
            stat = path.stat()
        except FileNotFoundError:
            self._snapshot.pop(path, None)
            return
        self._snapshot[path] = (stat.st_mtime_ns, stat.st_size)


def run_once(project: ProjectPaths, options: ConvertOptions | None = None) -> List[ConvertOutcome]:
    """Convert every PNG currently in the project's asset folders."""

    outcomes: List[ConvertOutcome] = []
    for path in iter_png_files(ScanOptions(roots=project.asset_dirs)):
        outcome = convert_with_retry(path, options, retries=0)
        outcomes.append(outcome)
        if outcome.status == "internal":
            logger.error("Skipping file: %s, error: %s", path, outcome.error)
        elif outcome.status in ("too_large", "failed"):
            logger.info("Skipping file: %s, error: %s", path, outcome.error)

    converted = [outcome.path for outcome in outcomes if outcome.status == "converted"]
    if not converted:
        logger.info("No files converted.")
    for path in converted:
        logger.info(CONVERTED_FILE_TEXT, path)
    return outcomes


def _report_change(outcome: ConvertOutcome) -> bool:
    """Log a watched file's outcome. Returns False when watching must stop."""

    if outcome.status == "converted":
        logger.info(CONVERTED_FILE_TEXT, outcome.path)
        if outcome.attempts > 1:
            logger.debug("(retries taken: %d)", outcome.attempts - 1)
    elif outcome.status == "too_large":
        logger.info("Failed to convert changed file: %s, error: %s", outcome.path, outcome.error)
    elif outcome.status == "failed":
        logger.info("Was unable to fix file: %s, error: %s", outcome.path, outcome.error)
    elif outcome.status == "internal":
        logger.error(
            "Failed to convert changed file: %s\ninternal error: %s", outcome.path, outcome.error
        )
        return False
    return True


def watch(
    project: ProjectPaths,
    options: ConvertOptions | None = None,
    *,
    poll_interval: float = 0.25,
    stop: Callable[[], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    retries: int = 10,
    retry_delay: float = 0.01,
) -> int:
    """Poll the asset folders and convert changed PNGs until ``stop()`` is true.

    Returns 0 when stopped, 1 after an internal conversion defect.
    """

    watcher = FolderWatcher(project.asset_dirs)
    logger.info("Waiting for you to change files in asset folders:")
    for asset_dir in project.asset_dirs:
        logger.info("- %s", asset_dir.name)

    while stop is None or not stop():
        for path in watcher.poll():
            outcome = convert_with_retry(
                path, options, retries=retries, delay=retry_delay, sleep=sleep
            )
            if outcome.status == "converted":
                watcher.absorb(path)
            if not _report_change(outcome):
                return 1
        sleep(poll_interval)
    return 0
