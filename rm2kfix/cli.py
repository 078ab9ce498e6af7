"""Command-line interface for the RPG Maker PNG fixer."""
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from .palette_ops import ConvertOptions
from .project_system import ProjectError, resolve_project
from .watcher import run_once, watch


logger = logging.getLogger(__name__)

ABOUT_TEXT = """
rm2kfix is a tool for auto-fixing PNG files so they work in RPG Maker 2000/2003.
It watches an RPG Maker project folder for changes and converts PNG files to
8-bit PNGs (if they do not exceed 256 colors).

How it works
-------------------------
If a PNG file is not already an 8-bit PNG, it is converted by:
- iterating over every pixel and building up a palette of colors
- treating the top-left pixel as the transparent color (chipsets use the
  transparent tile instead)

If a PNG file exceeds 256 colors, it is left untouched.

How to use (beginners)
-------------------------
Back up your RPG Maker project first, then drag the project folder onto this
program.

How to use (command line)
-------------------------
rm2kfix [--debug] [--fix] <project_folder>
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rm2kfix",
        description="Convert true-color PNGs in an RPG Maker project to 8-bit indexed PNGs",
    )
    parser.add_argument(
        "folder", nargs="?", type=Path, default=None, help="RPG Maker project folder"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Log additional debugging information"
    )
    parser.add_argument(
        "--fix",
        action="store_true",
        help="Fix files once and exit instead of watching the folder",
    )
    return parser


def _setup_logging(debug: bool) -> None:
    debug = debug or bool(os.environ.get("RM2KFIX_DEBUG"))
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter("%(message)s"))
    root_logger.handlers = [stream]

    log_name = os.environ.get("RM2KFIX_DEBUG_LOG")
    if log_name:
        log_path = Path(log_name)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        root_logger.addHandler(handler)
        root_logger.info("rm2kfix debug log at %s", log_path)


def _wait_for_enter() -> None:
    print("\nPress Enter to close")
    try:
        input()
    except EOFError:
        pass


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.debug)

    if args.folder is None:
        # Launched by double-click or drag-and-drop; keep the window open.
        print(ABOUT_TEXT)
        _wait_for_enter()
        return 0

    try:
        project = resolve_project(args.folder)
    except (FileNotFoundError, NotADirectoryError, ProjectError) as exc:
        parser.error(str(exc))

    options = ConvertOptions()
    logger.debug(
        "Project root=%s asset_dirs=%s", project.root, [d.name for d in project.asset_dirs]
    )
    outcomes = run_once(project, options)
    if args.fix:
        failed = [o for o in outcomes if o.status in ("failed", "internal")]
        return 0 if not failed else 1

    try:
        return watch(project, options)
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
