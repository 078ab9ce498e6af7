from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

RUNTIME_SENTINEL = "RPG_RT.exe"

RM2K_ASSET_FOLDERS = (
    "Battle",
    "CharSet",
    "ChipSet",
    "FaceSet",
    "Panorama",
    "Picture",
    "Monster",
    "System",
)
RM2K3_ASSET_FOLDERS = (
    "Backdrop",
    "Battle2",
    "BattleCharSet",
    "BattleWeapon",
    "Frame",
    "System2",
)
ASSET_FOLDERS: Sequence[str] = RM2K_ASSET_FOLDERS + RM2K3_ASSET_FOLDERS


class ProjectError(ValueError):
    """Raised when a folder is not an RPG Maker 2000/2003 project."""


@dataclass(slots=True)
class ProjectPaths:
    root: Path
    runtime: Path
    asset_dirs: List[Path]


def _find_runtime(root: Path) -> Path | None:
    for entry in root.iterdir():
        if entry.name.lower() == RUNTIME_SENTINEL.lower() and entry.is_file():
            return entry
    return None


def find_asset_dirs(root: Path) -> List[Path]:
    """Return existing asset folders of ``root`` in canonical order.

    Projects mix ``Charset``/``CharSet`` and similar, so names are matched
    case-insensitively.
    """

    entries: Dict[str, Path] = {
        entry.name.lower(): entry for entry in root.iterdir() if entry.is_dir()
    }
    found: List[Path] = []
    for name in ASSET_FOLDERS:
        match = entries.get(name.lower())
        if match is not None:
            found.append(match)
    return found


def resolve_project(path: Path) -> ProjectPaths:
    root = Path(path).expanduser()
    if not root.exists():
        raise FileNotFoundError(f"File or folder does not exist: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Must be a folder: {root}")
    root = root.resolve()
    runtime = _find_runtime(root)
    if runtime is None:
        raise ProjectError(
            f"Unable to find {RUNTIME_SENTINEL} in given folder: {root / RUNTIME_SENTINEL}"
        )
    return ProjectPaths(root=root, runtime=runtime, asset_dirs=find_asset_dirs(root))
