from __future__ import annotations

import pytest

from rm2kfix.file_scanner import ScanOptions, iter_png_files
from rm2kfix.project_system import ProjectError, resolve_project


def test_resolve_project_lists_asset_folders_in_order(tmp_path):
    (tmp_path / "RPG_RT.exe").write_bytes(b"MZ")
    for name in ("System2", "Picture", "charset", "Music"):
        (tmp_path / name).mkdir()

    project = resolve_project(tmp_path)

    assert project.root == tmp_path.resolve()
    assert project.runtime.name == "RPG_RT.exe"
    assert [path.name for path in project.asset_dirs] == ["charset", "Picture", "System2"]


def test_resolve_project_requires_runtime(tmp_path):
    (tmp_path / "CharSet").mkdir()

    with pytest.raises(ProjectError, match="RPG_RT.exe"):
        resolve_project(tmp_path)


def test_resolve_project_rejects_missing_and_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        resolve_project(tmp_path / "nope")
    (tmp_path / "file.png").write_bytes(b"")
    with pytest.raises(NotADirectoryError):
        resolve_project(tmp_path / "file.png")


def test_iter_png_files_filters_extensions(tmp_path):
    (tmp_path / "nested").mkdir()
    (tmp_path / "a.png").write_bytes(b"")
    (tmp_path / "B.PNG").write_bytes(b"")
    (tmp_path / "nested" / "c.png").write_bytes(b"")
    (tmp_path / "a.png.afterRm2kFix").write_bytes(b"")
    (tmp_path / "d.bmp").write_bytes(b"")
    (tmp_path / "folder.png").mkdir()

    recursive = sorted(p.name for p in iter_png_files(ScanOptions(roots=[tmp_path])))
    flat = sorted(
        p.name for p in iter_png_files(ScanOptions(roots=[tmp_path], recursive=False))
    )

    assert recursive == ["B.PNG", "a.png", "c.png"]
    assert flat == ["B.PNG", "a.png"]
