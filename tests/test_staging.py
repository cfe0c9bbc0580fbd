from pathlib import Path

import pytest

from monostage.framework.config import DEFAULT_STAGING_EXCLUDE
from monostage.framework.errors import StagingError
from monostage.stages.locate import find_manifests
from monostage.stages.staging import empty_dir, mirror_tree, remove_tree


def _touch(path: Path, text: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _make_monorepo(root: Path) -> None:
    _touch(root / "api" / "pyproject.toml", "[tool.poetry]\n")
    _touch(root / "api" / "handler.py")
    _touch(root / "api" / "poetry.lock")
    _touch(root / "api" / ".venv" / "bin" / "python")
    _touch(root / ".git" / "HEAD")
    _touch(root / "shared" / "log" / "pyproject.toml", "[tool.poetry]\n")
    _touch(root / "shared" / "log" / "log" / "__init__.py")
    _touch(root / "shared" / "log" / "__pycache__" / "x.cpython-311.pyc")
    _touch(root / "node_modules" / "serverless" / "index.js")


def _relative_files(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()}


def test_mirror_tree_skips_excluded_paths(tmp_path):
    source = tmp_path / "mono"
    _make_monorepo(source)
    dest = tmp_path / "stage" / "run_slspyc"

    copied = mirror_tree(str(source), str(dest), DEFAULT_STAGING_EXCLUDE)

    assert _relative_files(dest) == {
        "api/pyproject.toml",
        "api/handler.py",
        "shared/log/pyproject.toml",
        "shared/log/log/__init__.py",
    }
    assert copied == 4


def test_mirror_tree_starts_from_empty_destination(tmp_path):
    source = tmp_path / "mono"
    _make_monorepo(source)
    dest = tmp_path / "stage"
    _touch(dest / "stale" / "leftover.txt")

    mirror_tree(str(source), str(dest), DEFAULT_STAGING_EXCLUDE)

    assert not (dest / "stale").exists()


def test_mirror_tree_missing_source_raises(tmp_path):
    with pytest.raises(StagingError, match="does not exist"):
        mirror_tree(str(tmp_path / "missing"), str(tmp_path / "stage"), ())


def test_mirror_tree_refuses_destination_inside_source(tmp_path):
    source = tmp_path / "mono"
    _make_monorepo(source)

    with pytest.raises(StagingError, match="must not live inside"):
        mirror_tree(str(source), str(source / "tmp" / "stage"), ())


def test_empty_dir_and_remove_tree(tmp_path):
    target = tmp_path / "bind"
    _touch(target / "a" / "b.txt")
    _touch(target / "c.txt")

    empty_dir(str(target))
    assert target.is_dir()
    assert list(target.iterdir()) == []

    _touch(target / "d" / "e.txt")
    remove_tree(str(target))
    assert not target.exists()

    remove_tree(str(target))


def test_find_manifests_returns_root_first(tmp_path):
    _make_monorepo(tmp_path)

    found = find_manifests(str(tmp_path))

    assert [Path(p).relative_to(tmp_path).as_posix() for p in found] == [
        "api/pyproject.toml",
        "shared/log/pyproject.toml",
    ]


def test_find_manifests_tolerates_empty_tree(tmp_path):
    assert find_manifests(str(tmp_path)) == []
