import os
import stat
import sys

import pytest

from monostage.framework.errors import ManifestParseError, ManifestWriteError
from monostage.framework.manifest import Manifest


def test_dependency_tables_lists_main_and_groups():
    manifest = Manifest.loads(
        "[tool.poetry.dependencies]\n"
        'python = "^3.9"\n'
        "[tool.poetry.group.docs.dependencies]\n"
        'mkdocs = "*"\n'
    )

    labels = [label for label, _table in manifest.dependency_tables(("tool", "poetry"))]

    assert labels == ["dependencies", "group.docs.dependencies"]


def test_missing_section_yields_nothing():
    manifest = Manifest.loads('[project]\nname = "x"\n')

    assert list(manifest.dependency_tables(("tool", "poetry"))) == []
    assert manifest.remove_dev_dependencies(("tool", "poetry")) == []
    assert manifest.section(("project", "name")) is None


def test_loads_reports_source_in_error():
    with pytest.raises(ManifestParseError, match="example.toml"):
        Manifest.loads("a = ", path="example.toml")


def test_save_replaces_file_and_leaves_no_temporaries(tmp_path):
    target = tmp_path / "pyproject.toml"
    target.write_text('[tool.poetry.dev-dependencies]\npytest = "*"\n', encoding="utf-8")
    manifest = Manifest.load(str(target))

    manifest.remove_dev_dependencies(("tool", "poetry"))
    manifest.save()

    assert "dev-dependencies" not in target.read_text(encoding="utf-8")
    assert sorted(os.listdir(tmp_path)) == ["pyproject.toml"]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
def test_save_keeps_file_mode(tmp_path):
    target = tmp_path / "pyproject.toml"
    target.write_text('[tool.poetry]\nname = "x"\n', encoding="utf-8")
    os.chmod(target, 0o644)

    Manifest.load(str(target)).save()

    assert stat.S_IMODE(os.stat(target).st_mode) == 0o644


def test_save_without_path_raises():
    with pytest.raises(ManifestWriteError):
        Manifest.loads('a = 1\n').save()


def test_crlf_line_endings_round_trip(tmp_path):
    target = tmp_path / "pyproject.toml"
    raw = b'[tool.poetry]\r\nname = "x"\r\n'
    target.write_bytes(raw)

    Manifest.load(str(target)).save()

    assert target.read_bytes() == raw
