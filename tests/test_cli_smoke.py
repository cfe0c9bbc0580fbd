import os
import zipfile
from pathlib import Path

import tomlkit

from monostage import cli


def _touch(path: Path, text: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _write_config(tmp_path: Path, service: Path, **docker: str) -> Path:
    docker_lines = [f"  {key}: '{value}'" for key, value in {"image": "acme/py-builder:3.11", **docker}.items()]
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "\n".join(
            [
                "enabled: true",
                "service:",
                f"  path: '{service.as_posix()}'",
                "staging:",
                f"  root: '{(tmp_path / 'staging').as_posix()}'",
                "docker:",
                *docker_lines,
                "",
            ]
        ),
        encoding="utf-8",
    )
    return config_path


def test_cli_list_stages_smoke(capsys):
    rc = cli.main(["list-stages"])
    assert rc == 0

    out = capsys.readouterr().out
    assert "deps.install:" in out
    assert "archive.update:" in out


def test_cli_rewrite_manifest(tmp_path, capsys):
    manifest = tmp_path / "api" / "pyproject.toml"
    _touch(
        manifest,
        "[tool.poetry.dependencies]\n"
        'python = "^3.11"\n'
        'shared = { path = "../shared", develop = true }\n',
    )

    rc = cli.main(["rewrite-manifest", str(manifest), "--project-root", str(tmp_path)])

    assert rc == 0
    out = capsys.readouterr().out
    assert "../shared -> /var/task/shared" in out
    deps = tomlkit.parse(manifest.read_text(encoding="utf-8"))["tool"]["poetry"]["dependencies"]
    assert deps["shared"]["path"] == "/var/task/shared"
    assert "develop" not in deps["shared"]


def test_cli_build_disabled_is_a_noop(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("enabled: true\n", encoding="utf-8")
    monkeypatch.setenv("MONOSTAGE_CONFIG", str(config_path))

    assert cli.main(["build", "--disabled"]) == 0


def test_cli_build_failure_returns_nonzero_and_cleans_staging(tmp_path):
    service = tmp_path / "mono" / "api"
    _touch(service / "pyproject.toml", '[tool.poetry]\nname = "api"\n')
    config_path = _write_config(tmp_path, service, executable="definitely-not-docker-xyz")

    rc = cli.main(["build", "--config", str(config_path), "--log-dir", str(tmp_path / "logs")])

    assert rc == 1
    assert os.listdir(tmp_path / "staging") == []
    (log_file,) = list((tmp_path / "logs").glob("*_oplog.log"))
    log_text = log_file.read_text(encoding="utf-8")
    assert "Command not found" in log_text
    assert f"Config: explicit: {config_path}" in log_text


def test_cli_package_and_update(tmp_path):
    service = tmp_path / "mono" / "api"
    _touch(service / ".serverless" / "requirements" / "six.py", "six")
    config_path = _write_config(tmp_path, service)

    assert cli.main(["package", "--config", str(config_path)]) == 0
    archive = service / ".serverless" / "api.zip"
    with zipfile.ZipFile(archive) as zf:
        assert zf.namelist() == ["six.py"]

    _touch(service / ".serverless" / "requirements" / "extra.py", "extra")
    assert cli.main(["package", "--update", "--config", str(config_path)]) == 0
    with zipfile.ZipFile(archive) as zf:
        assert sorted(zf.namelist()) == ["extra.py", "six.py"]
