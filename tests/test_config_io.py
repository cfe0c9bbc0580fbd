import os

import pytest

from monostage.foundation.config_io import find_repo_root, load_config, merge_overlay


def test_load_config_base_only(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MONOSTAGE_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text("enabled: false\ndocker:\n  image: a\n", encoding="utf-8")

    cfg, source = load_config(config_dir=str(tmp_path), env_var="TEST_MONOSTAGE_CONFIG")

    assert cfg == {"enabled": False, "docker": {"image": "a"}}
    assert source.mode == "base"
    assert [os.path.basename(p) for p in source.paths] == ["config.yaml"]


def test_load_config_base_plus_local_overlay(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MONOSTAGE_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text(
        "docker:\n  image: a\n  timeout_s: 10\n", encoding="utf-8"
    )
    (tmp_path / "config.local.yaml").write_text(
        "docker:\n  image: b\nenabled: true\n", encoding="utf-8"
    )

    cfg, source = load_config(config_dir=str(tmp_path), env_var="TEST_MONOSTAGE_CONFIG")

    assert cfg == {"docker": {"image": "b", "timeout_s": 10}, "enabled": True}
    assert source.mode == "base+local"
    assert len(source.paths) == 2
    assert source.describe().startswith("base+local: ")


def test_load_config_overlay_type_mismatch_raises(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MONOSTAGE_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text("staging:\n  exclude: [.git]\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("staging: .git\n", encoding="utf-8")

    with pytest.raises(ValueError, match=r"Invalid config overlay merge at staging"):
        load_config(config_dir=str(tmp_path), env_var="TEST_MONOSTAGE_CONFIG")


def test_load_config_invalid_overlay_yaml_names_file(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MONOSTAGE_CONFIG", raising=False)
    (tmp_path / "config.yaml").write_text("enabled: false\n", encoding="utf-8")
    (tmp_path / "config.local.yaml").write_text("exclude: [a, b\n", encoding="utf-8")

    with pytest.raises(ValueError) as excinfo:
        load_config(config_dir=str(tmp_path), env_var="TEST_MONOSTAGE_CONFIG")

    assert "config.local.yaml" in str(excinfo.value)


def test_load_config_env_override_loads_single_file(tmp_path, monkeypatch):
    base_dir = tmp_path / "base"
    base_dir.mkdir()
    (base_dir / "config.yaml").write_text("enabled: false\n", encoding="utf-8")
    (base_dir / "config.local.yaml").write_text("enabled: true\n", encoding="utf-8")
    env_path = tmp_path / "ci.yaml"
    env_path.write_text("docker:\n  image: ci\n", encoding="utf-8")

    monkeypatch.setenv("TEST_MONOSTAGE_CONFIG", str(env_path))
    cfg, source = load_config(config_dir=str(base_dir), env_var="TEST_MONOSTAGE_CONFIG")

    assert cfg == {"docker": {"image": "ci"}}
    assert source.mode == "env"
    assert source.paths == (os.path.abspath(str(env_path)),)


def test_explicit_path_wins_over_env(tmp_path, monkeypatch):
    explicit = tmp_path / "explicit.yaml"
    explicit.write_text("", encoding="utf-8")
    monkeypatch.setenv("TEST_MONOSTAGE_CONFIG", str(tmp_path / "missing.yaml"))

    cfg, source = load_config(config_path=str(explicit), env_var="TEST_MONOSTAGE_CONFIG")

    assert cfg == {}
    assert source.mode == "explicit"


def test_missing_explicit_file_raises_even_when_optional(tmp_path):
    with pytest.raises(FileNotFoundError, match="explicit"):
        load_config(config_path=str(tmp_path / "nope.yaml"), required=False)


def test_non_mapping_config_is_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError, match="YAML mapping"):
        load_config(config_path=str(path))


def test_missing_base_config_raises_or_falls_back(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MONOSTAGE_CONFIG", raising=False)

    with pytest.raises(FileNotFoundError, match="Missing base config file"):
        load_config(config_dir=str(tmp_path / "nope"), env_var="TEST_MONOSTAGE_CONFIG")

    cfg, source = load_config(
        config_dir=str(tmp_path / "nope"), env_var="TEST_MONOSTAGE_CONFIG", required=False
    )
    assert cfg == {}
    assert source.mode == "defaults"
    assert source.describe() == "defaults"


def test_repo_config_dir_is_found_from_start_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("TEST_MONOSTAGE_CONFIG", raising=False)
    (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "config.yaml").write_text("enabled: true\n", encoding="utf-8")
    nested = tmp_path / "services" / "api"
    nested.mkdir(parents=True)

    cfg, source = load_config(env_var="TEST_MONOSTAGE_CONFIG", start_dir=str(nested))

    assert cfg == {"enabled": True}
    assert source.repo_root == str(tmp_path.resolve())


def test_find_repo_root_walks_up_to_marker(tmp_path):
    (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_repo_root(nested) == str(tmp_path.resolve())


def test_merge_overlay_rules():
    base = {"docker": {"image": "a", "install_command": ["poetry", "install"]}, "enabled": False}

    merged = merge_overlay(base, {"docker": {"install_command": ["pip"], "image": None}})

    assert merged == {"docker": {"image": None, "install_command": ["pip"]}, "enabled": False}
    with pytest.raises(ValueError, match="docker.install_command"):
        merge_overlay(base, {"docker": {"install_command": "pip"}})
