"""YAML configuration lookup for monostage runs.

Where the settings come from, first match wins:

1. `config_path` from the caller (the CLI's `--config`).
2. The file named by `$MONOSTAGE_CONFIG`.
3. `<repo>/config/config.yaml`, with `config.local.yaml` beside it merged on
   top. The repo is the nearest ancestor holding `pyproject.toml` or `.git`.

The first two load a single file with no overlay.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_ENV_VAR = "MONOSTAGE_CONFIG"
BASE_CONFIG_NAME = "config.yaml"
LOCAL_CONFIG_NAME = "config.local.yaml"
REPO_MARKERS = ("pyproject.toml", ".git")


@dataclass(frozen=True)
class ConfigSource:
    """Which files produced the settings: `explicit`, `env`, `base`, `base+local` or `defaults`."""

    mode: str
    paths: tuple[str, ...] = ()
    repo_root: str | None = None

    def describe(self) -> str:
        if not self.paths:
            return self.mode
        return f"{self.mode}: {', '.join(self.paths)}"


def find_repo_root(start: str | os.PathLike[str] | None = None) -> str:
    here = Path(start or os.getcwd()).resolve()
    if here.is_file():
        here = here.parent
    for candidate in (here, *here.parents):
        if any((candidate / marker).exists() for marker in REPO_MARKERS):
            return str(candidate)
    raise FileNotFoundError(f"No {' or '.join(REPO_MARKERS)} found above {here}")


def read_yaml_mapping(path: str) -> dict[str, Any]:
    """Parse `path` as a YAML mapping; an empty file is an empty mapping."""

    with open(path, "r", encoding="utf-8") as handle:
        try:
            payload = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def merge_overlay(base: Any, overlay: Any, *, path: str = "") -> Any:
    """
    Merge `overlay` onto `base`. Mappings merge key by key, anything else is
    replaced, and `null` clears a value back to its default. Replacing a
    mapping or list with a different shape is an error.
    """

    if overlay is None or base is None:
        return overlay
    if isinstance(base, Mapping) and isinstance(overlay, Mapping):
        merged = dict(base)
        for key, value in overlay.items():
            child = f"{path}.{key}" if path else str(key)
            merged[key] = merge_overlay(base[key], value, path=child) if key in base else value
        return merged

    def shape(value: Any) -> str:
        if isinstance(value, Mapping):
            return "mapping"
        if isinstance(value, (list, tuple)):
            return "list"
        return "scalar"

    if shape(base) != shape(overlay):
        raise ValueError(
            f"Invalid config overlay merge at {path or '<root>'}: "
            f"base is {shape(base)} but overlay is {shape(overlay)}"
        )
    return list(overlay) if isinstance(overlay, (list, tuple)) else overlay


def load_config(
    *,
    config_path: str | os.PathLike[str] | None = None,
    env_var: str | None = DEFAULT_ENV_VAR,
    config_dir: str | os.PathLike[str] | None = None,
    start_dir: str | None = None,
    required: bool = True,
) -> tuple[dict[str, Any], ConfigSource]:
    """
    Resolve the raw settings mapping and where it came from.

    `config_dir` replaces `<repo>/config` for the layered lookup. With
    `required=False` a missing repo or base file yields `({}, defaults)`;
    an explicit or environment path must always exist.
    """

    single = str(config_path).strip() if config_path is not None else ""
    mode = "explicit"
    if not single and env_var:
        single = os.environ.get(env_var, "").strip()
        mode = "env"
    if single:
        resolved = os.path.abspath(os.path.expandvars(os.path.expanduser(single)))
        if not os.path.isfile(resolved):
            raise FileNotFoundError(f"Config file not found ({mode}): {resolved}")
        return read_yaml_mapping(resolved), ConfigSource(mode=mode, paths=(resolved,))

    repo_root: str | None = None
    try:
        if config_dir is None:
            repo_root = find_repo_root(start_dir)
            config_dir = os.path.join(repo_root, "config")
        base_path = os.path.abspath(os.path.join(config_dir, BASE_CONFIG_NAME))
        if not os.path.isfile(base_path):
            raise FileNotFoundError(f"Missing base config file: {base_path}")
    except FileNotFoundError:
        if required:
            raise
        return {}, ConfigSource(mode="defaults", repo_root=repo_root)

    cfg = read_yaml_mapping(base_path)
    paths = [base_path]
    local_path = os.path.abspath(os.path.join(config_dir, LOCAL_CONFIG_NAME))
    if os.path.isfile(local_path):
        cfg = merge_overlay(cfg, read_yaml_mapping(local_path))
        paths.append(local_path)

    mode = "base+local" if len(paths) == 2 else "base"
    return cfg, ConfigSource(mode=mode, paths=tuple(paths), repo_root=repo_root)
