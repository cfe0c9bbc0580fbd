from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, replace
from typing import Any, Mapping

from monostage.framework.paths import has_parent_traversal

DEFAULT_STAGING_EXCLUDE: tuple[str, ...] = (
    ".git",
    ".venv",
    "node_modules",
    "poetry.lock",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
)
DEFAULT_COLLECT_EXCLUDE: tuple[str, ...] = (
    "pip*",
    "setuptools*",
    "wheel*",
    "*.pth",
    "*.virtualenv",
    "__pycache__",
    "_distutils_hack",
    "pkg_resources",
    "_virtualenv.py",
)
DEFAULT_INSTALL_COMMAND: tuple[str, ...] = ("poetry", "install", "--only", "main")
DEFAULT_EDITABLE_KEYS: tuple[str, ...] = ("develop", "editable")
DEFAULT_MOUNT_PATH = "/var/task"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts True/False, 0/1, and the strings true/false/1/0/yes/no
    (case-insensitive). Raises ValueError naming `path` for anything else.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
        raise ValueError(f"Invalid boolean for {path}: {value!r}")

    raise ValueError(f"Invalid boolean for {path}: {value!r}")


def parse_int(value: Any, path: str) -> int:
    if value is None:
        raise ValueError(f"Invalid config value for {path}: None")
    if isinstance(value, bool):
        raise ValueError(f"Invalid config type for {path}: expected int, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValueError(f"Invalid config value for {path}: must be an int")
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid config value for {path}: must be an int") from exc
    raise ValueError(f"Invalid config type for {path}: expected int")


def parse_string_list(value: Any, path: str) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.split()
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValueError(f"Invalid config type for {path}: expected list of strings")
    out: list[str] = []
    for idx, item in enumerate(items):
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"Invalid config value for {path}[{idx}]: must be a non-empty string")
        out.append(item.strip())
    return tuple(out)


@dataclass(frozen=True)
class BuildConfig:
    enabled: bool

    service_path: str | None
    service_name: str | None
    output_dir_name: str

    source_path: str | None
    staging_root: str
    staging_exclude: tuple[str, ...]

    manifest_name: str
    manifest_section: tuple[str, ...]
    editable_keys: tuple[str, ...]
    remap_service_manifest: bool

    docker_image: str | None
    docker_executable: str
    mount_path: str
    install_command: tuple[str, ...]
    install_timeout_s: int

    python_version: str | None
    collect_exclude: tuple[str, ...]

    log_dir: str | None
    log_level: str

    @property
    def output_dir(self) -> str:
        return os.path.join(self._require_service_path(), self.output_dir_name)

    @property
    def requirements_dir(self) -> str:
        return os.path.join(self.output_dir, "requirements")

    @property
    def archive_path(self) -> str:
        return os.path.join(self.output_dir, f"{self.effective_service_name}.zip")

    @property
    def effective_service_name(self) -> str:
        return self.service_name or os.path.basename(self._require_service_path())

    @property
    def effective_source_path(self) -> str:
        return self.source_path or os.path.dirname(self._require_service_path())

    @property
    def service_subdir(self) -> str:
        """Service location inside the staged tree, "/"-separated ("." when it is the root)."""

        relative = os.path.relpath(self._require_service_path(), self.effective_source_path)
        return relative.replace(os.sep, "/")

    def _require_service_path(self) -> str:
        if not self.service_path:
            raise ValueError("service.path is required")
        return self.service_path

    def with_overrides(self, **changes: Any) -> "BuildConfig":
        """Return a validated copy with non-None `changes` applied (CLI flags)."""

        applied = {key: value for key, value in changes.items() if value is not None}
        updated = replace(self, **applied) if applied else self
        updated.validate()
        return updated

    def validate(self) -> None:
        if not self.enabled:
            return
        if not self.service_path:
            raise ValueError("service.path is required when enabled=true")
        if not self.docker_image:
            raise ValueError("docker.image is required when enabled=true")
        if not self.mount_path.startswith("/"):
            raise ValueError(f"docker.mount_path must be an absolute POSIX path: {self.mount_path!r}")
        outside = (
            f"service.path {self.service_path} is not under staging.source_path {self.effective_source_path}"
        )
        try:
            subdir = self.service_subdir
        except ValueError as exc:
            # relpath across Windows drives
            raise ValueError(outside) from exc
        if has_parent_traversal(subdir) or os.path.isabs(subdir):
            raise ValueError(outside)

    @staticmethod
    def from_dict(
        cfg: Mapping[str, Any], *, validate: bool = True
    ) -> tuple["BuildConfig", list[str]]:
        """
        Parse and validate configuration, returning (BuildConfig, warnings).

        Raises:
            ValueError: if keys are missing or invalid, or unknown keys are
            present while `strict: true`.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")

        warnings: list[str] = []

        strict_unknown_keys = False
        if "strict" in cfg:
            strict_unknown_keys = parse_bool(cfg.get("strict"), "strict")

        schema: Mapping[str, Any] = {
            "strict": None,
            "enabled": None,
            "service": {"path": None, "name": None, "output_dir": None},
            "staging": {"root": None, "source_path": None, "exclude": None},
            "manifest": {
                "name": None,
                "section": None,
                "editable_keys": None,
                "remap_service_manifest": None,
            },
            "docker": {
                "image": None,
                "executable": None,
                "mount_path": None,
                "install_command": None,
                "timeout_s": None,
            },
            "collect": {"python_version": None, "exclude": None},
            "logging": {"dir": None, "level": None},
        }

        def collect_unknown_keys(mapping: Any, sub: Mapping[str, Any], *, prefix: str) -> list[str]:
            if not isinstance(mapping, Mapping):
                return []
            unknown: list[str] = []
            for key, value in mapping.items():
                dotted = f"{prefix}.{key}" if prefix else str(key)
                if key not in sub:
                    unknown.append(dotted)
                    continue
                if isinstance(sub[key], Mapping):
                    unknown.extend(collect_unknown_keys(value, sub[key], prefix=dotted))
            return unknown

        unknown_keys = collect_unknown_keys(cfg, schema, prefix="")
        if unknown_keys:
            if strict_unknown_keys:
                raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown_keys))}")
            warnings.extend(f"Unknown config key: {key}" for key in unknown_keys)

        def get_mapping(path: str) -> Mapping[str, Any]:
            value = cfg.get(path)
            if value is None:
                return {}
            if not isinstance(value, Mapping):
                raise ValueError(f"Invalid config type for {path}: expected mapping")
            return value

        def optional_str(section: Mapping[str, Any], key: str, path: str) -> str | None:
            value = section.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ValueError(f"Invalid config type for {path}: expected string")
            return value.strip() or None

        def normalize_path(value: str | None) -> str | None:
            if value is None:
                return None
            return os.path.abspath(os.path.expandvars(os.path.expanduser(value)))

        service = get_mapping("service")
        staging = get_mapping("staging")
        manifest = get_mapping("manifest")
        docker = get_mapping("docker")
        collect = get_mapping("collect")
        logging_cfg = get_mapping("logging")

        enabled = parse_bool(cfg.get("enabled", False), "enabled")

        section_raw = optional_str(manifest, "section", "manifest.section") or "tool.poetry"
        section = tuple(part.strip() for part in section_raw.split("."))
        if any(not part for part in section):
            raise ValueError(f"Invalid config value for manifest.section: {section_raw!r}")

        manifest_name = optional_str(manifest, "name", "manifest.name") or "pyproject.toml"
        if os.sep in manifest_name or "/" in manifest_name:
            raise ValueError(f"manifest.name must be a bare filename: {manifest_name!r}")

        log_level = (optional_str(logging_cfg, "level", "logging.level") or "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid config value for logging.level: {log_level!r} (expected one of {', '.join(LOG_LEVELS)})"
            )

        timeout_s = parse_int(docker.get("timeout_s", 1800), "docker.timeout_s")
        if timeout_s <= 0:
            raise ValueError("docker.timeout_s must be > 0")

        python_version = collect.get("python_version")
        if python_version is not None:
            # YAML reads 3.10 as a float; require a string to keep the digits.
            if not isinstance(python_version, str) or not python_version.strip():
                raise ValueError("collect.python_version must be a quoted string like '3.9'")
            python_version = python_version.strip()

        mount_path = optional_str(docker, "mount_path", "docker.mount_path") or DEFAULT_MOUNT_PATH
        mount_path = mount_path.rstrip("/") or "/"

        if "editable_keys" in manifest:
            editable_keys = parse_string_list(manifest["editable_keys"], "manifest.editable_keys")
        else:
            editable_keys = DEFAULT_EDITABLE_KEYS

        built = BuildConfig(
            enabled=enabled,
            service_path=normalize_path(optional_str(service, "path", "service.path")),
            service_name=optional_str(service, "name", "service.name"),
            output_dir_name=optional_str(service, "output_dir", "service.output_dir") or ".serverless",
            source_path=normalize_path(optional_str(staging, "source_path", "staging.source_path")),
            staging_root=normalize_path(optional_str(staging, "root", "staging.root"))
            or os.path.join(tempfile.gettempdir(), "monostage"),
            staging_exclude=(
                parse_string_list(staging["exclude"], "staging.exclude")
                if "exclude" in staging
                else DEFAULT_STAGING_EXCLUDE
            ),
            manifest_name=manifest_name,
            manifest_section=section,
            editable_keys=editable_keys,
            remap_service_manifest=parse_bool(
                manifest.get("remap_service_manifest", True), "manifest.remap_service_manifest"
            ),
            docker_image=optional_str(docker, "image", "docker.image"),
            docker_executable=optional_str(docker, "executable", "docker.executable") or "docker",
            mount_path=mount_path,
            install_command=(
                parse_string_list(docker["install_command"], "docker.install_command")
                if "install_command" in docker
                else DEFAULT_INSTALL_COMMAND
            ),
            install_timeout_s=timeout_s,
            python_version=python_version,
            collect_exclude=(
                parse_string_list(collect["exclude"], "collect.exclude")
                if "exclude" in collect
                else DEFAULT_COLLECT_EXCLUDE
            ),
            log_dir=normalize_path(optional_str(logging_cfg, "dir", "logging.dir")),
            log_level=log_level,
        )
        if validate:
            built.validate()
        return built, warnings
