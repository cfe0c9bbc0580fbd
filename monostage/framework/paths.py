from __future__ import annotations

import os
import posixpath
import re
import sys
import uuid

STAGING_DIR_SUFFIX = "_slspyc"

_SEGMENT_SPLIT = re.compile(r"[\\/]")


def new_staging_dir(staging_root: str, *, run_id: str | None = None) -> str:
    """Unique staging path under `staging_root`; never reused across runs."""

    token = run_id or str(uuid.uuid4())
    return os.path.join(staging_root, f"{token}{STAGING_DIR_SUFFIX}")


def docker_path_for_win(path: str, *, platform: str | None = None) -> str:
    """Docker on Windows wants forward slashes in bind-mount sources."""

    if (platform or sys.platform) == "win32":
        return path.replace("\\", "/")
    return path


def has_parent_traversal(path: str) -> bool:
    return any(segment == ".." for segment in _SEGMENT_SPLIT.split(path))


def container_path(host_path: str, *, host_root: str, mount_path: str) -> str:
    """
    Translate `host_path` (somewhere under `host_root`) into the path where the
    container sees it, given that `host_root` is bind-mounted at `mount_path`.
    """

    host_abs = os.path.abspath(host_path)
    root_abs = os.path.abspath(host_root)
    try:
        relative = os.path.relpath(host_abs, root_abs)
    except ValueError as exc:
        raise ValueError(f"{host_path} is not under {host_root}") from exc
    if relative == os.curdir:
        return mount_path
    if has_parent_traversal(relative) or os.path.isabs(relative):
        raise ValueError(f"{host_path} is not under {host_root}")
    return posixpath.join(mount_path, relative.replace(os.sep, "/"))


def resolve_in_container(container_dir: str, declared: str) -> str:
    """Resolve a declared relative path against a container-side directory."""

    return posixpath.normpath(posixpath.join(container_dir, declared.replace("\\", "/")))
