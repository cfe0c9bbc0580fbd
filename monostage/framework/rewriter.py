"""Manifest rewriting for relocated monorepo builds.

Local development manifests point at sibling projects with paths such as
``{path = "../sharedlog", develop = true}``. Inside the build container the
whole tree is mounted at a different absolute path, and the wheel build for a
nested library copies that library to a temporary directory first, so a
relative ``..`` reference no longer finds its sibling. The rewriter therefore:

- removes editable/develop flags from every table dependency,
- replaces any path with a ``..`` segment by the absolute path it resolves to
  inside the container (only when the host-side project root is known),
- drops the dev dependency table and the ``dev`` group.

A rewritten manifest no longer contains ``..`` paths or editable flags, so
applying the rewrite again leaves it unchanged.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Any

from monostage.framework.config import DEFAULT_EDITABLE_KEYS, DEFAULT_MOUNT_PATH
from monostage.framework.manifest import Manifest
from monostage.framework.paths import container_path, has_parent_traversal, resolve_in_container

logger = logging.getLogger(__name__)

DEFAULT_SECTION: tuple[str, ...] = ("tool", "poetry")


@dataclass
class RewriteResult:
    path: str
    cleared_flags: list[str] = field(default_factory=list)
    remapped_paths: dict[str, tuple[str, str]] = field(default_factory=dict)
    removed_tables: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.cleared_flags or self.remapped_paths or self.removed_tables)


def rewrite_manifest(
    manifest_path: str | None,
    project_root_path: str | None = None,
    *,
    mount_path: str = DEFAULT_MOUNT_PATH,
    section: tuple[str, ...] = DEFAULT_SECTION,
    editable_keys: tuple[str, ...] = DEFAULT_EDITABLE_KEYS,
    log: logging.Logger | None = None,
) -> RewriteResult | None:
    """
    Rewrite the manifest at `manifest_path` in place.

    Returns None without touching anything when the path is shorter than two
    characters (blank entries from a locator). Raises ManifestParseError or
    ManifestWriteError on I/O or syntax problems.
    """

    log = log or logger
    if not manifest_path or len(manifest_path) < 2:
        return None

    manifest = Manifest.load(manifest_path)
    result = RewriteResult(path=manifest_path)

    container_dir: str | None = None
    if project_root_path:
        container_dir = posixpath.dirname(
            container_path(manifest_path, host_root=project_root_path, mount_path=mount_path)
        )

    for table_label, table in manifest.dependency_tables(section):
        for name, value in list(table.items()):
            label = f"{table_label}.{name}"
            if isinstance(value, MutableMapping):
                _rewrite_entry(value, label, result, container_dir, editable_keys)
            elif isinstance(value, list):
                # Multiple-constraint dependency: a list of inline tables.
                for idx, item in enumerate(value):
                    if isinstance(item, MutableMapping):
                        _rewrite_entry(item, f"{label}[{idx}]", result, container_dir, editable_keys)

    result.removed_tables = manifest.remove_dev_dependencies(section)
    manifest.save()

    log.debug(
        "Rewrote %s (cleared=%d remapped=%d removed=%s)",
        manifest_path,
        len(result.cleared_flags),
        len(result.remapped_paths),
        ",".join(result.removed_tables) or "-",
    )
    for label, (old, new) in result.remapped_paths.items():
        log.info("Remapped %s path %s -> %s", label, old, new)
    return result


def _rewrite_entry(
    entry: MutableMapping[str, Any],
    label: str,
    result: RewriteResult,
    container_dir: str | None,
    editable_keys: tuple[str, ...],
) -> None:
    for key in editable_keys:
        if key in entry:
            del entry[key]
            result.cleared_flags.append(f"{label}.{key}")

    declared = entry.get("path")
    if container_dir is None or not isinstance(declared, str):
        return
    if not has_parent_traversal(declared):
        return

    resolved = resolve_in_container(container_dir, str(declared))
    entry["path"] = resolved
    result.remapped_paths[label] = (str(declared), resolved)
