"""Dependency manifest model (pyproject.toml style).

Parsing and serialization go through tomlkit so comments, ordering and fields
this package never touches survive a load/save cycle unchanged.
"""

from __future__ import annotations

import os
import stat
import tempfile
from collections.abc import Iterator, MutableMapping
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.toml_document import TOMLDocument

from monostage.framework.errors import ManifestParseError, ManifestWriteError

DEV_DEPENDENCIES_KEY = "dev-dependencies"
DEV_GROUP_NAME = "dev"


class Manifest:
    def __init__(self, document: TOMLDocument, *, path: str | None = None) -> None:
        self.document = document
        self.path = path

    @classmethod
    def load(cls, path: str) -> "Manifest":
        try:
            with open(path, "r", encoding="utf-8", newline="") as handle:
                text = handle.read()
        except OSError as exc:
            raise ManifestParseError(f"Cannot read manifest {path}: {exc}") from exc
        return cls.loads(text, path=path)

    @classmethod
    def loads(cls, text: str, *, path: str | None = None) -> "Manifest":
        try:
            document = tomlkit.parse(text)
        except TOMLKitError as exc:
            raise ManifestParseError(f"Invalid TOML in {path or '<string>'}: {exc}") from exc
        return cls(document, path=path)

    def dumps(self) -> str:
        return tomlkit.dumps(self.document)

    def section(self, keys: tuple[str, ...]) -> MutableMapping[str, Any] | None:
        """Return the nested table at `keys` (e.g. ("tool", "poetry")), or None."""

        node: Any = self.document
        for key in keys:
            if not isinstance(node, MutableMapping):
                return None
            node = node.get(key)
        if not isinstance(node, MutableMapping):
            return None
        return node

    def dependency_tables(
        self, keys: tuple[str, ...]
    ) -> Iterator[tuple[str, MutableMapping[str, Any]]]:
        """Yield (label, table) for the main dependency table and each group's table."""

        section = self.section(keys)
        if section is None:
            return

        main = section.get("dependencies")
        if isinstance(main, MutableMapping):
            yield "dependencies", main

        groups = section.get("group")
        if isinstance(groups, MutableMapping):
            for group_name, group in groups.items():
                if not isinstance(group, MutableMapping):
                    continue
                table = group.get("dependencies")
                if isinstance(table, MutableMapping):
                    yield f"group.{group_name}.dependencies", table

    def remove_dev_dependencies(self, keys: tuple[str, ...]) -> list[str]:
        """Drop the dev dependency table and the `dev` group; return what was removed."""

        section = self.section(keys)
        if section is None:
            return []

        removed: list[str] = []
        if DEV_DEPENDENCIES_KEY in section:
            del section[DEV_DEPENDENCIES_KEY]
            removed.append(DEV_DEPENDENCIES_KEY)

        groups = section.get("group")
        if isinstance(groups, MutableMapping) and DEV_GROUP_NAME in groups:
            del groups[DEV_GROUP_NAME]
            removed.append(f"group.{DEV_GROUP_NAME}")
            if not groups:
                del section["group"]
        return removed

    def save(self, path: str | None = None) -> str:
        """
        Write the manifest in place.

        The text is written to a temporary sibling and moved over the target
        with os.replace, so the file is either the old or the new content.
        """

        target = path or self.path
        if not target:
            raise ManifestWriteError("Manifest has no path to save to")

        directory = os.path.dirname(os.path.abspath(target))
        text = self.dumps()
        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{os.path.basename(target)}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)
            if os.path.exists(target):
                os.chmod(tmp_path, stat.S_IMODE(os.stat(target).st_mode))
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as exc:
            raise ManifestWriteError(f"Cannot write manifest {target}: {exc}") from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        self.path = target
        return target
