"""Packager: zip the collection directory into the deployable archive.

Two operations:

- `create_archive` deletes any existing archive and zips the whole tree.
- `update_archive` adds new files and replaces ones that are newer or changed
  in size, keeping every other member (the `zip -u` contract).

Member names are relative to the collection directory, without its name.
"""

from __future__ import annotations

import os
import tempfile
import zipfile
from dataclasses import dataclass, field

from stagekit.engine.pipeline import ActionStep
from stagekit.stage_types import StageIO, StageRef

from monostage.framework.config import BuildConfig
from monostage.framework.errors import PackagingError
from monostage.framework.runtime import BuildContext

CREATE_ID = "archive.create"
UPDATE_ID = "archive.update"


@dataclass
class ArchiveResult:
    path: str
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)


def _iter_members(root: str) -> list[tuple[str, str]]:
    """
    (filesystem path, archive name) pairs, directories first, sorted.

    Symlinked directories are followed, like `zip -r`; links back to an
    enclosing directory are skipped.
    """

    members: list[tuple[str, str]] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        current = os.path.realpath(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not _is_ancestor(os.path.realpath(os.path.join(dirpath, name)), current)
        )
        rel_dir = os.path.relpath(dirpath, root)
        if rel_dir != os.curdir:
            members.append((dirpath, rel_dir.replace(os.sep, "/") + "/"))
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            members.append((full, os.path.relpath(full, root).replace(os.sep, "/")))
    return members


def _is_ancestor(candidate: str, path: str) -> bool:
    return path == candidate or path.startswith(candidate.rstrip(os.sep) + os.sep)


def _dos_date_time(value: tuple[int, ...]) -> tuple[int, ...]:
    # Zip timestamps have two-second resolution.
    return (*value[:5], value[5] // 2 * 2)


def _write_member(archive: zipfile.ZipFile, path: str, arcname: str) -> None:
    if arcname.endswith("/"):
        archive.write(path, arcname)
        return
    archive.write(path, arcname, compress_type=zipfile.ZIP_DEFLATED)


def create_archive(collection_dir: str, archive_path: str) -> ArchiveResult:
    if not os.path.isdir(collection_dir):
        raise PackagingError(f"Collection directory does not exist: {collection_dir}")

    result = ArchiveResult(path=archive_path)
    try:
        if os.path.exists(archive_path):
            os.remove(archive_path)
        os.makedirs(os.path.dirname(os.path.abspath(archive_path)), exist_ok=True)
        with zipfile.ZipFile(archive_path, "w", strict_timestamps=False) as archive:
            for path, arcname in _iter_members(collection_dir):
                _write_member(archive, path, arcname)
                result.added.append(arcname)
    except (OSError, zipfile.BadZipFile) as exc:
        raise PackagingError(f"Failed to create {archive_path}: {exc}") from exc
    return result


def update_archive(collection_dir: str, archive_path: str) -> ArchiveResult:
    if not os.path.isdir(collection_dir):
        raise PackagingError(f"Collection directory does not exist: {collection_dir}")
    if not os.path.exists(archive_path):
        return create_archive(collection_dir, archive_path)

    result = ArchiveResult(path=archive_path)
    try:
        with zipfile.ZipFile(archive_path, "r") as existing:
            current = {info.filename: info for info in existing.infolist()}

        pending: list[tuple[str, str]] = []
        for path, arcname in _iter_members(collection_dir):
            info = current.get(arcname)
            if info is None:
                pending.append((path, arcname))
                result.added.append(arcname)
                continue
            if arcname.endswith("/"):
                continue
            candidate = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
            if (
                _dos_date_time(candidate.date_time) > _dos_date_time(info.date_time)
                or candidate.file_size != info.file_size
            ):
                pending.append((path, arcname))
                result.updated.append(arcname)

        if not pending:
            return result

        replaced = set(result.updated)
        directory = os.path.dirname(os.path.abspath(archive_path))
        fd, tmp_path = tempfile.mkstemp(prefix=".monostage-", suffix=".zip", dir=directory)
        os.close(fd)
        try:
            with zipfile.ZipFile(archive_path, "r") as src, zipfile.ZipFile(
                tmp_path, "w", strict_timestamps=False
            ) as dst:
                for info in src.infolist():
                    if info.filename in replaced:
                        continue
                    dst.writestr(info, src.read(info.filename))
                for path, arcname in pending:
                    _write_member(dst, path, arcname)
            os.replace(tmp_path, archive_path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
    except (OSError, zipfile.BadZipFile) as exc:
        raise PackagingError(f"Failed to update {archive_path}: {exc}") from exc
    return result


def _build_create(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, object]:
        ctx.logger.info("Zipping dependencies into %s", ctx.cfg.archive_path)
        result = create_archive(ctx.cfg.requirements_dir, ctx.cfg.archive_path)
        ctx.logger.info("Wrote %d member(s) to %s", len(result.added), result.path)
        return {"archive": result.path, "members": len(result.added)}

    return ActionStep(name=instance_id, fn=_action)


def _build_update(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, object]:
        ctx.logger.info("Adding dependencies to %s", ctx.cfg.archive_path)
        result = update_archive(ctx.cfg.requirements_dir, ctx.cfg.archive_path)
        ctx.logger.info(
            "Archive %s: %d added, %d updated", result.path, len(result.added), len(result.updated)
        )
        return {"archive": result.path, "added": len(result.added), "updated": len(result.updated)}

    return ActionStep(name=instance_id, fn=_action)


CREATE_STAGE = StageRef(
    id=CREATE_ID,
    builder=_build_create,
    doc="Delete the archive and zip the collection directory from scratch.",
    source="monostage.stages.package._build_create",
    io=StageIO(requires=("requirements_dir",), provides=("archive",)),
)

UPDATE_STAGE = StageRef(
    id=UPDATE_ID,
    builder=_build_update,
    doc="Add new and newer files from the collection directory to the archive.",
    source="monostage.stages.package._build_update",
    io=StageIO(requires=("requirements_dir",), provides=("archive",)),
)
