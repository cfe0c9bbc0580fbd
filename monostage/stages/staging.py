"""Stage Builder: mirror the monorepo into a fresh, uniquely named directory."""

from __future__ import annotations

import os
import shutil
from collections.abc import Sequence

from stagekit.engine.pipeline import ActionStep
from stagekit.stage_types import StageIO, StageRef

from monostage.framework.config import BuildConfig
from monostage.framework.errors import StagingError
from monostage.framework.paths import docker_path_for_win, new_staging_dir
from monostage.framework.runtime import BuildContext

PREPARE_ID = "staging.prepare_output"
MIRROR_ID = "staging.mirror"


def empty_dir(path: str) -> None:
    """Create `path` if needed and remove everything inside it."""

    os.makedirs(path, exist_ok=True)
    with os.scandir(path) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                shutil.rmtree(entry.path)
            else:
                os.unlink(entry.path)


def remove_tree(path: str) -> None:
    """Empty `path`, then remove the directory itself. Missing paths are fine."""

    if not os.path.lexists(path):
        return
    empty_dir(path)
    os.rmdir(path)


def _is_within(path: str, parent: str) -> bool:
    try:
        return os.path.commonpath([path, parent]) == parent
    except ValueError:
        # Different drives on Windows.
        return False


def mirror_tree(source: str, dest: str, exclude: Sequence[str]) -> int:
    """
    Copy `source` into the (emptied) `dest`, skipping names that match any
    glob in `exclude` at any depth. Returns the number of files copied.
    """

    if not os.path.isdir(source):
        raise StagingError(f"Source tree does not exist: {source}")

    source_abs = os.path.abspath(source)
    dest_abs = os.path.abspath(dest)
    if _is_within(dest_abs, source_abs):
        raise StagingError(f"Staging directory {dest} must not live inside the source tree {source}")

    try:
        empty_dir(dest_abs)
        shutil.copytree(
            source_abs,
            dest_abs,
            symlinks=True,
            ignore=shutil.ignore_patterns(*exclude),
            dirs_exist_ok=True,
        )
    except shutil.Error as exc:
        failures = "\n".join(f"{src} -> {dst}: {why}" for src, dst, why in exc.args[0])
        raise StagingError(
            f"Failed to copy {source} to {dest}", diagnostics=failures
        ) from exc
    except OSError as exc:
        raise StagingError(f"Failed to copy {source} to {dest}: {exc}") from exc

    return sum(len(files) for _root, _dirs, files in os.walk(dest_abs))


def _build_prepare(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, str]:
        target = ctx.cfg.requirements_dir
        try:
            empty_dir(target)
        except OSError as exc:
            raise StagingError(f"Cannot prepare collection directory {target}: {exc}") from exc
        ctx.logger.info("Prepared collection directory %s", target)
        return {"requirements_dir": target}

    return ActionStep(name=instance_id, fn=_action)


def _build_mirror(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    exclude = tuple(dict.fromkeys((*cfg.staging_exclude, cfg.output_dir_name)))

    def _action(ctx: BuildContext) -> dict[str, object]:
        staging_dir = new_staging_dir(ctx.cfg.staging_root, run_id=ctx.run_id)
        ctx.staging_dir = staging_dir
        ctx.bind_path = docker_path_for_win(staging_dir)
        source = ctx.cfg.effective_source_path

        ctx.logger.info("Created staging directory %s", staging_dir)
        ctx.logger.info("Copying monorepo from %s to %s", source, staging_dir)
        ctx.logger.info("Excluding %s", ", ".join(exclude))

        copied = mirror_tree(source, staging_dir, exclude)
        ctx.logger.debug("Copied %d files into %s", copied, staging_dir)
        return {"staging_dir": staging_dir, "files": copied}

    return ActionStep(name=instance_id, fn=_action)


PREPARE_STAGE = StageRef(
    id=PREPARE_ID,
    builder=_build_prepare,
    doc="Create and empty <service>/<output_dir>/requirements.",
    source="monostage.stages.staging._build_prepare",
    io=StageIO(provides=("requirements_dir",)),
)

MIRROR_STAGE = StageRef(
    id=MIRROR_ID,
    builder=_build_mirror,
    doc="Mirror the monorepo into a fresh staging directory, minus excluded paths.",
    source="monostage.stages.staging._build_mirror",
    io=StageIO(provides=("staging_dir",)),
)
