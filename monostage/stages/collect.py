"""Artifact Collector: copy installed packages out of the staged virtualenv."""

from __future__ import annotations

import glob
import os
import shutil
from collections.abc import Sequence

from stagekit.engine.pipeline import ActionStep
from stagekit.stage_types import StageIO, StageRef

from monostage.framework.config import BuildConfig
from monostage.framework.errors import CollectionError
from monostage.framework.runtime import BuildContext
from monostage.stages.staging import empty_dir

KIND_ID = "deps.collect"


def find_site_packages(service_dir: str, python_version: str | None = None) -> str:
    """`<service>/.venv/lib/python<ver>/site-packages`, autodetected when no version is given."""

    lib_dir = os.path.join(service_dir, ".venv", "lib")
    if python_version:
        candidate = os.path.join(lib_dir, f"python{python_version}", "site-packages")
        if not os.path.isdir(candidate):
            raise CollectionError(f"site-packages not found: {candidate}")
        return candidate

    matches = sorted(
        path
        for path in glob.glob(os.path.join(lib_dir, "python*", "site-packages"))
        if os.path.isdir(path)
    )
    if not matches:
        raise CollectionError(f"No site-packages directory under {lib_dir}")
    if len(matches) > 1:
        raise CollectionError(
            f"Multiple site-packages directories under {lib_dir}; set collect.python_version",
            diagnostics="\n".join(matches),
        )
    return matches[0]


def collect_packages(source: str, dest: str, exclude: Sequence[str]) -> list[str]:
    """Empty `dest`, copy `source` into it minus `exclude`; return top-level names."""

    try:
        empty_dir(dest)
        shutil.copytree(
            source,
            dest,
            symlinks=True,
            ignore=shutil.ignore_patterns(*exclude),
            dirs_exist_ok=True,
        )
    except shutil.Error as exc:
        failures = "\n".join(f"{src} -> {dst}: {why}" for src, dst, why in exc.args[0])
        raise CollectionError(f"Failed to copy {source} to {dest}", diagnostics=failures) from exc
    except OSError as exc:
        raise CollectionError(f"Failed to copy {source} to {dest}: {exc}") from exc
    return sorted(os.listdir(dest))


def _build(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, object]:
        source = find_site_packages(ctx.staged_service_dir, ctx.cfg.python_version)
        ctx.site_packages_dir = source
        dest = ctx.cfg.requirements_dir
        ctx.logger.info("Copying dependencies from %s to %s", source, dest)
        names = collect_packages(source, dest, ctx.cfg.collect_exclude)
        ctx.logger.info("Collected %d top-level entries", len(names))
        return {"source": source, "entries": names}

    return ActionStep(name=instance_id, fn=_action)


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Copy site-packages into the collection directory, minus installer noise.",
    source="monostage.stages.collect._build",
    io=StageIO(requires=("venv",), provides=("requirements_dir",)),
)
