from __future__ import annotations

import os

from stagekit.engine.pipeline import ActionStep
from stagekit.stage_types import StageIO, StageRef

from monostage.framework.config import BuildConfig
from monostage.framework.runtime import BuildContext

KIND_ID = "manifest.locate"


def find_manifests(root: str, manifest_name: str = "pyproject.toml") -> list[str]:
    """Every `manifest_name` under `root`, shallowest first, then by path."""

    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        if manifest_name in filenames:
            found.append(os.path.join(dirpath, manifest_name))
    return sorted(found, key=lambda p: (p.count(os.sep), p))


def _build(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, object]:
        assert ctx.staging_dir is not None
        paths = find_manifests(ctx.staging_dir, ctx.cfg.manifest_name)
        ctx.manifest_paths = paths
        if not paths:
            ctx.logger.warning(
                "No %s files found under %s", ctx.cfg.manifest_name, ctx.staging_dir
            )
        else:
            ctx.logger.info("Found %d manifest(s) under %s", len(paths), ctx.staging_dir)
            for path in paths:
                ctx.logger.debug("Manifest: %s", path)
        return {"count": len(paths)}

    return ActionStep(name=instance_id, fn=_action)


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Find every dependency manifest in the staged tree.",
    source="monostage.stages.locate._build",
    io=StageIO(requires=("staging_dir",), provides=("manifest_paths",)),
)
