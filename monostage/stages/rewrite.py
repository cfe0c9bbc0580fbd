from __future__ import annotations

import os

from stagekit.engine.pipeline import ActionStep
from stagekit.stage_types import StageIO, StageRef

from monostage.framework.config import BuildConfig
from monostage.framework.errors import ManifestParseError
from monostage.framework.rewriter import rewrite_manifest
from monostage.framework.runtime import BuildContext

KIND_ID = "manifest.rewrite"


def _build(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, object]:
        assert ctx.staging_dir is not None
        service_manifest = os.path.join(ctx.staged_service_dir, ctx.cfg.manifest_name)
        if service_manifest not in ctx.manifest_paths:
            raise ManifestParseError(f"Service manifest not found: {service_manifest}")

        ctx.logger.info("Updating manifests to remove develop attributes on linked libs")

        remapped = 0
        cleared = 0
        for path in ctx.manifest_paths:
            project_root: str | None = ctx.staging_dir
            if path == service_manifest and not ctx.cfg.remap_service_manifest:
                project_root = None
            result = rewrite_manifest(
                path,
                project_root,
                mount_path=ctx.cfg.mount_path,
                section=ctx.cfg.manifest_section,
                editable_keys=ctx.cfg.editable_keys,
                log=ctx.logger,
            )
            if result is None:
                continue
            remapped += len(result.remapped_paths)
            cleared += len(result.cleared_flags)

        ctx.logger.info(
            "Rewrote %d manifest(s): cleared %d editable flag(s), remapped %d path(s)",
            len(ctx.manifest_paths),
            cleared,
            remapped,
        )
        return {"manifests": len(ctx.manifest_paths), "cleared": cleared, "remapped": remapped}

    return ActionStep(name=instance_id, fn=_action)


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Strip editable flags, remap '..' paths to the container mount, drop dev deps.",
    source="monostage.stages.rewrite._build",
    io=StageIO(requires=("staging_dir", "manifest_paths")),
)
