from __future__ import annotations

from functools import lru_cache

from stagekit.stage_registry import StageRegistry

BUILD_SEQUENCE: tuple[str, ...] = (
    "staging.prepare_output",
    "staging.mirror",
    "manifest.locate",
    "manifest.rewrite",
    "deps.install",
    "deps.collect",
)
PACKAGE_SEQUENCE: tuple[str, ...] = ("archive.create",)
UPDATE_PACKAGE_SEQUENCE: tuple[str, ...] = ("archive.update",)


@lru_cache(maxsize=1)
def get_stage_registry() -> StageRegistry:
    # Single import point for the stage modules; each exports its StageRef(s).
    from monostage.stages import __all_stages__  # noqa: PLC0415

    return StageRegistry.from_refs(__all_stages__)
