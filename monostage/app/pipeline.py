"""Pipeline Orchestrator.

The three entrypoints a build host calls:

- `build()`: prepare output -> stage -> locate -> rewrite -> install -> collect,
  then always remove the staging directory.
- `package()`: rebuild the archive from the collection directory.
- `update_package()`: merge the collection directory into the existing archive.

`cfg.enabled` is read once in the constructor; a disabled pipeline turns every
entrypoint into a no-op returning None.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from stagekit.engine.pipeline import Block, StageRunner, StepRecorder, utc_now_iso8601
from stagekit.stage_types import StageRef

from monostage.framework.config import BuildConfig
from monostage.framework.errors import StagingError
from monostage.framework.runtime import BuildContext
from monostage.stages.registry import (
    BUILD_SEQUENCE,
    PACKAGE_SEQUENCE,
    UPDATE_PACKAGE_SEQUENCE,
    get_stage_registry,
)
from monostage.stages.staging import remove_tree


def generate_run_id() -> str:
    return uuid.uuid4().hex


def resolve_stages(stage_ids: Sequence[str]) -> list[StageRef]:
    registry = get_stage_registry()
    return [registry.resolve(stage_id) for stage_id in stage_ids]


def build_pipeline_block(cfg: BuildConfig, stages: Sequence[StageRef]) -> Block:
    return Block(name="pipeline", nodes=[ref.build(cfg) for ref in stages])


class MonorepoPipeline:
    def __init__(
        self,
        cfg: BuildConfig,
        *,
        logger: logging.Logger | None = None,
        recorder: StepRecorder | None = None,
        build_stages: Sequence[StageRef] | None = None,
        package_stages: Sequence[StageRef] | None = None,
        update_stages: Sequence[StageRef] | None = None,
    ) -> None:
        self.cfg = cfg
        self.enabled = bool(cfg.enabled)
        self.logger = logger or logging.getLogger("monostage")
        self._runner = StageRunner(recorder=recorder)
        self._build_stages = list(build_stages) if build_stages is not None else None
        self._package_stages = list(package_stages) if package_stages is not None else None
        self._update_stages = list(update_stages) if update_stages is not None else None

    def new_context(self, run_id: str | None = None) -> BuildContext:
        return BuildContext(
            run_id=run_id or generate_run_id(),
            cfg=self.cfg,
            logger=self.logger,
            created_at=utc_now_iso8601(),
        )

    def build(self, run_id: str | None = None) -> BuildContext | None:
        if not self.enabled:
            return None
        stages = self._build_stages
        if stages is None:
            stages = resolve_stages(BUILD_SEQUENCE)
        ctx = self.new_context(run_id)
        with staging_scope(ctx):
            self._run(ctx, stages)
        return ctx

    def package(self, run_id: str | None = None) -> BuildContext | None:
        if not self.enabled:
            return None
        stages = self._package_stages
        if stages is None:
            stages = resolve_stages(PACKAGE_SEQUENCE)
        ctx = self.new_context(run_id)
        self._run(ctx, stages)
        return ctx

    def update_package(self, run_id: str | None = None) -> BuildContext | None:
        if not self.enabled:
            return None
        stages = self._update_stages
        if stages is None:
            stages = resolve_stages(UPDATE_PACKAGE_SEQUENCE)
        ctx = self.new_context(run_id)
        self._run(ctx, stages)
        return ctx

    def _run(self, ctx: BuildContext, stages: Sequence[StageRef]) -> None:
        root = build_pipeline_block(self.cfg, stages)
        try:
            self._runner.run(ctx, root)
        except Exception as exc:
            ctx.error = {
                "type": type(exc).__name__,
                "message": str(exc),
                "path": getattr(exc, "pipeline_path", None),
            }
            raise


@contextmanager
def staging_scope(ctx: BuildContext) -> Iterator[BuildContext]:
    """
    Remove `ctx.staging_dir` when the block exits, however it exits.

    On the failure path cleanup problems are logged and the original error
    propagates; on the success path they raise StagingError.
    """

    try:
        yield ctx
    except BaseException:
        if ctx.staging_dir:
            try:
                _remove_staging(ctx)
            except OSError:
                ctx.logger.exception("Failed to delete staging directory %s", ctx.staging_dir)
        raise
    else:
        if ctx.staging_dir:
            try:
                _remove_staging(ctx)
            except OSError as exc:
                raise StagingError(
                    f"Failed to delete staging directory {ctx.staging_dir}: {exc}"
                ) from exc


def _remove_staging(ctx: BuildContext) -> None:
    assert ctx.staging_dir is not None
    ctx.logger.info("Deleting staging directory %s", ctx.staging_dir)
    remove_tree(ctx.staging_dir)
