"""Build Driver: run the dependency install inside a container."""

from __future__ import annotations

import posixpath

from stagekit.engine.pipeline import ActionStep
from stagekit.stage_types import StageIO, StageRef

from monostage.foundation.process import ProcessError, run_command
from monostage.framework.config import BuildConfig
from monostage.framework.errors import BuildError
from monostage.framework.runtime import BuildContext

KIND_ID = "deps.install"


def docker_install_command(
    cfg: BuildConfig,
    *,
    bind_path: str,
) -> list[str]:
    """
    Something like:

        docker run --rm -v /tmp/monostage/<uuid>_slspyc:/var/task:z \
            -w /var/task/api my/python-builder:latest poetry install --only main

    The staged monorepo is mounted at the mount path and the install runs in
    the service's own directory, wherever it sits below the source root.
    """

    workdir = posixpath.normpath(posixpath.join(cfg.mount_path, cfg.service_subdir))
    return [
        cfg.docker_executable,
        "run",
        "--rm",
        "-v",
        f"{bind_path}:{cfg.mount_path}:z",
        "-w",
        workdir,
        cfg.docker_image,
        *cfg.install_command,
    ]


def _build(cfg: BuildConfig, *, instance_id: str) -> ActionStep:
    def _action(ctx: BuildContext) -> dict[str, object]:
        assert ctx.bind_path is not None
        command = docker_install_command(ctx.cfg, bind_path=ctx.bind_path)
        ctx.logger.info("Running docker commands...")
        try:
            result = run_command(
                command,
                timeout_s=ctx.cfg.install_timeout_s,
                logger=ctx.logger,
            )
        except ProcessError as exc:
            raise BuildError(
                f"Dependency install failed (returncode={exc.returncode})",
                diagnostics=exc.stderr or exc.stdout or str(exc),
            ) from exc

        if result.stdout.strip():
            ctx.logger.info("%s", result.stdout.rstrip())
        return {"returncode": result.returncode}

    return ActionStep(name=instance_id, fn=_action)


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Run the production-only install in the builder image against the staged tree.",
    source="monostage.stages.install._build",
    io=StageIO(requires=("staging_dir",), provides=("venv",)),
)
