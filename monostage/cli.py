from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Sequence

from monostage.foundation.config_io import ConfigSource, load_config
from monostage.framework.config import DEFAULT_MOUNT_PATH, BuildConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="monostage", add_help=True)
    sub = parser.add_subparsers(dest="command", required=True)

    def add_pipeline_options(cmd: argparse.ArgumentParser) -> None:
        cmd.add_argument("--config", help="YAML config file (defaults to $MONOSTAGE_CONFIG or config/config.yaml)")
        cmd.add_argument("--service-path", help="Deployable service directory")
        cmd.add_argument("--image", help="Builder image with Python + the dependency manager")
        cmd.add_argument("--staging-root", help="Parent directory for staging directories")
        cmd.add_argument("--log-dir", help="Write an operational log file here")
        toggle = cmd.add_mutually_exclusive_group()
        toggle.add_argument("--enabled", dest="enabled", action="store_const", const=True, default=None)
        toggle.add_argument("--disabled", dest="enabled", action="store_const", const=False)

    build = sub.add_parser("build", help="Stage the monorepo, install dependencies, collect them")
    add_pipeline_options(build)

    package = sub.add_parser("package", help="Zip the collected dependencies")
    add_pipeline_options(package)
    package.add_argument("--update", action="store_true", help="Add to the existing archive instead of rebuilding")

    rewrite = sub.add_parser("rewrite-manifest", help="Rewrite a single manifest in place")
    rewrite.add_argument("path")
    rewrite.add_argument("--project-root", default=None)
    rewrite.add_argument("--mount-path", default=DEFAULT_MOUNT_PATH)
    rewrite.add_argument("--section", default="tool.poetry")

    sub.add_parser("list-stages", help="List available pipeline stages")

    return parser


def _load_build_config(
    args: argparse.Namespace,
) -> tuple[BuildConfig, list[str], ConfigSource]:
    raw, source = load_config(config_path=args.config, required=False)

    cfg, warnings = BuildConfig.from_dict(raw, validate=False)
    cfg = cfg.with_overrides(
        enabled=args.enabled,
        service_path=_abspath(args.service_path),
        docker_image=args.image,
        staging_root=_abspath(args.staging_root),
        log_dir=_abspath(args.log_dir),
    )
    return cfg, warnings, source


def _abspath(value: str | None) -> str | None:
    if value is None:
        return None
    return os.path.abspath(os.path.expanduser(value))


def _run_pipeline(args: argparse.Namespace) -> int:
    from monostage.app.pipeline import MonorepoPipeline, generate_run_id
    from monostage.foundation.logging_utils import close_logger, setup_operational_logger
    from monostage.framework.errors import MonostageError

    cfg, warnings, source = _load_build_config(args)
    run_id = generate_run_id()
    logger, _log_file = setup_operational_logger(run_id, log_dir=cfg.log_dir, level=cfg.log_level)
    try:
        logger.info("Config: %s", source.describe())
        for warning in warnings:
            logger.warning("%s", warning)
        if not cfg.enabled:
            logger.info("Monorepo dependency build disabled; nothing to do")
            return 0

        pipeline = MonorepoPipeline(cfg, logger=logger)
        try:
            if args.command == "build":
                pipeline.build(run_id)
            elif args.update:
                pipeline.update_package(run_id)
            else:
                pipeline.package(run_id)
        except MonostageError as exc:
            logger.error("%s failed: %s", args.command, exc)
            return 1
        return 0
    finally:
        close_logger(logger)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    if args.command in ("build", "package"):
        return _run_pipeline(args)

    if args.command == "rewrite-manifest":
        from monostage.framework.rewriter import rewrite_manifest

        result = rewrite_manifest(
            args.path,
            args.project_root,
            mount_path=args.mount_path,
            section=tuple(args.section.split(".")),
        )
        if result is None:
            return 0
        for label, (old, new) in result.remapped_paths.items():
            print(f"{label}: {old} -> {new}")
        for flag in result.cleared_flags:
            print(f"cleared {flag}")
        for table in result.removed_tables:
            print(f"removed {table}")
        return 0

    if args.command == "list-stages":
        from monostage.stages.registry import get_stage_registry

        for row in get_stage_registry().describe():
            print(f"{row['stage_id']}: {row['doc']}")
        return 0

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
