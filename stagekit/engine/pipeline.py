"""Run ordered trees of actions against a shared context.

A tree is made of `Block`s (named, ordered groups) and `ActionStep`s (named
callables taking the context). `StageRunner` walks it depth-first and stops at
the first exception, which is re-raised tagged with the failing node's path.

This module is app-agnostic and must not import `monostage.*`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, TypeAlias

ROOT_NAME = "pipeline"
_RECORDER_HOOKS = ("on_step_start", "on_step_end", "on_step_error")


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class FlowContext(Protocol):
    logger: logging.Logger
    steps: list[dict[str, Any]]


def _clean_name(kind: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"{kind} name must be a string or None (type={type(value).__name__})")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{kind} name cannot be empty")
    return stripped


@dataclass(frozen=True)
class ActionStep:
    """One unit of work. `fn(ctx)` may return a small JSON-able summary."""

    name: str | None
    fn: Callable[[FlowContext], Any]
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_name("Action", self.name))
        if not callable(self.fn):
            raise TypeError(f"Action fn must be callable (type={type(self.fn).__name__})")


@dataclass(frozen=True)
class Block:
    name: str | None = None
    nodes: list["Node"] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_name("Block", self.name))


Node: TypeAlias = Block | ActionStep


class StepRecorder(Protocol):
    def on_step_start(self, ctx: FlowContext, path: str, meta: dict[str, Any]) -> None:
        ...

    def on_step_end(self, ctx: FlowContext, record: dict[str, Any]) -> None:
        ...

    def on_step_error(self, ctx: FlowContext, path: str, exc: Exception) -> None:
        ...


class DefaultStepRecorder:
    """Keeps a record per finished action and logs progress on `ctx.logger`."""

    def on_step_start(self, ctx: FlowContext, path: str, meta: dict[str, Any]) -> None:
        doc = meta.get("doc")
        if isinstance(doc, str) and doc.strip():
            ctx.logger.info("Step: %s - %s", path, doc.strip())
        else:
            ctx.logger.info("Step: %s", path)

    def on_step_end(self, ctx: FlowContext, record: dict[str, Any]) -> None:
        ctx.steps.append(record)
        ctx.logger.info("Completed action %s in %.2fs", record["path"], record["duration_s"])

    def on_step_error(self, ctx: FlowContext, path: str, exc: Exception) -> None:
        ctx.logger.error("Step failed: %s (%s)", path, exc)


class NullStepRecorder:
    """Keeps the step records but logs nothing."""

    def on_step_start(self, ctx: FlowContext, path: str, meta: dict[str, Any]) -> None:
        return

    def on_step_end(self, ctx: FlowContext, record: dict[str, Any]) -> None:
        ctx.steps.append(record)

    def on_step_error(self, ctx: FlowContext, path: str, exc: Exception) -> None:
        return


def _summarize(value: Any, *, depth: int = 4) -> Any:
    """Reduce an action result to JSON-able data for the step record."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth <= 0:
        return repr(value)
    if isinstance(value, (list, tuple)):
        return [_summarize(item, depth=depth - 1) for item in value]
    if isinstance(value, dict):
        return {str(key): _summarize(item, depth=depth - 1) for key, item in value.items()}
    return repr(value)


def _tag_error(exc: Exception, path: tuple[str, ...], node: Node) -> None:
    # The innermost node tags first; outer blocks leave existing tags alone.
    if hasattr(exc, "pipeline_path"):
        return
    try:
        exc.pipeline_path = "/".join(path)
        exc.pipeline_node_type = "block" if isinstance(node, Block) else "action"
        exc.pipeline_node_name = path[-1]
    except AttributeError:
        pass


class StageRunner:
    """Runs a node tree depth-first, in order, stopping at the first failure."""

    def __init__(self, *, recorder: StepRecorder | None = None) -> None:
        recorder = recorder or DefaultStepRecorder()
        missing = [hook for hook in _RECORDER_HOOKS if not callable(getattr(recorder, hook, None))]
        if missing:
            raise TypeError(f"Step recorder missing required method(s): {', '.join(missing)}")
        self._recorder = recorder

    def run(self, ctx: FlowContext, root: Node) -> None:
        self._visit(ctx, root, (root.name or ROOT_NAME,), {})

    def _visit(
        self,
        ctx: FlowContext,
        node: Node,
        path: tuple[str, ...],
        inherited_meta: dict[str, Any],
    ) -> None:
        meta = {**inherited_meta, **node.meta}
        try:
            if isinstance(node, Block):
                names = [
                    child.name or f"{'block' if isinstance(child, Block) else 'action'}_{idx:02d}"
                    for idx, child in enumerate(node.nodes, start=1)
                ]
                duplicates = sorted({name for name in names if names.count(name) > 1})
                if duplicates:
                    raise ValueError(
                        f"Duplicate node name(s) in block {'/'.join(path)}: {', '.join(duplicates)}"
                    )
                for child, name in zip(node.nodes, names):
                    self._visit(ctx, child, (*path, name), meta)
            else:
                self._act(ctx, node, path, meta)
        except Exception as exc:
            _tag_error(exc, path, node)
            raise

    def _act(
        self,
        ctx: FlowContext,
        action: ActionStep,
        path: tuple[str, ...],
        meta: dict[str, Any],
    ) -> None:
        joined = "/".join(path)
        if "stage_id" not in meta and len(path) >= 2:
            meta["stage_id"] = path[1]

        self._recorder.on_step_start(ctx, joined, meta)
        started_at = utc_now_iso8601()
        started = time.monotonic()
        try:
            result = action.fn(ctx)
        except Exception as exc:
            try:
                self._recorder.on_step_error(ctx, joined, exc)
            except Exception:
                ctx.logger.exception("Step recorder failed while reporting %s", joined)
            raise

        record: dict[str, Any] = {
            "path": joined,
            "stage_id": meta.get("stage_id"),
            "started_at": started_at,
            "duration_s": round(time.monotonic() - started, 3),
        }
        if result is not None:
            record["result"] = _summarize(result)
        self._recorder.on_step_end(ctx, record)
