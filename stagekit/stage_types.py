"""Stage authoring kit: a `StageRef` pairs a stable id with a node builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from stagekit.engine.pipeline import ActionStep, Block, Node


@dataclass(frozen=True)
class StageIO:
    """Context attributes a stage reads and writes; documentation only."""

    requires: tuple[str, ...] = ()
    provides: tuple[str, ...] = ()


class StageBuilder(Protocol):
    def __call__(self, cfg: Any, *, instance_id: str) -> Node:
        ...


@dataclass(frozen=True)
class StageRef:
    id: str
    builder: StageBuilder
    doc: str | None = None
    source: str | None = None
    io: StageIO = field(default_factory=StageIO)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise TypeError("StageRef.id must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())
        for attr in ("doc", "source"):
            value = getattr(self, attr)
            if value is not None and (not isinstance(value, str) or not value.strip()):
                raise TypeError(f"StageRef.{attr} must be a non-empty string or None")

    def build(self, cfg: Any, *, instance_id: str | None = None) -> Node:
        """Build this stage's node, named `instance_id` (default: the stage id)."""

        name = (instance_id or self.id).strip()
        node = self.builder(cfg, instance_id=name)
        if not isinstance(node, (ActionStep, Block)):
            raise TypeError(
                f"Stage {self.id} builder returned {type(node).__name__}, expected ActionStep or Block"
            )
        meta = {"stage_id": name, **node.meta}
        if self.doc:
            meta.setdefault("doc", self.doc)
        if self.source:
            meta.setdefault("source", self.source)
        if isinstance(node, ActionStep):
            return ActionStep(name=name, fn=node.fn, meta=meta)
        return Block(name=name, nodes=list(node.nodes), meta=meta)
