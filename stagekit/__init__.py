"""Reusable stage-execution kernel (engine primitives + stage authoring kit).

This package is intentionally independent of `monostage.*`. Anything specific to
staging, manifests or packaging lives in the consuming application.
"""

from stagekit.engine.pipeline import (
    ActionStep,
    Block,
    DefaultStepRecorder,
    FlowContext,
    Node,
    NullStepRecorder,
    StageRunner,
    StepRecorder,
    utc_now_iso8601,
)
from stagekit.stage_registry import StageRegistry
from stagekit.stage_types import StageBuilder, StageIO, StageRef

__all__ = [
    "ActionStep",
    "Block",
    "DefaultStepRecorder",
    "FlowContext",
    "Node",
    "NullStepRecorder",
    "StageBuilder",
    "StageIO",
    "StageRef",
    "StageRegistry",
    "StageRunner",
    "StepRecorder",
    "utc_now_iso8601",
]
