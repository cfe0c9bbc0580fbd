"""Engine primitives for building and running Block/ActionStep trees."""

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

__all__ = [
    "ActionStep",
    "Block",
    "DefaultStepRecorder",
    "FlowContext",
    "Node",
    "NullStepRecorder",
    "StageRunner",
    "StepRecorder",
    "utc_now_iso8601",
]
