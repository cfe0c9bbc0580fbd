"""Project-specific framework pieces.

Typed build configuration, the run context, the failure taxonomy, and the
manifest model + rewriter that keep sibling-path dependencies resolvable after
the monorepo is relocated into the build container.

Stage implementations live in `monostage.stages`; the reusable stage runner
lives in `stagekit`.
"""
