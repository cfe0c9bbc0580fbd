from __future__ import annotations

import difflib
from typing import Any, Iterable

from stagekit.stage_types import StageRef


class StageRegistry:
    """Stage lookup by full id (`deps.install`) or unique short name (`install`)."""

    def __init__(self, refs: Iterable[StageRef] = ()) -> None:
        self._refs: dict[str, StageRef] = {}
        for ref in refs:
            if ref.id in self._refs:
                raise ValueError(f"Duplicate stage id: {ref.id}")
            self._refs[ref.id] = ref

    @classmethod
    def from_refs(cls, refs: Iterable[StageRef]) -> "StageRegistry":
        return cls(refs)

    def __contains__(self, stage_id: object) -> bool:
        return stage_id in self._refs

    def available(self) -> tuple[str, ...]:
        return tuple(sorted(self._refs))

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "stage_id": ref.id,
                "doc": ref.doc,
                "source": ref.source,
                "requires": list(ref.io.requires),
                "provides": list(ref.io.provides),
            }
            for ref in (self._refs[stage_id] for stage_id in self.available())
        ]

    def resolve(self, stage_id: str) -> StageRef:
        key = stage_id.strip() if isinstance(stage_id, str) else ""
        if not key:
            raise ValueError("stage_id must be a non-empty string")
        if key in self._refs:
            return self._refs[key]

        if "." not in key:
            matches = [full for full in self.available() if full.rsplit(".", 1)[-1] == key]
            if len(matches) == 1:
                return self._refs[matches[0]]
            if matches:
                raise ValueError(f"Ambiguous stage id: {stage_id} (matches: {', '.join(matches)})")

        hint = self.suggest(key)
        if hint:
            raise ValueError(f"Unknown stage id: {stage_id} (did you mean: {', '.join(hint)}?)")
        raise ValueError(
            f"Unknown stage id: {stage_id} (available: {', '.join(self.available()) or '<none>'})"
        )

    def suggest(self, stage_id: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (stage_id or "").strip()
        if not key:
            return ()
        by_short: dict[str, list[str]] = {}
        for full in self.available():
            by_short.setdefault(full.rsplit(".", 1)[-1], []).append(full)
        close = difflib.get_close_matches(key, list(by_short), n=limit)
        if close:
            return tuple(full for short in close for full in by_short[short])[:limit]
        return tuple(difflib.get_close_matches(key, list(self.available()), n=limit))
