"""Failure taxonomy for the staging pipeline.

Every class is fatal: the pipeline never retries. Wrapped causes are chained
with `raise ... from exc`; process failures keep the tool's stderr attached.
"""

from __future__ import annotations


class MonostageError(Exception):
    """Base class for pipeline failures."""

    def __init__(self, message: str, *, diagnostics: str | None = None) -> None:
        super().__init__(message)
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        base = super().__str__()
        if self.diagnostics and self.diagnostics.strip():
            return f"{base}\n{self.diagnostics.strip()}"
        return base


class StagingError(MonostageError):
    pass


class ManifestParseError(MonostageError):
    pass


class ManifestWriteError(MonostageError):
    pass


class BuildError(MonostageError):
    pass


class CollectionError(MonostageError):
    pass


class PackagingError(MonostageError):
    pass
