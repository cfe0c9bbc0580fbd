from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

from monostage.framework.config import BuildConfig


@dataclass
class BuildContext:
    run_id: str
    cfg: BuildConfig
    logger: logging.Logger
    created_at: str

    staging_dir: str | None = None
    bind_path: str | None = None
    manifest_paths: list[str] = field(default_factory=list)
    site_packages_dir: str | None = None

    steps: list[dict[str, Any]] = field(default_factory=list)
    error: dict[str, Any] | None = None

    @property
    def staged_service_dir(self) -> str:
        if not self.staging_dir:
            raise RuntimeError("Staging directory has not been created yet")
        return os.path.normpath(os.path.join(self.staging_dir, *self.cfg.service_subdir.split("/")))
