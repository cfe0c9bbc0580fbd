from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

OUTPUT_TAIL_CHARS = 2000


class ProcessError(RuntimeError):
    """An external command exited non-zero, timed out, or could not start."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str],
        returncode: int | None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@dataclass(frozen=True)
class CommandResult:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


def run_command(
    command: Sequence[str],
    *,
    cwd: str | None = None,
    timeout_s: float | None = None,
    logger: logging.Logger | None = None,
) -> CommandResult:
    """Run `command` to completion, raising ProcessError unless it exits 0."""

    cmd = [str(part) for part in command]
    if not cmd:
        raise ValueError("command cannot be empty")
    rendered = format_command(cmd)
    if logger:
        logger.info("Running %s", rendered)

    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            check=False,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout_s,
        )
    except FileNotFoundError as exc:
        raise ProcessError(
            f"Command not found: {cmd[0]} ({exc})", command=cmd, returncode=None
        ) from exc
    except OSError as exc:
        raise ProcessError(
            f"Cannot run {cmd[0]}: {exc}", command=cmd, returncode=None
        ) from exc
    except subprocess.TimeoutExpired as exc:
        stdout = _decode(exc.stdout)
        stderr = _decode(exc.stderr)
        raise ProcessError(
            f"Command timed out after {timeout_s}s: {rendered}",
            command=cmd,
            returncode=None,
            stdout=stdout[-OUTPUT_TAIL_CHARS:],
            stderr=stderr[-OUTPUT_TAIL_CHARS:],
        ) from exc

    stdout = proc.stdout or ""
    stderr = proc.stderr or ""
    if logger and stdout.strip():
        logger.debug("%s stdout:\n%s", cmd[0], stdout.rstrip())

    if proc.returncode != 0:
        raise ProcessError(
            f"Command failed: {rendered}. returncode={proc.returncode}. "
            f"stderr={stderr.strip()[-OUTPUT_TAIL_CHARS:]!r}",
            command=cmd,
            returncode=proc.returncode,
            stdout=stdout[-OUTPUT_TAIL_CHARS:],
            stderr=stderr[-OUTPUT_TAIL_CHARS:],
        )

    return CommandResult(command=tuple(cmd), returncode=proc.returncode, stdout=stdout, stderr=stderr)


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
