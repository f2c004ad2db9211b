"""Deterministic subprocess wrapper for git and gh invocations."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from featureflow.errors import INSTALL_HINTS, ErrorKind

LOGGER = logging.getLogger(__name__)

CommandStatus = Literal["completed", "failed", "unavailable"]
PERMISSION_MARKERS = ("permission denied", "operation not permitted")


@dataclass(frozen=True)
class CommandResult:
    """Normalized command execution result."""

    status: CommandStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"

    @property
    def message(self) -> str:
        return self.error or self.stderr or self.stdout or "command failed"


class CommandRunner:
    """Run external CLIs with timeouts and structured failures."""

    def __init__(self, *, timeout_seconds: int = 120) -> None:
        self.timeout_seconds = timeout_seconds

    def run(
        self,
        tool: str,
        args: list[str],
        *,
        cwd: Path | None = None,
        timeout_seconds: int | None = None,
    ) -> CommandResult:
        if shutil.which(tool) is None:
            return _unavailable(tool)

        cmd = [tool, *args]
        LOGGER.debug("Running %s in %s", " ".join(cmd), cwd or ".")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=timeout_seconds or self.timeout_seconds,
                cwd=cwd,
            )
        except FileNotFoundError:
            return _unavailable(tool)
        except subprocess.TimeoutExpired:
            return CommandResult(
                status="failed",
                error=f"{tool} {' '.join(args[:2])} timed out",
                error_kind=ErrorKind.TIMEOUT,
            )
        except PermissionError as exc:
            return CommandResult(
                status="failed",
                error=f"{tool} could not be executed: {exc}",
                error_kind=ErrorKind.PERMISSION_DENIED,
            )

        stdout = result.stdout.strip()
        stderr = result.stderr.strip()
        if result.returncode != 0:
            return CommandResult(
                status="failed",
                stdout=stdout,
                stderr=stderr,
                exit_code=result.returncode,
                error=stderr or stdout or f"{tool} exited with code {result.returncode}",
                error_kind=classify_failure(stderr or stdout),
            )
        return CommandResult(
            status="completed",
            stdout=stdout,
            stderr=stderr,
            exit_code=result.returncode,
        )


def classify_failure(output: str) -> ErrorKind:
    lowered = output.lower()
    if any(marker in lowered for marker in PERMISSION_MARKERS):
        return ErrorKind.PERMISSION_DENIED
    if "index.lock" in lowered or ("unable to create" in lowered and ".lock" in lowered):
        return ErrorKind.LOCKED
    return ErrorKind.COMMAND_FAILED


def _unavailable(tool: str) -> CommandResult:
    hint = INSTALL_HINTS.get(tool, f"Install {tool} and make sure it is on PATH")
    return CommandResult(
        status="unavailable",
        error=f"{tool} not found. {hint}",
        error_kind=ErrorKind.TOOL_NOT_FOUND,
    )
