"""Opaque agent boundary: generate phase content or execute one task."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from featureflow.agents.prompts import build_phase_prompt, build_task_prompt
from featureflow.errors import (
    ErrorKind,
    FeatureFlowError,
    ServiceError,
    TransientExecutionError,
)
from featureflow.schemas.enums import PhaseType
from featureflow.schemas.task_models import Task
from featureflow.vcs.command import CommandRunner

LOGGER = logging.getLogger(__name__)

DEFAULT_AGENT_COMMAND = ("claude", "--print")
SETUP_ERROR_KINDS = frozenset({ErrorKind.TOOL_NOT_FOUND, ErrorKind.PERMISSION_DENIED})


@dataclass(frozen=True)
class TaskRequest:
    feature: str
    task: Task
    working_dir: Path
    spec_dir: Path


@dataclass(frozen=True)
class PhaseRequest:
    feature: str
    phase: PhaseType
    working_dir: Path
    spec_dir: Path
    description: str = ""


@dataclass(frozen=True)
class AgentResult:
    """Agent call outcome; ``output`` holds generated content on success."""

    success: bool
    output: str = ""
    error: str | None = None
    error_kind: ErrorKind | None = None


class AgentInvoker(Protocol):
    """Agent execution contract."""

    def execute_task(self, request: TaskRequest) -> AgentResult:
        """Implement one task inside the working directory."""

    def generate_phase(self, request: PhaseRequest) -> AgentResult:
        """Produce the artifact for a generating phase."""


class CommandAgentInvoker:
    """Run a local agent CLI with the prompt as its final argument."""

    def __init__(
        self,
        command: tuple[str, ...] | list[str] = DEFAULT_AGENT_COMMAND,
        *,
        timeout_seconds: int = 1800,
        runner: CommandRunner | None = None,
    ) -> None:
        if not command:
            raise ValueError("agent command must not be empty")
        self.command = tuple(command)
        self.timeout_seconds = timeout_seconds
        self.runner = runner or CommandRunner(timeout_seconds=timeout_seconds)

    def execute_task(self, request: TaskRequest) -> AgentResult:
        prompt = build_task_prompt(request.task, request.feature)
        LOGGER.info("Invoking agent for %s task %s", request.feature, request.task.id)
        return self._invoke(prompt, request.working_dir)

    def generate_phase(self, request: PhaseRequest) -> AgentResult:
        prompt = build_phase_prompt(
            request.phase, request.feature, request.spec_dir, request.description
        )
        if prompt is None:
            return AgentResult(success=True)
        LOGGER.info("Invoking agent for %s phase %s", request.feature, request.phase.value)
        return self._invoke(prompt, request.working_dir)

    def _invoke(self, prompt: str, working_dir: Path) -> AgentResult:
        tool, *args = self.command
        result = self.runner.run(
            tool,
            [*args, prompt],
            cwd=working_dir,
            timeout_seconds=self.timeout_seconds,
        )
        if not result.ok:
            return AgentResult(
                success=False,
                output=result.stdout,
                error=result.message,
                error_kind=result.error_kind,
            )
        return AgentResult(success=True, output=result.stdout)


def agent_failure(result: AgentResult, fallback: str) -> FeatureFlowError:
    """Error for a failed agent call.

    A missing or unexecutable agent CLI is a ``ServiceError`` that the retry
    layer propagates at once; anything else is transient and retried.
    """
    message = result.error or fallback
    if result.error_kind in SETUP_ERROR_KINDS:
        return ServiceError(message, kind=result.error_kind)
    return TransientExecutionError(message, kind=ErrorKind.AGENT_FAILED)
