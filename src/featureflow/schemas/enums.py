"""Enum definitions for canonical contracts."""

from __future__ import annotations

from enum import Enum


class WorkflowMode(str, Enum):
    GREENFIELD = "greenfield"
    BROWNFIELD = "brownfield"


class PhaseType(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    REQUIREMENTS_GENERATING = "requirements-generating"
    REQUIREMENTS_APPROVAL = "requirements-approval"
    GAP_ANALYSIS = "gap-analysis"
    GAP_REVIEW = "gap-review"
    DESIGN_GENERATING = "design-generating"
    DESIGN_APPROVAL = "design-approval"
    DESIGN_VALIDATION = "design-validation"
    DESIGN_VALIDATION_REVIEW = "design-validation-review"
    TASKS_GENERATING = "tasks-generating"
    TASKS_APPROVAL = "tasks-approval"
    IMPLEMENTING = "implementing"
    PAUSED = "paused"
    VALIDATION = "validation"
    PR = "pr"
    MERGE_DECISION = "merge-decision"
    COMPLETE = "complete"
    ABORTED = "aborted"
    ERROR = "error"


class CheckpointDecision(str, Enum):
    CONTINUE = "continue"
    PAUSE = "pause"
    ABORT = "abort"


class FailureDecision(str, Enum):
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


class RunnerState(str, Enum):
    RUNNING = "running"
    AWAITING_CHECKPOINT = "awaiting_checkpoint"
    PAUSED = "paused"
    ABORTED = "aborted"
    DONE = "done"
    FAILED = "failed"


TERMINAL_PHASES: frozenset[PhaseType] = frozenset(
    {PhaseType.COMPLETE, PhaseType.ABORTED, PhaseType.ERROR}
)
APPROVAL_PHASES: frozenset[PhaseType] = frozenset(
    {
        PhaseType.REQUIREMENTS_APPROVAL,
        PhaseType.GAP_REVIEW,
        PhaseType.DESIGN_APPROVAL,
        PhaseType.DESIGN_VALIDATION_REVIEW,
        PhaseType.TASKS_APPROVAL,
        PhaseType.MERGE_DECISION,
    }
)


def is_terminal_phase(phase_type: str | PhaseType) -> bool:
    return PhaseType(phase_type) in TERMINAL_PHASES


def is_approval_phase(phase_type: str | PhaseType) -> bool:
    return PhaseType(phase_type) in APPROVAL_PHASES
