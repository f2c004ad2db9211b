"""Flow phase, event, and state contracts."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import Field

from featureflow.constants import SCHEMA_VERSION
from featureflow.schemas.base import FrozenSchemaModel
from featureflow.schemas.enums import PhaseType, WorkflowMode, is_terminal_phase

StepPhaseType = Literal[
    "requirements-generating",
    "requirements-approval",
    "gap-analysis",
    "gap-review",
    "design-generating",
    "design-approval",
    "design-validation",
    "design-validation-review",
    "tasks-generating",
    "tasks-approval",
    "validation",
    "pr",
    "complete",
]


class IdlePhase(FrozenSchemaModel):
    type: Literal["idle"] = "idle"


class InitializingPhase(FrozenSchemaModel):
    type: Literal["initializing"] = "initializing"
    feature: str = Field(min_length=1)
    description: str = ""


class StepPhase(FrozenSchemaModel):
    """Phases that carry nothing but the feature id."""

    type: StepPhaseType
    feature: str = Field(min_length=1)


class ImplementingPhase(FrozenSchemaModel):
    type: Literal["implementing"] = "implementing"
    feature: str = Field(min_length=1)
    current_task: int = Field(default=0, ge=0)
    total_tasks: int = Field(default=0, ge=0)


class PausedPhase(FrozenSchemaModel):
    type: Literal["paused"] = "paused"
    feature: str = Field(min_length=1)
    paused_at: int = Field(ge=0)
    total_tasks: int = Field(ge=0)


class MergeDecisionPhase(FrozenSchemaModel):
    type: Literal["merge-decision"] = "merge-decision"
    feature: str = Field(min_length=1)
    pr_url: str


class AbortedPhase(FrozenSchemaModel):
    type: Literal["aborted"] = "aborted"
    feature: str = Field(min_length=1)
    reason: str


class ErrorPhase(FrozenSchemaModel):
    type: Literal["error"] = "error"
    feature: str = Field(min_length=1)
    error: str


FlowPhase = Annotated[
    Union[
        IdlePhase,
        InitializingPhase,
        StepPhase,
        ImplementingPhase,
        PausedPhase,
        MergeDecisionPhase,
        AbortedPhase,
        ErrorPhase,
    ],
    Field(discriminator="type"),
]


class StartEvent(FrozenSchemaModel):
    type: Literal["START"] = "START"
    feature: str = Field(min_length=1)
    description: str = ""
    mode: WorkflowMode = WorkflowMode.GREENFIELD


class ResumeEvent(FrozenSchemaModel):
    type: Literal["RESUME"] = "RESUME"
    feature: str = Field(min_length=1)


class PhaseCompleteEvent(FrozenSchemaModel):
    type: Literal["PHASE_COMPLETE"] = "PHASE_COMPLETE"


class PhaseCompleteWithDataEvent(FrozenSchemaModel):
    """Phase completion whose payload is only delivered to listeners."""

    type: Literal["PHASE_COMPLETE_WITH_DATA"] = "PHASE_COMPLETE_WITH_DATA"
    data: dict[str, Any] = Field(default_factory=dict)


class ApproveEvent(FrozenSchemaModel):
    type: Literal["APPROVE"] = "APPROVE"
    total_tasks: int | None = Field(default=None, ge=0)


class RejectEvent(FrozenSchemaModel):
    type: Literal["REJECT"] = "REJECT"


class PauseEvent(FrozenSchemaModel):
    type: Literal["PAUSE"] = "PAUSE"


class AbortEvent(FrozenSchemaModel):
    type: Literal["ABORT"] = "ABORT"
    reason: str = "Aborted by user"


class ErrorEvent(FrozenSchemaModel):
    type: Literal["ERROR"] = "ERROR"
    error: str


class TaskCompleteEvent(FrozenSchemaModel):
    type: Literal["TASK_COMPLETE"] = "TASK_COMPLETE"
    task_id: int | None = Field(default=None, ge=1)
    skipped: bool = False


class PrCreatedEvent(FrozenSchemaModel):
    type: Literal["PR_CREATED"] = "PR_CREATED"
    pr_url: str = Field(min_length=1)
    pr_number: int | None = None


class MergeEvent(FrozenSchemaModel):
    type: Literal["MERGE"] = "MERGE"


class SkipMergeEvent(FrozenSchemaModel):
    type: Literal["SKIP_MERGE"] = "SKIP_MERGE"


FlowEvent = Annotated[
    Union[
        StartEvent,
        ResumeEvent,
        PhaseCompleteEvent,
        PhaseCompleteWithDataEvent,
        ApproveEvent,
        RejectEvent,
        PauseEvent,
        AbortEvent,
        ErrorEvent,
        TaskCompleteEvent,
        PrCreatedEvent,
        MergeEvent,
        SkipMergeEvent,
    ],
    Field(discriminator="type"),
]


class FlowMetadata(FrozenSchemaModel):
    """Descriptive data accumulated over a flow's lifetime."""

    description: str = ""
    tier: str | None = None
    worktree_path: str | None = None
    branch: str | None = None
    pr_url: str | None = None
    pr_number: int | None = None
    completed_tasks: tuple[int, ...] = ()
    skipped_tasks: tuple[int, ...] = ()


class FlowState(FrozenSchemaModel):
    """One feature's persisted flow state."""

    schema_version: str = SCHEMA_VERSION
    feature: str = Field(min_length=1)
    phase: FlowPhase = Field(default_factory=IdlePhase)
    mode: WorkflowMode | None = None
    history: tuple[FlowPhase, ...] = ()
    metadata: FlowMetadata = Field(default_factory=FlowMetadata)
    created_at: str | None = None
    updated_at: str | None = None
    revision: int = Field(default=0, ge=0)

    @classmethod
    def new(cls, feature: str, *, description: str = "", tier: str | None = None) -> FlowState:
        """Build an unsaved idle state for a feature."""
        return cls(
            feature=feature,
            metadata=FlowMetadata(description=description, tier=tier),
        )

    @property
    def phase_type(self) -> PhaseType:
        return PhaseType(self.phase.type)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_phase(self.phase.type)

    @property
    def completed_count(self) -> int:
        return len(self.metadata.completed_tasks)
