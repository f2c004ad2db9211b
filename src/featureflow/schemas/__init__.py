"""Schema contract exports."""

from featureflow.schemas.enums import (
    CheckpointDecision,
    FailureDecision,
    PhaseType,
    RunnerState,
    WorkflowMode,
)
from featureflow.schemas.flow_models import (
    AbortedPhase,
    AbortEvent,
    ApproveEvent,
    ErrorEvent,
    ErrorPhase,
    FlowEvent,
    FlowMetadata,
    FlowPhase,
    FlowState,
    IdlePhase,
    ImplementingPhase,
    InitializingPhase,
    MergeDecisionPhase,
    MergeEvent,
    PausedPhase,
    PauseEvent,
    PhaseCompleteEvent,
    PhaseCompleteWithDataEvent,
    PrCreatedEvent,
    RejectEvent,
    ResumeEvent,
    SkipMergeEvent,
    StartEvent,
    StepPhase,
    TaskCompleteEvent,
)
from featureflow.schemas.task_models import Task

__all__ = [
    "AbortEvent",
    "AbortedPhase",
    "ApproveEvent",
    "CheckpointDecision",
    "ErrorEvent",
    "ErrorPhase",
    "FailureDecision",
    "FlowEvent",
    "FlowMetadata",
    "FlowPhase",
    "FlowState",
    "IdlePhase",
    "ImplementingPhase",
    "InitializingPhase",
    "MergeDecisionPhase",
    "MergeEvent",
    "PauseEvent",
    "PausedPhase",
    "PhaseCompleteEvent",
    "PhaseCompleteWithDataEvent",
    "PhaseType",
    "PrCreatedEvent",
    "RejectEvent",
    "ResumeEvent",
    "RunnerState",
    "SkipMergeEvent",
    "StartEvent",
    "StepPhase",
    "Task",
    "TaskCompleteEvent",
    "WorkflowMode",
]
