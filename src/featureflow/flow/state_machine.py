"""Mode-locked flow state machine.

The transition function is pure: it maps ``(state, event)`` onto the next
state or a rejection message and never touches disk or subprocesses.
Listeners are called synchronously after an accepted transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from featureflow.errors import FatalFlowError
from featureflow.schemas.enums import TERMINAL_PHASES, PhaseType, WorkflowMode
from featureflow.schemas.flow_models import (
    AbortedPhase,
    AbortEvent,
    ApproveEvent,
    ErrorEvent,
    ErrorPhase,
    FlowEvent,
    FlowPhase,
    FlowState,
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

GREENFIELD_PHASES: tuple[PhaseType, ...] = (
    PhaseType.INITIALIZING,
    PhaseType.REQUIREMENTS_GENERATING,
    PhaseType.REQUIREMENTS_APPROVAL,
    PhaseType.DESIGN_GENERATING,
    PhaseType.DESIGN_APPROVAL,
    PhaseType.TASKS_GENERATING,
    PhaseType.TASKS_APPROVAL,
    PhaseType.IMPLEMENTING,
    PhaseType.VALIDATION,
    PhaseType.PR,
    PhaseType.MERGE_DECISION,
    PhaseType.COMPLETE,
)
BROWNFIELD_PHASES: tuple[PhaseType, ...] = (
    PhaseType.INITIALIZING,
    PhaseType.REQUIREMENTS_GENERATING,
    PhaseType.REQUIREMENTS_APPROVAL,
    PhaseType.GAP_ANALYSIS,
    PhaseType.GAP_REVIEW,
    PhaseType.DESIGN_GENERATING,
    PhaseType.DESIGN_APPROVAL,
    PhaseType.DESIGN_VALIDATION,
    PhaseType.DESIGN_VALIDATION_REVIEW,
    PhaseType.TASKS_GENERATING,
    PhaseType.TASKS_APPROVAL,
    PhaseType.IMPLEMENTING,
    PhaseType.VALIDATION,
    PhaseType.PR,
    PhaseType.MERGE_DECISION,
    PhaseType.COMPLETE,
)
# Reachable in either mode without being a step of the sequence.
MODE_INDEPENDENT_PHASES: frozenset[PhaseType] = frozenset(
    {PhaseType.IDLE, PhaseType.PAUSED, PhaseType.ABORTED, PhaseType.ERROR}
)
COMPLETABLE_PHASES: frozenset[PhaseType] = frozenset(
    {
        PhaseType.INITIALIZING,
        PhaseType.REQUIREMENTS_GENERATING,
        PhaseType.GAP_ANALYSIS,
        PhaseType.DESIGN_GENERATING,
        PhaseType.DESIGN_VALIDATION,
        PhaseType.TASKS_GENERATING,
        PhaseType.VALIDATION,
    }
)
REJECT_TARGETS: dict[PhaseType, PhaseType] = {
    PhaseType.REQUIREMENTS_APPROVAL: PhaseType.REQUIREMENTS_GENERATING,
    PhaseType.GAP_REVIEW: PhaseType.REQUIREMENTS_GENERATING,
    PhaseType.DESIGN_APPROVAL: PhaseType.DESIGN_GENERATING,
    PhaseType.DESIGN_VALIDATION_REVIEW: PhaseType.DESIGN_GENERATING,
    PhaseType.TASKS_APPROVAL: PhaseType.TASKS_GENERATING,
}

Listener = Callable[[FlowState, FlowEvent], None]


@dataclass(frozen=True)
class Transition:
    """Result of offering an event to the machine."""

    state: FlowState
    accepted: bool
    message: str | None = None


def phase_sequence(mode: WorkflowMode) -> tuple[PhaseType, ...]:
    """Return the only legal phase order for a workflow mode."""
    return BROWNFIELD_PHASES if mode == WorkflowMode.BROWNFIELD else GREENFIELD_PHASES


def belongs_to_mode(phase_type: PhaseType | str, mode: WorkflowMode) -> bool:
    phase_type = PhaseType(phase_type)
    return phase_type in MODE_INDEPENDENT_PHASES or phase_type in phase_sequence(mode)


def check_invariants(state: FlowState) -> None:
    """Raise ``FatalFlowError`` when a state could never have been produced by the machine."""
    phase_type = state.phase_type
    if phase_type != PhaseType.IDLE and state.mode is None:
        raise FatalFlowError(
            f"Flow {state.feature!r} is in phase '{phase_type.value}' but has no workflow mode"
        )
    if state.mode is not None and not belongs_to_mode(phase_type, state.mode):
        raise FatalFlowError(
            f"Flow {state.feature!r} is in phase '{phase_type.value}', which is not part of "
            f"the {state.mode.value} sequence"
        )
    phase = state.phase
    if isinstance(phase, ImplementingPhase) and phase.current_task > phase.total_tasks:
        raise FatalFlowError(
            f"Flow {state.feature!r} reports task {phase.current_task} of {phase.total_tasks}"
        )


class FlowStateMachine:
    """Pure transition logic plus a synchronous listener list."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def send(self, state: FlowState, event: FlowEvent) -> Transition:
        """Apply ``event`` to ``state``; rejected events leave the state untouched."""
        outcome = _resolve(state, event)
        if isinstance(outcome, str):
            return Transition(state=state, accepted=False, message=outcome)
        next_state = _apply(state, event, outcome)
        for listener in list(self._listeners):
            listener(next_state, event)
        return Transition(state=next_state, accepted=True)

    def can_transition(self, state: FlowState, event: FlowEvent) -> bool:
        return not isinstance(_resolve(state, event), str)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


def _resolve(state: FlowState, event: FlowEvent) -> FlowPhase | str:
    phase = state.phase
    current = PhaseType(phase.type)
    mode = state.mode
    mode_label = mode.value if mode is not None else "unset"

    if current in TERMINAL_PHASES:
        return (
            f"Flow {state.feature!r} is {current.value}; event {event.type} cannot be applied "
            "to a finished flow"
        )

    if current == PhaseType.IDLE:
        if not isinstance(event, StartEvent):
            return f"Flow {state.feature!r} is idle; expected START, got {event.type}"
        if event.feature != state.feature:
            return (
                f"START for feature {event.feature!r} cannot initialize the flow for "
                f"{state.feature!r}"
            )
        return InitializingPhase(feature=event.feature, description=event.description)

    if mode is None or not belongs_to_mode(current, mode):
        return (
            f"Phase '{current.value}' does not belong to the {mode_label} sequence; "
            f"event {event.type} rejected"
        )

    feature = phase.feature
    if isinstance(event, AbortEvent):
        return AbortedPhase(feature=feature, reason=event.reason)
    if isinstance(event, ErrorEvent):
        return ErrorPhase(feature=feature, error=event.error)

    target = _phase_specific(phase, current, event, mode)
    if target is None:
        return (
            f"Event {event.type} is not accepted in phase '{current.value}' "
            f"({mode_label} mode)"
        )
    if not belongs_to_mode(target.type, mode):
        return (
            f"Event {event.type} in phase '{current.value}' would enter '{target.type}', "
            f"which is not part of the {mode_label} sequence"
        )
    return target


def _phase_specific(
    phase: FlowPhase,
    current: PhaseType,
    event: FlowEvent,
    mode: WorkflowMode,
) -> FlowPhase | None:
    feature = phase.feature
    completes = isinstance(event, (PhaseCompleteEvent, PhaseCompleteWithDataEvent))

    if current in COMPLETABLE_PHASES:
        return _next_in_sequence(current, feature, mode) if completes else None

    if current in REJECT_TARGETS:
        if isinstance(event, RejectEvent):
            return StepPhase(type=REJECT_TARGETS[current].value, feature=feature)
        if not isinstance(event, ApproveEvent):
            return None
        if current == PhaseType.TASKS_APPROVAL:
            return ImplementingPhase(
                feature=feature, current_task=0, total_tasks=event.total_tasks or 0
            )
        return _next_in_sequence(current, feature, mode)

    if isinstance(phase, ImplementingPhase):
        if isinstance(event, TaskCompleteEvent):
            if phase.current_task >= phase.total_tasks:
                return None
            advanced = phase.current_task + 1
            if advanced == phase.total_tasks:
                return StepPhase(type=PhaseType.VALIDATION.value, feature=feature)
            return phase.model_copy(update={"current_task": advanced})
        if isinstance(event, PauseEvent):
            return PausedPhase(
                feature=feature, paused_at=phase.current_task, total_tasks=phase.total_tasks
            )
        if completes and phase.current_task == phase.total_tasks:
            return StepPhase(type=PhaseType.VALIDATION.value, feature=feature)
        return None

    if isinstance(phase, PausedPhase):
        if isinstance(event, ResumeEvent) and event.feature == feature:
            return ImplementingPhase(
                feature=feature, current_task=phase.paused_at, total_tasks=phase.total_tasks
            )
        return None

    if current == PhaseType.PR and isinstance(event, PrCreatedEvent):
        return MergeDecisionPhase(feature=feature, pr_url=event.pr_url)

    if current == PhaseType.MERGE_DECISION and isinstance(event, (MergeEvent, SkipMergeEvent)):
        return StepPhase(type=PhaseType.COMPLETE.value, feature=feature)

    return None


def _next_in_sequence(current: PhaseType, feature: str, mode: WorkflowMode) -> FlowPhase:
    sequence = phase_sequence(mode)
    target = sequence[sequence.index(current) + 1]
    if target == PhaseType.IMPLEMENTING:
        return ImplementingPhase(feature=feature)
    return StepPhase(type=target.value, feature=feature)


def _apply(state: FlowState, event: FlowEvent, target: FlowPhase) -> FlowState:
    update: dict[str, object] = {
        "phase": target,
        "history": (*state.history, state.phase),
    }
    metadata = state.metadata
    if isinstance(event, StartEvent):
        update["mode"] = event.mode
        if event.description:
            metadata = metadata.model_copy(update={"description": event.description})
    elif isinstance(event, TaskCompleteEvent):
        task_id = event.task_id or _accounted_count(state) + 1
        field = "skipped_tasks" if event.skipped else "completed_tasks"
        metadata = metadata.model_copy(
            update={field: (*getattr(metadata, field), task_id)}
        )
    elif isinstance(event, PrCreatedEvent):
        metadata = metadata.model_copy(
            update={"pr_url": event.pr_url, "pr_number": event.pr_number}
        )
    update["metadata"] = metadata
    return state.model_copy(update=update)


def _accounted_count(state: FlowState) -> int:
    phase = state.phase
    if isinstance(phase, ImplementingPhase):
        return phase.current_task
    return len(state.metadata.completed_tasks) + len(state.metadata.skipped_tasks)
