"""Flow state machine transition tests."""

from __future__ import annotations

from collections import deque

import pytest

from featureflow.errors import FatalFlowError
from featureflow.flow.state_machine import (
    BROWNFIELD_PHASES,
    GREENFIELD_PHASES,
    FlowStateMachine,
    check_invariants,
)
from featureflow.schemas.enums import PhaseType, WorkflowMode
from featureflow.schemas.flow_models import (
    AbortedPhase,
    AbortEvent,
    ApproveEvent,
    ErrorEvent,
    ErrorPhase,
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

FEATURE = "add-auth"
PR_URL = "https://github.com/acme/app/pull/7"


def sample_phase(phase_type: PhaseType):  # noqa: ANN201
    if phase_type == PhaseType.IDLE:
        return IdlePhase()
    if phase_type == PhaseType.INITIALIZING:
        return InitializingPhase(feature=FEATURE)
    if phase_type == PhaseType.IMPLEMENTING:
        return ImplementingPhase(feature=FEATURE, current_task=1, total_tasks=3)
    if phase_type == PhaseType.PAUSED:
        return PausedPhase(feature=FEATURE, paused_at=1, total_tasks=3)
    if phase_type == PhaseType.MERGE_DECISION:
        return MergeDecisionPhase(feature=FEATURE, pr_url=PR_URL)
    if phase_type == PhaseType.ABORTED:
        return AbortedPhase(feature=FEATURE, reason="stop")
    if phase_type == PhaseType.ERROR:
        return ErrorPhase(feature=FEATURE, error="boom")
    return StepPhase(type=phase_type.value, feature=FEATURE)


def state_in(phase_type: PhaseType, mode: WorkflowMode | None) -> FlowState:
    return FlowState(
        feature=FEATURE,
        phase=sample_phase(phase_type),
        mode=None if phase_type == PhaseType.IDLE else mode,
    )


def all_events() -> list:
    return [
        StartEvent(feature=FEATURE),
        ResumeEvent(feature=FEATURE),
        PhaseCompleteEvent(),
        PhaseCompleteWithDataEvent(data={"output": "generated"}),
        ApproveEvent(total_tasks=3),
        RejectEvent(),
        PauseEvent(),
        AbortEvent(reason="user stop"),
        ErrorEvent(error="boom"),
        TaskCompleteEvent(),
        PrCreatedEvent(pr_url=PR_URL, pr_number=7),
        MergeEvent(),
        SkipMergeEvent(),
    ]


def started(mode: WorkflowMode) -> FlowState:
    machine = FlowStateMachine()
    transition = machine.send(FlowState.new(FEATURE), StartEvent(feature=FEATURE, mode=mode))
    assert transition.accepted
    return transition.state


@pytest.mark.parametrize("mode", list(WorkflowMode))
@pytest.mark.parametrize("phase_type", list(PhaseType))
def test_send_agrees_with_can_transition_everywhere(
    phase_type: PhaseType, mode: WorkflowMode
) -> None:
    """Every phase/event pair is either accepted by both or rejected by both."""
    machine = FlowStateMachine()
    state = state_in(phase_type, mode)
    for event in all_events():
        transition = machine.send(state, event)
        assert transition.accepted == machine.can_transition(state, event)
        if transition.accepted:
            assert transition.message is None
            assert transition.state.history[-1] == state.phase
        else:
            assert transition.state == state
            assert transition.message


@pytest.mark.parametrize("phase_type", [PhaseType.COMPLETE, PhaseType.ABORTED, PhaseType.ERROR])
def test_terminal_phases_reject_every_event(phase_type: PhaseType) -> None:
    """Finished flows accept nothing, not even ABORT."""
    machine = FlowStateMachine()
    state = state_in(phase_type, WorkflowMode.GREENFIELD)
    assert not any(machine.can_transition(state, event) for event in all_events())


def reachable_phases(mode: WorkflowMode) -> set[PhaseType]:
    machine = FlowStateMachine()
    start = started(mode)
    seen = {start.phase.model_dump_json()}
    queue = deque([start])
    reached = {start.phase_type}
    while queue:
        state = queue.popleft()
        for event in all_events():
            transition = machine.send(state, event)
            if not transition.accepted:
                continue
            key = transition.state.phase.model_dump_json()
            if key in seen:
                continue
            seen.add(key)
            reached.add(transition.state.phase_type)
            queue.append(transition.state)
    return reached


def test_brownfield_only_phases_unreachable_in_greenfield() -> None:
    """No event sequence leads a greenfield flow into a brownfield-only phase."""
    reached = reachable_phases(WorkflowMode.GREENFIELD)
    brownfield_only = set(BROWNFIELD_PHASES) - set(GREENFIELD_PHASES)
    assert PhaseType.GAP_ANALYSIS in brownfield_only
    assert PhaseType.DESIGN_VALIDATION in brownfield_only
    assert reached.isdisjoint(brownfield_only)
    assert set(GREENFIELD_PHASES) <= reached


def test_brownfield_reaches_its_whole_sequence() -> None:
    reached = reachable_phases(WorkflowMode.BROWNFIELD)
    assert set(BROWNFIELD_PHASES) <= reached


@pytest.mark.parametrize(
    ("mode", "sequence"),
    [
        (WorkflowMode.GREENFIELD, GREENFIELD_PHASES),
        (WorkflowMode.BROWNFIELD, BROWNFIELD_PHASES),
    ],
)
def test_happy_path_visits_sequence_in_order(mode: WorkflowMode, sequence: tuple) -> None:
    """Completing and approving every step walks the mode's sequence exactly."""
    machine = FlowStateMachine()
    state = started(mode)
    visited = [state.phase_type]
    while not state.is_terminal:
        phase_type = state.phase_type
        if phase_type == PhaseType.TASKS_APPROVAL:
            event = ApproveEvent(total_tasks=2)
        elif phase_type == PhaseType.IMPLEMENTING:
            event = TaskCompleteEvent()
        elif phase_type == PhaseType.PR:
            event = PrCreatedEvent(pr_url=PR_URL, pr_number=7)
        elif phase_type == PhaseType.MERGE_DECISION:
            event = MergeEvent()
        elif phase_type in {
            PhaseType.REQUIREMENTS_APPROVAL,
            PhaseType.GAP_REVIEW,
            PhaseType.DESIGN_APPROVAL,
            PhaseType.DESIGN_VALIDATION_REVIEW,
        }:
            event = ApproveEvent()
        else:
            event = PhaseCompleteEvent()
        transition = machine.send(state, event)
        assert transition.accepted, transition.message
        state = transition.state
        if state.phase_type != visited[-1]:
            visited.append(state.phase_type)

    assert tuple(visited) == sequence
    assert state.mode == mode
    assert state.metadata.completed_tasks == (1, 2)
    assert state.metadata.pr_url == PR_URL


def test_reject_in_design_approval_loops_back_one_step() -> None:
    """REJECT returns to design-generating and completion returns to design-approval."""
    machine = FlowStateMachine()
    state = state_in(PhaseType.DESIGN_APPROVAL, WorkflowMode.GREENFIELD)

    rejected = machine.send(state, RejectEvent())
    assert rejected.accepted
    assert rejected.state.phase_type == PhaseType.DESIGN_GENERATING

    regenerated = machine.send(rejected.state, PhaseCompleteEvent())
    assert regenerated.state.phase_type == PhaseType.DESIGN_APPROVAL


def test_gap_review_reject_returns_to_requirements() -> None:
    machine = FlowStateMachine()
    state = state_in(PhaseType.GAP_REVIEW, WorkflowMode.BROWNFIELD)
    transition = machine.send(state, RejectEvent())
    assert transition.state.phase_type == PhaseType.REQUIREMENTS_GENERATING


def test_mode_cannot_change_after_start() -> None:
    """A second START is rejected and the mode stays as first chosen."""
    machine = FlowStateMachine()
    state = started(WorkflowMode.GREENFIELD)
    transition = machine.send(state, StartEvent(feature=FEATURE, mode=WorkflowMode.BROWNFIELD))
    assert not transition.accepted
    assert transition.state.mode == WorkflowMode.GREENFIELD


def test_start_for_other_feature_is_rejected() -> None:
    machine = FlowStateMachine()
    transition = machine.send(FlowState.new(FEATURE), StartEvent(feature="other"))
    assert not transition.accepted
    assert "other" in (transition.message or "")


def test_current_task_never_decreases_across_pause_and_resume() -> None:
    """TASK_COMPLETE increments, pause freezes, resume restores the same position."""
    machine = FlowStateMachine()
    state = FlowState(
        feature=FEATURE,
        phase=ImplementingPhase(feature=FEATURE, current_task=0, total_tasks=4),
        mode=WorkflowMode.GREENFIELD,
    )
    positions = []
    for event in [
        TaskCompleteEvent(),
        TaskCompleteEvent(skipped=True),
        PauseEvent(),
        ResumeEvent(feature=FEATURE),
        TaskCompleteEvent(),
    ]:
        state = machine.send(state, event).state
        phase = state.phase
        positions.append(
            phase.paused_at if isinstance(phase, PausedPhase) else phase.current_task
        )

    assert positions == [1, 2, 2, 2, 3]
    assert state.metadata.completed_tasks == (1, 3)
    assert state.metadata.skipped_tasks == (2,)


def test_last_task_moves_to_validation() -> None:
    machine = FlowStateMachine()
    state = FlowState(
        feature=FEATURE,
        phase=ImplementingPhase(feature=FEATURE, current_task=2, total_tasks=3),
        mode=WorkflowMode.GREENFIELD,
    )
    transition = machine.send(state, TaskCompleteEvent())
    assert transition.state.phase_type == PhaseType.VALIDATION


def test_zero_task_implementation_completes_by_phase_complete() -> None:
    machine = FlowStateMachine()
    state = FlowState(
        feature=FEATURE,
        phase=ImplementingPhase(feature=FEATURE, current_task=0, total_tasks=0),
        mode=WorkflowMode.GREENFIELD,
    )
    assert not machine.can_transition(state, TaskCompleteEvent())
    assert machine.send(state, PhaseCompleteEvent()).state.phase_type == PhaseType.VALIDATION


def test_phase_complete_with_data_payload_is_not_persisted() -> None:
    """The payload reaches listeners but never the stored state."""
    machine = FlowStateMachine()
    received: list[dict] = []
    machine.subscribe(lambda _state, event: received.append(getattr(event, "data", {})))
    state = state_in(PhaseType.REQUIREMENTS_GENERATING, WorkflowMode.GREENFIELD)

    transition = machine.send(state, PhaseCompleteWithDataEvent(data={"output": "secret"}))

    assert transition.state.phase_type == PhaseType.REQUIREMENTS_APPROVAL
    assert received == [{"output": "secret"}]
    assert "secret" not in transition.state.model_dump_json()


def test_listeners_fire_only_on_accepted_transitions_and_unsubscribe() -> None:
    machine = FlowStateMachine()
    seen: list[str] = []
    unsubscribe = machine.subscribe(lambda state, _event: seen.append(state.phase.type))
    state = state_in(PhaseType.DESIGN_APPROVAL, WorkflowMode.GREENFIELD)

    machine.send(state, TaskCompleteEvent())
    machine.send(state, ApproveEvent())
    unsubscribe()
    unsubscribe()
    machine.send(state, RejectEvent())

    assert seen == ["tasks-generating"]


def test_abort_and_error_are_accepted_from_any_live_phase() -> None:
    machine = FlowStateMachine()
    state = state_in(PhaseType.PAUSED, WorkflowMode.BROWNFIELD)
    aborted = machine.send(state, AbortEvent(reason="done here"))
    errored = machine.send(state, ErrorEvent(error="disk full"))
    assert aborted.state.phase == AbortedPhase(feature=FEATURE, reason="done here")
    assert errored.state.phase == ErrorPhase(feature=FEATURE, error="disk full")


def test_check_invariants_flags_impossible_states() -> None:
    """States mixing modes or overrunning their task count are fatal."""
    check_invariants(state_in(PhaseType.GAP_REVIEW, WorkflowMode.BROWNFIELD))
    with pytest.raises(FatalFlowError):
        check_invariants(state_in(PhaseType.GAP_REVIEW, WorkflowMode.GREENFIELD))
    with pytest.raises(FatalFlowError):
        check_invariants(
            FlowState(feature=FEATURE, phase=StepPhase(type="pr", feature=FEATURE), mode=None)
        )
    with pytest.raises(FatalFlowError):
        check_invariants(
            FlowState(
                feature=FEATURE,
                phase=ImplementingPhase(feature=FEATURE, current_task=4, total_tasks=3),
                mode=WorkflowMode.GREENFIELD,
            )
        )
