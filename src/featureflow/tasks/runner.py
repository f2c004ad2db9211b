"""Checkpointing, resumable execution of a feature's task list."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

from featureflow.agents.invoker import (
    SETUP_ERROR_KINDS,
    AgentInvoker,
    TaskRequest,
    agent_failure,
)
from featureflow.constants import DEFAULT_CHECKPOINT_INTERVAL
from featureflow.errors import (
    ErrorKind,
    ServiceError,
    TaskFormatError,
    TransientExecutionError,
    TransitionRejectedError,
)
from featureflow.flow.state_machine import FlowStateMachine, check_invariants
from featureflow.flow.state_store import StateStore
from featureflow.resilience.retry import RetryExecutor, RetryPolicy
from featureflow.schemas.enums import CheckpointDecision, FailureDecision, RunnerState
from featureflow.schemas.flow_models import (
    FlowEvent,
    FlowState,
    ImplementingPhase,
    PhaseCompleteEvent,
    TaskCompleteEvent,
)
from featureflow.schemas.task_models import Task
from featureflow.tasks.parser import TaskParser
from featureflow.vcs.commit import CommitService, format_task_commit_message

LOGGER = logging.getLogger(__name__)

ProgressStatus = Literal["started", "completed", "skipped"]


@dataclass(frozen=True)
class TaskProgress:
    task_id: int
    title: str
    current: int
    total: int
    status: ProgressStatus
    commit_hash: str | None = None


@dataclass(frozen=True)
class TaskExecutionOptions:
    """Inputs for one ``TaskRunner.execute`` call.

    ``state`` must be the latest persisted flow state in ``implementing``.
    Callbacks are invoked synchronously from the runner's thread.
    """

    feature: str
    spec_dir: Path
    working_dir: Path
    state: FlowState
    on_progress: Callable[[TaskProgress], None] | None = None
    on_checkpoint: Callable[[int, int], CheckpointDecision] | None = None
    on_failure: Callable[[Task, str], FailureDecision] | None = None


@dataclass(frozen=True)
class TaskExecutionResult:
    """Outcome of an execute call. ``completed_tasks`` counts accounted tasks."""

    success: bool
    completed_tasks: int
    total_tasks: int
    state: RunnerState
    flow_state: FlowState
    paused_at: int | None = None
    error: str | None = None
    failed_task: int | None = None
    skipped_tasks: tuple[int, ...] = ()
    commits: tuple[str, ...] = ()


class _StopRun(Exception):
    """Internal signal carrying the runner state that ended the loop."""

    def __init__(self, state: RunnerState, error: str | None = None) -> None:
        super().__init__(error or state.value)
        self.state = state
        self.error = error


class TaskRunner:
    """Execute tasks in order, committing each success and pausing at checkpoints."""

    def __init__(
        self,
        agent: AgentInvoker,
        commit_service: CommitService,
        state_store: StateStore,
        *,
        machine: FlowStateMachine | None = None,
        task_parser: TaskParser | None = None,
        retry_executor: RetryExecutor | None = None,
        checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
        agent_timeout_seconds: int | None = None,
    ) -> None:
        if checkpoint_interval < 1:
            raise ValueError("checkpoint_interval must be >= 1")
        self.agent = agent
        self.commit_service = commit_service
        self.state_store = state_store
        self.machine = machine or FlowStateMachine()
        self.task_parser = task_parser or TaskParser()
        self.retry_executor = retry_executor or RetryExecutor(RetryPolicy())
        self.checkpoint_interval = checkpoint_interval
        self.agent_timeout_seconds = agent_timeout_seconds
        self._abort = threading.Event()
        self._state = RunnerState.DONE

    @property
    def state(self) -> RunnerState:
        return self._state

    def abort(self) -> None:
        """Request cooperative cancellation; an in-flight agent call still finishes."""
        self._abort.set()

    def execute(self, options: TaskExecutionOptions) -> TaskExecutionResult:
        self._abort.clear()
        self._state = RunnerState.RUNNING
        phase = options.state.phase
        if not isinstance(phase, ImplementingPhase):
            raise TransitionRejectedError(
                f"Flow {options.feature!r} is in phase '{phase.type}'; tasks run only "
                "while implementing"
            )
        tasks = self.task_parser.parse(options.spec_dir)
        if len(tasks) != phase.total_tasks:
            raise TaskFormatError(
                f"{self.task_parser.file_name} lists {len(tasks)} task(s) but the flow "
                f"was approved with {phase.total_tasks}"
            )

        run = _RunLedger(flow_state=options.state, index=phase.current_task, total=len(tasks))
        try:
            if run.total == 0:
                run.flow_state = self._advance(run.flow_state, PhaseCompleteEvent())
            while run.index < run.total:
                self._raise_if_aborted()
                task = tasks[run.index]
                self._run_task(task, options, run)
                run.index += 1
                if run.index % self.checkpoint_interval == 0:
                    self._checkpoint(options, run)
        except _StopRun as stop:
            self._state = stop.state
            return run.result(
                success=stop.state == RunnerState.PAUSED,
                state=stop.state,
                paused_at=run.index if stop.state == RunnerState.PAUSED else None,
                error=stop.error,
                failed_task=run.failed_task,
            )

        self._state = RunnerState.DONE
        return run.result(success=True, state=RunnerState.DONE)

    def _run_task(self, task: Task, options: TaskExecutionOptions, run: _RunLedger) -> None:
        if task.completed:
            LOGGER.info("Task %s already checked in %s; accounting it", task.id, options.feature)
            run.flow_state = self._advance(run.flow_state, TaskCompleteEvent(task_id=task.id))
            self._report(options, task, run, "completed")
            return

        while True:
            self._report(options, task, run, "started")
            try:
                commit_hash = self._attempt(task, options)
            except (TransientExecutionError, ServiceError) as exc:
                if exc.kind in SETUP_ERROR_KINDS:
                    self._state = RunnerState.FAILED
                    raise
                decision = self._decide_failure(task, str(exc), options, run)
                if decision == FailureDecision.RETRY:
                    LOGGER.info("Retrying task %s of %s", task.id, options.feature)
                    self._raise_if_aborted()
                    continue
                run.flow_state = self._advance(
                    run.flow_state, TaskCompleteEvent(task_id=task.id, skipped=True)
                )
                run.skipped.append(task.id)
                self._report(options, task, run, "skipped")
                return
            run.flow_state = self._advance(run.flow_state, TaskCompleteEvent(task_id=task.id))
            if commit_hash:
                run.commits.append(commit_hash)
            self._report(options, task, run, "completed", commit_hash)
            return

    def _attempt(self, task: Task, options: TaskExecutionOptions) -> str | None:
        request = TaskRequest(
            feature=options.feature,
            task=task,
            working_dir=options.working_dir,
            spec_dir=options.spec_dir,
        )

        def invoke_agent() -> None:
            result = self.agent.execute_task(request)
            if not result.success:
                raise agent_failure(result, f"Agent reported failure for task {task.id}")

        def commit() -> str | None:
            message = format_task_commit_message(options.feature, task.id, task.title)
            result = self.commit_service.stage_and_commit(options.working_dir, message)
            if result.success:
                return result.commit_hash
            kind = result.error_kind or ErrorKind.COMMAND_FAILED
            error = result.error or f"Commit for task {task.id} failed"
            if kind in (ErrorKind.LOCKED, ErrorKind.TIMEOUT):
                raise TransientExecutionError(error, kind=kind)
            raise ServiceError(error, kind=kind)

        self.retry_executor.run(
            invoke_agent,
            stage_name=f"task {task.id}",
            timeout_seconds=self.agent_timeout_seconds,
        )
        return self.retry_executor.run(commit, stage_name=f"commit for task {task.id}")

    def _decide_failure(
        self, task: Task, error: str, options: TaskExecutionOptions, run: _RunLedger
    ) -> FailureDecision:
        LOGGER.warning("Task %s of %s failed: %s", task.id, options.feature, error)
        if options.on_failure is None:
            run.failed_task = task.id
            raise _StopRun(RunnerState.FAILED, error)
        decision = FailureDecision(options.on_failure(task, error))
        if decision == FailureDecision.ABORT:
            run.failed_task = task.id
            raise _StopRun(RunnerState.ABORTED, error)
        return decision

    def _checkpoint(self, options: TaskExecutionOptions, run: _RunLedger) -> None:
        self._raise_if_aborted()
        self._state = RunnerState.AWAITING_CHECKPOINT
        decision = CheckpointDecision.CONTINUE
        if options.on_checkpoint is not None:
            decision = CheckpointDecision(options.on_checkpoint(run.index, run.total))
        self._raise_if_aborted()
        if decision == CheckpointDecision.ABORT:
            raise _StopRun(RunnerState.ABORTED, "Aborted at checkpoint")
        if decision == CheckpointDecision.PAUSE and run.index < run.total:
            raise _StopRun(RunnerState.PAUSED)
        self._state = RunnerState.RUNNING

    def _advance(self, state: FlowState, event: FlowEvent) -> FlowState:
        transition = self.machine.send(state, event)
        if not transition.accepted:
            raise TransitionRejectedError(transition.message or f"{event.type} rejected")
        check_invariants(transition.state)
        return self.state_store.save(transition.state)

    def _report(
        self,
        options: TaskExecutionOptions,
        task: Task,
        run: _RunLedger,
        status: ProgressStatus,
        commit_hash: str | None = None,
    ) -> None:
        if options.on_progress is None:
            return
        current = run.index + 1 if status != "started" else run.index
        options.on_progress(
            TaskProgress(
                task_id=task.id,
                title=task.title,
                current=current,
                total=run.total,
                status=status,
                commit_hash=commit_hash,
            )
        )

    def _raise_if_aborted(self) -> None:
        if self._abort.is_set():
            raise _StopRun(RunnerState.ABORTED, "Aborted by user")


@dataclass
class _RunLedger:
    flow_state: FlowState
    index: int
    total: int
    failed_task: int | None = None
    skipped: list[int] = field(default_factory=list)
    commits: list[str] = field(default_factory=list)

    def result(self, *, success: bool, state: RunnerState, **extra: object) -> TaskExecutionResult:
        return TaskExecutionResult(
            success=success,
            completed_tasks=self.index,
            total_tasks=self.total,
            state=state,
            flow_state=self.flow_state,
            skipped_tasks=tuple(self.skipped),
            commits=tuple(self.commits),
            **extra,
        )
