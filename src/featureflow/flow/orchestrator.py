"""Composition root wiring validation, state, git services, and the task runner.

Every public method loads the feature's persisted state, offers one event to
the state machine, and saves the accepted result. Side effects that must
happen before a transition (worktree creation, agent generation, commits,
PR creation) run first, so a failure leaves the persisted phase unchanged.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from featureflow.agents.invoker import (
    AgentInvoker,
    CommandAgentInvoker,
    PhaseRequest,
    agent_failure,
)
from featureflow.config.models import AppConfig
from featureflow.constants import SPECS_DIR_NAME, STATE_DIR_NAME
from featureflow.errors import (
    FatalFlowError,
    FeatureFlowError,
    FeatureNameError,
    FlowExistsError,
    FlowNotFoundError,
    ServiceError,
    StaleStateError,
    StateCorruptedError,
    TransitionRejectedError,
)
from featureflow.flow.state_machine import (
    COMPLETABLE_PHASES,
    FlowStateMachine,
    check_invariants,
)
from featureflow.flow.state_store import StateStore
from featureflow.resilience.retry import RetryExecutor, RetryPolicy
from featureflow.schemas.enums import (
    CheckpointDecision,
    FailureDecision,
    PhaseType,
    RunnerState,
    WorkflowMode,
)
from featureflow.schemas.flow_models import (
    AbortEvent,
    ApproveEvent,
    ErrorEvent,
    FlowEvent,
    FlowPhase,
    FlowState,
    MergeEvent,
    PauseEvent,
    PhaseCompleteEvent,
    PhaseCompleteWithDataEvent,
    PrCreatedEvent,
    RejectEvent,
    ResumeEvent,
    SkipMergeEvent,
    StartEvent,
)
from featureflow.schemas.task_models import Task
from featureflow.tasks.parser import TaskParser
from featureflow.tasks.runner import (
    TaskExecutionOptions,
    TaskExecutionResult,
    TaskProgress,
    TaskRunner,
)
from featureflow.validation import FeatureValidator
from featureflow.vcs.branch import BranchService
from featureflow.vcs.command import CommandRunner
from featureflow.vcs.commit import CommitService, format_phase_commit_message
from featureflow.vcs.pull_request import (
    PRCreateOptions,
    PRCreatorService,
    PRMergeOptions,
    extract_pr_number,
)
from featureflow.vcs.worktree import WorktreeService, branch_name, worktree_path

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupReport:
    """Best-effort abort cleanup outcome, reported apart from the abort."""

    attempted: bool
    success: bool = True
    errors: tuple[str, ...] = ()
    pr_closed: bool = False
    branch_deleted: bool = False


@dataclass(frozen=True)
class AbortOutcome:
    state: FlowState
    cleanup: CleanupReport


@dataclass(frozen=True)
class ImplementationCallbacks:
    on_progress: Callable[[TaskProgress], None] | None = None
    on_checkpoint: Callable[[int, int], CheckpointDecision] | None = None
    on_failure: Callable[[Task, str], FailureDecision] | None = None


@dataclass(frozen=True)
class ImplementOutcome:
    result: TaskExecutionResult
    state: FlowState
    cleanup: CleanupReport | None = None


class FlowOrchestrator:
    """Drive one repository's feature flows from start to merge."""

    def __init__(
        self,
        repo: Path,
        *,
        config: AppConfig | None = None,
        state_store: StateStore | None = None,
        machine: FlowStateMachine | None = None,
        worktree_service: WorktreeService | None = None,
        commit_service: CommitService | None = None,
        pr_service: PRCreatorService | None = None,
        branch_service: BranchService | None = None,
        agent: AgentInvoker | None = None,
        task_parser: TaskParser | None = None,
        retry_executor: RetryExecutor | None = None,
    ) -> None:
        self.repo = Path(repo)
        self.config = config or AppConfig()
        git_runner = CommandRunner(timeout_seconds=self.config.timeouts.git_seconds)
        self.state_store = state_store or StateStore(self.repo)
        self.machine = machine or FlowStateMachine()
        self.worktrees = worktree_service or WorktreeService(git_runner)
        self.commits = commit_service or CommitService(git_runner)
        self.pull_requests = pr_service or PRCreatorService(
            CommandRunner(timeout_seconds=self.config.timeouts.gh_seconds)
        )
        self.branches = branch_service or BranchService(git_runner)
        self.agent = agent or CommandAgentInvoker(
            self.config.agent.command,
            timeout_seconds=self.config.timeouts.agent_seconds,
        )
        self.task_parser = task_parser or TaskParser()
        self.retry_executor = retry_executor or RetryExecutor(
            RetryPolicy(
                max_attempts=self.config.retries.max_attempts,
                backoff_seconds=self.config.retries.backoff_seconds,
                jitter_seconds=self.config.retries.jitter_seconds,
            )
        )
        self._validator = FeatureValidator()
        self._active_runner: TaskRunner | None = None
        self.machine.subscribe(_log_transition)

    def working_dir(self, state: FlowState) -> Path:
        if state.metadata.worktree_path:
            return Path(state.metadata.worktree_path)
        return worktree_path(self.repo, state.feature)

    def spec_dir(self, state: FlowState) -> Path:
        return self.working_dir(state) / STATE_DIR_NAME / SPECS_DIR_NAME / state.feature

    def start(
        self,
        feature: str,
        description: str,
        mode: WorkflowMode = WorkflowMode.GREENFIELD,
        *,
        force: bool = False,
    ) -> FlowState:
        """Validate, provision the worktree, and enter ``requirements-generating``."""
        result = self._validator.validate(feature)
        if not result.valid:
            raise FeatureNameError(result.error or f"Invalid feature name {feature!r}")

        existing = self._load_existing(feature, force=force)
        if existing is not None and not existing.is_terminal and not force:
            raise FlowExistsError(
                f"Flow {feature!r} is already in phase '{existing.phase.type}'. "
                "Resume it, abort it, or start again with --force"
            )
        if force:
            self.worktrees.remove(self.repo, feature, force=True)

        created = self.worktrees.create(self.repo, feature)
        if not created.success:
            raise ServiceError(created.error or "Worktree creation failed", kind=created.error_kind)

        try:
            state = self._send(
                FlowState.new(feature, description=description, tier=self.config.tier),
                StartEvent(feature=feature, description=description, mode=mode),
            )
            state = state.model_copy(
                update={
                    "metadata": state.metadata.model_copy(
                        update={
                            "worktree_path": str(created.path),
                            "branch": branch_name(feature),
                        }
                    )
                }
            )
            if self.state_store.exists(feature):
                self.state_store.archive(feature)
            state = self.state_store.save(state, overwrite=force)
            self.spec_dir(state).mkdir(parents=True, exist_ok=True)
            return self._apply(state, PhaseCompleteEvent())
        except FeatureFlowError:
            LOGGER.warning("Start of %s failed; removing its new worktree", feature)
            self.worktrees.remove(self.repo, feature, force=True)
            raise

    def advance(self, feature: str) -> FlowState:
        """Run the agent for the current generating phase, commit its artifacts, complete it."""
        with self._fatal_guard(feature):
            state = self._load(feature)
            current = state.phase_type
            if current not in COMPLETABLE_PHASES:
                raise TransitionRejectedError(
                    f"Flow {feature!r} is in phase '{current.value}', which has nothing to "
                    "generate; expected one of "
                    + ", ".join(sorted(phase.value for phase in COMPLETABLE_PHASES))
                )
            working_dir = self.working_dir(state)
            request = PhaseRequest(
                feature=feature,
                phase=current,
                working_dir=working_dir,
                spec_dir=self.spec_dir(state),
                description=state.metadata.description,
            )

            def generate() -> str:
                result = self.agent.generate_phase(request)
                if not result.success:
                    raise agent_failure(result, f"Agent failed to generate {current.value}")
                return result.output

            output = self.retry_executor.run(generate, stage_name=current.value)
            if current != PhaseType.INITIALIZING:
                committed = self.commits.stage_and_commit(
                    working_dir, format_phase_commit_message(feature, current.value)
                )
                if not committed.success:
                    raise ServiceError(
                        committed.error or "Artifact commit failed", kind=committed.error_kind
                    )
            return self._apply(state, PhaseCompleteWithDataEvent(data={"output": output}))

    def approve(self, feature: str) -> FlowState:
        with self._fatal_guard(feature):
            state = self._load(feature)
            if state.phase_type == PhaseType.TASKS_APPROVAL:
                tasks = self.task_parser.parse(self.spec_dir(state))
                return self._apply(state, ApproveEvent(total_tasks=len(tasks)))
            return self._apply(state, ApproveEvent())

    def reject(self, feature: str) -> FlowState:
        with self._fatal_guard(feature):
            return self._apply(self._load(feature), RejectEvent())

    def resume(self, feature: str) -> FlowState:
        with self._fatal_guard(feature):
            return self._apply(self._load(feature), ResumeEvent(feature=feature))

    def implement(
        self,
        feature: str,
        callbacks: ImplementationCallbacks | None = None,
        *,
        checkpoint_interval: int | None = None,
    ) -> ImplementOutcome:
        """Run pending tasks; a paused flow is resumed first."""
        callbacks = callbacks or ImplementationCallbacks()
        with self._fatal_guard(feature):
            state = self._load(feature)
            if state.phase_type == PhaseType.PAUSED:
                state = self._apply(state, ResumeEvent(feature=feature))
            runner = TaskRunner(
                self.agent,
                self.commits,
                self.state_store,
                machine=self.machine,
                task_parser=self.task_parser,
                retry_executor=self.retry_executor,
                checkpoint_interval=checkpoint_interval
                or self.config.execution.checkpoint_interval,
            )
            self._active_runner = runner
            try:
                result = runner.execute(
                    TaskExecutionOptions(
                        feature=feature,
                        spec_dir=self.spec_dir(state),
                        working_dir=self.working_dir(state),
                        state=state,
                        on_progress=callbacks.on_progress,
                        on_checkpoint=callbacks.on_checkpoint,
                        on_failure=callbacks.on_failure,
                    )
                )
            finally:
                self._active_runner = None

            final_state = result.flow_state
            cleanup = None
            if result.state == RunnerState.PAUSED:
                final_state = self._apply(final_state, PauseEvent())
            elif result.state == RunnerState.ABORTED:
                final_state = self._apply(
                    final_state, AbortEvent(reason=result.error or "Aborted by user")
                )
                cleanup = (
                    self._cleanup(final_state)
                    if self.config.execution.cleanup_worktree_on_abort
                    else CleanupReport(attempted=False)
                )
            return ImplementOutcome(result=result, state=final_state, cleanup=cleanup)

    def request_abort(self) -> bool:
        """Signal a running ``implement`` call to stop at the next task boundary."""
        runner = self._active_runner
        if runner is None:
            return False
        runner.abort()
        return True

    def create_pr(self, feature: str) -> FlowState:
        """Push the feature branch and open its pull request."""
        with self._fatal_guard(feature):
            state = self._load(feature)
            if state.phase_type != PhaseType.PR:
                raise TransitionRejectedError(
                    f"Flow {feature!r} is in phase '{state.phase.type}'; a pull request "
                    "can only be created from phase 'pr'"
                )
            working_dir = self.working_dir(state)
            pushed = self.pull_requests.push(working_dir, self.config.git.remote)
            if not pushed.success:
                raise ServiceError(pushed.error or "Push failed", kind=pushed.error_kind)
            created = self.pull_requests.create_pr(
                PRCreateOptions(
                    directory=working_dir,
                    feature=feature,
                    spec_dir=self.spec_dir(state),
                    base_branch=self.config.git.base_branch,
                )
            )
            if not created.success or not created.pr_url:
                raise ServiceError(
                    created.error or "Pull request creation failed", kind=created.error_kind
                )
            return self._apply(
                state, PrCreatedEvent(pr_url=created.pr_url, pr_number=created.pr_number)
            )

    def merge(
        self,
        feature: str,
        *,
        squash: bool | None = None,
        delete_branch: bool | None = None,
    ) -> FlowState:
        with self._fatal_guard(feature):
            state = self._load(feature)
            if state.phase_type != PhaseType.MERGE_DECISION:
                raise TransitionRejectedError(
                    f"Flow {feature!r} is in phase '{state.phase.type}'; merging requires "
                    "phase 'merge-decision'"
                )
            pr_number = state.metadata.pr_number or extract_pr_number(state.metadata.pr_url or "")
            if pr_number is None:
                raise ServiceError(f"Flow {feature!r} has no pull request number to merge")
            merged = self.pull_requests.merge_pr(
                PRMergeOptions(
                    directory=self.working_dir(state),
                    pr_number=pr_number,
                    squash=self.config.pull_request.squash if squash is None else squash,
                    delete_branch=(
                        self.config.pull_request.delete_branch
                        if delete_branch is None
                        else delete_branch
                    ),
                )
            )
            if not merged.success:
                raise ServiceError(merged.error or "Merge failed", kind=merged.error_kind)
            return self._apply(state, MergeEvent())

    def skip_merge(self, feature: str) -> FlowState:
        with self._fatal_guard(feature):
            return self._apply(self._load(feature), SkipMergeEvent())

    def abort(
        self,
        feature: str,
        reason: str = "Aborted by user",
        *,
        cleanup: bool | None = None,
        delete_branch: bool = False,
    ) -> AbortOutcome:
        """Abort the flow, then clean up as a separately reported step.

        Cleanup closes an open pull request and removes the worktree. The
        feature branch and its commits are kept unless ``delete_branch`` is set.
        """
        self.request_abort()
        with self._fatal_guard(feature):
            state = self._apply(self._load(feature), AbortEvent(reason=reason))
        if cleanup is None:
            cleanup = self.config.execution.cleanup_worktree_on_abort
        report = (
            self._cleanup(state, delete_branch=delete_branch)
            if cleanup
            else CleanupReport(attempted=False)
        )
        return AbortOutcome(state=state, cleanup=report)

    def status(self, feature: str) -> FlowState:
        return self._load(feature)

    def history(self, feature: str) -> list[FlowPhase]:
        return self.state_store.history(feature)

    def list_flows(self) -> list[FlowState]:
        return self.state_store.list_flows()

    def _load(self, feature: str) -> FlowState:
        state = self.state_store.load(feature)
        if state is None:
            raise FlowNotFoundError(
                f"No flow found for feature {feature!r}; start one with `featureflow start`"
            )
        return state

    def _load_existing(self, feature: str, *, force: bool) -> FlowState | None:
        try:
            return self.state_store.load(feature)
        except StateCorruptedError:
            if force:
                LOGGER.warning("Replacing unreadable state for %s", feature)
                return None
            raise

    def _send(self, state: FlowState, event: FlowEvent) -> FlowState:
        transition = self.machine.send(state, event)
        if not transition.accepted:
            raise TransitionRejectedError(transition.message or f"{event.type} rejected")
        check_invariants(transition.state)
        return transition.state

    def _apply(self, state: FlowState, event: FlowEvent) -> FlowState:
        return self.state_store.save(self._send(state, event))

    def _cleanup(self, state: FlowState, *, delete_branch: bool = False) -> CleanupReport:
        errors: list[str] = []
        pr_closed = False
        pr_number = state.metadata.pr_number or extract_pr_number(state.metadata.pr_url or "")
        if pr_number is not None:
            closed = self.pull_requests.close_pr(self.repo, pr_number)
            pr_closed = closed.success
            if not closed.success:
                errors.append(f"pull request: {closed.error}")

        removed = self.worktrees.remove(self.repo, state.feature, force=True)
        if not removed.success:
            errors.append(f"worktree: {removed.error}")

        branch_deleted = False
        if delete_branch and removed.success:
            branch = state.metadata.branch or branch_name(state.feature)
            deleted = self.branches.delete_local(self.repo, branch, force=True)
            branch_deleted = deleted.success
            if not deleted.success:
                errors.append(f"branch: {deleted.error}")
            elif state.metadata.pr_url:
                remote = self.branches.delete_remote(self.repo, branch, self.config.git.remote)
                if not remote.success:
                    errors.append(f"remote branch: {remote.error}")

        for error in errors:
            LOGGER.warning("Cleanup for %s incomplete: %s", state.feature, error)
        return CleanupReport(
            attempted=True,
            success=not errors,
            errors=tuple(errors),
            pr_closed=pr_closed,
            branch_deleted=branch_deleted,
        )

    @contextmanager
    def _fatal_guard(self, feature: str) -> Iterator[None]:
        try:
            yield
        except (StateCorruptedError, StaleStateError):
            raise
        except FatalFlowError as exc:
            self._record_error(feature, str(exc))
            raise

    def _record_error(self, feature: str, error: str) -> None:
        try:
            state = self.state_store.load(feature)
            if state is None or state.is_terminal:
                return
            self._apply(state, ErrorEvent(error=error))
        except FeatureFlowError as exc:
            LOGGER.error("Could not move %s to error after fatal failure: %s", feature, exc)


def _log_transition(state: FlowState, event: FlowEvent) -> None:
    LOGGER.info("Flow %s: %s -> %s", state.feature, event.type, state.phase.type)
