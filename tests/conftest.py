"""Shared fakes and fixtures."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from featureflow.agents.invoker import AgentResult, PhaseRequest, TaskRequest
from featureflow.constants import DESIGN_FILE_NAME, REQUIREMENTS_FILE_NAME, TASKS_FILE_NAME
from featureflow.errors import ErrorKind
from featureflow.flow.orchestrator import FlowOrchestrator
from featureflow.resilience.retry import RetryExecutor, RetryPolicy
from featureflow.schemas.enums import PhaseType
from featureflow.vcs.branch import BranchService
from featureflow.vcs.command import CommandResult
from featureflow.vcs.commit import CommitResult
from featureflow.vcs.pull_request import PRCreatorService
from featureflow.vcs.worktree import WorktreeService

Handler = Callable[[str, list[str]], CommandResult]
PR_URL = "https://github.com/acme/app/pull/7"


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(status="completed", stdout=stdout, exit_code=0)


def unavailable(tool: str) -> CommandResult:
    return CommandResult(
        status="unavailable",
        error=f"{tool} not found",
        error_kind=ErrorKind.TOOL_NOT_FOUND,
    )


def failed(stderr: str, exit_code: int = 1, kind=None) -> CommandResult:  # noqa: ANN001
    return CommandResult(
        status="failed",
        stderr=stderr,
        exit_code=exit_code,
        error=stderr,
        error_kind=kind,
    )


class FakeCommandRunner:
    """Records invocations and answers through a handler."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.calls: list[tuple[str, list[str], Path | None]] = []
        self._handler = handler or (lambda _tool, _args: ok())

    def run(
        self,
        tool: str,
        args: list[str],
        *,
        cwd: Path | None = None,
        timeout_seconds: int | None = None,
    ) -> CommandResult:
        del timeout_seconds
        self.calls.append((tool, list(args), cwd))
        return self._handler(tool, list(args))

    def commands(self) -> list[list[str]]:
        return [[tool, *args] for tool, args, _cwd in self.calls]


def tasks_markdown(count: int, completed: set[int] | None = None) -> str:
    completed = completed or set()
    blocks = []
    for task_id in range(1, count + 1):
        mark = "x" if task_id in completed else " "
        blocks.append(
            f"## Task {task_id}: Step {task_id}\n\nImplement step {task_id}.\n\n- [{mark}] done\n"
        )
    return "\n".join(blocks)


class FakeAgent:
    """Agent double that writes phase artifacts and can fail chosen tasks."""

    def __init__(self, *, task_count: int = 3, failures: dict[int, int] | None = None) -> None:
        self.task_count = task_count
        self.failures = dict(failures or {})
        self.executed: list[int] = []
        self.attempts: list[int] = []
        self.phases: list[PhaseType] = []

    def execute_task(self, request: TaskRequest) -> AgentResult:
        task_id = request.task.id
        self.attempts.append(task_id)
        remaining = self.failures.get(task_id, 0)
        if remaining:
            self.failures[task_id] = remaining - 1
            return AgentResult(success=False, error=f"agent crashed on task {task_id}")
        self.executed.append(task_id)
        return AgentResult(success=True, output=f"task {task_id} done")

    def generate_phase(self, request: PhaseRequest) -> AgentResult:
        self.phases.append(request.phase)
        request.spec_dir.mkdir(parents=True, exist_ok=True)
        if request.phase == PhaseType.REQUIREMENTS_GENERATING:
            (request.spec_dir / REQUIREMENTS_FILE_NAME).write_text(
                f"# Requirements\n\n{request.description}\n", encoding="utf-8"
            )
        elif request.phase == PhaseType.DESIGN_GENERATING:
            (request.spec_dir / DESIGN_FILE_NAME).write_text(
                "# Design\n\n## Overview\nLayered service.\n", encoding="utf-8"
            )
        elif request.phase == PhaseType.TASKS_GENERATING:
            (request.spec_dir / TASKS_FILE_NAME).write_text(
                tasks_markdown(self.task_count), encoding="utf-8"
            )
        return AgentResult(success=True, output=f"{request.phase.value} generated")


class FakeCommitService:
    """Commit double that hands out deterministic hashes."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def stage_and_commit(self, directory: Path, message: str) -> CommitResult:
        del directory
        self.messages.append(message)
        return CommitResult(success=True, commit_hash=f"{len(self.messages):040x}")


@pytest.fixture
def fast_retry() -> RetryExecutor:
    return RetryExecutor(
        RetryPolicy(max_attempts=3, backoff_seconds=0.0, jitter_seconds=0.0),
        sleep_fn=lambda _delay: None,
        jitter_fn=lambda _a, _b: 0.0,
    )


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Initialized repository with one commit on ``main``."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()

    def git(*args: str) -> None:
        subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True)

    git("init", "-b", "main")
    git("config", "user.email", "dev@example.com")
    git("config", "user.name", "Dev")
    git("config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("# demo\n", encoding="utf-8")
    git("add", "README.md")
    git("commit", "-m", "initial")
    return repo


class FakeGit:
    """Scripted git and gh that keep worktree directories on disk in step."""

    def __init__(self, repo: Path) -> None:
        self.repo = Path(repo)
        self.worktrees: dict[Path, str] = {}

    def __call__(self, tool: str, args: list[str]) -> CommandResult:
        if tool == "gh":
            return ok(PR_URL) if args[:2] == ["pr", "create"] else ok()
        if args[:2] == ["worktree", "list"]:
            blocks = [f"worktree {self.repo}\nbranch refs/heads/main"]
            blocks += [
                f"worktree {path}\nbranch refs/heads/{branch}"
                for path, branch in self.worktrees.items()
            ]
            return ok("\n\n".join(blocks))
        if args[:2] == ["worktree", "add"]:
            if args[2] == "-b":
                branch, relative = args[3], args[4]
            else:
                relative, branch = args[2], args[3]
            path = self.repo / relative
            path.mkdir(parents=True)
            self.worktrees[path] = branch
        elif args[:2] == ["worktree", "remove"]:
            path = self.repo / args[2]
            self.worktrees.pop(path, None)
            shutil.rmtree(path, ignore_errors=True)
        return ok()


@pytest.fixture
def make_orchestrator(fast_retry: RetryExecutor):  # noqa: ANN201
    """Factory for orchestrators wired to scripted git/gh and fake agent/commits."""

    def factory(
        repo: Path,
        *,
        agent: FakeAgent | None = None,
        handler: Handler | None = None,
    ) -> FlowOrchestrator:
        runner = FakeCommandRunner(handler or FakeGit(repo))
        return FlowOrchestrator(
            repo,
            worktree_service=WorktreeService(runner),
            commit_service=FakeCommitService(),  # type: ignore[arg-type]
            pr_service=PRCreatorService(runner),
            branch_service=BranchService(runner),
            agent=agent or FakeAgent(),
            retry_executor=fast_retry,
        )

    return factory
