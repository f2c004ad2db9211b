"""Staging and committing inside a feature worktree."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from featureflow.errors import ErrorKind
from featureflow.vcs.command import CommandResult, CommandRunner

LOGGER = logging.getLogger(__name__)

COMMIT_HASH_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a stage or commit call. ``commit_hash`` is ``None`` for no-op commits."""

    success: bool
    commit_hash: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


def format_task_commit_message(feature: str, task_id: int, title: str) -> str:
    return f"feat({feature}): implement task {task_id} - {title}"


def format_phase_commit_message(feature: str, phase: str) -> str:
    return f"docs({feature}): {phase} artifacts"


class CommitService:
    """Wrap ``git add`` / ``git commit`` with structured results."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    def stage_all(self, directory: Path) -> CommitResult:
        result = self.runner.run("git", ["add", "-A"], cwd=Path(directory))
        if not result.ok:
            return _failure(result)
        return CommitResult(success=True)

    def commit(self, directory: Path, message: str) -> CommitResult:
        """Commit whatever is staged; an empty index is a successful no-op."""
        directory = Path(directory)
        staged = self.runner.run("git", ["diff", "--cached", "--quiet"], cwd=directory)
        if staged.ok:
            LOGGER.info("Nothing staged in %s; skipping commit", directory)
            return CommitResult(success=True)
        if staged.status == "unavailable" or staged.exit_code != 1:
            return _failure(staged)

        result = self.runner.run("git", ["commit", "-m", message], cwd=directory)
        if not result.ok:
            return _failure(result)
        head = self.runner.run("git", ["rev-parse", "HEAD"], cwd=directory)
        commit_hash = head.stdout if head.ok and COMMIT_HASH_PATTERN.match(head.stdout) else None
        LOGGER.info("Committed %s: %s", commit_hash or "<unknown>", message)
        return CommitResult(success=True, commit_hash=commit_hash)

    def stage_and_commit(self, directory: Path, message: str) -> CommitResult:
        staged = self.stage_all(directory)
        if not staged.success:
            return staged
        return self.commit(directory, message)


def _failure(result: CommandResult) -> CommitResult:
    return CommitResult(
        success=False,
        error=result.message,
        error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
    )
