"""Feature branch cleanup helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from featureflow.errors import ErrorKind
from featureflow.vcs.command import CommandRunner

LOGGER = logging.getLogger(__name__)

PROTECTED_BRANCHES = frozenset({"main", "master", "develop", "development", "release"})


@dataclass(frozen=True)
class BranchResult:
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None


def is_protected(branch: str) -> bool:
    return branch.strip().lower() in PROTECTED_BRANCHES


class BranchService:
    """Delete feature branches locally and on the remote, never protected ones."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    def exists(self, repo: Path, branch: str) -> bool:
        result = self.runner.run(
            "git", ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=Path(repo)
        )
        return result.ok

    def delete_local(self, repo: Path, branch: str, *, force: bool = False) -> BranchResult:
        if is_protected(branch):
            return _protected(branch)
        if not self.exists(repo, branch):
            return BranchResult(success=True)
        result = self.runner.run(
            "git", ["branch", "-D" if force else "-d", branch], cwd=Path(repo)
        )
        if not result.ok:
            return BranchResult(
                success=False,
                error=result.message,
                error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
            )
        LOGGER.info("Deleted local branch %s", branch)
        return BranchResult(success=True)

    def delete_remote(self, repo: Path, branch: str, remote: str = "origin") -> BranchResult:
        if is_protected(branch):
            return _protected(branch)
        result = self.runner.run("git", ["push", remote, "--delete", branch], cwd=Path(repo))
        if not result.ok:
            if "remote ref does not exist" in result.message.lower():
                return BranchResult(success=True)
            return BranchResult(
                success=False,
                error=result.message,
                error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
            )
        LOGGER.info("Deleted remote branch %s/%s", remote, branch)
        return BranchResult(success=True)


def _protected(branch: str) -> BranchResult:
    return BranchResult(
        success=False,
        error=f"Refusing to delete protected branch {branch!r}",
        error_kind=ErrorKind.PERMISSION_DENIED,
    )
