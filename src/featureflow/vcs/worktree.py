"""Per-feature git worktree provisioning."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from featureflow.constants import BRANCH_PREFIX, WORKTREES_DIR_NAME
from featureflow.errors import ErrorKind
from featureflow.vcs.command import CommandResult, CommandRunner

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorktreeInfo:
    """Read model for one registered worktree."""

    path: Path
    branch: str | None
    exists: bool


@dataclass(frozen=True)
class WorktreeResult:
    success: bool
    path: Path | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


def worktree_path(repo: Path, feature: str) -> Path:
    return Path(repo) / WORKTREES_DIR_NAME / feature


def branch_name(feature: str) -> str:
    return f"{BRANCH_PREFIX}{feature}"


class WorktreeService:
    """Create, inspect, and remove the ``worktrees/<feature>`` checkout."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    def check(self, repo: Path, feature: str) -> WorktreeInfo:
        path = worktree_path(repo, feature)
        registered = self._find(repo, path)
        if registered is not None:
            return registered
        return WorktreeInfo(path=path, branch=None, exists=False)

    def create(self, repo: Path, feature: str) -> WorktreeResult:
        """Add the feature worktree, attaching an existing feature branch if present."""
        repo = Path(repo)
        path = worktree_path(repo, feature)
        branch = branch_name(feature)

        listing = self.runner.run("git", ["worktree", "list", "--porcelain"], cwd=repo)
        if not listing.ok:
            return _failure(listing)
        if self._match(listing.stdout, path) is not None:
            return WorktreeResult(
                success=False,
                path=path,
                error=(
                    f"Worktree for {feature!r} already exists at {path}; "
                    "resume the flow or remove it first"
                ),
                error_kind=ErrorKind.WORKTREE_EXISTS,
            )
        if path.exists():
            return WorktreeResult(
                success=False,
                path=path,
                error=f"Path {path} exists but is not the worktree for {feature!r}",
                error_kind=ErrorKind.PATH_OCCUPIED,
            )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as exc:
            return WorktreeResult(
                success=False,
                path=path,
                error=f"Cannot create {path.parent}: {exc}",
                error_kind=ErrorKind.PERMISSION_DENIED,
            )

        relative = f"{WORKTREES_DIR_NAME}/{feature}"
        if self._branch_exists(repo, branch):
            args = ["worktree", "add", relative, branch]
        else:
            args = ["worktree", "add", "-b", branch, relative]
        result = self.runner.run("git", args, cwd=repo)
        if not result.ok:
            return _failure(result, path)
        LOGGER.info("Created worktree %s on branch %s", path, branch)
        return WorktreeResult(success=True, path=path)

    def remove(self, repo: Path, feature: str, *, force: bool = False) -> WorktreeResult:
        """Remove the feature worktree; removing an absent one succeeds."""
        repo = Path(repo)
        path = worktree_path(repo, feature)
        listing = self.runner.run("git", ["worktree", "list", "--porcelain"], cwd=repo)
        if not listing.ok:
            return _failure(listing, path)
        if self._match(listing.stdout, path) is None:
            return WorktreeResult(success=True, path=path)

        args = ["worktree", "remove", f"{WORKTREES_DIR_NAME}/{feature}"]
        if force:
            args.append("--force")
        result = self.runner.run("git", args, cwd=repo)
        if not result.ok:
            return _failure(result, path)
        LOGGER.info("Removed worktree %s", path)
        return WorktreeResult(success=True, path=path)

    def list_worktrees(self, repo: Path) -> list[WorktreeInfo]:
        listing = self.runner.run("git", ["worktree", "list", "--porcelain"], cwd=Path(repo))
        if not listing.ok:
            LOGGER.warning("Unable to list worktrees: %s", listing.message)
            return []
        return parse_porcelain(listing.stdout)

    def _find(self, repo: Path, path: Path) -> WorktreeInfo | None:
        listing = self.runner.run("git", ["worktree", "list", "--porcelain"], cwd=Path(repo))
        if not listing.ok:
            return None
        return self._match(listing.stdout, path)

    @staticmethod
    def _match(porcelain: str, path: Path) -> WorktreeInfo | None:
        target = path.resolve()
        for info in parse_porcelain(porcelain):
            if info.path.resolve() == target:
                return info
        return None

    def _branch_exists(self, repo: Path, branch: str) -> bool:
        result = self.runner.run(
            "git", ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=repo
        )
        return result.ok


def parse_porcelain(output: str) -> list[WorktreeInfo]:
    """Parse ``git worktree list --porcelain`` blocks."""
    worktrees: list[WorktreeInfo] = []
    path: Path | None = None
    branch: str | None = None
    for line in [*output.splitlines(), ""]:
        if line.startswith("worktree "):
            path = Path(line[len("worktree ") :])
        elif line.startswith("branch "):
            branch = line[len("branch ") :].removeprefix("refs/heads/")
        elif not line.strip() and path is not None:
            worktrees.append(WorktreeInfo(path=path, branch=branch, exists=path.exists()))
            path, branch = None, None
    return worktrees


def _failure(result: CommandResult, path: Path | None = None) -> WorktreeResult:
    return WorktreeResult(
        success=False,
        path=path,
        error=result.message,
        error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
    )
