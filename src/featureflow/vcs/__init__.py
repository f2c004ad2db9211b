"""Git and GitHub CLI services."""

from featureflow.vcs.branch import BranchResult, BranchService
from featureflow.vcs.command import CommandResult, CommandRunner
from featureflow.vcs.commit import (
    CommitResult,
    CommitService,
    format_phase_commit_message,
    format_task_commit_message,
)
from featureflow.vcs.pull_request import (
    PRCreateOptions,
    PRCreateResult,
    PRCreatorService,
    PRMergeOptions,
    PRMergeResult,
    PushResult,
)
from featureflow.vcs.worktree import WorktreeInfo, WorktreeResult, WorktreeService

__all__ = [
    "BranchResult",
    "BranchService",
    "CommandResult",
    "CommandRunner",
    "CommitResult",
    "CommitService",
    "PRCreateOptions",
    "PRCreateResult",
    "PRCreatorService",
    "PRMergeOptions",
    "PRMergeResult",
    "PushResult",
    "WorktreeInfo",
    "WorktreeResult",
    "WorktreeService",
    "format_phase_commit_message",
    "format_task_commit_message",
]
