"""Error taxonomy shared by services, runner, and CLI."""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    RESOURCE = "resource"
    TRANSIENT = "transient"
    FATAL = "fatal"


class ErrorKind(str, Enum):
    INVALID_NAME = "invalid_name"
    FORMAT_ERROR = "format_error"
    TRANSITION_REJECTED = "transition_rejected"
    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"
    TOOL_NOT_FOUND = "tool_not_found"
    NOT_AUTHENTICATED = "not_authenticated"
    PERMISSION_DENIED = "permission_denied"
    WORKTREE_EXISTS = "worktree_exists"
    PATH_OCCUPIED = "path_occupied"
    BRANCH_NOT_PUSHED = "branch_not_pushed"
    FLOW_EXISTS = "flow_exists"
    LOCKED = "locked"
    TIMEOUT = "timeout"
    AGENT_FAILED = "agent_failed"
    COMMAND_FAILED = "command_failed"
    STATE_CORRUPTED = "state_corrupted"
    STALE_STATE = "stale_state"
    INVARIANT_VIOLATION = "invariant_violation"


_CATEGORY_BY_KIND: dict[ErrorKind, ErrorCategory] = {
    ErrorKind.INVALID_NAME: ErrorCategory.VALIDATION,
    ErrorKind.FORMAT_ERROR: ErrorCategory.VALIDATION,
    ErrorKind.TRANSITION_REJECTED: ErrorCategory.VALIDATION,
    ErrorKind.NOT_FOUND: ErrorCategory.RESOURCE,
    ErrorKind.IO_ERROR: ErrorCategory.RESOURCE,
    ErrorKind.TOOL_NOT_FOUND: ErrorCategory.RESOURCE,
    ErrorKind.NOT_AUTHENTICATED: ErrorCategory.RESOURCE,
    ErrorKind.PERMISSION_DENIED: ErrorCategory.RESOURCE,
    ErrorKind.WORKTREE_EXISTS: ErrorCategory.RESOURCE,
    ErrorKind.PATH_OCCUPIED: ErrorCategory.RESOURCE,
    ErrorKind.BRANCH_NOT_PUSHED: ErrorCategory.RESOURCE,
    ErrorKind.FLOW_EXISTS: ErrorCategory.RESOURCE,
    ErrorKind.COMMAND_FAILED: ErrorCategory.RESOURCE,
    ErrorKind.LOCKED: ErrorCategory.TRANSIENT,
    ErrorKind.TIMEOUT: ErrorCategory.TRANSIENT,
    ErrorKind.AGENT_FAILED: ErrorCategory.TRANSIENT,
    ErrorKind.STATE_CORRUPTED: ErrorCategory.FATAL,
    ErrorKind.STALE_STATE: ErrorCategory.FATAL,
    ErrorKind.INVARIANT_VIOLATION: ErrorCategory.FATAL,
}

INSTALL_HINTS: dict[str, str] = {
    "git": "Install git from https://git-scm.com/downloads",
    "gh": "Install the GitHub CLI from https://cli.github.com/ and run `gh auth login`",
}


def category_for(kind: ErrorKind) -> ErrorCategory:
    """Map an error kind onto its recovery category."""
    return _CATEGORY_BY_KIND[kind]


class FeatureFlowError(Exception):
    """Base error carrying a machine-readable kind."""

    kind: ErrorKind = ErrorKind.INVARIANT_VIOLATION

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def category(self) -> ErrorCategory:
        return category_for(self.kind)


class FlowValidationError(FeatureFlowError):
    """Bad user input; never retried."""

    kind = ErrorKind.INVALID_NAME


class FeatureNameError(FlowValidationError):
    kind = ErrorKind.INVALID_NAME


class TaskFormatError(FlowValidationError):
    kind = ErrorKind.FORMAT_ERROR


class TransitionRejectedError(FlowValidationError):
    kind = ErrorKind.TRANSITION_REJECTED


class ResourceError(FeatureFlowError):
    """Environment problem the user can fix; state stays intact."""

    kind = ErrorKind.COMMAND_FAILED


class TaskArtifactError(ResourceError):
    kind = ErrorKind.NOT_FOUND


class FlowExistsError(ResourceError):
    kind = ErrorKind.FLOW_EXISTS


class FlowNotFoundError(ResourceError):
    kind = ErrorKind.NOT_FOUND


class ServiceError(ResourceError):
    """A git, gh, or agent operation reported a structured failure."""


class TransientExecutionError(FeatureFlowError):
    """Retryable failure that exhausted its automatic attempts."""

    kind = ErrorKind.AGENT_FAILED


class FatalFlowError(FeatureFlowError):
    """Corruption or invariant violation; the flow moves to error."""

    kind = ErrorKind.INVARIANT_VIOLATION


class StateCorruptedError(FatalFlowError):
    kind = ErrorKind.STATE_CORRUPTED


class StaleStateError(FatalFlowError):
    kind = ErrorKind.STALE_STATE
