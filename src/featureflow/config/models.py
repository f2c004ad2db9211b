"""Pydantic models for featureflow settings."""

from __future__ import annotations

from pydantic import Field, field_validator

from featureflow.constants import (
    DEFAULT_CHECKPOINT_INTERVAL,
    DEFAULT_MAX_ATTEMPTS,
    SCHEMA_VERSION,
)
from featureflow.schemas.base import StrictSchemaModel


class RetryConfig(StrictSchemaModel):
    """Retry controls for agent calls and commits."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1, le=10)
    backoff_seconds: float = Field(default=1.0, ge=0.0)
    jitter_seconds: float = Field(default=0.2, ge=0.0, le=5.0)


class TimeoutConfig(StrictSchemaModel):
    """Per-call timeouts for external processes."""

    git_seconds: int = Field(default=120, gt=0)
    gh_seconds: int = Field(default=180, gt=0)
    agent_seconds: int = Field(default=1800, gt=0)


class GitConfig(StrictSchemaModel):
    remote: str = Field(default="origin", min_length=1)
    base_branch: str = Field(default="main", min_length=1)


class PullRequestConfig(StrictSchemaModel):
    """Merge behavior for ``featureflow merge``."""

    squash: bool = True
    delete_branch: bool = True


class ExecutionConfig(StrictSchemaModel):
    checkpoint_interval: int = Field(default=DEFAULT_CHECKPOINT_INTERVAL, ge=1)
    cleanup_worktree_on_abort: bool = True


class AgentConfig(StrictSchemaModel):
    """Command used to invoke the generative agent; the prompt is appended last."""

    command: list[str] = Field(default_factory=lambda: ["claude", "--print"], min_length=1)

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, value: object) -> object:
        if isinstance(value, str):
            return value.split()
        return value


class AppConfig(StrictSchemaModel):
    """Central application configuration."""

    schema_version: str = Field(default=SCHEMA_VERSION, min_length=1)
    tier: str | None = None
    retries: RetryConfig = Field(default_factory=RetryConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    pull_request: PullRequestConfig = Field(default_factory=PullRequestConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
