"""Branch push, pull request creation, merge, and close through the GitHub CLI."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import orjson

from featureflow.constants import (
    DESIGN_FILE_NAME,
    REQUIREMENTS_FILE_NAME,
    SPECS_DIR_NAME,
    STATE_DIR_NAME,
    TASKS_FILE_NAME,
)
from featureflow.errors import ErrorKind, TaskFormatError
from featureflow.tasks.parser import TaskParser
from featureflow.vcs.command import CommandResult, CommandRunner

LOGGER = logging.getLogger(__name__)

PR_URL_PATTERN = re.compile(r"https://\S+/pull/\d+")
PR_NUMBER_PATTERN = re.compile(r"/pull/(\d+)")
OVERVIEW_PATTERN = re.compile(
    r"^##\s*Overview\s*$\n(?P<body>.*?)(?=^##\s|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
CHECKBOX_PATTERN = re.compile(r"^\s*[-*]\s+\[(?P<mark>[ xX])\]", re.MULTILINE)
SUMMARY_LINES = 3


@dataclass(frozen=True)
class PRCreateOptions:
    directory: Path
    feature: str
    spec_dir: Path
    base_branch: str = "main"


@dataclass(frozen=True)
class PRMergeOptions:
    directory: Path
    pr_number: int
    squash: bool = True
    delete_branch: bool = True


@dataclass(frozen=True)
class PushResult:
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class PRCreateResult:
    success: bool
    pr_url: str | None = None
    pr_number: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class PRMergeResult:
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class PRCloseResult:
    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None


def extract_pr_number(pr_url: str) -> int | None:
    match = PR_NUMBER_PATTERN.search(pr_url)
    return int(match.group(1)) if match else None


class PRCreatorService:
    """Publish a feature branch as a pull request built from its spec artifacts."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        specs_link_root: str = f"{STATE_DIR_NAME}/{SPECS_DIR_NAME}",
        task_parser: TaskParser | None = None,
    ) -> None:
        self.runner = runner or CommandRunner()
        self.specs_link_root = specs_link_root
        self.task_parser = task_parser or TaskParser()

    def push(self, directory: Path, remote: str = "origin") -> PushResult:
        result = self.runner.run("git", ["push", "-u", remote, "HEAD"], cwd=Path(directory))
        if not result.ok:
            return PushResult(
                success=False,
                error=result.message,
                error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
            )
        return PushResult(success=True)

    def create_pr(self, options: PRCreateOptions) -> PRCreateResult:
        """Open a PR for the current branch, or return the one that already exists."""
        directory = Path(options.directory)
        auth = self.runner.run("gh", ["auth", "status"], cwd=directory)
        if auth.status == "unavailable":
            return _create_failure(auth)
        if not auth.ok:
            return PRCreateResult(
                success=False,
                error=f"GitHub CLI is not authenticated; run `gh auth login`. {auth.message}",
                error_kind=ErrorKind.NOT_AUTHENTICATED,
            )

        upstream = self.runner.run(
            "git",
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"],
            cwd=directory,
        )
        if upstream.status == "unavailable":
            return _create_failure(upstream)
        if not upstream.ok:
            return PRCreateResult(
                success=False,
                error="Branch has no upstream; push it before creating a pull request",
                error_kind=ErrorKind.BRANCH_NOT_PUSHED,
            )

        body = self.generate_pr_body(options.spec_dir, options.feature)
        result = self.runner.run(
            "gh",
            [
                "pr",
                "create",
                "--title",
                f"feat: {options.feature}",
                "--body",
                body,
                "--base",
                options.base_branch,
            ],
            cwd=directory,
        )
        if not result.ok:
            if "already exists" in result.message.lower():
                LOGGER.info("Pull request for %s already exists; reusing it", options.feature)
                return self._existing_pr(directory, result)
            return _create_failure(result)

        match = PR_URL_PATTERN.search(result.stdout)
        pr_url = match.group(0) if match else result.stdout.strip()
        LOGGER.info("Created pull request %s", pr_url)
        return PRCreateResult(success=True, pr_url=pr_url, pr_number=extract_pr_number(pr_url))

    def merge_pr(self, options: PRMergeOptions) -> PRMergeResult:
        args = ["pr", "merge", str(options.pr_number), "--squash" if options.squash else "--merge"]
        if options.delete_branch:
            args.append("--delete-branch")
        result = self.runner.run("gh", args, cwd=Path(options.directory))
        if not result.ok:
            return PRMergeResult(
                success=False,
                error=result.message,
                error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
            )
        return PRMergeResult(success=True)

    def close_pr(self, directory: Path, pr_number: int) -> PRCloseResult:
        """Close an open pull request; one that is already closed counts as closed."""
        result = self.runner.run("gh", ["pr", "close", str(pr_number)], cwd=Path(directory))
        if not result.ok:
            if "already closed" in result.message.lower():
                return PRCloseResult(success=True)
            return PRCloseResult(
                success=False,
                error=result.message,
                error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
            )
        LOGGER.info("Closed pull request #%s", pr_number)
        return PRCloseResult(success=True)

    def generate_pr_body(self, spec_dir: Path, feature: str) -> str:
        """Render the PR body; missing artifacts become placeholder notes."""
        spec_dir = Path(spec_dir)
        requirements = _read_optional(spec_dir / REQUIREMENTS_FILE_NAME)
        design = _read_optional(spec_dir / DESIGN_FILE_NAME)
        tasks = _read_optional(spec_dir / TASKS_FILE_NAME)
        link_root = f"{self.specs_link_root}/{feature}"

        return "\n".join(
            [
                f"## Feature: {feature}",
                "",
                "### Summary",
                _summarize_requirements(requirements),
                "",
                "### Design",
                _summarize_design(design),
                "",
                "### Tasks",
                self._summarize_tasks(tasks),
                "",
                "---",
                "**Spec Artifacts**",
                f"- [Requirements]({link_root}/{REQUIREMENTS_FILE_NAME})",
                f"- [Design]({link_root}/{DESIGN_FILE_NAME})",
                f"- [Tasks]({link_root}/{TASKS_FILE_NAME})",
                "",
            ]
        )

    def _existing_pr(self, directory: Path, failed: CommandResult) -> PRCreateResult:
        view = self.runner.run("gh", ["pr", "view", "--json", "url,number"], cwd=directory)
        if not view.ok:
            return _create_failure(failed)
        try:
            payload = orjson.loads(view.stdout)
        except orjson.JSONDecodeError:
            match = PR_URL_PATTERN.search(failed.message)
            if match is None:
                return _create_failure(failed)
            payload = {"url": match.group(0)}
        pr_url = str(payload.get("url", ""))
        pr_number = payload.get("number") or extract_pr_number(pr_url)
        return PRCreateResult(success=True, pr_url=pr_url, pr_number=pr_number)

    def _summarize_tasks(self, content: str | None) -> str:
        if not content:
            return "_No task list available._"
        try:
            tasks = self.task_parser.parse_text(content)
        except TaskFormatError:
            marks = CHECKBOX_PATTERN.findall(content)
            done = sum(1 for mark in marks if mark.lower() == "x")
            return f"{done}/{len(marks)} tasks completed"
        if not tasks:
            return "_No tasks defined._"
        lines = [f"- [{'x' if task.completed else ' '}] Task {task.id}: {task.title}" for task in tasks]
        done = sum(1 for task in tasks if task.completed)
        lines.extend(["", f"{done}/{len(tasks)} tasks completed"])
        return "\n".join(lines)


def _read_optional(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        LOGGER.debug("Spec artifact %s unavailable for PR body", path)
        return None


def _leading_prose(content: str) -> str:
    lines = [line.strip() for line in content.splitlines()]
    prose = [line for line in lines if line and not line.startswith("#")]
    return " ".join(prose[:SUMMARY_LINES])


def _summarize_requirements(content: str | None) -> str:
    if not content:
        return "_No requirements document available._"
    return _leading_prose(content) or "_Requirements document has no summary text._"


def _summarize_design(content: str | None) -> str:
    if not content:
        return "_No design document available._"
    match = OVERVIEW_PATTERN.search(content)
    if match:
        overview = _leading_prose(match.group("body"))
        if overview:
            return overview
    return _leading_prose(content) or "_Design document has no overview text._"


def _create_failure(result: CommandResult) -> PRCreateResult:
    return PRCreateResult(
        success=False,
        error=result.message,
        error_kind=result.error_kind or ErrorKind.COMMAND_FAILED,
    )
