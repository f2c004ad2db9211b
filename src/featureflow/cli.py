"""CLI for featureflow."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

import orjson
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from featureflow.config import load_app_config
from featureflow.constants import PACKAGE_VERSION
from featureflow.errors import INSTALL_HINTS, ErrorKind, FeatureFlowError
from featureflow.flow.orchestrator import (
    CleanupReport,
    FlowOrchestrator,
    ImplementationCallbacks,
)
from featureflow.runtime_env import configure_logging
from featureflow.schemas.enums import (
    CheckpointDecision,
    FailureDecision,
    PhaseType,
    WorkflowMode,
    is_approval_phase,
)
from featureflow.schemas.flow_models import FlowState, ImplementingPhase, PausedPhase
from featureflow.schemas.task_models import Task
from featureflow.security.redaction import redact_mapping, redact_text
from featureflow.tasks.runner import TaskProgress

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="featureflow: human-gated feature workflow in isolated git worktrees.",
)
console = Console()

REPO_OPTION = typer.Option(Path("."), "--repo", help="Repository root holding the flows.")
CONFIG_OPTION = typer.Option(None, "--config", help="Path to settings.yaml override.")

NEXT_STEPS: dict[PhaseType, str] = {
    PhaseType.REQUIREMENTS_GENERATING: "featureflow advance {feature}",
    PhaseType.GAP_ANALYSIS: "featureflow advance {feature}",
    PhaseType.DESIGN_GENERATING: "featureflow advance {feature}",
    PhaseType.DESIGN_VALIDATION: "featureflow advance {feature}",
    PhaseType.TASKS_GENERATING: "featureflow advance {feature}",
    PhaseType.VALIDATION: "featureflow advance {feature}",
    PhaseType.IMPLEMENTING: "featureflow implement {feature}",
    PhaseType.PAUSED: "featureflow implement {feature}",
    PhaseType.PR: "featureflow pr {feature}",
    PhaseType.MERGE_DECISION: "featureflow merge {feature}  |  featureflow skip-merge {feature}",
}


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    configure_logging(verbose)


@app.command()
def version() -> None:
    """Print the featureflow version."""
    typer.echo(PACKAGE_VERSION)


@app.command("validate-config")
def validate_config(
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Validate configuration and print the effective settings."""
    try:
        config_model = load_app_config(config, base_dir=repo)
    except Exception as exc:  # noqa: BLE001
        console.print(f"[red]Configuration validation failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Settings")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("git.remote", config_model.git.remote)
    table.add_row("git.base_branch", config_model.git.base_branch)
    table.add_row("execution.checkpoint_interval", str(config_model.execution.checkpoint_interval))
    table.add_row("retries.max_attempts", str(config_model.retries.max_attempts))
    table.add_row("pull_request.squash", str(config_model.pull_request.squash))
    table.add_row("pull_request.delete_branch", str(config_model.pull_request.delete_branch))
    table.add_row("agent.command", " ".join(config_model.agent.command))
    console.print(table)


@app.command()
def start(
    feature: str = typer.Argument(..., help="Feature name, e.g. add-auth."),
    description: str = typer.Argument(..., help="What the feature should do."),
    mode: WorkflowMode = typer.Option(
        WorkflowMode.GREENFIELD, "--mode", help="greenfield or brownfield."
    ),
    force: bool = typer.Option(
        False, "--force", help="Replace an existing flow and its worktree."
    ),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Validate the name, create the worktree, and begin requirements."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        state = orchestrator.start(feature, description, mode, force=force)
        _render_state(state)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Start failed", exc)


@app.command()
def advance(
    feature: str = typer.Argument(...),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Generate the current phase's artifact and move on."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        with console.status(f"Generating for {feature}..."):
            state = orchestrator.advance(feature)
        _render_state(state)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Advance failed", exc)


@app.command()
def approve(
    feature: str = typer.Argument(...),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Approve the artifact under review."""
    _transition(feature, repo, config, "Approve failed", FlowOrchestrator.approve)


@app.command()
def reject(
    feature: str = typer.Argument(...),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Send the artifact under review back for regeneration."""
    _transition(feature, repo, config, "Reject failed", FlowOrchestrator.reject)


@app.command()
def resume(
    feature: str = typer.Argument(...),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Return a paused flow to implementing."""
    _transition(feature, repo, config, "Resume failed", FlowOrchestrator.resume)


@app.command()
def implement(
    feature: str = typer.Argument(...),
    checkpoint_interval: int | None = typer.Option(
        None, "--checkpoint-interval", min=1, help="Tasks between checkpoints."
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Continue at every checkpoint without prompting."
    ),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Execute pending tasks, committing each and pausing at checkpoints."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        callbacks = ImplementationCallbacks(
            on_progress=_print_progress,
            on_checkpoint=_auto_continue if yes else _prompt_checkpoint,
            on_failure=_prompt_failure,
        )
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(
                orchestrator.implement,
                feature,
                callbacks,
                checkpoint_interval=checkpoint_interval,
            )
            try:
                outcome = future.result()
            except KeyboardInterrupt:
                console.print("[yellow]Abort requested; stopping after the current task.[/yellow]")
                orchestrator.request_abort()
                outcome = future.result()

        result = outcome.result
        if outcome.cleanup is not None:
            _render_cleanup(outcome.cleanup)
        _render_state(outcome.state)
        if result.error and not result.success:
            console.print(f"[red]Stopped:[/red] {redact_text(result.error)}")
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Implementation failed", exc)


@app.command("pr")
def create_pr(
    feature: str = typer.Argument(...),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Push the feature branch and open a pull request."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        with console.status("Creating pull request..."):
            state = orchestrator.create_pr(feature)
        _render_state(state)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Pull request failed", exc)


@app.command()
def merge(
    feature: str = typer.Argument(...),
    no_squash: bool = typer.Option(False, "--no-squash", help="Use a merge commit."),
    keep_branch: bool = typer.Option(False, "--keep-branch", help="Keep the remote branch."),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Merge the feature's pull request and complete the flow."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        state = orchestrator.merge(
            feature,
            squash=False if no_squash else None,
            delete_branch=False if keep_branch else None,
        )
        _render_state(state)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Merge failed", exc)


@app.command("skip-merge")
def skip_merge(
    feature: str = typer.Argument(...),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Complete the flow leaving the pull request open."""
    _transition(feature, repo, config, "Skip merge failed", FlowOrchestrator.skip_merge)


@app.command()
def abort(
    feature: str = typer.Argument(...),
    reason: str = typer.Option("Aborted by user", "--reason", help="Recorded abort reason."),
    keep_worktree: bool = typer.Option(
        False, "--keep-worktree", help="Skip cleanup and keep the worktree."
    ),
    delete_branch: bool = typer.Option(
        False, "--delete-branch", help="Also delete the feature branch and its commits."
    ),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Abort the flow and clean up its worktree; the branch is kept by default."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        outcome = orchestrator.abort(
            feature,
            reason,
            cleanup=False if keep_worktree else None,
            delete_branch=delete_branch,
        )
        _render_state(outcome.state)
        _render_cleanup(outcome.cleanup)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Abort failed", exc)


@app.command()
def status(
    feature: str = typer.Argument(...),
    as_json: bool = typer.Option(False, "--json", help="Print the raw state as JSON."),
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """Show a flow's phase, progress, and history."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        state = orchestrator.status(feature)
        if as_json:
            payload = redact_mapping(state.model_dump(mode="json"))
            typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))
            return
        _render_state(state)
        _render_history(state)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail("Status failed", exc)


@app.command("list")
def list_flows(
    repo: Path = REPO_OPTION,
    config: Path | None = CONFIG_OPTION,
) -> None:
    """List every flow in the repository."""
    try:
        orchestrator = _build_orchestrator(repo, config)
        flows = orchestrator.list_flows()
    except Exception as exc:  # noqa: BLE001
        _fail("List failed", exc)

    if not flows:
        console.print("No flows found.")
        return
    table = Table(title="Flows")
    table.add_column("Feature")
    table.add_column("Mode")
    table.add_column("Phase")
    table.add_column("Progress", justify="right")
    table.add_column("Updated")
    for state in flows:
        table.add_row(
            state.feature,
            state.mode.value if state.mode else "-",
            state.phase.type,
            _progress_label(state),
            state.updated_at or "-",
        )
    console.print(table)


def _build_orchestrator(repo: Path, config: Path | None) -> FlowOrchestrator:
    repo = repo.resolve()
    return FlowOrchestrator(repo, config=load_app_config(config, base_dir=repo))


def _transition(
    feature: str,
    repo: Path,
    config: Path | None,
    label: str,
    operation: Callable[[FlowOrchestrator, str], FlowState],
) -> None:
    try:
        orchestrator = _build_orchestrator(repo, config)
        _render_state(operation(orchestrator, feature))
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _fail(label, exc)


def _fail(label: str, exc: Exception) -> None:
    message = redact_text(str(exc))
    if isinstance(exc, FeatureFlowError):
        message = f"{message} [dim]({exc.category.value}: {exc.kind.value})[/dim]"
        if exc.kind == ErrorKind.TOOL_NOT_FOUND:
            message += "\n" + "\n".join(INSTALL_HINTS.values())
    console.print(f"[red]{label}:[/red] {message}")
    raise typer.Exit(code=1) from exc


def _progress_label(state: FlowState) -> str:
    phase = state.phase
    if isinstance(phase, ImplementingPhase):
        return f"{phase.current_task}/{phase.total_tasks}"
    if isinstance(phase, PausedPhase):
        return f"{phase.paused_at}/{phase.total_tasks}"
    return "-"


def _render_state(state: FlowState) -> None:
    lines = [
        f"phase: [bold]{state.phase.type}[/bold]",
        f"mode: {state.mode.value if state.mode else '-'}",
        f"tasks: {_progress_label(state)}",
        f"worktree: {state.metadata.worktree_path or '-'}",
        f"branch: {state.metadata.branch or '-'}",
    ]
    if state.metadata.pr_url:
        lines.append(f"pull request: {state.metadata.pr_url}")
    reason = getattr(state.phase, "reason", None) or getattr(state.phase, "error", None)
    if reason:
        lines.append(f"reason: {redact_text(reason)}")
    hint = NEXT_STEPS.get(state.phase_type)
    if hint is None and is_approval_phase(state.phase_type):
        hint = "featureflow approve {feature}  |  featureflow reject {feature}"
    if hint:
        lines.append(f"next: [cyan]{hint.format(feature=state.feature)}[/cyan]")
    console.print(Panel.fit("\n".join(lines), title=f"Flow {state.feature}"))


def _render_history(state: FlowState) -> None:
    if not state.history:
        return
    table = Table(title="History")
    table.add_column("#", justify="right")
    table.add_column("Phase")
    for index, phase in enumerate(state.history, start=1):
        table.add_row(str(index), phase.type)
    console.print(table)


def _render_cleanup(report: CleanupReport) -> None:
    if not report.attempted:
        console.print("Cleanup skipped; worktree kept.")
        return
    if report.pr_closed:
        console.print("Pull request closed.")
    for error in report.errors:
        console.print(f"[yellow]Cleanup warning:[/yellow] {redact_text(error)}")
    if report.success:
        removed = "Worktree and branch removed." if report.branch_deleted else "Worktree removed."
        console.print(f"[green]{removed}[/green]")
        if not report.branch_deleted:
            console.print("Feature branch kept with its commits.")


def _print_progress(progress: TaskProgress) -> None:
    if progress.status == "started":
        console.print(f"[cyan]→[/cyan] Task {progress.task_id}/{progress.total}: {progress.title}")
    elif progress.status == "skipped":
        console.print(f"[yellow]↷[/yellow] Task {progress.task_id} skipped")
    else:
        suffix = f" ({progress.commit_hash[:8]})" if progress.commit_hash else ""
        console.print(f"[green]✓[/green] Task {progress.task_id} done{suffix}")


def _auto_continue(current: int, total: int) -> CheckpointDecision:
    console.print(f"Checkpoint {current}/{total}: continuing")
    return CheckpointDecision.CONTINUE


def _prompt_checkpoint(current: int, total: int) -> CheckpointDecision:
    choice = typer.prompt(
        f"Checkpoint {current}/{total} [continue/pause/abort]",
        default=CheckpointDecision.CONTINUE.value,
    )
    try:
        return CheckpointDecision(choice.strip().lower())
    except ValueError:
        console.print(f"[yellow]Unknown choice {choice!r}; pausing.[/yellow]")
        return CheckpointDecision.PAUSE


def _prompt_failure(task: Task, error: str) -> FailureDecision:
    console.print(f"[red]Task {task.id} failed:[/red] {redact_text(error)}")
    choice = typer.prompt("Retry, skip, or abort? [retry/skip/abort]", default="retry")
    try:
        return FailureDecision(choice.strip().lower())
    except ValueError:
        console.print(f"[yellow]Unknown choice {choice!r}; aborting.[/yellow]")
        return FailureDecision.ABORT
