"""CLI smoke tests."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from featureflow import __version__, app


def test_package_imports() -> None:
    """Ensure the package imports with expected metadata."""
    assert __version__


def test_cli_help_lists_commands() -> None:
    """Ensure CLI wiring is operational."""
    result = CliRunner().invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ["start", "advance", "approve", "implement", "pr", "merge", "abort", "list"]:
        assert command in result.stdout


def test_version_command() -> None:
    result = CliRunner().invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == __version__


def test_validate_config_prints_effective_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "settings.yaml"
    config_path.write_text("git:\n  base_branch: trunk\n", encoding="utf-8")

    result = CliRunner().invoke(
        app, ["validate-config", "--repo", str(tmp_path), "--config", str(config_path)]
    )

    assert result.exit_code == 0
    assert "trunk" in result.stdout


def test_validate_config_rejects_bad_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "settings.yaml"
    config_path.write_text("execution:\n  checkpoint_interval: 0\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["validate-config", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Configuration validation failed" in result.stdout


def test_status_of_unknown_flow_exits_non_zero(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["status", "add-auth", "--repo", str(tmp_path)])
    assert result.exit_code == 1
    assert "No flow found" in result.stdout


def test_list_without_flows(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["list", "--repo", str(tmp_path)])
    assert result.exit_code == 0
    assert "No flows found." in result.stdout
