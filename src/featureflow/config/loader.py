"""Configuration loading and override resolution."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from featureflow.config.models import AppConfig
from featureflow.constants import SETTINGS_FILE_NAME, STATE_DIR_NAME

DEFAULT_CONFIG_PATH = Path(STATE_DIR_NAME) / SETTINGS_FILE_NAME


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Configuration file must deserialize to a mapping")
    return data


def apply_overrides(
    raw_config: dict[str, Any],
    env: Mapping[str, str],
    cli_overrides: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Apply precedence: CLI > env > YAML defaults."""
    merged = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in raw_config.items()
    }
    if env.get("FEATUREFLOW_BASE_BRANCH"):
        merged.setdefault("git", {})["base_branch"] = env["FEATUREFLOW_BASE_BRANCH"]
    if env.get("FEATUREFLOW_CHECKPOINT_INTERVAL"):
        merged.setdefault("execution", {})["checkpoint_interval"] = env[
            "FEATUREFLOW_CHECKPOINT_INTERVAL"
        ]
    if env.get("FEATUREFLOW_AGENT_COMMAND"):
        merged.setdefault("agent", {})["command"] = env["FEATUREFLOW_AGENT_COMMAND"]

    if cli_overrides:
        if cli_overrides.get("checkpoint_interval") is not None:
            merged.setdefault("execution", {})["checkpoint_interval"] = cli_overrides[
                "checkpoint_interval"
            ]
        if cli_overrides.get("base_branch"):
            merged.setdefault("git", {})["base_branch"] = cli_overrides["base_branch"]
    return merged


def load_app_config(
    config_path: Path | None = None,
    *,
    base_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load and validate settings.

    An explicit ``config_path`` must exist. Without one, the repository's
    ``.featureflow/settings.yaml`` is used when present and defaults otherwise.
    """
    active_env = os.environ if env is None else env
    if config_path is not None:
        raw = _load_yaml(config_path)
    else:
        default_path = (base_dir or Path.cwd()) / DEFAULT_CONFIG_PATH
        raw = _load_yaml(default_path) if default_path.exists() else {}
    merged = apply_overrides(raw, active_env, cli_overrides)
    return AppConfig.model_validate(merged)
