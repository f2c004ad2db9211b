"""Project-wide constants."""

from __future__ import annotations

PACKAGE_VERSION = "0.1.0"
SCHEMA_VERSION = "1.0.0"

STATE_DIR_NAME = ".featureflow"
FLOWS_DIR_NAME = "flows"
SPECS_DIR_NAME = "specs"
STATE_FILE_NAME = "state.json"
ARCHIVED_STATE_FILE_NAME = "state.archived.json"
SETTINGS_FILE_NAME = "settings.yaml"

WORKTREES_DIR_NAME = "worktrees"
BRANCH_PREFIX = "feature/"

REQUIREMENTS_FILE_NAME = "requirements.md"
DESIGN_FILE_NAME = "design.md"
TASKS_FILE_NAME = "tasks.md"

DEFAULT_CHECKPOINT_INTERVAL = 3
DEFAULT_MAX_ATTEMPTS = 3
