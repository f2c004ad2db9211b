"""Durable per-feature flow state persistence."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import orjson
from pydantic import ValidationError

from featureflow.constants import (
    ARCHIVED_STATE_FILE_NAME,
    FLOWS_DIR_NAME,
    STATE_DIR_NAME,
    STATE_FILE_NAME,
)
from featureflow.errors import (
    FatalFlowError,
    FeatureNameError,
    FlowExistsError,
    FlowNotFoundError,
    StaleStateError,
    StateCorruptedError,
)
from featureflow.flow.state_machine import check_invariants
from featureflow.schemas.flow_models import FlowPhase, FlowState
from featureflow.validation import FeatureValidator

LOGGER = logging.getLogger(__name__)


class StateStore:
    """JSON-file store with atomic writes and create-vs-resume guarding."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)
        self.flows_dir = self.base_dir / STATE_DIR_NAME / FLOWS_DIR_NAME
        self._validator = FeatureValidator()

    def state_path(self, feature: str) -> Path:
        return self._feature_dir(feature) / STATE_FILE_NAME

    def exists(self, feature: str) -> bool:
        return self.state_path(feature).is_file()

    def load(self, feature: str) -> FlowState | None:
        """Load a feature's state, or ``None`` when no flow was ever saved."""
        path = self.state_path(feature)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            state = FlowState.model_validate(orjson.loads(raw))
            check_invariants(state)
        except (orjson.JSONDecodeError, ValidationError, FatalFlowError) as exc:
            raise StateCorruptedError(f"State file {path} is unreadable: {exc}") from exc
        if state.feature != feature:
            raise StateCorruptedError(
                f"State file {path} belongs to feature {state.feature!r}, not {feature!r}"
            )
        return state

    def save(self, state: FlowState, *, overwrite: bool = False) -> FlowState:
        """Persist ``state`` atomically and return the stamped copy.

        A state that was never saved may not replace a live flow for the same
        feature unless ``overwrite`` is set. A previously saved state must carry
        the on-disk revision, so stale copies cannot clobber newer progress.
        """
        existing = self._load_for_write(state.feature, overwrite=overwrite)
        fresh = state.created_at is None
        if existing is not None and not overwrite:
            if fresh and not existing.is_terminal:
                raise FlowExistsError(
                    f"Flow {state.feature!r} already exists in phase "
                    f"'{existing.phase.type}'; resume it or start with overwrite"
                )
            if not fresh and state.revision != existing.revision:
                raise StaleStateError(
                    f"Refusing stale write for {state.feature!r}: revision {state.revision} "
                    f"is behind stored revision {existing.revision}"
                )

        now = datetime.now(UTC).isoformat()
        base_revision = existing.revision if existing is not None else state.revision
        persisted = state.model_copy(
            update={
                "created_at": state.created_at or now,
                "updated_at": now,
                "revision": max(base_revision, state.revision) + 1,
            }
        )
        self._write_atomic(self.state_path(state.feature), persisted)
        LOGGER.debug(
            "Saved flow %s phase=%s revision=%s",
            state.feature,
            persisted.phase.type,
            persisted.revision,
        )
        return persisted

    def history(self, feature: str) -> list[FlowPhase]:
        state = self.load(feature)
        if state is None:
            raise FlowNotFoundError(f"No flow found for feature {feature!r}")
        return list(state.history)

    def list_flows(self) -> list[FlowState]:
        """Return every loadable flow, sorted by feature name."""
        if not self.flows_dir.is_dir():
            return []
        states: list[FlowState] = []
        for feature_dir in sorted(p for p in self.flows_dir.iterdir() if p.is_dir()):
            try:
                state = self.load(feature_dir.name)
            except (StateCorruptedError, FeatureNameError) as exc:
                LOGGER.warning("Skipping unreadable flow %s: %s", feature_dir.name, exc)
                continue
            if state is not None:
                states.append(state)
        return states

    def archive(self, feature: str) -> Path | None:
        """Move the live state aside so the feature name can be reused.

        Earlier archives are kept; each new one takes the next free name.
        """
        path = self.state_path(feature)
        if not path.exists():
            return None
        base = Path(ARCHIVED_STATE_FILE_NAME)
        archive_path = path.with_name(base.name)
        index = 1
        while archive_path.exists():
            archive_path = path.with_name(f"{base.stem}.{index}{base.suffix}")
            index += 1
        os.replace(path, archive_path)
        LOGGER.info("Archived flow %s state to %s", feature, archive_path.name)
        return archive_path

    def _feature_dir(self, feature: str) -> Path:
        result = self._validator.validate(feature)
        if not result.valid:
            raise FeatureNameError(result.error or f"Invalid feature name {feature!r}")
        return self.flows_dir / feature

    def _load_for_write(self, feature: str, *, overwrite: bool) -> FlowState | None:
        try:
            return self.load(feature)
        except StateCorruptedError:
            if overwrite:
                return None
            raise

    @staticmethod
    def _write_atomic(path: Path, state: FlowState) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = orjson.dumps(state.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        fd, tmp_name = tempfile.mkstemp(prefix="state.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
