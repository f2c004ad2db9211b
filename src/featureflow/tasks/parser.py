"""Task artifact parsing for ``tasks.md``."""

from __future__ import annotations

import re
from pathlib import Path

from featureflow.constants import TASKS_FILE_NAME
from featureflow.errors import ErrorKind, TaskArtifactError, TaskFormatError
from featureflow.schemas.task_models import Task

TASK_HEADER_PATTERN = re.compile(r"^##\s+Task\s+(?P<id>\d+)\s*:\s*(?P<title>.+?)\s*$")
CHECKED_MARKER_PATTERN = re.compile(r"^\s*[-*]\s+\[[xX]\]")
UNCHECKED_MARKER_PATTERN = re.compile(r"^\s*[-*]\s+\[\s\]")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


class TaskParser:
    """Parse ordered task blocks with checklist completion markers.

    Task ids must run 1..n in order. Gaps, duplicates, and reordering raise
    ``TaskFormatError`` instead of being renumbered.
    """

    def __init__(self, *, file_name: str = TASKS_FILE_NAME) -> None:
        self.file_name = file_name

    def parse(self, spec_dir: Path) -> list[Task]:
        """Read and parse the task artifact inside ``spec_dir``."""
        tasks_path = Path(spec_dir) / self.file_name
        try:
            content = tasks_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise TaskArtifactError(
                f"Task artifact not found: {tasks_path}", kind=ErrorKind.NOT_FOUND
            ) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise TaskArtifactError(
                f"Task artifact could not be read: {tasks_path}: {exc}",
                kind=ErrorKind.IO_ERROR,
            ) from exc
        return self.parse_text(content)

    def parse_text(self, content: str) -> list[Task]:
        """Parse task blocks from raw markdown."""
        blocks: list[tuple[int, str, list[str]]] = []
        in_fence = False
        for line in content.splitlines():
            if FENCE_PATTERN.match(line):
                in_fence = not in_fence
            match = None if in_fence else TASK_HEADER_PATTERN.match(line)
            if match:
                blocks.append((int(match.group("id")), match.group("title"), []))
            elif blocks:
                blocks[-1][2].append(line)

        tasks: list[Task] = []
        for expected_id, (task_id, title, body) in enumerate(blocks, start=1):
            if task_id != expected_id:
                raise TaskFormatError(
                    f"Task ids must be sequential starting at 1: expected Task {expected_id}, "
                    f"found Task {task_id} ({title!r})"
                )
            tasks.append(
                Task(
                    id=task_id,
                    title=title,
                    description="\n".join(body).strip(),
                    completed=_is_completed(body),
                )
            )
        return tasks


def _is_completed(body: list[str]) -> bool:
    checked = any(CHECKED_MARKER_PATTERN.match(line) for line in body)
    unchecked = any(UNCHECKED_MARKER_PATTERN.match(line) for line in body)
    return checked and not unchecked
