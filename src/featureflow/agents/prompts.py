"""Prompt templates handed to the generative agent."""

from __future__ import annotations

from pathlib import Path

from featureflow.constants import DESIGN_FILE_NAME, REQUIREMENTS_FILE_NAME, TASKS_FILE_NAME
from featureflow.schemas.enums import PhaseType
from featureflow.schemas.task_models import Task

TASK_PROMPT_TEMPLATE = """Execute implementation task {task_id} for feature "{feature}":

Task: {title}

Description:
{description}

Instructions:
1. Implement the task as described
2. Write tests before implementation
3. Ensure all existing tests pass
4. Follow the project's coding standards
"""

PHASE_PROMPT_TEMPLATES: dict[PhaseType, str] = {
    PhaseType.REQUIREMENTS_GENERATING: (
        'Write the requirements for feature "{feature}" to {spec_dir}/{requirements}.\n\n'
        "Feature description:\n{description}\n\n"
        "Use numbered requirements with acceptance criteria."
    ),
    PhaseType.GAP_ANALYSIS: (
        "Compare {spec_dir}/{requirements} with the existing codebase for feature "
        '"{feature}". Append a "## Gap Analysis" section listing what already exists '
        "and what must change."
    ),
    PhaseType.DESIGN_GENERATING: (
        'Write the technical design for feature "{feature}" to {spec_dir}/{design}, '
        'based on {spec_dir}/{requirements}. Start with a "## Overview" section.'
    ),
    PhaseType.DESIGN_VALIDATION: (
        'Review {spec_dir}/{design} for feature "{feature}" against the existing '
        'architecture and append a "## Validation" section with any conflicts found.'
    ),
    PhaseType.TASKS_GENERATING: (
        'Break the design for feature "{feature}" into implementation tasks in '
        "{spec_dir}/{tasks}. Use one '## Task <N>: <Title>' header per task, numbered "
        "from 1, each followed by a description and a '- [ ]' checklist line."
    ),
    PhaseType.VALIDATION: (
        'Validate the implementation of feature "{feature}" against '
        "{spec_dir}/{requirements}. Run the test suite and fix any failures."
    ),
}


def build_task_prompt(task: Task, feature: str) -> str:
    return TASK_PROMPT_TEMPLATE.format(
        task_id=task.id,
        feature=feature,
        title=task.title,
        description=task.description or task.title,
    )


def build_phase_prompt(
    phase: PhaseType, feature: str, spec_dir: Path, description: str = ""
) -> str | None:
    """Return the prompt for a generating phase, or ``None`` if it needs no agent."""
    template = PHASE_PROMPT_TEMPLATES.get(phase)
    if template is None:
        return None
    return template.format(
        feature=feature,
        spec_dir=spec_dir.as_posix(),
        description=description or feature,
        requirements=REQUIREMENTS_FILE_NAME,
        design=DESIGN_FILE_NAME,
        tasks=TASKS_FILE_NAME,
    )
