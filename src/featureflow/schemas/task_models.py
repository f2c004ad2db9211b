"""Task artifact contracts."""

from __future__ import annotations

from pydantic import Field

from featureflow.schemas.base import FrozenSchemaModel


class Task(FrozenSchemaModel):
    """One implementation step parsed from a task artifact."""

    id: int = Field(ge=1)
    title: str = Field(min_length=1)
    description: str = ""
    completed: bool = False
