"""Task artifact exports."""

from featureflow.schemas.task_models import Task
from featureflow.tasks.parser import TaskParser

__all__ = ["Task", "TaskParser"]
