"""Agent invocation boundary."""

from featureflow.agents.invoker import (
    AgentInvoker,
    AgentResult,
    CommandAgentInvoker,
    PhaseRequest,
    TaskRequest,
)

__all__ = [
    "AgentInvoker",
    "AgentResult",
    "CommandAgentInvoker",
    "PhaseRequest",
    "TaskRequest",
]
