"""Flow state exports."""

from featureflow.flow.state_machine import (
    BROWNFIELD_PHASES,
    GREENFIELD_PHASES,
    FlowStateMachine,
    Transition,
)
from featureflow.flow.state_store import StateStore

__all__ = [
    "BROWNFIELD_PHASES",
    "FlowStateMachine",
    "GREENFIELD_PHASES",
    "StateStore",
    "Transition",
]
