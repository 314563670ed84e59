"""Lifecycle state machine, supervisor and commit points."""

from .commit import CommitGate
from .state import Lifecycle, LifecycleState, RpcCallRecord
from .supervisor import Supervisor

__all__ = [
    "CommitGate",
    "Lifecycle",
    "LifecycleState",
    "RpcCallRecord",
    "Supervisor",
]
