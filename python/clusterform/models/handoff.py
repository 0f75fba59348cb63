"""
clusterform/models/handoff.py

Per-replica state of the configuration handoff:

    waiting_for_network -> polling_ssh -> running_playbook -> done
    polling_ssh         -> unreachable
    any non-terminal    -> failed
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field


class HandoffState(str, Enum):
    waiting_for_network = "waiting_for_network"
    polling_ssh = "polling_ssh"
    running_playbook = "running_playbook"
    done = "done"
    unreachable = "unreachable"
    failed = "failed"


TERMINAL_STATES: FrozenSet[HandoffState] = frozenset(
    {HandoffState.done, HandoffState.unreachable, HandoffState.failed}
)

_TRANSITIONS: Dict[HandoffState, FrozenSet[HandoffState]] = {
    HandoffState.waiting_for_network: frozenset(
        {HandoffState.polling_ssh, HandoffState.failed}
    ),
    HandoffState.polling_ssh: frozenset(
        {HandoffState.running_playbook, HandoffState.unreachable, HandoffState.failed}
    ),
    HandoffState.running_playbook: frozenset({HandoffState.done, HandoffState.failed}),
}


class HandoffResult(BaseModel):
    """Tracks one control-plane replica through the handoff.

    Attributes:
        address: The replica's public address.
        state: Current state.
        history: Every state visited, in order.
        attempts: SSH reachability attempts made.
        error: Failure detail for 'unreachable' or 'failed'.
    """

    address: str
    state: HandoffState = HandoffState.waiting_for_network
    history: List[HandoffState] = Field(
        default_factory=lambda: [HandoffState.waiting_for_network]
    )
    attempts: int = 0
    error: Optional[str] = None

    def transition(self, new_state: HandoffState, error: Optional[str] = None) -> None:
        """Move to `new_state`.

        Raises:
            ValueError: If the transition is not allowed from the current state.
        """
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid handoff transition {self.state.value} -> {new_state.value} "
                f"for {self.address}."
            )
        self.state = new_state
        self.history.append(new_state)
        if error is not None:
            self.error = error

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def succeeded(self) -> bool:
        return self.state == HandoffState.done
