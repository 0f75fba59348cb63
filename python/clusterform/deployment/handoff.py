"""
filename: clusterform/deployment/handoff.py

Hands provisioned nodes to Ansible:
  1) For every control-plane replica, concurrently wait until port 22 accepts
     a TCP handshake (polling every `ssh_poll_interval` seconds, bounded by
     `ssh_timeout`).
  2) Once every replica is reachable, run the playbook once against the
     whole inventory.

Each replica's progress is recorded in a HandoffResult. An unreachable replica
stops the handoff before the playbook runs; there is no compensating action
for a failed playbook.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from clusterform.models.ansible import AnsibleInvocation
from clusterform.models.handoff import HandoffResult, HandoffState
from clusterform.models.inventory import Inventory
from clusterform.models.settings import ClusterSettings
from clusterform.utils.ansible import run_playbook
from clusterform.utils.async_command_runner import CommandError
from clusterform.utils.net import HostUnreachableError, wait_for_port

logger = logging.getLogger(__name__)


class HandoffError(Exception):
    """Raised when the handoff ends with a replica unreachable or the playbook failing.

    Attributes:
        results (List[HandoffResult]): Final per-replica results.
    """

    def __init__(self, message: str, results: List[HandoffResult]) -> None:
        super().__init__(message)
        self.results = results


def build_invocation(settings: ClusterSettings) -> AnsibleInvocation:
    return AnsibleInvocation(
        inventory_path=settings.inventory_path,
        playbook_path=settings.playbook_path,
        remote_user=settings.ssh_user,
        private_key_path=settings.expanded_private_key_path(),
    )


def default_extra_vars(
    inventory: Inventory, settings: ClusterSettings
) -> Dict[str, Any]:
    """Variables every playbook run receives."""
    return {
        "project_tag": settings.project_tag,
        "control_plane_endpoint": inventory.control_plane[0],
        "control_plane_addresses": list(inventory.control_plane),
        "worker_addresses": list(inventory.worker),
    }


async def _await_reachable(result: HandoffResult, settings: ClusterSettings) -> None:
    result.transition(HandoffState.polling_ssh)
    try:
        result.attempts = await wait_for_port(
            result.address,
            settings.ssh_port,
            interval=settings.ssh_poll_interval,
            timeout=settings.ssh_timeout,
        )
    except HostUnreachableError as exc:
        result.attempts = exc.attempts
        result.transition(HandoffState.unreachable, error=str(exc))


async def run_handoff(
    inventory: Inventory,
    settings: ClusterSettings,
    extra_vars: Optional[Dict[str, Any]] = None,
    playbook_timeout: Optional[float] = None,
) -> List[HandoffResult]:
    """Wait for every control-plane replica, then run the playbook.

    Args:
        inventory: The inventory just written to settings.inventory_path.
        settings: SSH user, key, playbook path and polling parameters.
        extra_vars: Merged over `default_extra_vars`.
        playbook_timeout: Seconds before ansible-playbook is killed.

    Returns:
        List[HandoffResult]: One 'done' result per control-plane replica.

    Raises:
        HandoffError: If a replica is unreachable or the playbook fails.
    """
    if not inventory.control_plane:
        raise HandoffError("Inventory has no control-plane addresses.", [])

    results = [HandoffResult(address=addr) for addr in inventory.control_plane]
    await asyncio.gather(*[_await_reachable(r, settings) for r in results])

    unreachable = [r for r in results if r.state == HandoffState.unreachable]
    if unreachable:
        addrs = ", ".join(r.address for r in unreachable)
        raise HandoffError(f"Control-plane replica(s) unreachable: {addrs}", results)

    for r in results:
        r.transition(HandoffState.running_playbook)

    variables = {**default_extra_vars(inventory, settings), **(extra_vars or {})}
    try:
        recap = await run_playbook(
            build_invocation(settings), variables, timeout=playbook_timeout
        )
    except CommandError as exc:
        for r in results:
            r.transition(HandoffState.failed, error=str(exc))
        raise HandoffError(
            f"Playbook {settings.playbook_path} failed: {exc}", results
        ) from exc

    logger.debug("Playbook recap:\n%s", recap)
    for r in results:
        r.transition(HandoffState.done)
    return results
