"""
clusterform/utils/ansible.py

Runs 'ansible-playbook' through the async command runner. Extra variables are
written to an ephemeral JSON file and passed as '-e @file' so nothing is left
on disk and nothing shows up in the process list.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from clusterform.models.ansible import AnsibleInvocation
from clusterform.utils.async_command_runner import run_command
from clusterform.utils.ephemeral_file import ephemeral_file

logger = logging.getLogger(__name__)


def _ansible_error_parser(stderr: str) -> Optional[str]:
    low = stderr.lower()
    if "unreachable!" in low or "failed to connect to the host via ssh" in low:
        return "Ansible could not reach one or more hosts over SSH."
    if "permission denied (publickey" in low:
        return "SSH authentication failed; check the private key and remote user."
    return None


async def run_playbook(
    invocation: AnsibleInvocation,
    extra_vars: Optional[Dict[str, Any]] = None,
    *,
    timeout: Optional[float] = None,
    sensitive: bool = False,
) -> str:
    """Run the playbook once. No retries: a playbook mutates the remote hosts.

    Args:
        invocation: Inventory, playbook, user and key.
        extra_vars: Optional variables for the playbook.
        timeout: Seconds before the run is killed.
        sensitive: If True, hide the command output in raised errors.

    Returns:
        str: ansible-playbook stdout (the play recap).

    Raises:
        CommandError: If the playbook fails or times out.
    """

    async def _run(inv: AnsibleInvocation) -> str:
        logger.info("Running %s against %s", inv.playbook_path, inv.inventory_path)
        return await run_command(
            inv.build_command(),
            sensitive=sensitive,
            env=inv.build_env(),
            retries=1,
            timeout=timeout,
            error_parser=_ansible_error_parser,
        )

    if not extra_vars:
        return await _run(invocation)

    async with ephemeral_file(
        "extra_vars.json", json.dumps(extra_vars), prefix="ansible-vars-"
    ) as vars_path:
        return await _run(invocation.model_copy(update={"extra_vars_file": vars_path}))
