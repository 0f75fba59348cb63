"""
filename: clusterform/deployment/cluster.py

The provisioning-and-handoff sequence. Stages run strictly in order and a
failure in one stage stops every later stage:

  1) Topology declaration: render main.tf.json, terraform init + apply.
  2) Inventory materialization: read the state, write inventory.ini.
  3) Remote configuration handoff: wait for SSH on each control-plane
     replica, then run the playbook.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from clusterform.deployment.handoff import run_handoff
from clusterform.models.cluster import ClusterSpec
from clusterform.models.compute import NodeRole
from clusterform.models.handoff import HandoffResult
from clusterform.models.inventory import Inventory
from clusterform.models.settings import ClusterSettings
from clusterform.utils.inventory import (
    InventoryError,
    inventory_from_state,
    remove_inventory,
    write_inventory,
)
from clusterform.utils.terraform import (
    apply_terraform,
    destroy_terraform,
    init_terraform,
    read_terraform_state,
    write_configuration,
)

logger = logging.getLogger(__name__)


class ProvisionResult(BaseModel):
    """Outcome of a full provisioning run.

    Attributes:
        config_path: The rendered Terraform configuration.
        inventory_path: The written inventory file.
        inventory: The addresses written to it.
        handoff: Per-replica handoff results; empty when the handoff was skipped.
    """

    config_path: str
    inventory_path: str
    inventory: Inventory
    handoff: List[HandoffResult] = Field(default_factory=list)


async def refresh_inventory(
    settings: ClusterSettings,
    env: Optional[Dict[str, str]] = None,
    spec: Optional[ClusterSpec] = None,
) -> Inventory:
    """Regenerate inventory.ini from the current Terraform state.

    When `spec` is given, the number of addresses per role must match its
    declared counts; a mismatch (e.g. a stale state) raises InventoryError
    before anything is written.
    """
    state = await read_terraform_state(settings.terraform_dir, env=env)
    inventory = inventory_from_state(state)
    if spec is not None:
        for role, addrs in (
            (NodeRole.control_plane, inventory.control_plane),
            (NodeRole.worker, inventory.worker),
        ):
            if len(addrs) != spec.count(role):
                raise InventoryError(
                    f"Terraform state has {len(addrs)} {role.label} address(es), "
                    f"expected {spec.count(role)}."
                )
    await write_inventory(inventory, settings.inventory_path)
    return inventory


async def provision_cluster(
    spec: ClusterSpec,
    settings: ClusterSettings,
    env: Optional[Dict[str, str]] = None,
    skip_handoff: bool = False,
) -> ProvisionResult:
    """Create or converge the cluster and hand it to Ansible.

    Args:
        spec: The cluster declaration.
        settings: Paths, SSH parameters and retry/timeout settings.
        env: Extra environment for terraform (e.g. AWS_PROFILE).
        skip_handoff: Stop after writing the inventory.

    Raises:
        CommandError: If a terraform command fails.
        InventoryError: If an address is missing from the state or the
            address counts disagree with the spec.
        HandoffError: If a replica stays unreachable or the playbook fails.
    """
    print(f"[{spec.project_tag}] => rendering into {settings.terraform_dir}")
    config_path = await write_configuration(spec, settings.terraform_dir)

    print(f"[{spec.project_tag}] => terraform init+apply")
    await init_terraform(
        settings.terraform_dir,
        env=env,
        reconfigure=settings.terraform_reconfigure,
        timeout=settings.terraform_timeout,
    )
    await apply_terraform(
        settings.terraform_dir,
        env=env,
        override_lock=settings.terraform_override_lock,
        retries=settings.terraform_retries,
        timeout=settings.terraform_timeout,
    )

    inventory = await refresh_inventory(settings, env=env, spec=spec)
    print(
        f"[{spec.project_tag}] => inventory written to {settings.inventory_path} "
        f"({len(inventory.control_plane)} control-plane, {len(inventory.worker)} worker)"
    )

    result = ProvisionResult(
        config_path=config_path,
        inventory_path=settings.inventory_path,
        inventory=inventory,
    )
    if skip_handoff:
        logger.info("Skipping configuration handoff")
        return result

    print(f"[{spec.project_tag}] => waiting for SSH, then {settings.playbook_path}")
    result.handoff = await run_handoff(inventory, settings)
    print(f"[{spec.project_tag}] => done.")
    return result


async def destroy_cluster(
    spec: ClusterSpec,
    settings: ClusterSettings,
    env: Optional[Dict[str, str]] = None,
) -> None:
    """Tear down every declared resource and drop the stale inventory."""
    await write_configuration(spec, settings.terraform_dir)
    print(f"[{spec.project_tag}] => terraform init+destroy")
    await init_terraform(
        settings.terraform_dir,
        env=env,
        reconfigure=settings.terraform_reconfigure,
        timeout=settings.terraform_timeout,
    )
    await destroy_terraform(
        settings.terraform_dir,
        env=env,
        override_lock=settings.terraform_override_lock,
        retries=settings.terraform_retries,
        timeout=settings.terraform_timeout,
    )
    if await remove_inventory(settings.inventory_path):
        logger.info("Removed %s", settings.inventory_path)
    print(f"[{spec.project_tag}] => destroyed.")
