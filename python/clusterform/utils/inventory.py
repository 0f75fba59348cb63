"""
clusterform/utils/inventory.py

Builds the Ansible inventory from Terraform outputs and reads/writes
`inventory.ini` asynchronously.
"""

from __future__ import annotations

import logging
import os
from typing import List

import aiofiles
import aiofiles.os
import aiofiles.ospath

from clusterform.models.compute import NodeRole
from clusterform.models.inventory import Inventory
from clusterform.models.terraform import TerraformState
from clusterform.utils.terraform.commands import get_output_from_state
from clusterform.utils.terraform.render import OUTPUT_NAMES

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY_PATH = "./inventory.ini"


class InventoryError(Exception):
    """Raised when the inventory cannot be built from the provisioned state."""


def _addresses(state: TerraformState, role: NodeRole) -> List[str]:
    output_name = OUTPUT_NAMES[role]
    try:
        raw = get_output_from_state(state, output_name, List[object])
    except KeyError as exc:
        raise InventoryError(f"Terraform state has no '{output_name}' output.") from exc

    addrs = ["" if a is None else str(a).strip() for a in raw]
    missing = [i for i, a in enumerate(addrs, start=1) if not a]
    if missing:
        raise InventoryError(
            f"{role.label} node(s) {missing} have no public address yet; "
            "re-run apply once the addresses are assigned."
        )
    return addrs


def inventory_from_state(state: TerraformState) -> Inventory:
    """Build an Inventory from the public-address outputs of `state`.

    Raises:
        InventoryError: If an output is missing or an address is unresolved.
    """
    if state.is_empty():
        raise InventoryError("Terraform state is empty; nothing has been provisioned.")
    return Inventory(
        control_plane=_addresses(state, NodeRole.control_plane),
        worker=_addresses(state, NodeRole.worker),
    )


async def write_inventory(
    inventory: Inventory, path: str = DEFAULT_INVENTORY_PATH
) -> str:
    """Write the rendered inventory to `path`, replacing any previous file."""
    parent = os.path.dirname(os.path.abspath(path))
    await aiofiles.os.makedirs(parent, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as fh:
        await fh.write(inventory.render())
    logger.info(
        "Wrote inventory %s (%d control-plane, %d worker)",
        path,
        len(inventory.control_plane),
        len(inventory.worker),
    )
    return path


async def read_inventory(path: str = DEFAULT_INVENTORY_PATH) -> Inventory:
    """Read and parse an inventory file.

    Raises:
        InventoryError: If the file is missing or malformed.
    """
    if not await aiofiles.ospath.exists(path):
        raise InventoryError(f"Inventory file not found: {path}")
    async with aiofiles.open(path, "r", encoding="utf-8") as fh:
        text = await fh.read()
    try:
        return Inventory.parse(text)
    except ValueError as exc:
        raise InventoryError(f"Malformed inventory {path}: {exc}") from exc


async def remove_inventory(path: str = DEFAULT_INVENTORY_PATH) -> bool:
    """Delete the inventory file if present. Returns True when a file was removed."""
    if await aiofiles.ospath.exists(path):
        await aiofiles.os.remove(path)
        return True
    return False
