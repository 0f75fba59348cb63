"""
clusterform/models/inventory.py

The Ansible inventory produced after provisioning: two groups of public
addresses rendered as a fixed two-section INI file:

    [control_plane]
    203.0.113.10

    [worker]
    203.0.113.11
    203.0.113.12
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field, field_validator

CONTROL_PLANE_GROUP = "control_plane"
WORKER_GROUP = "worker"
GROUP_ORDER = (CONTROL_PLANE_GROUP, WORKER_GROUP)


class Inventory(BaseModel):
    """Ordered public addresses per inventory group.

    Attributes:
        control_plane: Addresses of the control-plane nodes.
        worker: Addresses of the worker nodes.
    """

    control_plane: List[str] = Field(default_factory=list)
    worker: List[str] = Field(default_factory=list)

    @field_validator("control_plane", "worker")
    @classmethod
    def validate_addresses(cls, value: List[str]) -> List[str]:
        for addr in value:
            if not addr or addr != addr.strip() or any(c.isspace() for c in addr):
                raise ValueError(f"Invalid inventory address {addr!r}.")
        return value

    def groups(self) -> Dict[str, List[str]]:
        return {CONTROL_PLANE_GROUP: self.control_plane, WORKER_GROUP: self.worker}

    def render(self) -> str:
        """Render the INI text: both headers in fixed order, blank line between."""
        sections = [
            "\n".join([f"[{name}]"] + addrs) for name, addrs in self.groups().items()
        ]
        return "\n\n".join(sections) + "\n"

    @classmethod
    def parse(cls, text: str) -> "Inventory":
        """Parse text produced by `render`.

        Raises:
            ValueError: If a header is missing, out of order, unknown, or an
                address appears before the first header.
        """
        groups: Dict[str, List[str]] = {}
        current = None
        for raw in text.splitlines():
            line = raw.strip()
            if not line:
                continue
            if line.startswith("[") and line.endswith("]"):
                current = line[1:-1]
                if current not in GROUP_ORDER:
                    raise ValueError(f"Unknown inventory group '{current}'.")
                if current in groups:
                    raise ValueError(f"Duplicate inventory group '{current}'.")
                groups[current] = []
                continue
            if current is None:
                raise ValueError(f"Address '{line}' appears before any group header.")
            groups[current].append(line)

        if tuple(groups) != GROUP_ORDER:
            raise ValueError(
                f"Inventory must contain groups {list(GROUP_ORDER)} in order, "
                f"found {list(groups)}."
            )
        return cls(control_plane=groups[CONTROL_PLANE_GROUP], worker=groups[WORKER_GROUP])


__all__ = ["Inventory", "CONTROL_PLANE_GROUP", "WORKER_GROUP", "GROUP_ORDER"]
