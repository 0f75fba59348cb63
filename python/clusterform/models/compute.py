"""
clusterform/models/compute.py

Compute node descriptors:
 - NodeRole: control_plane or worker.
 - ImageSelector: a pinned machine image, or the "most recent image matching a
   name pattern" lookup scoped to a trusted publisher account.
 - NodeGroup: role, replica count and machine size for one group of nodes.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CANONICAL_OWNER_ID = "099720109477"
UBUNTU_JAMMY_PATTERN = "ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*"


class NodeRole(str, Enum):
    control_plane = "control_plane"
    worker = "worker"

    @property
    def label(self) -> str:
        """Role label used in display names, e.g. 'control-plane'."""
        return self.value.replace("_", "-")


class ImageSelector(BaseModel):
    """Chooses the machine image shared by all nodes.

    When `image_id` is set the image is pinned and the lookup fields are
    ignored. Otherwise the provider resolves the newest image matching the
    filters at apply time, so successive applies may boot different images.

    Attributes:
        image_id: A concrete image id (e.g. 'ami-0abc...'), or None for a lookup.
        name_pattern: Image name filter with '*' wildcards.
        virtualization_type: Virtualization-type filter, usually 'hvm'.
        owners: Publisher accounts the lookup is restricted to.
        most_recent: Pick the newest match when several images qualify.
    """

    model_config = ConfigDict(frozen=True)

    image_id: Optional[str] = None
    name_pattern: str = UBUNTU_JAMMY_PATTERN
    virtualization_type: str = "hvm"
    owners: List[str] = Field(default_factory=lambda: [CANONICAL_OWNER_ID])
    most_recent: bool = True

    @field_validator("image_id")
    @classmethod
    def validate_image_id(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("image_id must be non-empty when set.")
        return value

    @field_validator("owners")
    @classmethod
    def validate_owners(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("owners must name at least one publisher account.")
        return value

    def is_pinned(self) -> bool:
        return self.image_id is not None


class NodeGroup(BaseModel):
    """A group of identical instances sharing one role.

    Attributes:
        role: The group's role in the cluster.
        count: Number of replicas.
        instance_type: Machine size, e.g. 't3.medium'.
    """

    model_config = ConfigDict(frozen=True)

    role: NodeRole
    count: int = Field(ge=0)
    instance_type: str = "t3.medium"

    def display_names(self, project: str) -> List[str]:
        """One name per replica index, starting at 1."""
        return [f"{project}-{self.role.label}-{i}" for i in range(1, self.count + 1)]

    def resource_names(self) -> List[str]:
        """Terraform resource names, one per replica, e.g. 'worker_2'."""
        return [f"{self.role.value}_{i}" for i in range(1, self.count + 1)]


__all__ = [
    "NodeRole",
    "ImageSelector",
    "NodeGroup",
    "CANONICAL_OWNER_ID",
    "UBUNTU_JAMMY_PATTERN",
]
