"""
cluster.py

ClusterSpec is the full declaration handed to the provisioning engine: the
network topology, the node groups, the machine image and the tag set applied
to every resource. Defaults describe the reference cluster: one control-plane
node and two workers in 10.0.0.0/24, tagged project=kubernetes.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clusterform.models.compute import ImageSelector, NodeGroup, NodeRole
from clusterform.models.topology import NetworkTopology

DEFAULT_PROJECT_TAG = "kubernetes"


def _default_node_groups() -> List[NodeGroup]:
    return [
        NodeGroup(role=NodeRole.control_plane, count=1),
        NodeGroup(role=NodeRole.worker, count=2),
    ]


class ClusterSpec(BaseModel):
    """Everything needed to render the Terraform configuration.

    Attributes:
        project_tag: Value of the 'project' tag on every resource; also the
            prefix of every display name.
        region: Cloud region (e.g., 'us-east-1').
        topology: Network perimeter shared by all nodes.
        node_groups: One group per role.
        image: Machine image shared by all nodes.
        key_name: Name of an existing key pair installed on the instances.
        associate_public_ip: Give each instance a public address.
    """

    model_config = ConfigDict(frozen=True)

    project_tag: str = DEFAULT_PROJECT_TAG
    region: str = "us-east-1"
    topology: NetworkTopology = Field(default_factory=NetworkTopology)
    node_groups: List[NodeGroup] = Field(default_factory=_default_node_groups)
    image: ImageSelector = Field(default_factory=ImageSelector)
    key_name: Optional[str] = None
    associate_public_ip: bool = True

    @field_validator("project_tag")
    @classmethod
    def validate_project_tag(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("project_tag must be a non-empty string.")
        return value

    @field_validator("node_groups")
    @classmethod
    def validate_node_groups(cls, value: List[NodeGroup]) -> List[NodeGroup]:
        roles = [g.role for g in value]
        if len(roles) != len(set(roles)):
            raise ValueError("node_groups must contain at most one group per role.")
        control = [g for g in value if g.role == NodeRole.control_plane]
        if not control or control[0].count < 1:
            raise ValueError("A control_plane group with count >= 1 is required.")
        return value

    def group(self, role: NodeRole) -> Optional[NodeGroup]:
        return next((g for g in self.node_groups if g.role == role), None)

    def count(self, role: NodeRole) -> int:
        grp = self.group(role)
        return grp.count if grp else 0

    def total_nodes(self) -> int:
        return sum(g.count for g in self.node_groups)

    def display_names(self) -> Dict[NodeRole, List[str]]:
        return {g.role: g.display_names(self.project_tag) for g in self.node_groups}

    def tags(self, name: str) -> Dict[str, str]:
        """The tag set for one resource: the shared project tag plus its display name."""
        return {"project": self.project_tag, "Name": name}


__all__ = ["ClusterSpec", "DEFAULT_PROJECT_TAG"]
