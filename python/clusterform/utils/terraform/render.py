"""
clusterform/utils/terraform/render.py

Renders a ClusterSpec into a Terraform JSON configuration (`main.tf.json`).
The rendered document is self-contained: every value comes from the spec, so
the file on disk is exactly what the next apply converges to.

Resources:
  - aws_vpc.main, aws_subnet.main
  - aws_internet_gateway.main, aws_route_table.main, aws_route.default,
    aws_route_table_association.main
  - aws_security_group.cluster plus one ingress/egress rule resource per rule
  - aws_instance.<role>_<index> for every replica
  - data.aws_ami.node, only when the image is not pinned

Outputs:
  - control_plane_public_ips, worker_public_ips: ordered address lists
  - instance_names: role => display names
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Tuple

import aiofiles

from clusterform.models.cluster import ClusterSpec
from clusterform.models.compute import NodeRole
from clusterform.models.topology import ALL_PROTOCOLS, SecurityRule

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "main.tf.json"
AWS_PROVIDER_SOURCE = "hashicorp/aws"
AWS_PROVIDER_VERSION = "~> 5.0"

# Resource types the AWS provider cannot tag.
UNTAGGABLE_RESOURCE_TYPES = frozenset({"aws_route", "aws_route_table_association"})

OUTPUT_NAMES: Dict[NodeRole, str] = {
    NodeRole.control_plane: "control_plane_public_ips",
    NodeRole.worker: "worker_public_ips",
}


def _ref(address: str) -> str:
    return "${" + address + "}"


def _rule_resource_name(direction: str, rule: SecurityRule) -> str:
    if rule.protocol == ALL_PROTOCOLS:
        return f"{direction}_all"
    if rule.from_port == rule.to_port:
        return f"{direction}_{rule.protocol}_{rule.from_port}"
    return f"{direction}_{rule.protocol}_{rule.from_port}_{rule.to_port}"


def _unique_name(base_name: str, taken: Dict[str, Any]) -> str:
    name, n = base_name, 1
    while name in taken:
        name = f"{base_name}_{n}"
        n += 1
    return name


def _rule_resources(
    spec: ClusterSpec, direction: str, rules: List[SecurityRule]
) -> Dict[str, Dict[str, Any]]:
    """One aws_vpc_security_group_{direction}_rule per (rule, cidr) pair.

    Rules sharing protocol and ports (e.g. tcp/22 from two sources, or two
    all-protocol rules) get a numeric suffix so none of them is overwritten.
    """
    rendered: Dict[str, Dict[str, Any]] = {}
    for rule in rules:
        base_name = _rule_resource_name(direction, rule)
        for cidr in rule.cidr_blocks:
            name = _unique_name(base_name, rendered)
            body: Dict[str, Any] = {
                "security_group_id": _ref("aws_security_group.cluster.id"),
                "cidr_ipv4": cidr,
                "ip_protocol": rule.protocol,
                "tags": spec.tags(f"{spec.project_tag}-{name.replace('_', '-')}"),
            }
            # ports are rejected by the provider for ip_protocol -1
            if rule.protocol != ALL_PROTOCOLS:
                body["from_port"] = rule.from_port
                body["to_port"] = rule.to_port
            if rule.description:
                body["description"] = rule.description
            rendered[name] = body
    return rendered


def _image_reference(spec: ClusterSpec) -> str:
    if spec.image.image_id is not None:
        return spec.image.image_id
    return _ref("data.aws_ami.node.id")


def _image_lookup(spec: ClusterSpec) -> Dict[str, Any]:
    return {
        "aws_ami": {
            "node": {
                "most_recent": spec.image.most_recent,
                "owners": list(spec.image.owners),
                "filter": [
                    {"name": "name", "values": [spec.image.name_pattern]},
                    {
                        "name": "virtualization-type",
                        "values": [spec.image.virtualization_type],
                    },
                ],
            }
        }
    }


def _instances(spec: ClusterSpec) -> Dict[str, Dict[str, Any]]:
    image = _image_reference(spec)
    instances: Dict[str, Dict[str, Any]] = {}
    for group in spec.node_groups:
        names = zip(group.resource_names(), group.display_names(spec.project_tag))
        for resource_name, display_name in names:
            body: Dict[str, Any] = {
                "ami": image,
                "instance_type": group.instance_type,
                "subnet_id": _ref("aws_subnet.main.id"),
                "vpc_security_group_ids": [_ref("aws_security_group.cluster.id")],
                "associate_public_ip_address": spec.associate_public_ip,
                "tags": spec.tags(display_name),
                "depends_on": ["aws_internet_gateway.main"],
            }
            if spec.key_name:
                body["key_name"] = spec.key_name
            instances[resource_name] = body
    return instances


def _outputs(spec: ClusterSpec) -> Dict[str, Dict[str, Any]]:
    outputs: Dict[str, Dict[str, Any]] = {}
    for role, output_name in OUTPUT_NAMES.items():
        group = spec.group(role)
        names = group.resource_names() if group else []
        addrs = ", ".join(f"aws_instance.{n}.public_ip" for n in names)
        outputs[output_name] = {"value": "${[" + addrs + "]}"}
    outputs["instance_names"] = {
        "value": {role.value: names for role, names in spec.display_names().items()}
    }
    return outputs


def render_configuration(spec: ClusterSpec) -> Dict[str, Any]:
    """Build the Terraform JSON document for `spec`.

    Args:
        spec: The cluster declaration.

    Returns:
        A JSON-serializable dict in Terraform's JSON configuration syntax.
    """
    project = spec.project_tag
    topo = spec.topology

    subnet: Dict[str, Any] = {
        "vpc_id": _ref("aws_vpc.main.id"),
        "cidr_block": topo.subnet_cidr,
        "map_public_ip_on_launch": spec.associate_public_ip,
        "tags": spec.tags(f"{project}-subnet"),
    }
    if topo.availability_zone:
        subnet["availability_zone"] = topo.availability_zone

    resources: Dict[str, Dict[str, Any]] = {
        "aws_vpc": {
            "main": {
                "cidr_block": topo.vpc_cidr,
                "enable_dns_support": True,
                "enable_dns_hostnames": True,
                "tags": spec.tags(f"{project}-vpc"),
            }
        },
        "aws_subnet": {"main": subnet},
        "aws_internet_gateway": {
            "main": {
                "vpc_id": _ref("aws_vpc.main.id"),
                "tags": spec.tags(f"{project}-igw"),
            }
        },
        "aws_route_table": {
            "main": {
                "vpc_id": _ref("aws_vpc.main.id"),
                "tags": spec.tags(f"{project}-route-table"),
            }
        },
        "aws_route": {
            "default": {
                "route_table_id": _ref("aws_route_table.main.id"),
                "destination_cidr_block": topo.default_route,
                "gateway_id": _ref("aws_internet_gateway.main.id"),
            }
        },
        "aws_route_table_association": {
            "main": {
                "subnet_id": _ref("aws_subnet.main.id"),
                "route_table_id": _ref("aws_route_table.main.id"),
            }
        },
        "aws_security_group": {
            "cluster": {
                "name": f"{project}-cluster",
                "description": f"Cluster traffic for {project}",
                "vpc_id": _ref("aws_vpc.main.id"),
                "tags": spec.tags(f"{project}-sg"),
            }
        },
        "aws_vpc_security_group_ingress_rule": _rule_resources(
            spec, "ingress", topo.ingress
        ),
        "aws_vpc_security_group_egress_rule": _rule_resources(
            spec, "egress", topo.egress
        ),
        "aws_instance": _instances(spec),
    }

    document: Dict[str, Any] = {
        "terraform": {
            "required_providers": {
                "aws": {"source": AWS_PROVIDER_SOURCE, "version": AWS_PROVIDER_VERSION}
            }
        },
        "provider": {"aws": {"region": spec.region}},
        "resource": {k: v for k, v in resources.items() if v},
        "output": _outputs(spec),
    }

    if not spec.image.is_pinned():
        logger.warning(
            "Machine image is not pinned; the newest image matching '%s' is "
            "resolved at apply time and may differ between applies.",
            spec.image.name_pattern,
        )
        document["data"] = _image_lookup(spec)

    return document


def iter_resources(
    document: Dict[str, Any]
) -> List[Tuple[str, str, Dict[str, Any]]]:
    """Flatten a rendered document into (resource_type, name, body) tuples."""
    return [
        (rtype, name, body)
        for rtype, by_name in document.get("resource", {}).items()
        for name, body in by_name.items()
    ]


async def write_configuration(spec: ClusterSpec, terraform_dir: str) -> str:
    """Render `spec` and write it to `<terraform_dir>/main.tf.json`.

    Returns:
        The path of the written file.
    """
    os.makedirs(terraform_dir, exist_ok=True)
    path = os.path.join(terraform_dir, CONFIG_FILE_NAME)
    text = json.dumps(render_configuration(spec), indent=2, sort_keys=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as fh:
        await fh.write(text + "\n")
    logger.info("Wrote Terraform configuration to %s", path)
    return path
