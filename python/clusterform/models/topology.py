"""
clusterform/models/topology.py

Pydantic models for the network perimeter of a cluster:
 - SecurityRule: one ingress or egress rule of the shared security group.
 - NetworkTopology: VPC, subnet, security rules and the default route through
   the internet gateway.

All models are frozen; the topology is created once and only changed by an
explicit teardown followed by a new apply.
"""

from __future__ import annotations

import ipaddress
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ANY_IPV4 = "0.0.0.0/0"
ALL_PROTOCOLS = "-1"


class SecurityRule(BaseModel):
    """A single security group rule.

    Attributes:
        protocol: "tcp", "udp", "icmp" or "-1" for all protocols.
        from_port: First port of the range (0 when protocol is "-1").
        to_port: Last port of the range (0 when protocol is "-1").
        cidr_blocks: Source (ingress) or destination (egress) IPv4 ranges.
        description: Free-form text shown in the cloud console.
    """

    model_config = ConfigDict(frozen=True)

    protocol: str = "tcp"
    from_port: int = Field(ge=0, le=65535)
    to_port: int = Field(ge=0, le=65535)
    cidr_blocks: List[str] = Field(default_factory=lambda: [ANY_IPV4], min_length=1)
    description: str = ""

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, value: str) -> str:
        if value not in ("tcp", "udp", "icmp", ALL_PROTOCOLS):
            raise ValueError(f"Unsupported protocol '{value}'.")
        return value

    @field_validator("cidr_blocks")
    @classmethod
    def validate_cidr_blocks(cls, value: List[str]) -> List[str]:
        for cidr in value:
            ipaddress.IPv4Network(cidr)
        return value

    @model_validator(mode="after")
    def validate_port_range(self) -> "SecurityRule":
        if self.from_port > self.to_port:
            raise ValueError("from_port must not exceed to_port.")
        if self.protocol == ALL_PROTOCOLS and (self.from_port, self.to_port) != (0, 0):
            raise ValueError("Protocol '-1' requires from_port=0 and to_port=0.")
        return self

    @classmethod
    def tcp(cls, port: int, description: str = "") -> "SecurityRule":
        """Shorthand for a single inbound TCP port open to any source."""
        return cls(protocol="tcp", from_port=port, to_port=port, description=description)

    @classmethod
    def allow_all(cls, description: str = "") -> "SecurityRule":
        """Shorthand for all protocols, all ports, any address."""
        return cls(protocol=ALL_PROTOCOLS, from_port=0, to_port=0, description=description)

    def is_single_port(self) -> bool:
        return self.protocol != ALL_PROTOCOLS and self.from_port == self.to_port


def _default_ingress() -> List[SecurityRule]:
    return [
        SecurityRule.tcp(22, "SSH"),
        SecurityRule.tcp(6443, "Kubernetes API server"),
    ]


def _default_egress() -> List[SecurityRule]:
    return [SecurityRule.allow_all("All outbound traffic")]


class NetworkTopology(BaseModel):
    """The network block every compute node is placed into.

    Attributes:
        vpc_cidr: The virtual network's IPv4 range.
        subnet_cidr: The subnet's range; must lie inside vpc_cidr.
        availability_zone: Optional zone for the subnet. None lets the provider pick.
        ingress: Inbound rules of the shared security group.
        egress: Outbound rules of the shared security group.
        default_route: Destination routed through the internet gateway.
    """

    model_config = ConfigDict(frozen=True)

    vpc_cidr: str = "10.0.0.0/16"
    subnet_cidr: str = "10.0.0.0/24"
    availability_zone: Optional[str] = None
    ingress: List[SecurityRule] = Field(default_factory=_default_ingress)
    egress: List[SecurityRule] = Field(default_factory=_default_egress)
    default_route: str = ANY_IPV4

    @field_validator("vpc_cidr", "subnet_cidr", "default_route")
    @classmethod
    def validate_cidr(cls, value: str) -> str:
        try:
            ipaddress.IPv4Network(value)
        except ValueError as exc:
            raise ValueError(f"Invalid IPv4 CIDR '{value}': {exc}") from exc
        return value

    @model_validator(mode="after")
    def validate_subnet_in_vpc(self) -> "NetworkTopology":
        if not self.subnet_network().subnet_of(self.vpc_network()):
            raise ValueError(
                f"Subnet {self.subnet_cidr} is not contained in VPC {self.vpc_cidr}."
            )
        return self

    @model_validator(mode="after")
    def validate_no_duplicate_rules(self) -> "NetworkTopology":
        # the provider rejects two identical permissions on one group
        for direction, rules in (("ingress", self.ingress), ("egress", self.egress)):
            seen = set()
            for rule in rules:
                for cidr in rule.cidr_blocks:
                    key = (rule.protocol, rule.from_port, rule.to_port, cidr)
                    if key in seen:
                        raise ValueError(
                            f"Duplicate {direction} rule {rule.protocol} "
                            f"{rule.from_port}-{rule.to_port} from {cidr}."
                        )
                    seen.add(key)
        return self

    def vpc_network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(self.vpc_cidr)

    def subnet_network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(self.subnet_cidr)

    def ingress_ports(self) -> List[int]:
        """Sorted single TCP ports opened inbound."""
        return sorted(
            {
                rule.from_port
                for rule in self.ingress
                if rule.protocol == "tcp" and rule.is_single_port()
            }
        )

    def allows_all_egress(self) -> bool:
        return any(
            rule.protocol == ALL_PROTOCOLS and ANY_IPV4 in rule.cidr_blocks
            for rule in self.egress
        )


__all__ = ["SecurityRule", "NetworkTopology", "ANY_IPV4", "ALL_PROTOCOLS"]
