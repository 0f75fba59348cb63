import pytest
from pydantic import ValidationError

from clusterform.models.topology import (
    ALL_PROTOCOLS,
    ANY_IPV4,
    NetworkTopology,
    SecurityRule,
)


def test_default_subnet_is_inside_vpc():
    topo = NetworkTopology()

    assert topo.vpc_cidr == "10.0.0.0/16"
    assert topo.subnet_cidr == "10.0.0.0/24"
    assert topo.subnet_network().subnet_of(topo.vpc_network())


def test_subnet_outside_vpc_is_rejected():
    with pytest.raises(ValidationError, match="not contained"):
        NetworkTopology(vpc_cidr="10.0.0.0/16", subnet_cidr="10.1.0.0/24")


def test_subnet_larger_than_vpc_is_rejected():
    with pytest.raises(ValidationError):
        NetworkTopology(vpc_cidr="10.0.0.0/24", subnet_cidr="10.0.0.0/16")


def test_invalid_cidr_is_rejected():
    with pytest.raises(ValidationError):
        NetworkTopology(vpc_cidr="10.0.0.1/16")


def test_default_rules_open_ssh_and_api_server_only():
    topo = NetworkTopology()

    assert topo.ingress_ports() == [22, 6443]
    assert all(rule.cidr_blocks == [ANY_IPV4] for rule in topo.ingress)
    assert all(rule.protocol == "tcp" for rule in topo.ingress)


def test_default_egress_allows_everything():
    topo = NetworkTopology()

    assert topo.allows_all_egress()
    (rule,) = topo.egress
    assert rule.protocol == ALL_PROTOCOLS
    assert (rule.from_port, rule.to_port) == (0, 0)


def test_restricted_egress_is_reported():
    topo = NetworkTopology(egress=[SecurityRule.tcp(443)])

    assert not topo.allows_all_egress()


def test_security_rule_port_range_validation():
    with pytest.raises(ValidationError, match="from_port"):
        SecurityRule(protocol="tcp", from_port=100, to_port=10)

    with pytest.raises(ValidationError):
        SecurityRule(protocol="tcp", from_port=70000, to_port=70000)


def test_all_protocols_rule_requires_zero_ports():
    with pytest.raises(ValidationError, match="-1"):
        SecurityRule(protocol=ALL_PROTOCOLS, from_port=0, to_port=65535)


def test_unknown_protocol_rejected():
    with pytest.raises(ValidationError):
        SecurityRule(protocol="sctp", from_port=1, to_port=1)


def test_topology_is_immutable():
    topo = NetworkTopology()

    with pytest.raises(ValidationError):
        topo.vpc_cidr = "192.168.0.0/16"


def test_rule_needs_at_least_one_cidr():
    with pytest.raises(ValidationError):
        SecurityRule(protocol="tcp", from_port=22, to_port=22, cidr_blocks=[])


def test_identical_rules_are_rejected():
    with pytest.raises(ValidationError, match="Duplicate ingress rule"):
        NetworkTopology(ingress=[SecurityRule.tcp(22), SecurityRule.tcp(22, "again")])


def test_same_port_different_sources_is_allowed():
    topo = NetworkTopology(
        ingress=[
            SecurityRule(protocol="tcp", from_port=22, to_port=22, cidr_blocks=["10.1.0.0/16"]),
            SecurityRule(protocol="tcp", from_port=22, to_port=22, cidr_blocks=["10.2.0.0/16"]),
        ]
    )

    assert topo.ingress_ports() == [22]
