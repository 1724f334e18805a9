"""Tests for loading configuration model documents."""
import os
import tempfile

import pytest

from vyos_config_engine.config_engine import ModelLoadError, ModelLoader, compute_checksum
from vyos_config_engine.config_engine.schema import (
    InterfaceType,
    ModelKind,
    NATType,
    NetworkInterface,
)


@pytest.fixture
def loader():
    return ModelLoader()


class TestModelLoader:
    """Tests for ModelLoader."""

    def test_load_interface_minimal(self, loader):
        """Defaults fill in everything but the name."""
        iface = loader.load(ModelKind.INTERFACE, {"name": "eth1"})
        assert iface == NetworkInterface(name="eth1", type=InterfaceType.ETHERNET)

    def test_load_interface_full(self, loader):
        iface = loader.load("interface", {
            "name": "bond0",
            "type": "bond",
            "mtu": "9000",
            "addresses": {"ipv4": ["10.0.0.1/24"], "dhcpv6": True},
            "bond": {"mode": "active-backup", "members": ["eth2", "eth3"]},
        })
        assert iface.type == InterfaceType.BOND
        assert iface.mtu == 9000
        assert iface.addresses.ipv4 == ["10.0.0.1/24"]
        assert iface.addresses.dhcpv6 is True
        assert iface.bond.members == ["eth2", "eth3"]

    def test_vlan_parent_defaults_to_name_prefix(self, loader):
        iface = loader.load("interface", {"name": "eth0.30", "type": "vlan", "vlan": {"id": 30}})
        assert iface.vlan.parent_interface == "eth0"

    def test_missing_name(self, loader):
        with pytest.raises(ModelLoadError):
            loader.load("interface", {"type": "ethernet"})

    def test_bad_interface_type(self, loader):
        with pytest.raises(ModelLoadError):
            loader.load("interface", {"name": "eth0", "type": "token-ring"})

    def test_bad_integer(self, loader):
        with pytest.raises(ModelLoadError):
            loader.load("interface", {"name": "eth0", "mtu": "jumbo"})

    def test_unknown_kind(self, loader):
        with pytest.raises(ModelLoadError):
            loader.load("vrrp", {})

    def test_rule_state_list_shorthand(self, loader):
        ruleset = loader.load("firewall-ruleset", {
            "name": "WAN-LOCAL",
            "rules": [{"number": 10, "action": "accept", "state": ["established", "related"]}],
        })
        rule = ruleset.rules[0]
        assert rule.state.established is True
        assert rule.state.related is True
        assert rule.state.new is False

    def test_nat_rule(self, loader):
        rule = loader.load("nat", {
            "number": 100,
            "type": "source",
            "outbound_interface": "eth0",
            "translation": {"address": "masquerade"},
        })
        assert rule.type == NATType.SOURCE
        assert rule.translation.address == "masquerade"

    def test_ipsec_proposal_defaults(self, loader):
        site = loader.load("ipsec", {
            "name": "peer-1",
            "local_address": "198.51.100.1",
            "remote_address": "203.0.113.9",
            "ike_group": {"name": "IKE", "proposals": [{}]},
            "esp_group": {"name": "ESP", "proposals": [{"encryption": "aes128"}]},
            "authentication": {"pre_shared_secret": "secret"},
            "tunnels": [{"local_subnet": "192.168.1.0/24", "remote_subnet": "10.1.0.0/16"}],
        })
        assert site.ike_group.proposals[0].dh_group == "14"
        assert site.esp_group.proposals[0].encryption == "aes128"
        assert site.tunnels[0].id == 0

    def test_load_document(self, loader):
        kind, model = loader.load_document({"kind": "route", "network": "0.0.0.0/0", "next_hop": "192.0.2.1"})
        assert kind == ModelKind.ROUTE
        assert model.next_hop == "192.0.2.1"

    def test_load_document_without_kind(self, loader):
        with pytest.raises(ModelLoadError):
            loader.load_document({"network": "0.0.0.0/0"})

    def test_load_file(self, loader):
        content = """
kind: system
host_name: edge-1
name_servers:
  - 1.1.1.1
users:
  - name: ops
    level: admin
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(content)
            path = f.name
        try:
            kind, system = loader.load_file(path)
        finally:
            os.unlink(path)

        assert kind == ModelKind.SYSTEM
        assert system.host_name == "edge-1"
        assert system.users[0].level == "admin"

    def test_load_missing_file(self, loader):
        with pytest.raises(ModelLoadError):
            loader.load_file("/nonexistent/model.yaml")


class TestChecksum:
    """Tests for compute_checksum."""

    def test_stable(self):
        statements = ["set system host-name 'a'"]
        assert compute_checksum(statements) == compute_checksum(list(statements))
        assert compute_checksum(statements).startswith("sha256:")

    def test_order_sensitive(self):
        assert compute_checksum(["a", "b"]) != compute_checksum(["b", "a"])
