"""Loader for configuration model documents.

Converts dict/YAML input to strongly-typed configuration models.
"""
import hashlib
import json
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ModelLoadError
from .schema import (
    AddressConfig,
    BondConfig,
    BridgeConfig,
    ESPGroup,
    ESPProposal,
    FirewallAddress,
    FirewallRule,
    FirewallRuleset,
    FirewallState,
    FirewallZone,
    IKEGroup,
    IKEProposal,
    InterfaceType,
    IPSecAuthentication,
    IPSecSite,
    IPSecTunnel,
    ModelKind,
    NATAddress,
    NATRule,
    NATTranslation,
    NATType,
    NetworkInterface,
    StaticRoute,
    SystemConfig,
    SystemUser,
    VLANConfig,
    ZonePolicy,
)


def _int(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        raise ModelLoadError(f"Invalid integer for {field}: {value!r}")


def _str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    return [str(v) for v in value]


def _required(config: dict[str, Any], key: str, what: str) -> Any:
    value = config.get(key)
    if value is None or value == "":
        raise ModelLoadError(f"Missing required field for {what}: {key}")
    return value


class ModelLoader:
    """Load configuration models from dict/YAML format."""

    def load(self, kind: ModelKind | str, config: dict[str, Any]) -> Any:
        """
        Load a single model of the given kind.

        Args:
            kind: Model kind (interface, route, firewall-zone, ...)
            config: Dict with the model's fields

        Returns:
            The typed model

        Raises:
            ModelLoadError: If the document is invalid
        """
        kind = self._kind(kind)

        if not isinstance(config, dict):
            raise ModelLoadError(f"Expected a mapping for {kind.value}, got {type(config).__name__}")

        loaders = {
            ModelKind.INTERFACE: self._load_interface,
            ModelKind.ROUTE: self._load_route,
            ModelKind.FIREWALL_ZONE: self._load_zone,
            ModelKind.FIREWALL_RULESET: self._load_ruleset,
            ModelKind.NAT: self._load_nat_rule,
            ModelKind.IPSEC: self._load_ipsec_site,
            ModelKind.SYSTEM: self._load_system,
        }
        return loaders[kind](config)

    def load_document(self, document: dict[str, Any]) -> tuple[ModelKind, Any]:
        """
        Load a document of the form ``{"kind": ..., <fields>}``.

        Returns:
            Tuple of (kind, model)
        """
        if not isinstance(document, dict):
            raise ModelLoadError("Model document must be a mapping")

        fields = dict(document)
        kind = fields.pop("kind", None)
        if not kind:
            raise ModelLoadError("Missing required field: kind")

        kind = self._kind(kind)
        return kind, self.load(kind, fields)

    def load_file(self, path: Path | str) -> tuple[ModelKind, Any]:
        """Load a YAML or JSON model document from disk."""
        path = Path(path)
        try:
            with open(path) as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ModelLoadError(f"Cannot read model file {path}: {e}")

        return self.load_document(document or {})

    @staticmethod
    def _kind(kind: Any) -> ModelKind:
        try:
            return ModelKind(kind)
        except ValueError:
            raise ModelLoadError(f"Unknown model kind: {kind}")

    # --- Interfaces ---

    def _load_interface(self, config: dict[str, Any]) -> NetworkInterface:
        name = str(_required(config, "name", "interface"))

        type_str = config.get("type", "ethernet")
        try:
            iface_type = InterfaceType(type_str)
        except ValueError:
            raise ModelLoadError(f"Invalid type for interface {name}: {type_str}")

        addresses = config.get("addresses") or {}
        vlan = bond = bridge = None

        vlan_config = config.get("vlan")
        if vlan_config is not None:
            vlan = VLANConfig(
                id=_int(_required(vlan_config, "id", f"vlan on {name}"), "vlan.id"),
                parent_interface=str(vlan_config.get("parent_interface") or name.split(".")[0]),
            )

        bond_config = config.get("bond")
        if bond_config is not None:
            bond = BondConfig(
                mode=str(bond_config.get("mode", "802.3ad")),
                members=_str_list(bond_config.get("members")),
                primary_interface=_str(bond_config.get("primary_interface")),
                hash_policy=_str(bond_config.get("hash_policy")),
            )

        bridge_config = config.get("bridge")
        if bridge_config is not None:
            bridge = BridgeConfig(
                members=_str_list(bridge_config.get("members")),
                stp=bool(bridge_config.get("stp", False)),
                aging=_int(bridge_config.get("aging"), "bridge.aging"),
                max_age=_int(bridge_config.get("max_age"), "bridge.max_age"),
            )

        return NetworkInterface(
            name=name,
            type=iface_type,
            enabled=bool(config.get("enabled", True)),
            description=_str(config.get("description")),
            mtu=_int(config.get("mtu"), "mtu"),
            mac=_str(config.get("mac")),
            addresses=AddressConfig(
                ipv4=_str_list(addresses.get("ipv4")),
                ipv6=_str_list(addresses.get("ipv6")),
                dhcp=bool(addresses.get("dhcp", False)),
                dhcpv6=bool(addresses.get("dhcpv6", False)),
            ),
            vlan=vlan,
            bond=bond,
            bridge=bridge,
        )

    # --- Routes ---

    def _load_route(self, config: dict[str, Any]) -> StaticRoute:
        return StaticRoute(
            network=str(_required(config, "network", "route")),
            next_hop=_str(config.get("next_hop")),
            interface=_str(config.get("interface")),
            distance=_int(config.get("distance"), "distance"),
            description=_str(config.get("description")),
        )

    # --- Firewall ---

    def _load_zone(self, config: dict[str, Any]) -> FirewallZone:
        from_zones = {}
        for zone_name, policy in (config.get("from_zones") or {}).items():
            policy = policy or {}
            from_zones[str(zone_name)] = ZonePolicy(
                firewall_name=_str(policy.get("firewall_name")),
                ipv6_firewall_name=_str(policy.get("ipv6_firewall_name")),
            )

        return FirewallZone(
            name=str(_required(config, "name", "firewall zone")),
            default_action=str(config.get("default_action", "drop")),
            description=_str(config.get("description")),
            interfaces=_str_list(config.get("interfaces")),
            from_zones=from_zones,
        )

    def _load_ruleset(self, config: dict[str, Any]) -> FirewallRuleset:
        return FirewallRuleset(
            name=str(_required(config, "name", "firewall ruleset")),
            default_action=str(config.get("default_action", "drop")),
            description=_str(config.get("description")),
            enable_default_log=bool(config.get("enable_default_log", False)),
            rules=[self._load_rule(rule) for rule in config.get("rules") or []],
        )

    def _load_rule(self, config: dict[str, Any]) -> FirewallRule:
        number = _int(_required(config, "number", "firewall rule"), "rule number")
        state = config.get("state") or {}
        # Accept a list of states as shorthand: state: [established, related]
        if isinstance(state, list):
            state = {s: True for s in state}

        return FirewallRule(
            number=number,
            action=str(config.get("action", "drop")),
            description=_str(config.get("description")),
            protocol=_str(config.get("protocol")),
            source=self._load_firewall_address(config.get("source")),
            destination=self._load_firewall_address(config.get("destination")),
            state=FirewallState(
                established=bool(state.get("established", False)),
                related=bool(state.get("related", False)),
                new=bool(state.get("new", False)),
                invalid=bool(state.get("invalid", False)),
            ),
            log=bool(config.get("log", False)),
            enabled=bool(config.get("enabled", True)),
        )

    def _load_firewall_address(self, config: Optional[dict[str, Any]]) -> FirewallAddress:
        config = config or {}
        return FirewallAddress(
            address=_str(config.get("address")),
            port=_str(config.get("port")),
            address_group=_str(config.get("address_group")),
            network_group=_str(config.get("network_group")),
            port_group=_str(config.get("port_group")),
        )

    # --- NAT ---

    def _load_nat_rule(self, config: dict[str, Any]) -> NATRule:
        number = _int(_required(config, "number", "NAT rule"), "rule number")
        type_str = config.get("type", "source")
        try:
            nat_type = NATType(type_str)
        except ValueError:
            raise ModelLoadError(
                f"Invalid type for NAT rule {number}: {type_str}. "
                f"Must be 'source' or 'destination'"
            )

        translation = config.get("translation") or {}
        return NATRule(
            number=number,
            type=nat_type,
            description=_str(config.get("description")),
            outbound_interface=_str(config.get("outbound_interface")),
            inbound_interface=_str(config.get("inbound_interface")),
            protocol=_str(config.get("protocol")),
            source=NATAddress(**self._address_fields(config.get("source"))),
            destination=NATAddress(**self._address_fields(config.get("destination"))),
            translation=NATTranslation(
                address=_str(translation.get("address")),
                port=_str(translation.get("port")),
            ),
            enabled=bool(config.get("enabled", True)),
        )

    @staticmethod
    def _address_fields(config: Optional[dict[str, Any]]) -> dict[str, Optional[str]]:
        config = config or {}
        return {"address": _str(config.get("address")), "port": _str(config.get("port"))}

    # --- IPsec ---

    def _load_ipsec_site(self, config: dict[str, Any]) -> IPSecSite:
        name = str(_required(config, "name", "IPsec site"))
        ike = config.get("ike_group") or {}
        esp = config.get("esp_group") or {}
        auth = config.get("authentication") or {}

        tunnels = []
        for index, tunnel in enumerate(config.get("tunnels") or []):
            tunnels.append(IPSecTunnel(
                id=_int(tunnel.get("id", index), "tunnel id"),
                local_subnet=str(_required(tunnel, "local_subnet", f"tunnel on {name}")),
                remote_subnet=str(_required(tunnel, "remote_subnet", f"tunnel on {name}")),
                protocol=_str(tunnel.get("protocol")),
            ))

        return IPSecSite(
            name=name,
            local_address=str(_required(config, "local_address", f"IPsec site {name}")),
            remote_address=str(_required(config, "remote_address", f"IPsec site {name}")),
            ike_group=IKEGroup(
                name=str(_required(ike, "name", f"ike_group on {name}")),
                proposals=[
                    IKEProposal(
                        encryption=str(p.get("encryption", "aes256")),
                        hash=str(p.get("hash", "sha256")),
                        dh_group=str(p.get("dh_group", "14")),
                    )
                    for p in ike.get("proposals") or []
                ],
                lifetime=_int(ike.get("lifetime"), "ike_group.lifetime"),
            ),
            esp_group=ESPGroup(
                name=str(_required(esp, "name", f"esp_group on {name}")),
                proposals=[
                    ESPProposal(
                        encryption=str(p.get("encryption", "aes256")),
                        hash=str(p.get("hash", "sha256")),
                    )
                    for p in esp.get("proposals") or []
                ],
                lifetime=_int(esp.get("lifetime"), "esp_group.lifetime"),
                pfs=_str(esp.get("pfs")),
            ),
            authentication=IPSecAuthentication(
                mode=str(auth.get("mode", "pre-shared-secret")),
                pre_shared_secret=_str(auth.get("pre_shared_secret")),
                remote_id=_str(auth.get("remote_id")),
                local_id=_str(auth.get("local_id")),
            ),
            tunnels=tunnels,
            description=_str(config.get("description")),
        )

    # --- System ---

    def _load_system(self, config: dict[str, Any]) -> SystemConfig:
        users = []
        for user in config.get("users") or []:
            users.append(SystemUser(
                name=str(_required(user, "name", "system user")),
                full_name=_str(user.get("full_name")),
                plaintext_password=_str(user.get("plaintext_password")),
                encrypted_password=_str(user.get("encrypted_password")),
                public_keys=_str_list(user.get("public_keys")),
                level=_str(user.get("level")),
            ))

        return SystemConfig(
            host_name=_str(config.get("host_name")),
            domain_name=_str(config.get("domain_name")),
            time_zone=_str(config.get("time_zone")),
            name_servers=_str_list(config.get("name_servers")),
            ntp_servers=_str_list(config.get("ntp_servers")),
            ntp_allow_clients=_str_list(config.get("ntp_allow_clients")),
            users=users,
        )


def compute_checksum(statements: list[str]) -> str:
    """
    Compute SHA256 checksum of a statement list.

    Recorded in the audit log so identical batches can be recognised.
    """
    # Serialize deterministically
    payload = json.dumps(statements, separators=(",", ":"))

    hash_bytes = hashlib.sha256(payload.encode()).hexdigest()

    return f"sha256:{hash_bytes[:16]}"  # Short hash for readability
