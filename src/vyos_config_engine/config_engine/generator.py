"""Command generator for turning configuration models into CLI statements.

Statement order per object is fixed:
1. identity, description and scalar attributes
2. multi-valued collections, one statement per element in input order
3. nested configuration specific to the object's variant
4. the enable/disable toggle, always last

Value leaves are always single-quoted (the way the device renders them in
``show configuration commands``); user-supplied path identifiers are quoted
only when they contain whitespace or quotes. Neither may span lines: the
statement is sent to an interactive shell one line at a time.
"""
import re
from typing import Any, Callable, Optional

from .errors import BuildError
from .sanitizer import quote, quote_literal
from .schema import (
    FirewallAddress,
    FirewallRule,
    FirewallRuleset,
    FirewallZone,
    InterfaceType,
    IPSecSite,
    ModelKind,
    NATAddress,
    NATRule,
    NATType,
    NetworkInterface,
    StaticRoute,
    SystemConfig,
    SystemUser,
)

_LINE_BREAK = re.compile(r"[\r\n]")


def _require(value: Any, field: str) -> None:
    if value is None or value == "":
        raise BuildError(field, "is required")


def _single_line(value: Any, field: str) -> str:
    text = str(value)
    if _LINE_BREAK.search(text):
        raise BuildError(field, "must not contain line breaks")
    return text


def _set(path: str, value: Any, field: str) -> str:
    """``set <path> '<value>'``; the value must be present."""
    if value is None:
        raise BuildError(field, "is required")
    return f"set {path} {quote_literal(_single_line(value, field))}"


def _set_path(path: str) -> str:
    """Valueless ``set`` for flags and bare nodes."""
    return f"set {path}"


def _key(value: Any, field: str) -> str:
    """A user-supplied identifier used as a path component."""
    _require(value, field)
    return quote(_single_line(value, field))


def render_set_lines(statements: list[str]) -> str:
    """Render statements the way the device reports its configuration.

    Only ``set`` statements survive; ``delete`` statements leave no trace.
    """
    return "\n".join(s for s in statements if s.startswith("set "))


class CommandBuilder:
    """Generate ordered CLI statements from configuration models."""

    def build(self, kind: ModelKind | str, model: Any) -> list[str]:
        """Dispatch to the builder for ``kind``."""
        return self._dispatch(kind)(model)

    def _dispatch(self, kind: ModelKind | str) -> Callable[[Any], list[str]]:
        try:
            kind = ModelKind(kind)
        except ValueError:
            raise BuildError("kind", f"unknown model kind: {kind}")

        return {
            ModelKind.INTERFACE: self.build_interface_commands,
            ModelKind.ROUTE: self.build_static_route_commands,
            ModelKind.FIREWALL_ZONE: self.build_firewall_zone_commands,
            ModelKind.FIREWALL_RULESET: self.build_firewall_ruleset_commands,
            ModelKind.NAT: self.build_nat_rule_commands,
            ModelKind.IPSEC: self.build_ipsec_commands,
            ModelKind.SYSTEM: self.build_system_commands,
        }[kind]

    # --- Interfaces ---

    def build_interface_commands(self, iface: NetworkInterface) -> list[str]:
        """Generate statements for one interface."""
        name = _key(iface.name, "name")
        try:
            iface_type = InterfaceType(iface.type)
        except ValueError:
            raise BuildError("type", f"unknown interface type: {iface.type}")
        self._check_variant(iface, iface_type)

        base = f"interfaces {iface_type.value} {name}"
        commands = []

        if iface.description is not None:
            commands.append(_set(f"{base} description", iface.description, "description"))
        if iface.mtu is not None:
            commands.append(_set(f"{base} mtu", iface.mtu, "mtu"))
        if iface.mac is not None:
            commands.append(_set(f"{base} mac", iface.mac, "mac"))

        for addr in iface.addresses.ipv4:
            commands.append(_set(f"{base} address", addr, "addresses.ipv4"))
        for addr in iface.addresses.ipv6:
            commands.append(_set(f"{base} address", addr, "addresses.ipv6"))
        if iface.addresses.dhcp:
            commands.append(_set(f"{base} address", "dhcp", "addresses.dhcp"))
        if iface.addresses.dhcpv6:
            commands.append(_set(f"{base} address", "dhcpv6", "addresses.dhcpv6"))

        if iface_type == InterfaceType.VLAN:
            commands.append(_set(f"{base} vlan id", iface.vlan.id, "vlan.id"))

        elif iface_type == InterfaceType.BOND:
            bond = iface.bond
            commands.append(_set(f"{base} mode", bond.mode, "bond.mode"))
            for member in bond.members:
                commands.append(_set(f"{base} member interface", member, "bond.members"))
            if bond.primary_interface is not None:
                commands.append(_set(f"{base} primary", bond.primary_interface, "bond.primary_interface"))
            if bond.hash_policy is not None:
                commands.append(_set(f"{base} hash-policy", bond.hash_policy, "bond.hash_policy"))

        elif iface_type == InterfaceType.BRIDGE:
            bridge = iface.bridge
            for member in bridge.members:
                commands.append(_set(f"{base} member interface", member, "bridge.members"))
            if bridge.stp:
                commands.append(_set_path(f"{base} stp"))
            if bridge.aging is not None:
                commands.append(_set(f"{base} aging", bridge.aging, "bridge.aging"))
            if bridge.max_age is not None:
                commands.append(_set(f"{base} max-age", bridge.max_age, "bridge.max_age"))

        if not commands and iface.enabled:
            # Nothing else to set; the interface must still exist
            commands.append(_set_path(base))
        commands.append(self._toggle(base, iface.enabled))
        return commands

    def _check_variant(self, iface: NetworkInterface, iface_type: InterfaceType) -> None:
        """Variant sub-configuration must match the interface type."""
        variants = {
            InterfaceType.VLAN: "vlan",
            InterfaceType.BOND: "bond",
            InterfaceType.BRIDGE: "bridge",
        }
        for variant_type, attr in variants.items():
            present = getattr(iface, attr) is not None
            if variant_type == iface_type and not present:
                raise BuildError(attr, f"required for {iface_type.value} interface {iface.name}")
            if variant_type != iface_type and present:
                raise BuildError(attr, f"not allowed on {iface_type.value} interface {iface.name}")

        if iface_type == InterfaceType.VLAN:
            parent = iface.name.split(".")[0]
            if iface.vlan.parent_interface != parent:
                raise BuildError(
                    "vlan.parent_interface",
                    f"{iface.vlan.parent_interface} does not match interface name {iface.name}",
                )

    # --- Static routes ---

    def build_static_route_commands(self, route: StaticRoute) -> list[str]:
        """Generate statements for one static route."""
        network = _key(route.network, "network")
        if route.next_hop is not None and route.interface is not None:
            raise BuildError("next_hop", "a route uses either next_hop or interface, not both")
        if route.distance is not None and route.next_hop is None and route.interface is None:
            raise BuildError("distance", "requires next_hop or interface")

        base = f"protocols static route {network}"
        commands = []

        if route.description is not None:
            commands.append(_set(f"{base} description", route.description, "description"))

        if route.next_hop is not None:
            target = f"{base} next-hop {_key(route.next_hop, 'next_hop')}"
        elif route.interface is not None:
            target = f"{base} interface {_key(route.interface, 'interface')}"
        else:
            return commands or [_set_path(base)]

        if route.distance is not None:
            commands.append(_set(f"{target} distance", route.distance, "distance"))
        else:
            commands.append(_set_path(target))

        return commands

    # --- Firewall ---

    def build_firewall_zone_commands(self, zone: FirewallZone) -> list[str]:
        """Generate statements for one zone-policy zone."""
        base = f"zone-policy zone {_key(zone.name, 'name')}"
        commands = []

        if zone.description is not None:
            commands.append(_set(f"{base} description", zone.description, "description"))
        commands.append(_set(f"{base} default-action", zone.default_action, "default_action"))

        for iface in zone.interfaces:
            commands.append(_set(f"{base} interface", iface, "interfaces"))

        for from_zone, policy in zone.from_zones.items():
            from_path = f"{base} from {_key(from_zone, 'from_zones')}"
            if policy.firewall_name is None and policy.ipv6_firewall_name is None:
                commands.append(_set_path(from_path))
                continue
            if policy.firewall_name is not None:
                commands.append(_set(
                    f"{from_path} firewall name", policy.firewall_name, "from_zones.firewall_name"
                ))
            if policy.ipv6_firewall_name is not None:
                commands.append(_set(
                    f"{from_path} firewall ipv6-name", policy.ipv6_firewall_name,
                    "from_zones.ipv6_firewall_name",
                ))

        return commands

    def build_firewall_ruleset_commands(self, ruleset: FirewallRuleset) -> list[str]:
        """Generate statements for a ruleset and all of its rules."""
        base = f"firewall name {_key(ruleset.name, 'name')}"
        commands = []

        if ruleset.description is not None:
            commands.append(_set(f"{base} description", ruleset.description, "description"))
        commands.append(_set(f"{base} default-action", ruleset.default_action, "default_action"))
        if ruleset.enable_default_log:
            commands.append(_set_path(f"{base} enable-default-log"))

        for rule in ruleset.rules:
            commands.extend(self.build_firewall_rule_commands(ruleset.name, rule))

        return commands

    def build_firewall_rule_commands(self, ruleset_name: str, rule: FirewallRule) -> list[str]:
        """Generate statements for one rule of ``ruleset_name``."""
        _require(rule.number, "rules.number")
        base = f"firewall name {_key(ruleset_name, 'name')} rule {rule.number}"
        commands = [_set(f"{base} action", rule.action, "rules.action")]

        if rule.description is not None:
            commands.append(_set(f"{base} description", rule.description, "rules.description"))
        if rule.protocol is not None:
            commands.append(_set(f"{base} protocol", rule.protocol, "rules.protocol"))

        commands.extend(self._firewall_address(f"{base} source", rule.source, "rules.source"))
        commands.extend(self._firewall_address(f"{base} destination", rule.destination, "rules.destination"))

        for state in ("established", "related", "new", "invalid"):
            if getattr(rule.state, state):
                commands.append(_set(f"{base} state {state}", "enable", f"rules.state.{state}"))

        if rule.log:
            commands.append(_set(f"{base} log", "enable", "rules.log"))

        commands.append(self._toggle(base, rule.enabled))
        return commands

    def _firewall_address(self, path: str, match: FirewallAddress, field: str) -> list[str]:
        commands = []
        for attr, suffix in (
            ("address", "address"),
            ("port", "port"),
            ("address_group", "group address-group"),
            ("network_group", "group network-group"),
            ("port_group", "group port-group"),
        ):
            value = getattr(match, attr)
            if value is not None:
                commands.append(_set(f"{path} {suffix}", value, f"{field}.{attr}"))
        return commands

    # --- NAT ---

    def build_nat_rule_commands(self, rule: NATRule) -> list[str]:
        """Generate statements for one source or destination NAT rule."""
        _require(rule.number, "number")
        try:
            nat_type = NATType(rule.type)
        except ValueError:
            raise BuildError("type", f"unknown NAT type: {rule.type}")
        if nat_type == NATType.SOURCE and rule.inbound_interface is not None:
            raise BuildError("inbound_interface", "not allowed on source NAT rules")
        if nat_type == NATType.DESTINATION and rule.outbound_interface is not None:
            raise BuildError("outbound_interface", "not allowed on destination NAT rules")

        base = f"nat {nat_type.value} rule {rule.number}"
        commands = []

        if rule.description is not None:
            commands.append(_set(f"{base} description", rule.description, "description"))
        if rule.outbound_interface is not None:
            commands.append(_set(f"{base} outbound-interface", rule.outbound_interface, "outbound_interface"))
        if rule.inbound_interface is not None:
            commands.append(_set(f"{base} inbound-interface", rule.inbound_interface, "inbound_interface"))
        if rule.protocol is not None:
            commands.append(_set(f"{base} protocol", rule.protocol, "protocol"))

        commands.extend(self._nat_address(f"{base} source", rule.source, "source"))
        commands.extend(self._nat_address(f"{base} destination", rule.destination, "destination"))
        commands.extend(self._nat_address(f"{base} translation", rule.translation, "translation"))

        if not commands and rule.enabled:
            commands.append(_set_path(base))
        commands.append(self._toggle(base, rule.enabled))
        return commands

    def _nat_address(self, path: str, match: NATAddress, field: str) -> list[str]:
        commands = []
        if match.address is not None:
            commands.append(_set(f"{path} address", match.address, f"{field}.address"))
        if match.port is not None:
            commands.append(_set(f"{path} port", match.port, f"{field}.port"))
        return commands

    # --- IPsec ---

    def build_ipsec_commands(self, site: IPSecSite) -> list[str]:
        """Generate statements for a site-to-site peer and its groups."""
        peer = f"vpn ipsec site-to-site peer {_key(site.name, 'name')}"
        ike_base = f"vpn ipsec ike-group {_key(site.ike_group.name, 'ike_group.name')}"
        esp_base = f"vpn ipsec esp-group {_key(site.esp_group.name, 'esp_group.name')}"
        auth = site.authentication
        commands = []

        if site.description is not None:
            commands.append(_set(f"{peer} description", site.description, "description"))
        commands.append(_set(f"{peer} remote-address", site.remote_address, "remote_address"))
        commands.append(_set(f"{peer} local-address", site.local_address, "local_address"))
        commands.append(_set(f"{peer} authentication mode", auth.mode, "authentication.mode"))
        if auth.pre_shared_secret is not None:
            commands.append(_set(
                f"{peer} authentication pre-shared-secret", auth.pre_shared_secret,
                "authentication.pre_shared_secret",
            ))
        if auth.remote_id is not None:
            commands.append(_set(f"{peer} authentication remote-id", auth.remote_id, "authentication.remote_id"))
        if auth.local_id is not None:
            commands.append(_set(f"{peer} authentication local-id", auth.local_id, "authentication.local_id"))
        commands.append(_set(f"{peer} ike-group", site.ike_group.name, "ike_group.name"))
        commands.append(_set(f"{peer} default-esp-group", site.esp_group.name, "esp_group.name"))

        for tunnel in site.tunnels:
            _require(tunnel.id, "tunnels.id")
            tunnel_path = f"{peer} tunnel {tunnel.id}"
            commands.append(_set(f"{tunnel_path} local prefix", tunnel.local_subnet, "tunnels.local_subnet"))
            commands.append(_set(f"{tunnel_path} remote prefix", tunnel.remote_subnet, "tunnels.remote_subnet"))
            commands.append(_set(f"{tunnel_path} esp-group", site.esp_group.name, "esp_group.name"))
            if tunnel.protocol is not None:
                commands.append(_set(f"{tunnel_path} protocol", tunnel.protocol, "tunnels.protocol"))

        for index, proposal in enumerate(site.ike_group.proposals, start=1):
            path = f"{ike_base} proposal {index}"
            commands.append(_set(f"{path} encryption", proposal.encryption, "ike_group.proposals.encryption"))
            commands.append(_set(f"{path} hash", proposal.hash, "ike_group.proposals.hash"))
            commands.append(_set(f"{path} dh-group", proposal.dh_group, "ike_group.proposals.dh_group"))
        if site.ike_group.lifetime is not None:
            commands.append(_set(f"{ike_base} lifetime", site.ike_group.lifetime, "ike_group.lifetime"))

        for index, proposal in enumerate(site.esp_group.proposals, start=1):
            path = f"{esp_base} proposal {index}"
            commands.append(_set(f"{path} encryption", proposal.encryption, "esp_group.proposals.encryption"))
            commands.append(_set(f"{path} hash", proposal.hash, "esp_group.proposals.hash"))
        if site.esp_group.lifetime is not None:
            commands.append(_set(f"{esp_base} lifetime", site.esp_group.lifetime, "esp_group.lifetime"))
        if site.esp_group.pfs is not None:
            commands.append(_set(f"{esp_base} pfs", site.esp_group.pfs, "esp_group.pfs"))

        return commands

    # --- System ---

    def build_system_commands(self, system: SystemConfig) -> list[str]:
        """Generate statements for the system settings present in ``system``."""
        commands = []

        if system.host_name is not None:
            commands.append(_set("system host-name", system.host_name, "host_name"))
        if system.domain_name is not None:
            commands.append(_set("system domain-name", system.domain_name, "domain_name"))
        if system.time_zone is not None:
            commands.append(_set("system time-zone", system.time_zone, "time_zone"))

        for server in system.name_servers:
            commands.append(_set("system name-server", server, "name_servers"))
        for server in system.ntp_servers:
            commands.append(_set_path(f"system ntp server {_key(server, 'ntp_servers')}"))
        for client in system.ntp_allow_clients:
            commands.append(_set("system ntp allow-clients address", client, "ntp_allow_clients"))

        for user in system.users:
            commands.extend(self.build_user_commands(user))

        return commands

    def build_user_commands(self, user: SystemUser) -> list[str]:
        """Generate statements for one login user."""
        base = f"system login user {_key(user.name, 'users.name')}"
        commands = []

        if user.full_name is not None:
            commands.append(_set(f"{base} full-name", user.full_name, "users.full_name"))
        if user.level is not None:
            commands.append(_set(f"{base} level", user.level, "users.level"))
        if user.plaintext_password is not None:
            commands.append(_set(
                f"{base} authentication plaintext-password", user.plaintext_password,
                "users.plaintext_password",
            ))
        if user.encrypted_password is not None:
            commands.append(_set(
                f"{base} authentication encrypted-password", user.encrypted_password,
                "users.encrypted_password",
            ))

        for index, key in enumerate(user.public_keys):
            key_path = f"{base} authentication public-keys key-{index}"
            commands.append(_set(f"{key_path} key", key, "users.public_keys"))
            commands.append(_set(f"{key_path} type", "ssh-rsa", "users.public_keys"))

        if not commands:
            commands.append(_set_path(base))
        return commands

    # --- Removal ---

    def build_delete_commands(self, kind: ModelKind | str, model: Any) -> list[str]:
        """Generate the statements that remove ``model`` from the device."""
        kind = ModelKind(kind)

        if kind == ModelKind.INTERFACE:
            return [f"delete interfaces {InterfaceType(model.type).value} {_key(model.name, 'name')}"]
        if kind == ModelKind.ROUTE:
            return [f"delete protocols static route {_key(model.network, 'network')}"]
        if kind == ModelKind.FIREWALL_ZONE:
            return [f"delete zone-policy zone {_key(model.name, 'name')}"]
        if kind == ModelKind.FIREWALL_RULESET:
            return [f"delete firewall name {_key(model.name, 'name')}"]
        if kind == ModelKind.NAT:
            _require(model.number, "number")
            return [f"delete nat {NATType(model.type).value} rule {model.number}"]
        if kind == ModelKind.IPSEC:
            return [f"delete vpn ipsec site-to-site peer {_key(model.name, 'name')}"]

        # System settings cannot be removed wholesale; drop only what is named
        return self._system_delete_commands(model)

    def _system_delete_commands(self, system: SystemConfig) -> list[str]:
        commands = []
        if system.host_name is not None:
            commands.append("delete system host-name")
        if system.domain_name is not None:
            commands.append("delete system domain-name")
        if system.time_zone is not None:
            commands.append("delete system time-zone")
        for server in system.name_servers:
            commands.append(f"delete system name-server {quote_literal(_single_line(server, 'name_servers'))}")
        for server in system.ntp_servers:
            commands.append(f"delete system ntp server {_key(server, 'ntp_servers')}")
        for client in system.ntp_allow_clients:
            commands.append(
                f"delete system ntp allow-clients address {quote_literal(_single_line(client, 'ntp_allow_clients'))}"
            )
        for user in system.users:
            commands.append(f"delete system login user {_key(user.name, 'users.name')}")
        return commands

    @staticmethod
    def _toggle(base: str, enabled: Optional[bool]) -> str:
        if enabled:
            return f"delete {base} disable"
        return f"set {base} disable"
