"""Pre-flight validation for configuration models.

Catches range and format errors before any device communication. The
command builder only rejects structurally malformed models; everything a
user could plausibly mistype is checked here.
"""
import ipaddress
import re
from typing import Any, Optional

from .schema import (
    FirewallAddress,
    FirewallRule,
    FirewallRuleset,
    FirewallZone,
    InterfaceType,
    IPSecSite,
    ModelKind,
    NATRule,
    NATType,
    NetworkInterface,
    StaticRoute,
    SystemConfig,
    ValidationResult,
)


INTERFACE_NAME = re.compile(r"^(eth|bond|br|tun|vtun|wg|lo)\d+(\.\d+)?$")
MAC_ADDRESS = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")
PORT_RANGE = re.compile(r"^([0-9]{1,5})(-[0-9]{1,5})?$")
HOSTNAME = re.compile(
    r"^(([a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9\-]*[a-zA-Z0-9])\.)*"
    r"([A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9\-]*[A-Za-z0-9])$"
)

MTU_RANGE = (68, 9000)
VLAN_RANGE = (1, 4094)
RULE_RANGE = (1, 9999)
DISTANCE_RANGE = (1, 255)

BOND_MODES = {
    "active-backup", "802.3ad", "balance-rr", "balance-xor",
    "broadcast", "balance-tlb", "balance-alb",
}
FIREWALL_ACTIONS = {"accept", "drop", "reject"}
FIREWALL_PROTOCOLS = {"tcp", "udp", "icmp", "esp", "ah", "all"}
IPSEC_ENCRYPTION = {"aes256", "aes128", "3des"}
IPSEC_HASH = {"sha256", "sha1", "md5"}
IPSEC_DH_GROUPS = {"2", "5", "14", "15", "16", "19", "20"}
USER_LEVELS = {"admin", "operator"}

# Rulesets larger than this are worth staging
LARGE_RULESET = 50


def is_valid_ip(value: str, version: Optional[int] = None) -> bool:
    """Check an address or CIDR network (host bits allowed)."""
    try:
        iface = ipaddress.ip_interface(value)
    except ValueError:
        return False
    return version is None or iface.version == version


def is_valid_port_range(value: str) -> bool:
    """Check a single port (``443``) or an ascending range (``8000-8080``)."""
    if not PORT_RANGE.match(value):
        return False
    parts = [int(p) for p in value.split("-")]
    if not all(1 <= p <= 65535 for p in parts):
        return False
    return len(parts) == 1 or parts[0] < parts[1]


def _in_range(value: int, bounds: tuple[int, int]) -> bool:
    return bounds[0] <= value <= bounds[1]


class ConfigValidator:
    """Validate configuration models before they are built and executed."""

    def validate(self, kind: ModelKind | str, model: Any) -> ValidationResult:
        """
        Validate a single model.

        Args:
            kind: Model kind
            model: The model to validate

        Returns:
            ValidationResult with valid flag, errors, and warnings
        """
        errors: list[str] = []
        warnings: list[str] = []

        checks = {
            ModelKind.INTERFACE: self._validate_interface,
            ModelKind.ROUTE: self._validate_route,
            ModelKind.FIREWALL_ZONE: self._validate_zone,
            ModelKind.FIREWALL_RULESET: self._validate_ruleset,
            ModelKind.NAT: self._validate_nat_rule,
            ModelKind.IPSEC: self._validate_ipsec_site,
            ModelKind.SYSTEM: self._validate_system,
        }
        checks[ModelKind(kind)](model, errors, warnings)

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def _validate_interface(
        self,
        iface: NetworkInterface,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate an interface."""
        if not iface.name or not INTERFACE_NAME.match(iface.name):
            errors.append(f"Invalid interface name: {iface.name}")

        if iface.mtu is not None and not _in_range(iface.mtu, MTU_RANGE):
            errors.append(f"MTU {iface.mtu} must be between {MTU_RANGE[0]} and {MTU_RANGE[1]}")

        if iface.mac is not None and not MAC_ADDRESS.match(iface.mac):
            errors.append(f"Invalid MAC address: {iface.mac}")

        for addr in iface.addresses.ipv4:
            if not is_valid_ip(addr, 4):
                errors.append(f"Invalid IPv4 address: {addr}")
        for addr in iface.addresses.ipv6:
            if not is_valid_ip(addr, 6):
                errors.append(f"Invalid IPv6 address: {addr}")

        if iface.type == InterfaceType.VLAN and iface.vlan is not None:
            if not _in_range(iface.vlan.id, VLAN_RANGE):
                errors.append(f"VLAN ID {iface.vlan.id} must be between 1 and 4094")

        if iface.type == InterfaceType.BOND and iface.bond is not None:
            if iface.bond.mode not in BOND_MODES:
                errors.append(
                    f"Invalid bond mode '{iface.bond.mode}'. "
                    f"Valid: {', '.join(sorted(BOND_MODES))}"
                )
            if not iface.bond.members:
                errors.append(f"Bond {iface.name} needs at least one member interface")

        if iface.type == InterfaceType.BRIDGE and iface.bridge is not None:
            if not iface.bridge.members:
                errors.append(f"Bridge {iface.name} needs at least one member interface")

        if not iface.enabled and (iface.addresses.ipv4 or iface.addresses.ipv6):
            warnings.append(f"Interface {iface.name} is disabled but has addresses assigned")

    def _validate_route(
        self,
        route: StaticRoute,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate a static route."""
        if not route.network or not is_valid_ip(route.network):
            errors.append(f"Invalid route network: {route.network}")

        if route.next_hop is None and route.interface is None:
            errors.append("Either next-hop or interface must be specified")

        if route.next_hop is not None and not is_valid_ip(route.next_hop.split("/")[0]):
            errors.append(f"Invalid next-hop address: {route.next_hop}")

        if route.distance is not None and not _in_range(route.distance, DISTANCE_RANGE):
            errors.append(f"Distance {route.distance} must be between 1 and 255")

    def _validate_zone(
        self,
        zone: FirewallZone,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate a zone-policy zone."""
        if zone.default_action not in FIREWALL_ACTIONS:
            errors.append(f"Invalid default action '{zone.default_action}' for zone {zone.name}")

        if zone.name in zone.from_zones:
            errors.append(f"Zone {zone.name} cannot have a policy from itself")

        if not zone.interfaces:
            warnings.append(f"Zone {zone.name} has no interfaces assigned")

    def _validate_ruleset(
        self,
        ruleset: FirewallRuleset,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate a ruleset and each of its rules."""
        if ruleset.default_action not in FIREWALL_ACTIONS:
            errors.append(
                f"Invalid default action '{ruleset.default_action}' for ruleset {ruleset.name}"
            )

        seen: set[int] = set()
        for rule in ruleset.rules:
            if rule.number in seen:
                errors.append(f"Duplicate rule number {rule.number} in ruleset {ruleset.name}")
            seen.add(rule.number)
            self._validate_rule(rule, errors)

        if len(ruleset.rules) > LARGE_RULESET:
            warnings.append(
                f"Large ruleset ({len(ruleset.rules)} rules) - consider staging"
            )

    def _validate_rule(self, rule: FirewallRule, errors: list[str]) -> None:
        if not _in_range(rule.number, RULE_RANGE):
            errors.append(f"Rule number {rule.number} must be between 1 and 9999")

        if rule.action not in FIREWALL_ACTIONS:
            errors.append(
                f"Invalid action '{rule.action}' in rule {rule.number}. "
                f"Valid: {', '.join(sorted(FIREWALL_ACTIONS))}"
            )

        if rule.protocol is not None and rule.protocol not in FIREWALL_PROTOCOLS:
            errors.append(f"Invalid protocol '{rule.protocol}' in rule {rule.number}")

        self._validate_match("Source", rule.number, rule.source, errors)
        self._validate_match("Destination", rule.number, rule.destination, errors)

    def _validate_match(
        self,
        label: str,
        number: int,
        match: FirewallAddress,
        errors: list[str]
    ) -> None:
        if match.address is not None and not is_valid_ip(match.address):
            errors.append(f"{label} address in rule {number} is not a valid address: {match.address}")
        if match.port is not None and not is_valid_port_range(match.port):
            errors.append(f"{label} port in rule {number} is not a valid port or range: {match.port}")

    def _validate_nat_rule(
        self,
        rule: NATRule,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate a NAT rule."""
        if not _in_range(rule.number, RULE_RANGE):
            errors.append(f"Rule number {rule.number} must be between 1 and 9999")

        if rule.type == NATType.SOURCE and not rule.outbound_interface:
            errors.append("Outbound interface is required for source NAT")
        if rule.type == NATType.DESTINATION and not rule.inbound_interface:
            errors.append("Inbound interface is required for destination NAT")

        self._validate_match("Source", rule.number, rule.source, errors)
        self._validate_match("Destination", rule.number, rule.destination, errors)

        translation = rule.translation
        if (translation.address is not None
                and translation.address != "masquerade"
                and not is_valid_ip(translation.address)):
            errors.append(
                f"Translation address must be a valid address or 'masquerade': {translation.address}"
            )
        if translation.port is not None and not is_valid_port_range(translation.port):
            errors.append(f"Translation port is not a valid port or range: {translation.port}")

        if translation.address is None and translation.port is None:
            warnings.append(f"NAT rule {rule.number} has no translation")

    def _validate_ipsec_site(
        self,
        site: IPSecSite,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate an IPsec site-to-site peer."""
        if not is_valid_ip(site.local_address.split("/")[0]):
            errors.append(f"Invalid local address: {site.local_address}")
        if not is_valid_ip(site.remote_address.split("/")[0]):
            errors.append(f"Invalid remote address: {site.remote_address}")

        auth = site.authentication
        if auth.mode == "pre-shared-secret" and not auth.pre_shared_secret:
            errors.append("Pre-shared secret is required")

        if not site.tunnels:
            errors.append("At least one tunnel is required")
        for index, tunnel in enumerate(site.tunnels, start=1):
            if not is_valid_ip(tunnel.local_subnet):
                errors.append(f"Tunnel {index}: Invalid local subnet")
            if not is_valid_ip(tunnel.remote_subnet):
                errors.append(f"Tunnel {index}: Invalid remote subnet")

        for proposal in site.ike_group.proposals:
            if proposal.encryption not in IPSEC_ENCRYPTION:
                errors.append(f"Unsupported IKE encryption: {proposal.encryption}")
            if proposal.hash not in IPSEC_HASH:
                errors.append(f"Unsupported IKE hash: {proposal.hash}")
            if proposal.dh_group not in IPSEC_DH_GROUPS:
                errors.append(f"Unsupported DH group: {proposal.dh_group}")
        for proposal in site.esp_group.proposals:
            if proposal.encryption not in IPSEC_ENCRYPTION:
                errors.append(f"Unsupported ESP encryption: {proposal.encryption}")
            if proposal.hash not in IPSEC_HASH:
                errors.append(f"Unsupported ESP hash: {proposal.hash}")

        if not site.ike_group.proposals:
            warnings.append(f"IKE group {site.ike_group.name} has no proposals")
        if not site.esp_group.proposals:
            warnings.append(f"ESP group {site.esp_group.name} has no proposals")

    def _validate_system(
        self,
        system: SystemConfig,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate global system settings."""
        if system.host_name is not None and not HOSTNAME.match(system.host_name):
            errors.append(f"Invalid host name: {system.host_name}")

        for server in system.name_servers:
            if not is_valid_ip(server):
                errors.append(f"Invalid name server: {server}")

        for client in system.ntp_allow_clients:
            if not is_valid_ip(client):
                errors.append(f"Invalid NTP client network: {client}")

        for user in system.users:
            if user.level is not None and user.level not in USER_LEVELS:
                errors.append(f"Invalid level '{user.level}' for user {user.name}")
            if user.plaintext_password is not None:
                warnings.append(f"User {user.name} has a plaintext password in the model")
