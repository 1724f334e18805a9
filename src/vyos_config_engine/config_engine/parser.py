"""Parser for device configuration output.

Converts the flat ``set`` statement list reported by
``show configuration commands`` into a hierarchical tree, and reads typed
configuration models back out of that tree.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Union

from .errors import ParseError
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
    NATAddress,
    NATRule,
    NATTranslation,
    NATType,
    NetworkInterface,
    ParsedConfiguration,
    StaticRoute,
    SystemConfig,
    SystemUser,
    VLANConfig,
    ZonePolicy,
)

logger = logging.getLogger(__name__)


# --- Configuration tree ---

@dataclass
class Leaf:
    """Terminal node: the path ended here."""

    def to_dict(self) -> Any:
        return True


@dataclass
class Branch:
    """Interior node with insertion-ordered children.

    ``terminal`` records that some statement path also ended at this node.
    """
    children: dict[str, "ConfigNode"] = field(default_factory=dict)
    terminal: bool = False

    def walk(self, *path: str) -> Optional["Branch"]:
        """Descend along ``path``; None if any segment is missing or a leaf."""
        node: ConfigNode = self
        for segment in path:
            if not isinstance(node, Branch):
                return None
            node = node.children.get(segment)
            if node is None:
                return None
        return node if isinstance(node, Branch) else None

    def value(self, key: str) -> Optional[str]:
        """The single value under ``key`` (its first child key), if any."""
        node = self.children.get(key)
        if isinstance(node, Branch) and node.children:
            return next(iter(node.children))
        return None

    def values(self, key: str) -> list[str]:
        """All values under ``key`` in the order they were reported."""
        node = self.children.get(key)
        if isinstance(node, Branch):
            return list(node.children)
        return []

    def flag(self, key: str) -> bool:
        """True when ``key`` is present at all."""
        return key in self.children

    def items(self) -> Iterator[tuple[str, "ConfigNode"]]:
        return iter(self.children.items())

    def to_dict(self) -> dict[str, Any]:
        return {key: child.to_dict() for key, child in self.children.items()}


ConfigNode = Union[Leaf, Branch]


class ConflictPolicy(str, Enum):
    """What to do when a path is both a leaf and an interior node."""
    COERCE = "coerce"
    STRICT = "strict"


def tokenize(line: str) -> list[str]:
    """
    Split a statement into tokens.

    Whitespace separates tokens. A ``'`` or ``"`` opens a span that runs to
    the next occurrence of the same character; inside it a backslash yields
    the following character verbatim. Quote characters are not part of the
    token, so ``''`` yields an empty token.

    Raises:
        ParseError: If a quoted span is not closed
    """
    tokens = []
    current: list[str] = []
    in_token = False
    quote_char = None
    i = 0

    while i < len(line):
        ch = line[i]
        if quote_char:
            if ch == "\\" and i + 1 < len(line):
                current.append(line[i + 1])
                i += 2
                continue
            if ch == quote_char:
                quote_char = None
            else:
                current.append(ch)
        elif ch in ("'", '"'):
            quote_char = ch
            in_token = True
        elif ch.isspace():
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True
        i += 1

    if quote_char:
        raise ParseError(f"Unterminated quote in line: {line}")
    if in_token:
        tokens.append("".join(current))

    return tokens


def parse_raw(text: str, policy: ConflictPolicy = ConflictPolicy.COERCE) -> Branch:
    """
    Build a configuration tree from ``set`` statements.

    Lines that do not start with ``set`` are ignored. Every token except the
    last becomes an interior node; the last one marks a leaf.

    Args:
        text: Raw output of ``show configuration commands``
        policy: How to resolve a path that is both a leaf and a branch

    Returns:
        Root branch of the tree

    Raises:
        ParseError: On an unterminated quote or, under STRICT, a conflict
    """
    root = Branch()

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line.startswith("set "):
            continue

        try:
            tokens = tokenize(line)[1:]
        except ParseError as e:
            if policy == ConflictPolicy.STRICT:
                raise ParseError(f"line {lineno}: {e}")
            logger.warning(f"Skipping line {lineno}: {e}")
            continue

        if tokens:
            _insert(root, tokens, policy, lineno)

    return root


def _insert(root: Branch, tokens: list[str], policy: ConflictPolicy, lineno: int) -> None:
    node = root
    for depth, token in enumerate(tokens[:-1]):
        child = node.children.get(token)
        if isinstance(child, Leaf):
            if policy == ConflictPolicy.STRICT:
                path = " ".join(tokens[:depth + 1])
                raise ParseError(f"line {lineno}: '{path}' is a value and cannot have children")
            child = Branch(terminal=True)
            node.children[token] = child
        elif child is None:
            child = Branch()
            node.children[token] = child
        node = child

    last = tokens[-1]
    existing = node.children.get(last)
    if isinstance(existing, Branch):
        if policy == ConflictPolicy.STRICT:
            raise ParseError(f"line {lineno}: '{' '.join(tokens)}' already has children")
        existing.terminal = True
    elif existing is None:
        node.children[last] = Leaf()


def _int(value: Optional[str]) -> Optional[int]:
    return None if value is None else int(value)


def _branch(node: ConfigNode) -> Branch:
    """Treat a bare leaf as an empty branch."""
    return node if isinstance(node, Branch) else Branch()


# --- Typed models ---

class ConfigParser:
    """Read typed configuration models out of a configuration tree."""

    def __init__(self, policy: ConflictPolicy = ConflictPolicy.COERCE):
        self.policy = policy

    def parse(self, text: str) -> ParsedConfiguration:
        """
        Parse device output into a tree plus every typed collection.

        Args:
            text: Raw output of ``show configuration commands``

        Returns:
            ParsedConfiguration
        """
        tree = parse_raw(text, self.policy)
        return ParsedConfiguration(
            tree=tree,
            interfaces=self.parse_interfaces(tree),
            static_routes=self.parse_static_routes(tree),
            firewall_zones=self.parse_firewall_zones(tree),
            firewall_rulesets=self.parse_firewall_rulesets(tree),
            nat_rules=self.parse_nat_rules(tree),
            ipsec_sites=self.parse_ipsec_sites(tree),
            system=self.parse_system_config(tree),
        )

    def _collect(
        self,
        parent: Optional[Branch],
        what: str,
        build: Callable[[str, Branch], Any],
    ) -> list:
        """Build one object per child of ``parent``, skipping malformed ones."""
        if parent is None:
            return []

        objects = []
        for key, node in parent.items():
            try:
                objects.append(build(key, _branch(node)))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed {what} '{key}': {e}")
        return objects

    # --- Interfaces ---

    def parse_interfaces(self, tree: Branch) -> list[NetworkInterface]:
        """Read all interfaces, grouped by type in the order reported."""
        interfaces_root = tree.walk("interfaces")
        if interfaces_root is None:
            return []

        interfaces = []
        for type_name, type_node in interfaces_root.items():
            try:
                iface_type = InterfaceType(type_name)
            except ValueError:
                logger.debug(f"Ignoring unsupported interface type: {type_name}")
                continue

            interfaces.extend(self._collect(
                _branch(type_node),
                f"{type_name} interface",
                lambda name, node: self._parse_interface(name, iface_type, node),
            ))

        return interfaces

    def _parse_interface(self, name: str, iface_type: InterfaceType, node: Branch) -> NetworkInterface:
        addresses = AddressConfig()
        for addr in node.values("address"):
            if addr == "dhcp":
                addresses.dhcp = True
            elif addr == "dhcpv6":
                addresses.dhcpv6 = True
            elif ":" in addr:
                addresses.ipv6.append(addr)
            else:
                addresses.ipv4.append(addr)

        iface = NetworkInterface(
            name=name,
            type=iface_type,
            enabled=not node.flag("disable"),
            description=node.value("description"),
            mtu=_int(node.value("mtu")),
            mac=node.value("mac"),
            addresses=addresses,
        )

        members = _branch(node.children.get("member", Leaf())).values("interface")

        if iface_type == InterfaceType.VLAN:
            vlan_id = node.walk("vlan")
            if vlan_id is not None and vlan_id.value("id") is not None:
                iface.vlan = VLANConfig(
                    id=int(vlan_id.value("id")),
                    parent_interface=name.split(".")[0],
                )

        elif iface_type == InterfaceType.BOND:
            iface.bond = BondConfig(
                mode=node.value("mode") or BondConfig.mode,
                members=members,
                primary_interface=node.value("primary"),
                hash_policy=node.value("hash-policy"),
            )

        elif iface_type == InterfaceType.BRIDGE:
            iface.bridge = BridgeConfig(
                members=members,
                stp=node.flag("stp"),
                aging=_int(node.value("aging")),
                max_age=_int(node.value("max-age")),
            )

        return iface

    # --- Static routes ---

    def parse_static_routes(self, tree: Branch) -> list[StaticRoute]:
        """Read static routes from ``protocols static route``."""
        return self._collect(tree.walk("protocols", "static", "route"), "route", self._parse_route)

    def _parse_route(self, network: str, node: Branch) -> StaticRoute:
        route = StaticRoute(network=network, description=node.value("description"))

        for target_key in ("next-hop", "interface"):
            targets = node.walk(target_key)
            if targets is None or not targets.children:
                continue
            target, target_node = next(targets.items())
            if target_key == "next-hop":
                route.next_hop = target
            else:
                route.interface = target
            route.distance = _int(_branch(target_node).value("distance"))
            break

        return route

    # --- Firewall ---

    def parse_firewall_zones(self, tree: Branch) -> list[FirewallZone]:
        """Read zones from ``zone-policy zone``."""
        return self._collect(tree.walk("zone-policy", "zone"), "zone", self._parse_zone)

    def _parse_zone(self, name: str, node: Branch) -> FirewallZone:
        zone = FirewallZone(
            name=name,
            default_action=node.value("default-action") or FirewallZone.default_action,
            description=node.value("description"),
            interfaces=node.values("interface"),
        )

        from_root = node.walk("from")
        if from_root is not None:
            for from_zone, policy_node in from_root.items():
                firewall = _branch(policy_node).walk("firewall") or Branch()
                zone.from_zones[from_zone] = ZonePolicy(
                    firewall_name=firewall.value("name"),
                    ipv6_firewall_name=firewall.value("ipv6-name"),
                )

        return zone

    def parse_firewall_rulesets(self, tree: Branch) -> list[FirewallRuleset]:
        """Read named rulesets from ``firewall name``."""
        return self._collect(tree.walk("firewall", "name"), "firewall ruleset", self._parse_ruleset)

    def _parse_ruleset(self, name: str, node: Branch) -> FirewallRuleset:
        return FirewallRuleset(
            name=name,
            default_action=node.value("default-action") or FirewallRuleset.default_action,
            description=node.value("description"),
            enable_default_log=node.flag("enable-default-log"),
            rules=self._collect(node.walk("rule"), f"rule in {name}", self._parse_rule),
        )

    def _parse_rule(self, number: str, node: Branch) -> FirewallRule:
        state = node.walk("state") or Branch()
        return FirewallRule(
            number=int(number),
            action=node.value("action") or FirewallRule.action,
            description=node.value("description"),
            protocol=node.value("protocol"),
            source=self._firewall_address(node.walk("source")),
            destination=self._firewall_address(node.walk("destination")),
            state=FirewallState(
                established=state.value("established") == "enable",
                related=state.value("related") == "enable",
                new=state.value("new") == "enable",
                invalid=state.value("invalid") == "enable",
            ),
            log=node.value("log") == "enable",
            enabled=not node.flag("disable"),
        )

    @staticmethod
    def _firewall_address(node: Optional[Branch]) -> FirewallAddress:
        if node is None:
            return FirewallAddress()
        group = node.walk("group") or Branch()
        return FirewallAddress(
            address=node.value("address"),
            port=node.value("port"),
            address_group=group.value("address-group"),
            network_group=group.value("network-group"),
            port_group=group.value("port-group"),
        )

    # --- NAT ---

    def parse_nat_rules(self, tree: Branch) -> list[NATRule]:
        """Read source then destination NAT rules."""
        rules = []
        for nat_type in NATType:
            rules.extend(self._collect(
                tree.walk("nat", nat_type.value, "rule"),
                f"{nat_type.value} NAT rule",
                lambda number, node: self._parse_nat_rule(number, nat_type, node),
            ))
        return rules

    def _parse_nat_rule(self, number: str, nat_type: NATType, node: Branch) -> NATRule:
        translation = node.walk("translation") or Branch()
        return NATRule(
            number=int(number),
            type=nat_type,
            description=node.value("description"),
            outbound_interface=node.value("outbound-interface"),
            inbound_interface=node.value("inbound-interface"),
            protocol=node.value("protocol"),
            source=self._nat_address(node.walk("source")),
            destination=self._nat_address(node.walk("destination")),
            translation=NATTranslation(
                address=translation.value("address"),
                port=translation.value("port"),
            ),
            enabled=not node.flag("disable"),
        )

    @staticmethod
    def _nat_address(node: Optional[Branch]) -> NATAddress:
        if node is None:
            return NATAddress()
        return NATAddress(address=node.value("address"), port=node.value("port"))

    # --- IPsec ---

    def parse_ipsec_sites(self, tree: Branch) -> list[IPSecSite]:
        """Read site-to-site peers and resolve their IKE/ESP groups."""
        ipsec = tree.walk("vpn", "ipsec")
        if ipsec is None:
            return []

        return self._collect(
            ipsec.walk("site-to-site", "peer"),
            "IPsec peer",
            lambda name, node: self._parse_peer(name, node, ipsec),
        )

    def _parse_peer(self, name: str, node: Branch, ipsec: Branch) -> IPSecSite:
        ike_name = node.value("ike-group")
        if ike_name is None:
            raise ValueError("missing ike-group")

        tunnels = []
        tunnel_esp = None
        tunnel_root = node.walk("tunnel") or Branch()
        for tunnel_id, tunnel_node in tunnel_root.items():
            tunnel_node = _branch(tunnel_node)
            tunnels.append(IPSecTunnel(
                id=int(tunnel_id),
                local_subnet=(tunnel_node.walk("local") or Branch()).value("prefix") or "",
                remote_subnet=(tunnel_node.walk("remote") or Branch()).value("prefix") or "",
                protocol=tunnel_node.value("protocol"),
            ))
            tunnel_esp = tunnel_esp or tunnel_node.value("esp-group")

        esp_name = node.value("default-esp-group") or tunnel_esp
        if esp_name is None:
            raise ValueError("missing esp-group")

        auth = node.walk("authentication") or Branch()

        return IPSecSite(
            name=name,
            local_address=node.value("local-address") or "",
            remote_address=node.value("remote-address") or "",
            ike_group=self._ike_group(ike_name, ipsec.walk("ike-group", ike_name)),
            esp_group=self._esp_group(esp_name, ipsec.walk("esp-group", esp_name)),
            authentication=IPSecAuthentication(
                mode=auth.value("mode") or IPSecAuthentication.mode,
                pre_shared_secret=auth.value("pre-shared-secret"),
                remote_id=auth.value("remote-id"),
                local_id=auth.value("local-id"),
            ),
            tunnels=tunnels,
            description=node.value("description"),
        )

    @staticmethod
    def _proposals(node: Branch) -> list[Branch]:
        proposals = node.walk("proposal") or Branch()
        ordered = sorted(proposals.items(), key=lambda item: int(item[0]))
        return [_branch(p) for _, p in ordered]

    def _ike_group(self, name: str, node: Optional[Branch]) -> IKEGroup:
        if node is None:
            return IKEGroup(name=name)
        return IKEGroup(
            name=name,
            proposals=[
                IKEProposal(
                    encryption=p.value("encryption") or "",
                    hash=p.value("hash") or "",
                    dh_group=p.value("dh-group") or "",
                )
                for p in self._proposals(node)
            ],
            lifetime=_int(node.value("lifetime")),
        )

    def _esp_group(self, name: str, node: Optional[Branch]) -> ESPGroup:
        if node is None:
            return ESPGroup(name=name)
        return ESPGroup(
            name=name,
            proposals=[
                ESPProposal(encryption=p.value("encryption") or "", hash=p.value("hash") or "")
                for p in self._proposals(node)
            ],
            lifetime=_int(node.value("lifetime")),
            pfs=node.value("pfs"),
        )

    # --- System ---

    def parse_system_config(self, tree: Branch) -> SystemConfig:
        """Read global system settings; empty when ``system`` is absent."""
        system = tree.walk("system")
        if system is None:
            return SystemConfig()

        ntp = system.walk("ntp") or Branch()
        allow_clients = ntp.walk("allow-clients") or Branch()

        return SystemConfig(
            host_name=system.value("host-name"),
            domain_name=system.value("domain-name"),
            time_zone=system.value("time-zone"),
            name_servers=system.values("name-server"),
            ntp_servers=ntp.values("server"),
            ntp_allow_clients=allow_clients.values("address"),
            users=self._collect(system.walk("login", "user"), "user", self._parse_user),
        )

    def _parse_user(self, name: str, node: Branch) -> SystemUser:
        auth = node.walk("authentication") or Branch()
        keys = auth.walk("public-keys") or Branch()

        public_keys = []
        for _, key_node in keys.items():
            key = _branch(key_node).value("key")
            if key is not None:
                public_keys.append(key)

        return SystemUser(
            name=name,
            full_name=node.value("full-name"),
            plaintext_password=auth.value("plaintext-password"),
            encrypted_password=auth.value("encrypted-password"),
            public_keys=public_keys,
            level=node.value("level"),
        )
