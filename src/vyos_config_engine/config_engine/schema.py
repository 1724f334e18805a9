"""Schema definitions for the Config Engine.

Defines the domain models shared by the command builder and the
configuration parser, plus the batch and result types used by the executor.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class ModelKind(str, Enum):
    """Kinds of configuration objects the engine can build and parse."""
    INTERFACE = "interface"
    ROUTE = "route"
    FIREWALL_ZONE = "firewall-zone"
    FIREWALL_RULESET = "firewall-ruleset"
    NAT = "nat"
    IPSEC = "ipsec"
    SYSTEM = "system"


class InterfaceType(str, Enum):
    """Interface types (first path segment under `interfaces`)."""
    ETHERNET = "ethernet"
    VLAN = "vlan"
    BOND = "bond"
    BRIDGE = "bridge"
    LOOPBACK = "loopback"
    TUNNEL = "tunnel"


class NATType(str, Enum):
    """NAT direction."""
    SOURCE = "source"
    DESTINATION = "destination"


# --- Interfaces ---

@dataclass
class AddressConfig:
    """Addresses assigned to an interface."""
    ipv4: list[str] = field(default_factory=list)
    ipv6: list[str] = field(default_factory=list)
    dhcp: bool = False
    dhcpv6: bool = False


@dataclass
class VLANConfig:
    """VLAN sub-configuration (parent is derived from the interface name)."""
    id: int
    parent_interface: str


@dataclass
class BondConfig:
    """Bond (link aggregation) sub-configuration."""
    mode: str = "802.3ad"
    members: list[str] = field(default_factory=list)
    primary_interface: Optional[str] = None
    hash_policy: Optional[str] = None  # layer2, layer2+3, layer3+4


@dataclass
class BridgeConfig:
    """Bridge sub-configuration."""
    members: list[str] = field(default_factory=list)
    stp: bool = False
    aging: Optional[int] = None
    max_age: Optional[int] = None


@dataclass
class NetworkInterface:
    """A single network interface."""
    name: str
    type: InterfaceType
    enabled: bool = True
    description: Optional[str] = None
    mtu: Optional[int] = None
    mac: Optional[str] = None
    addresses: AddressConfig = field(default_factory=AddressConfig)
    vlan: Optional[VLANConfig] = None
    bond: Optional[BondConfig] = None
    bridge: Optional[BridgeConfig] = None


# --- Static routes ---

@dataclass
class StaticRoute:
    """A static route via a next-hop or an interface."""
    network: str
    next_hop: Optional[str] = None
    interface: Optional[str] = None
    distance: Optional[int] = None
    description: Optional[str] = None


# --- Firewall ---

@dataclass
class ZonePolicy:
    """Rulesets applied to traffic arriving from another zone."""
    firewall_name: Optional[str] = None
    ipv6_firewall_name: Optional[str] = None


@dataclass
class FirewallZone:
    """A zone-policy zone."""
    name: str
    default_action: str = "drop"
    description: Optional[str] = None
    interfaces: list[str] = field(default_factory=list)
    from_zones: dict[str, ZonePolicy] = field(default_factory=dict)


@dataclass
class FirewallAddress:
    """Source or destination predicate of a firewall rule."""
    address: Optional[str] = None
    port: Optional[str] = None
    address_group: Optional[str] = None
    network_group: Optional[str] = None
    port_group: Optional[str] = None


@dataclass
class FirewallState:
    """Connection-state predicate of a firewall rule."""
    established: bool = False
    related: bool = False
    new: bool = False
    invalid: bool = False


@dataclass
class FirewallRule:
    """A numbered rule inside a ruleset."""
    number: int
    action: str = "drop"
    description: Optional[str] = None
    protocol: Optional[str] = None
    source: FirewallAddress = field(default_factory=FirewallAddress)
    destination: FirewallAddress = field(default_factory=FirewallAddress)
    state: FirewallState = field(default_factory=FirewallState)
    log: bool = False
    enabled: bool = True


@dataclass
class FirewallRuleset:
    """A named firewall ruleset."""
    name: str
    default_action: str = "drop"
    description: Optional[str] = None
    enable_default_log: bool = False
    rules: list[FirewallRule] = field(default_factory=list)


# --- NAT ---

@dataclass
class NATAddress:
    """Source or destination match of a NAT rule."""
    address: Optional[str] = None
    port: Optional[str] = None


@dataclass
class NATTranslation:
    """Translation target (address may be 'masquerade')."""
    address: Optional[str] = None
    port: Optional[str] = None


@dataclass
class NATRule:
    """A source or destination NAT rule."""
    number: int
    type: NATType
    description: Optional[str] = None
    outbound_interface: Optional[str] = None
    inbound_interface: Optional[str] = None
    protocol: Optional[str] = None
    source: NATAddress = field(default_factory=NATAddress)
    destination: NATAddress = field(default_factory=NATAddress)
    translation: NATTranslation = field(default_factory=NATTranslation)
    enabled: bool = True


# --- IPsec ---

@dataclass
class IKEProposal:
    encryption: str
    hash: str
    dh_group: str


@dataclass
class IKEGroup:
    name: str
    proposals: list[IKEProposal] = field(default_factory=list)
    lifetime: Optional[int] = None


@dataclass
class ESPProposal:
    encryption: str
    hash: str


@dataclass
class ESPGroup:
    name: str
    proposals: list[ESPProposal] = field(default_factory=list)
    lifetime: Optional[int] = None
    pfs: Optional[str] = None  # enable, disable


@dataclass
class IPSecAuthentication:
    mode: str = "pre-shared-secret"  # pre-shared-secret, x509
    pre_shared_secret: Optional[str] = None
    remote_id: Optional[str] = None
    local_id: Optional[str] = None


@dataclass
class IPSecTunnel:
    id: int
    local_subnet: str
    remote_subnet: str
    protocol: Optional[str] = None  # esp, ah


@dataclass
class IPSecSite:
    """A site-to-site peer together with its IKE and ESP groups."""
    name: str
    local_address: str
    remote_address: str
    ike_group: IKEGroup
    esp_group: ESPGroup
    authentication: IPSecAuthentication = field(default_factory=IPSecAuthentication)
    tunnels: list[IPSecTunnel] = field(default_factory=list)
    description: Optional[str] = None


# --- System ---

@dataclass
class SystemUser:
    """A login user."""
    name: str
    full_name: Optional[str] = None
    plaintext_password: Optional[str] = None
    encrypted_password: Optional[str] = None
    public_keys: list[str] = field(default_factory=list)
    level: Optional[str] = None  # admin, operator


@dataclass
class SystemConfig:
    """Global system settings."""
    host_name: Optional[str] = None
    domain_name: Optional[str] = None
    time_zone: Optional[str] = None
    name_servers: list[str] = field(default_factory=list)
    ntp_servers: list[str] = field(default_factory=list)
    ntp_allow_clients: list[str] = field(default_factory=list)
    users: list[SystemUser] = field(default_factory=list)


# --- Validation ---

@dataclass
class ValidationResult:
    """Result of model validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --- Command batch ---

CONFIGURE = "configure"
COMMIT = "commit"
SAVE = "save"
EXIT = "exit"
COMMIT_CONFIRM = "commit-confirm"
CONFIRM = "confirm"
DISCARD = "discard"
COMPARE = "compare"
ROLLBACK = "rollback"
ROLLBACK_SEQUENCE = (CONFIGURE, f"{ROLLBACK} 0", COMMIT, SAVE, EXIT)

DEFAULT_TIMEOUT_MS = 60_000


@dataclass
class CommandBatch:
    """Ordered statements plus execution options, consumed once."""
    statements: list[str] = field(default_factory=list)
    commit: bool = True
    save: bool = True
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    description: str = ""
    # Commit with an automatic revert unless confirmed within this many minutes
    confirm_minutes: Optional[int] = None
    # Roll back with "rollback 0" when the batch fails part way
    compensate: bool = True

    def lifecycle_statements(self) -> list[str]:
        """Statements in send order with lifecycle commands injected."""
        queue = [CONFIGURE, *self.statements]
        if self.commit and self.confirm_minutes:
            queue.append(f"{COMMIT_CONFIRM} {self.confirm_minutes}")
        elif self.commit:
            queue.append(COMMIT)
        if self.save:
            queue.append(SAVE)
        queue.append(EXIT)
        return queue


# --- Execution results ---

@dataclass
class ExecuteResult:
    """Result of applying one batch to a device."""
    device_id: str
    success: bool = False
    transcript: str = ""
    rollback_transcript: str = ""
    statements_sent: list[str] = field(default_factory=list)
    rollback_performed: bool = False
    error: Optional[Exception] = None
    state: str = "idle"
    refreshed: Optional["ParsedConfiguration"] = None
    # (statement, device response without echo and prompt) in send order
    responses: list[tuple[str, str]] = field(default_factory=list)

    def response_for(self, statement: str) -> Optional[str]:
        """Return the device response to the last ``statement`` sent, if any."""
        for sent, response in reversed(self.responses):
            if sent == statement:
                return response
        return None

    @property
    def error_kind(self) -> Optional[str]:
        return getattr(self.error, "kind", None) if self.error else None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "device_id": self.device_id,
            "success": self.success,
            "state": self.state,
            "statements_sent": self.statements_sent,
            "rollback_performed": self.rollback_performed,
            "error": str(self.error) if self.error else None,
            "error_kind": self.error_kind,
            "transcript": self.transcript,
            "rollback_transcript": self.rollback_transcript,
        }


@dataclass
class ConnectionTestResult:
    """Outcome of a connectivity check."""
    success: bool
    version: Optional[str] = None
    hostname: Optional[str] = None
    latency_ms: Optional[float] = None
    error: Optional[str] = None


@dataclass
class ParsedConfiguration:
    """Configuration tree plus the typed collections read from it."""
    tree: Any
    interfaces: list[NetworkInterface] = field(default_factory=list)
    static_routes: list[StaticRoute] = field(default_factory=list)
    firewall_zones: list[FirewallZone] = field(default_factory=list)
    firewall_rulesets: list[FirewallRuleset] = field(default_factory=list)
    nat_rules: list[NATRule] = field(default_factory=list)
    ipsec_sites: list[IPSecSite] = field(default_factory=list)
    system: SystemConfig = field(default_factory=SystemConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "tree": self.tree.to_dict(),
            "interfaces": [asdict(i) for i in self.interfaces],
            "static_routes": [asdict(r) for r in self.static_routes],
            "firewall_zones": [asdict(z) for z in self.firewall_zones],
            "firewall_rulesets": [asdict(r) for r in self.firewall_rulesets],
            "nat_rules": [asdict(r) for r in self.nat_rules],
            "ipsec_sites": [asdict(s) for s in self.ipsec_sites],
            "system": asdict(self.system),
        }

