"""Config Engine - configuration models to router CLI statements and back.

The Config Engine manages a VyOS-style router through its CLI:
- Build canonical ``set`` statements from configuration models
- Parse ``show configuration commands`` output back into models
- Execute batches in one interactive session with rollback on failure

Usage:
    from vyos_config_engine.config_engine import ConfigEngine, ModelKind

    engine = ConfigEngine(inventory)
    statements = engine.preview(ModelKind.INTERFACE, iface)
    result = await engine.apply("edge-1", ModelKind.INTERFACE, iface)
"""

from .engine import ConfigEngine
from .errors import (
    EngineError,
    BuildError,
    ParseError,
    ModelLoadError,
    TransportError,
    SessionTimeout,
    CommandError,
    CommitError,
    ExecutionCancelled,
    RollbackError,
)
from .schema import (
    ModelKind,
    InterfaceType,
    NATType,
    NetworkInterface,
    StaticRoute,
    FirewallZone,
    FirewallRuleset,
    FirewallRule,
    NATRule,
    IPSecSite,
    SystemConfig,
    ValidationResult,
    CommandBatch,
    ExecuteResult,
    ConnectionTestResult,
    ParsedConfiguration,
)
from .sanitizer import mask_secrets, quote, quote_literal
from .generator import CommandBuilder, render_set_lines
from .parser import ConfigParser, ConflictPolicy, Branch, Leaf, parse_raw, tokenize
from .loader import ModelLoader, compute_checksum
from .validator import ConfigValidator
from .executor import (
    ConfigExecutor,
    ExecutorSettings,
    ExecutionSession,
    SessionState,
    DeviceLockTable,
    device_locks,
)

__all__ = [
    # Main engine
    "ConfigEngine",
    # Errors
    "EngineError",
    "BuildError",
    "ParseError",
    "ModelLoadError",
    "TransportError",
    "SessionTimeout",
    "CommandError",
    "CommitError",
    "ExecutionCancelled",
    "RollbackError",
    # Schema classes
    "ModelKind",
    "InterfaceType",
    "NATType",
    "NetworkInterface",
    "StaticRoute",
    "FirewallZone",
    "FirewallRuleset",
    "FirewallRule",
    "NATRule",
    "IPSecSite",
    "SystemConfig",
    "ValidationResult",
    "CommandBatch",
    "ExecuteResult",
    "ConnectionTestResult",
    "ParsedConfiguration",
    # Quoting
    "mask_secrets",
    "quote",
    "quote_literal",
    # Builder / parser
    "CommandBuilder",
    "render_set_lines",
    "ConfigParser",
    "ConflictPolicy",
    "Branch",
    "Leaf",
    "parse_raw",
    "tokenize",
    "ModelLoader",
    "compute_checksum",
    # Components (for advanced use)
    "ConfigValidator",
    "ConfigExecutor",
    "ExecutorSettings",
    "ExecutionSession",
    "SessionState",
    "DeviceLockTable",
    "device_locks",
]
