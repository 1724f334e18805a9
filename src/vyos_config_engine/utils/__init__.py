"""Utility modules for connection retry, logging and auditing."""
from .connection import CommandResult, with_retry
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)
from .audit_log import (
    ChangeRecord,
    setup_audit_logging,
    record_execution,
    get_recent_changes,
)

__all__ = [
    "CommandResult",
    "with_retry",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "ChangeRecord",
    "setup_audit_logging",
    "record_execution",
    "get_recent_changes",
]
