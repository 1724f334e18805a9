"""Audit logging for configuration changes.

Provides change tracking with:
- One timestamped JSON line per executed batch
- Statements sent, outcome, error kind and rollback status
- Password and pre-shared secret values masked
- Separate audit log file
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..config_engine.schema import CommandBatch, ExecuteResult

# Create dedicated audit logger
audit_logger = logging.getLogger("vyos_engine.audit")

DEFAULT_AUDIT_DIR = "~/.vyos-engine"


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.vyos-engine/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    audit_file = Path(log_dir) / "audit.log"

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )

    # One JSON document per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    # Don't propagate to root logger
    audit_logger.propagate = False

    return audit_file


@dataclass
class ChangeRecord:
    """Record of one batch execution."""
    timestamp: str
    device_id: str
    operation: str
    user: str
    success: bool
    description: str = ""
    statements: list[str] = field(default_factory=list)
    checksum: Optional[str] = None
    state: str = ""
    rollback_performed: bool = False
    error_kind: Optional[str] = None
    error: Optional[str] = None
    output: str = ""

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


def record_execution(
    result: "ExecuteResult",
    batch: "CommandBatch",
    operation: str = "execute",
    user: Optional[str] = None,
) -> ChangeRecord:
    """Write an audit record for an executed batch.

    Args:
        result: Outcome of the execution
        batch: The batch that was executed
        operation: Operation label
        user: Acting user; defaults to $USER

    Returns:
        The ChangeRecord that was logged
    """
    from ..config_engine.loader import compute_checksum
    from ..config_engine.sanitizer import mask_secrets

    # Mask before cutting so a split secret cannot leak
    tail = mask_secrets(result.transcript)[-1000:] if result.transcript else ""

    record = ChangeRecord(
        timestamp=datetime.now(timezone.utc).isoformat(),
        device_id=result.device_id,
        operation=operation,
        description=batch.description,
        user=user or os.environ.get("USER", "system"),
        success=result.success,
        statements=[mask_secrets(s) for s in batch.statements],
        checksum=compute_checksum(batch.statements),
        state=result.state,
        rollback_performed=result.rollback_performed,
        error_kind=result.error_kind,
        error=mask_secrets(str(result.error)) if result.error else None,
        output=tail,
    )

    audit_logger.info(record.to_json())

    return record


def get_recent_changes(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.vyos-engine/audit.log
        device_id: Filter by device ID
        operation: Filter by operation type
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)

                # Apply filters
                if device_id and record.device_id != device_id:
                    continue
                if operation and record.operation != operation:
                    continue

                records.append(record)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

    # Return most recent first, limited
    return list(reversed(records[-limit:]))
