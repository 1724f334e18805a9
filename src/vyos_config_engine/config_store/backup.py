"""Pre-change configuration backups.

Before a batch is applied the engine reads the device's active configuration
and hands it to a backup sink. Sinks only store; retention and pruning are
left to whoever owns the backup directory.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

# Default backup directory
DEFAULT_BACKUP_DIR = Path.home() / ".vyos-engine" / "backups"


class BackupSink(Protocol):
    """Anything that can store a configuration snapshot."""

    def save(self, device_id: str, content: str) -> str:
        """Store ``content`` for ``device_id`` and return a locator for it."""
        ...


class FileBackupSink:
    """Write one timestamped file per backup.

    Layout::

        <directory>/
        └── <device_id>/
            ├── 20260101T120000123456Z.conf
            └── ...
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else DEFAULT_BACKUP_DIR

    def save(self, device_id: str, content: str) -> str:
        """
        Write a backup file.

        Args:
            device_id: Device the configuration was read from
            content: Configuration as ``set`` statements

        Returns:
            Path of the written file
        """
        device_dir = self.directory / device_id
        device_dir.mkdir(parents=True, exist_ok=True)

        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = device_dir / f"{stamp}.conf"
        if not content.endswith("\n"):
            content += "\n"
        path.write_text(content, encoding="utf-8")

        logger.info(f"Saved backup of {device_id} to {path}")
        return str(path)

    def list_backups(self, device_id: str) -> list[Path]:
        """List backups for a device, oldest first."""
        device_dir = self.directory / device_id
        if not device_dir.exists():
            return []
        return sorted(device_dir.glob("*.conf"))

    def latest(self, device_id: str) -> Optional[Path]:
        """Most recent backup for a device, if any."""
        backups = self.list_backups(device_id)
        return backups[-1] if backups else None

    def load(self, path: Path | str) -> str:
        """Read a backup file written by :meth:`save`."""
        return Path(path).read_text(encoding="utf-8")
