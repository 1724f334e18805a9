"""Configuration backups taken before changes are applied."""
from .backup import BackupSink, FileBackupSink, DEFAULT_BACKUP_DIR

__all__ = [
    "BackupSink",
    "FileBackupSink",
    "DEFAULT_BACKUP_DIR",
]
