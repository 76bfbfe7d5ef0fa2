"""
Backup module for Vault Guardian.

This module handles the core backup functionality including:
- Primary tree enumeration (the vault)
- Archive building (vault files and metadata tree)
- Retention policy enforcement per destination
- Execution orchestration
"""

from .backup_models import BackupResult, BackupRun, BackupStatus
from .compression import ArchiveBuilder, CompressionError, generate_archive_filename
from .executor import BackupOrchestrator
from .filesystem import LocalFileSystem, StorageError
from .notifier import LogNotifier, Notifier
from .retention import RetentionManager
from .settings import BackupConfiguration, ConfigurationError, ScheduleState, SettingsStore
from .sources import SourceError, VaultSource

__all__ = [
    'ArchiveBuilder',
    'BackupConfiguration',
    'BackupOrchestrator',
    'BackupResult',
    'BackupRun',
    'BackupStatus',
    'CompressionError',
    'ConfigurationError',
    'LocalFileSystem',
    'LogNotifier',
    'Notifier',
    'RetentionManager',
    'ScheduleState',
    'SettingsStore',
    'SourceError',
    'StorageError',
    'VaultSource',
    'generate_archive_filename'
]
