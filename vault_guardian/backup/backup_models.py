"""Data models for a single backup run."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class BackupStatus(str, Enum):
    """Outcome of a backup run"""
    RUNNING = 'running'
    SUCCESS = 'success'
    PARTIAL = 'partial'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class BackupRun:
    """
    Ephemeral state for one create_backup() call.

    The archive builder receives the run explicitly and reports through it;
    nothing here is persisted.
    """

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    total_files: int = 0
    processed_files: int = 0
    metadata_files: int = 0
    partial: bool = False
    reported_percent: int = -1
    warnings: List[str] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)
    on_progress: Optional[Callable[['BackupRun'], None]] = None
    on_phase: Optional[Callable[[str], None]] = None

    @property
    def percent(self) -> int:
        if not self.total_files:
            return 100
        return round(self.processed_files / self.total_files * 100)

    def file_added(self):
        """Count one primary-tree file and report progress."""
        self.processed_files += 1
        if self.on_progress:
            self.on_progress(self)

    def enter_phase(self, phase: str):
        self.log(f"Phase: {phase}")
        if self.on_phase:
            self.on_phase(phase)

    def warn(self, message: str):
        """Record a recovered failure. Any warning makes the run partial."""
        self.partial = True
        self.warnings.append(message)
        self.log(f"Warning: {message}", level=logging.WARNING)

    def log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Level used for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


@dataclass
class BuildResult:
    """Archive produced by the archive builder, not yet at its destination."""
    archive_path: str
    file_count: int
    partial: bool
    warnings: List[str] = field(default_factory=list)


@dataclass
class BackupResult:
    """Result of a create_backup() call."""

    status: BackupStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    archive_name: Optional[str] = None
    archive_path: Optional[str] = None
    secondary_path: Optional[str] = None
    files_backed_up: int = 0
    archive_size: int = 0  # in bytes
    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in (BackupStatus.SUCCESS, BackupStatus.PARTIAL)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'archive_name': self.archive_name,
            'archive_path': self.archive_path,
            'secondary_path': self.secondary_path,
            'files_backed_up': self.files_backed_up,
            'archive_size': self.archive_size,
            'warnings': self.warnings,
            'error_message': self.error_message,
        }
