"""
Backup configuration and schedule state.

BackupConfiguration is the typed settings record with explicit defaults;
SettingsStore persists it, together with the last backup time, in the
backup_settings table.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when backup settings are missing or invalid."""
    pass


@dataclass(frozen=True)
class BackupConfiguration:
    """Backup settings with their defaults."""

    backup_path: str = ''
    secondary_backup_path: str = ''
    auto_backup_interval: float = 24.0  # Hours
    max_backup_count: int = 5  # 0 = keep all
    secondary_max_backup_count: int = 10  # 0 = keep all
    compression_level: int = 9

    def validate(self) -> 'BackupConfiguration':
        """
        Check field ranges.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any field is out of range
        """
        if isinstance(self.auto_backup_interval, bool) or not isinstance(self.auto_backup_interval, (int, float)):
            raise ConfigurationError("auto_backup_interval must be a number of hours")
        if self.auto_backup_interval <= 0:
            raise ConfigurationError("auto_backup_interval must be positive")

        for name in ('max_backup_count', 'secondary_max_backup_count'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer")

        level = self.compression_level
        if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= 9:
            raise ConfigurationError("compression_level must be an integer between 0 and 9")

        for name in ('backup_path', 'secondary_backup_path'):
            if not isinstance(getattr(self, name), str):
                raise ConfigurationError(f"{name} must be a string")

        return self

    def update(self, **changes) -> 'BackupConfiguration':
        """
        Return a validated copy with changes applied.

        Raises:
            ConfigurationError: On unknown fields or invalid values
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(self, **changes).validate()

    @property
    def interval(self) -> timedelta:
        return timedelta(hours=self.auto_backup_interval)

    @property
    def has_primary_destination(self) -> bool:
        return bool(self.backup_path and self.backup_path.strip())

    @property
    def has_secondary_destination(self) -> bool:
        return bool(self.secondary_backup_path and self.secondary_backup_path.strip())

    def resolve_primary(self, vault_path: str) -> str:
        return _resolve_destination(self.backup_path.strip(), vault_path)

    def resolve_secondary(self, vault_path: str) -> str:
        return _resolve_destination(self.secondary_backup_path.strip(), vault_path)

    def to_dict(self) -> dict:
        return asdict(self)


def _resolve_destination(path: str, vault_path: str) -> str:
    """Absolute paths are used as-is; relative ones are relative to the vault root."""
    path = os.path.expanduser(path)
    if os.path.isabs(path):
        return path
    return os.path.join(vault_path, path)


@dataclass
class ScheduleState:
    """When the last backup finished and when the next one is due."""
    last_backup_time: Optional[datetime] = None
    next_backup_time: Optional[datetime] = None


def _to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class SettingsStore:
    """
    Loads and saves backup settings through Flask-SQLAlchemy.

    Holds the Flask app so it can be used from scheduler threads, which run
    outside any request or app context.
    """

    def __init__(self, app):
        self.app = app

    def load(self) -> Tuple[BackupConfiguration, ScheduleState]:
        """
        Load the stored settings, or the defaults if none were saved.

        Raises:
            ConfigurationError: If the stored record is invalid
        """
        from vault_guardian.models import BackupSettings

        with self.app.app_context():
            row = BackupSettings.query.first()

            if row is None:
                logger.info("No stored backup settings, using defaults")
                return BackupConfiguration(), ScheduleState()

            defaults = BackupConfiguration()
            values = {}
            for f in fields(BackupConfiguration):
                value = getattr(row, f.name, None)
                values[f.name] = getattr(defaults, f.name) if value is None else value

            configuration = BackupConfiguration(**values)
            try:
                configuration.validate()
            except ConfigurationError as e:
                logger.error(f"Stored backup settings are invalid: {e}")
                raise

            return configuration, ScheduleState(last_backup_time=_from_db_time(row.last_backup_time))

    def save(self, configuration: BackupConfiguration, schedule: ScheduleState):
        """Write settings and last backup time to the single settings row."""
        from vault_guardian import db
        from vault_guardian.models import BackupSettings

        with self.app.app_context():
            row = BackupSettings.query.first()
            if row is None:
                row = BackupSettings()
                db.session.add(row)

            for key, value in configuration.to_dict().items():
                setattr(row, key, value)
            row.last_backup_time = _to_db_time(schedule.last_backup_time)

            db.session.commit()
