"""
Backup orchestrator - runs the complete backup workflow.

Workflow:
1. Validate configuration (primary destination must be set)
2. Take the in-progress lock (skip if a backup is already running)
3. Build the archive in a temporary directory
4. Ensure the primary destination exists and move the archive there
5. Copy to the secondary destination (if configured, non-fatal)
6. Record and persist the last backup time
7. Enforce retention on each destination
8. Cleanup temporary files
"""

import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime, timezone
from typing import Optional

from .backup_models import BackupResult, BackupRun, BackupStatus
from .compression import ArchiveBuilder, generate_archive_filename, get_archive_size
from .filesystem import LocalFileSystem, StorageError
from .notifier import Notifier
from .retention import RetentionManager
from .settings import BackupConfiguration, ConfigurationError, ScheduleState
from .sources import VaultSource

logger = logging.getLogger(__name__)


class BackupOrchestrator:
    """
    Owns the backup configuration, the schedule state and the in-progress
    lock, and is the only caller of the archive builder and retention manager.
    """

    def __init__(
        self,
        source: VaultSource,
        settings_store=None,
        notifier: Optional[Notifier] = None,
        fs: Optional[LocalFileSystem] = None,
        temp_dir: Optional[str] = None,
        configuration: Optional[BackupConfiguration] = None,
        schedule_state: Optional[ScheduleState] = None
    ):
        """
        Initialize backup orchestrator.

        Args:
            source: Primary tree source (the vault)
            settings_store: Object with load()/save(configuration, schedule_state)
            notifier: Progress notifier
            fs: Filesystem primitives
            temp_dir: Parent directory for temporary archives (default: system temp)
            configuration: Initial configuration (default: loaded from the store)
            schedule_state: Initial schedule state (default: loaded from the store)
        """
        self.source = source
        self.settings_store = settings_store
        self.notifier = notifier or Notifier()
        self.fs = fs or LocalFileSystem()
        self.temp_dir = temp_dir
        self.retention = RetentionManager(fs=self.fs)
        self.last_result: Optional[BackupResult] = None
        self._lock = threading.Lock()

        if configuration is None and settings_store is not None:
            loaded_configuration, loaded_state = settings_store.load()
            configuration = loaded_configuration
            if schedule_state is None:
                schedule_state = loaded_state

        self._configuration = (configuration or BackupConfiguration()).validate()
        self.schedule_state = schedule_state or ScheduleState()

    @property
    def configuration(self) -> BackupConfiguration:
        return self._configuration

    @property
    def last_backup_time(self) -> Optional[datetime]:
        return self.schedule_state.last_backup_time

    @property
    def is_backing_up(self) -> bool:
        return self._lock.locked()

    def set_configuration(self, **changes) -> bool:
        """
        Validate, apply and persist configuration changes.

        Returns:
            True if the backup interval changed (caller should reschedule)

        Raises:
            ConfigurationError: On unknown fields or invalid values
        """
        updated = self._configuration.update(**changes)
        interval_changed = updated.auto_backup_interval != self._configuration.auto_backup_interval
        self._configuration = updated
        self._persist()
        logger.info(f"Backup configuration updated: {', '.join(sorted(changes)) or 'no changes'}")
        return interval_changed

    def create_backup(self) -> BackupResult:
        """
        Run one backup.

        Returns:
            BackupResult; status is SKIPPED if another backup is running

        Raises:
            ConfigurationError: If no primary backup path is set
        """
        configuration = self._configuration

        if not configuration.has_primary_destination:
            self._notify('show_transient', 'No primary backup path set.', 5000)
            logger.error("Backup rejected: no primary backup path set")
            raise ConfigurationError("No primary backup path set")

        if not self._lock.acquire(blocking=False):
            logger.info("Backup already in progress, skipping")
            return BackupResult(status=BackupStatus.SKIPPED, started_at=datetime.now(timezone.utc))

        try:
            result = self._execute(configuration)
            self.last_result = result
            return result
        finally:
            self._lock.release()

    def _execute(self, configuration: BackupConfiguration) -> BackupResult:
        run = BackupRun(on_progress=self._report_progress, on_phase=self._report_phase)
        result = BackupResult(status=BackupStatus.RUNNING, started_at=run.started_at)
        temp_dir = None

        run.log(f"Starting backup of vault: {self.source.name}")
        self._notify('show_progress', 'Starting backup', True)

        try:
            temp_dir = tempfile.mkdtemp(prefix='vault_guardian_', dir=self.temp_dir)
            self._execute_workflow(configuration, run, result, temp_dir)

            result.status = BackupStatus.PARTIAL if run.partial else BackupStatus.SUCCESS
            if run.partial:
                message = f"Backup created with {len(run.warnings)} skipped metadata entries"
            else:
                message = 'Backup created'
            run.log(message)
            self._notify('update_progress', message)
            self._notify('hide')

        except Exception as e:
            result.status = BackupStatus.FAILED
            result.error_message = str(e)
            run.log(f"Backup failed: {e}", level=logging.ERROR)
            self._notify('hide')
            self._notify('show_transient', f"Backup failed: {e}", 5000)

        finally:
            self._cleanup(temp_dir, run)
            result.completed_at = datetime.now(timezone.utc)
            result.warnings = result.warnings + run.warnings
            result.logs = run.logs

        return result

    def _execute_workflow(self, configuration: BackupConfiguration, run: BackupRun, result: BackupResult, temp_dir: str):
        """Execute the main backup workflow steps."""
        vault_path = self.source.vault_path

        primary_dir = configuration.resolve_primary(vault_path)
        secondary_dir = None
        if configuration.has_secondary_destination:
            secondary_dir = configuration.resolve_secondary(vault_path)
        destinations = [d for d in (primary_dir, secondary_dir) if d]

        # Step 1: Build archive
        archive_name = self._unique_archive_name(generate_archive_filename(self.source.name), destinations)
        entries = self.source.list_entries(skip_dirs=destinations)
        run.log(f"Archiving {len(entries)} vault files (compression level {configuration.compression_level})")

        builder = ArchiveBuilder(compression_level=configuration.compression_level, fs=self.fs)
        build = builder.build(
            entries,
            self.source.metadata_path,
            self.source.metadata_dir_name,
            os.path.join(temp_dir, archive_name),
            run
        )
        result.archive_name = archive_name
        result.files_backed_up = build.file_count

        # Step 2: Write to primary destination
        primary_path = os.path.join(primary_dir, archive_name)
        self._ensure_directory(primary_dir)
        self._write_primary(build.archive_path, primary_path)
        result.archive_path = primary_path
        result.archive_size = get_archive_size(primary_path)
        run.log(f"Archive written: {primary_path} ({result.archive_size / 1024 / 1024:.2f} MB)")

        # Step 3: Copy to secondary destination
        if secondary_dir is not None:
            secondary_path = os.path.join(secondary_dir, archive_name)
            try:
                self.fs.copy(primary_path, secondary_path)
                result.secondary_path = secondary_path
                run.log(f"Secondary copy written: {secondary_path}")
            except OSError as e:
                warning = f"Secondary backup failed ({secondary_dir}): {e}"
                result.warnings.append(warning)
                run.log(warning, level=logging.ERROR)
                self._notify('show_transient', 'Secondary backup folder does not exist or is not writable', 5000)
                self._remove_partial(secondary_path)
                secondary_dir = None

        # Step 4: Record last backup time
        self.schedule_state.last_backup_time = datetime.now(timezone.utc)
        try:
            self._persist()
        except Exception as e:
            warning = f"Failed to save last backup time: {e}"
            result.warnings.append(warning)
            run.log(warning, level=logging.ERROR)

        # Step 5: Retention
        self.retention.prune(primary_dir, configuration.max_backup_count)
        if secondary_dir is not None:
            self.retention.prune(secondary_dir, configuration.secondary_max_backup_count)

    def _ensure_directory(self, path: str):
        """
        Create a destination directory if it does not exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        try:
            self.fs.makedirs(path)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {path}: {e}") from e

    def _write_primary(self, archive_path: str, destination: str):
        """
        Move the built archive into the primary destination.

        Raises:
            StorageError: If the archive cannot be written
        """
        try:
            self.fs.move(archive_path, destination)
        except OSError as e:
            self._remove_partial(destination)
            raise StorageError(f"Failed to write backup to {destination}: {e}") from e

    def _remove_partial(self, path: str):
        """Delete a partially written archive so retention never counts it."""
        if not self.fs.exists(path):
            return
        try:
            self.fs.delete(path)
        except OSError as e:
            logger.warning(f"Failed to remove partial archive {path}: {e}")

    def _unique_archive_name(self, archive_name: str, directories) -> str:
        """
        Add a _N suffix while the name is taken in any destination.

        Names only resolve to the second, so two runs in the same second
        would otherwise overwrite each other.
        """
        stem, ext = os.path.splitext(archive_name)
        candidate = archive_name
        counter = 1
        while any(self.fs.exists(os.path.join(d, candidate)) for d in directories):
            candidate = f"{stem}_{counter}{ext}"
            counter += 1
        return candidate

    def _persist(self):
        if self.settings_store is not None:
            self.settings_store.save(self._configuration, self.schedule_state)

    def _report_progress(self, run: BackupRun):
        percent = run.percent
        if percent != run.reported_percent:
            run.reported_percent = percent
            self._notify('update_progress', f"Adding files: {percent}%")

    def _report_phase(self, phase: str):
        if phase == 'verifying':
            self._notify('update_progress', 'Verifying backup')

    def _notify(self, method: str, *args):
        """Call the notifier. Notifier failures never abort a backup."""
        try:
            getattr(self.notifier, method)(*args)
        except Exception as e:
            logger.warning(f"Notifier {method} failed: {e}")

    def _cleanup(self, temp_dir: Optional[str], run: BackupRun):
        """Remove temporary directory and files."""
        if temp_dir and os.path.exists(temp_dir):
            try:
                shutil.rmtree(temp_dir)
            except OSError as e:
                run.log(f"Warning: Failed to cleanup temp directory: {e}", level=logging.WARNING)
