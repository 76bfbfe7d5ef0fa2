"""
Automatic backup scheduling for Vault Guardian.

BackupScheduler polls on a short fixed tick (APScheduler interval job) and
runs a backup once the next due time has passed. The due time is anchored to
the completion of the last backup, not to the tick.

Manages:
- The due-time state machine (idle / waiting / due)
- Periodic due checks
- Manual "backup now" triggers
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from vault_guardian.backup.backup_models import BackupResult, BackupStatus
from vault_guardian.backup.settings import ConfigurationError

logger = logging.getLogger(__name__)

TICK_JOB_ID = 'backup_tick'
MANUAL_JOB_PREFIX = 'manual_backup_'


class BackupScheduler:
    """
    Decides when the next automatic backup runs.

    Args:
        orchestrator: BackupOrchestrator to run backups with
        tick_seconds: Polling period; must be short relative to the shortest interval
        timezone_name: Timezone for APScheduler
    """

    def __init__(self, orchestrator, tick_seconds: int = 30, timezone_name: str = 'UTC'):
        self.orchestrator = orchestrator
        self.tick_seconds = tick_seconds
        self.timezone_name = timezone_name
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def next_backup_time(self) -> Optional[datetime]:
        return self.orchestrator.schedule_state.next_backup_time

    @next_backup_time.setter
    def next_backup_time(self, value: datetime):
        self.orchestrator.schedule_state.next_backup_time = value

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self):
        """
        Compute the first due time and start polling.

        Should be called once the orchestrator has loaded its settings.
        """
        self.schedule_next_backup()

        if self.running:
            logger.info("Backup scheduler already running")
            return

        self._scheduler = BackgroundScheduler(
            executors={'default': ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                'coalesce': True,  # Combine missed ticks into one
                'max_instances': 1,
                'misfire_grace_time': self.tick_seconds
            },
            timezone=self.timezone_name
        )

        self._scheduler.add_job(
            func=self.check_and_run,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id=TICK_JOB_ID,
            name='Backup due check',
            replace_existing=True
        )

        self._scheduler.start()
        logger.info(f"Backup scheduler started (tick every {self.tick_seconds}s)")

    def stop(self):
        """Stop polling. A backup already running is left to finish."""
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Backup scheduler stopped")
        self._scheduler = None

    def schedule_next_backup(self) -> datetime:
        """
        Set the next due time to last backup + interval.

        If that time has already passed (e.g. the host was offline), the next
        backup is one interval from now instead of immediately.
        """
        now = datetime.now(timezone.utc)
        interval = self.orchestrator.configuration.interval
        last_backup_time = self.orchestrator.last_backup_time or now

        next_time = last_backup_time + interval
        if next_time <= now:
            next_time = now + interval

        self.next_backup_time = next_time
        logger.info(f"Next backup scheduled for: {next_time.isoformat()}")
        return next_time

    def reschedule_from_now(self) -> datetime:
        """Set the next due time to now + interval. Used after the interval changes."""
        next_time = datetime.now(timezone.utc) + self.orchestrator.configuration.interval
        self.next_backup_time = next_time
        logger.info(f"Backup rescheduled for: {next_time.isoformat()}")
        return next_time

    def is_due(self) -> bool:
        return self.next_backup_time is not None and datetime.now(timezone.utc) >= self.next_backup_time

    def check_and_run(self) -> Optional[BackupResult]:
        """
        Polling tick: run a backup if one is due and none is in progress.

        Returns:
            BackupResult of the run, or None if nothing ran
        """
        if not self.is_due() or self.orchestrator.is_backing_up:
            return None

        logger.info("Scheduled backup is due")
        result = self._run_backup()
        self.schedule_next_backup()
        return result

    def force_backup_now(self) -> BackupResult:
        """
        Run a backup immediately, ignoring the due time.

        Returns:
            BackupResult; SKIPPED if a backup is already in progress

        Raises:
            ConfigurationError: If no primary backup path is set
        """
        if self.orchestrator.is_backing_up:
            logger.info("Manual backup ignored: backup already in progress")
            return BackupResult(status=BackupStatus.SKIPPED, started_at=datetime.now(timezone.utc))

        try:
            return self.orchestrator.create_backup()
        finally:
            self.schedule_next_backup()

    def trigger_backup_now(self) -> str:
        """
        Queue force_backup_now() on the scheduler's worker.

        Returns:
            ID of the one-time job

        Raises:
            RuntimeError: If the scheduler is not running
        """
        if not self.running:
            raise RuntimeError("Scheduler not running. Call start() first.")

        now = datetime.now(timezone.utc)
        job_id = f"{MANUAL_JOB_PREFIX}{int(now.timestamp() * 1000)}"
        self._scheduler.add_job(
            func=self._force_backup_job,
            trigger=DateTrigger(run_date=now),
            id=job_id,
            name='Manual backup',
            replace_existing=False,
            misfire_grace_time=None
        )

        logger.info(f"Manual backup queued: {job_id}")
        return job_id

    def time_remaining(self) -> timedelta:
        """Time until the next due backup, never negative."""
        if self.next_backup_time is None:
            return timedelta(0)
        remaining = self.next_backup_time - datetime.now(timezone.utc)
        return max(remaining, timedelta(0))

    def countdown(self) -> Tuple[int, int, int]:
        """time_remaining() as (hours, minutes, seconds)."""
        total = int(self.time_remaining().total_seconds())
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        return hours, minutes, seconds

    def status_text(self) -> str:
        """Short status line for a host status bar."""
        if self.orchestrator.is_backing_up:
            return 'Backing up vault'

        hours, minutes, seconds = self.countdown()
        if hours == 0 and minutes == 0 and seconds == 0:
            return 'Starting backup'
        return f"Backup: {hours}h {minutes}m {seconds}s"

    def get_diagnostics(self) -> dict:
        """
        Get scheduler state for troubleshooting.

        Returns:
            Dict with running flag, next due time and queued jobs
        """
        jobs = []
        if self.running:
            for job in self._scheduler.get_jobs():
                jobs.append({
                    'id': job.id,
                    'name': job.name,
                    'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
                    'trigger': str(job.trigger)
                })

        return {
            'running': self.running,
            'tick_seconds': self.tick_seconds,
            'next_backup_time': self.next_backup_time.isoformat() if self.next_backup_time else None,
            'jobs': jobs
        }

    def _run_backup(self) -> Optional[BackupResult]:
        try:
            result = self.orchestrator.create_backup()
            logger.info(f"Scheduled backup finished with status: {result.status.value}")
            return result
        except ConfigurationError as e:
            logger.warning(f"Scheduled backup not run: {e}")
        except Exception:
            logger.exception("Scheduled backup raised an unexpected error")
        return None

    def _force_backup_job(self):
        """Scheduler-thread wrapper for manual triggers."""
        try:
            result = self.force_backup_now()
            logger.info(f"Manual backup finished with status: {result.status.value}")
        except ConfigurationError as e:
            logger.warning(f"Manual backup not run: {e}")
        except Exception:
            logger.exception("Manual backup raised an unexpected error")
