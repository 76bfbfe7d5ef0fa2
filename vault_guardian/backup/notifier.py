"""
User-facing progress notifications.

The orchestrator reports start, percentage, verify, success and failure
milestones through a Notifier. The host decides how to render them; the
LogNotifier shipped here writes them to the log and remembers the current
message so the status endpoint can show it.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class Notifier:
    """Base notifier. Every method is a no-op."""

    def show_progress(self, message: str, persistent: bool = True):
        pass

    def update_progress(self, message: str):
        pass

    def hide(self):
        pass

    def show_transient(self, message: str, duration_ms: int = 5000):
        pass


class LogNotifier(Notifier):
    """
    Notifier that logs every message and keeps the latest one.

    A progress message stays current until hide() is called. A transient
    message expires after its duration.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._progress_message = None
        self._transient_message = None
        self._transient_expires = None

    def show_progress(self, message: str, persistent: bool = True):
        logger.info(message)
        with self._lock:
            self._progress_message = message

    def update_progress(self, message: str):
        logger.info(message)
        with self._lock:
            self._progress_message = message

    def hide(self):
        with self._lock:
            self._progress_message = None

    def show_transient(self, message: str, duration_ms: int = 5000):
        logger.warning(message)
        with self._lock:
            self._transient_message = message
            self._transient_expires = datetime.now(timezone.utc) + timedelta(milliseconds=duration_ms)

    @property
    def current_message(self) -> Optional[str]:
        """The message a status bar would show right now, if any."""
        with self._lock:
            if self._transient_message and datetime.now(timezone.utc) < self._transient_expires:
                return self._transient_message
            return self._progress_message
