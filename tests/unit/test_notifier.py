"""
Unit tests for progress notifications (vault_guardian/backup/notifier.py).
"""

from datetime import datetime, timedelta, timezone

from freezegun import freeze_time

from vault_guardian.backup.notifier import LogNotifier, Notifier


def test_base_notifier_is_noop():
    notifier = Notifier()

    notifier.show_progress('Starting backup')
    notifier.update_progress('Adding files: 50%')
    notifier.hide()
    notifier.show_transient('Backup failed')


def test_progress_message_until_hidden():
    notifier = LogNotifier()

    notifier.show_progress('Starting backup')
    assert notifier.current_message == 'Starting backup'

    notifier.update_progress('Adding files: 40%')
    assert notifier.current_message == 'Adding files: 40%'

    notifier.hide()
    assert notifier.current_message is None


def test_transient_message_expires():
    """Test a transient message shows for its duration, then yields to progress."""
    start = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    with freeze_time(start) as frozen:
        notifier = LogNotifier()
        notifier.show_progress('Verifying backup')
        notifier.show_transient('Secondary backup folder does not exist or is not writable', 5000)

        assert notifier.current_message == 'Secondary backup folder does not exist or is not writable'

        frozen.tick(timedelta(seconds=6))
        assert notifier.current_message == 'Verifying backup'
