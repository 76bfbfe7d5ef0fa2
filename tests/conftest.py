"""
Shared pytest fixtures for Vault Guardian tests.

This module provides fixtures for:
- Flask app and test client (in-memory SQLite, scheduler not started)
- A small sample vault with a metadata tree
- Backup destinations and an orchestrator wired without a database
- A fault-injecting filesystem
"""

import os

import pytest

from vault_guardian import EXTENSION_KEY, create_app
from vault_guardian.backup import (
    BackupConfiguration,
    BackupOrchestrator,
    LocalFileSystem,
    ScheduleState,
    VaultSource,
)


class FaultyFileSystem(LocalFileSystem):
    """
    LocalFileSystem that fails selected operations.

    Paths are matched by basename so tests don't depend on tmp_path layout.
    """

    def __init__(self, unreadable=(), undeletable=(), unlistable=(), fail_move=False, fail_copy=False):
        self.unreadable = set(unreadable)
        self.undeletable = set(undeletable)
        self.unlistable = set(unlistable)
        self.fail_move = fail_move
        self.fail_copy = fail_copy

    def read_bytes(self, path):
        if os.path.basename(path) in self.unreadable:
            raise PermissionError(13, 'Permission denied', path)
        return super().read_bytes(path)

    def read_text(self, path, encoding='utf-8'):
        if os.path.basename(path) in self.unreadable:
            raise PermissionError(13, 'Permission denied', path)
        return super().read_text(path, encoding=encoding)

    def list_dir(self, path):
        if os.path.basename(path) in self.unlistable:
            raise PermissionError(13, 'Permission denied', path)
        return super().list_dir(path)

    def delete(self, path):
        if os.path.basename(path) in self.undeletable:
            raise PermissionError(13, 'Permission denied', path)
        super().delete(path)

    def move(self, source, destination):
        if self.fail_move:
            raise OSError(28, 'No space left on device', destination)
        super().move(source, destination)

    def copy(self, source, destination):
        if self.fail_copy:
            # Leave a truncated file behind, as an interrupted copy would
            with open(destination, 'wb') as f:
                f.write(b'PK')
            raise OSError(28, 'No space left on device', destination)
        super().copy(source, destination)


@pytest.fixture
def faulty_fs():
    """Factory for FaultyFileSystem instances."""
    return FaultyFileSystem


@pytest.fixture
def vault(tmp_path):
    """
    Create a sample vault.

    Creates:
    - Welcome.md
    - notes/daily.md, notes/ideas.md
    - attachments/image.png (binary)
    - .obsidian/app.json, .obsidian/plugins/sync/main.js
    """
    root = tmp_path / 'My Vault'
    root.mkdir()

    (root / 'Welcome.md').write_text('# Welcome')
    (root / 'notes').mkdir()
    (root / 'notes' / 'daily.md').write_text('Daily note')
    (root / 'notes' / 'ideas.md').write_text('Ideas')
    (root / 'attachments').mkdir()
    (root / 'attachments' / 'image.png').write_bytes(b'\x89PNG\r\n\x1a\n\x00\xff')

    metadata = root / '.obsidian'
    metadata.mkdir()
    (metadata / 'app.json').write_text('{"theme": "dark"}')
    (metadata / 'plugins').mkdir()
    (metadata / 'plugins' / 'sync').mkdir()
    (metadata / 'plugins' / 'sync' / 'main.js').write_text('module.exports = {}')

    return root


@pytest.fixture
def backup_dir(tmp_path):
    """Primary backup destination (not created)."""
    return tmp_path / 'backups'


@pytest.fixture
def make_orchestrator(vault, backup_dir, tmp_path):
    """
    Factory for an orchestrator backed by the sample vault.

    Configuration overrides are passed as keyword arguments.
    """
    temp_dir = tmp_path / 'temp'
    temp_dir.mkdir()

    def _make(settings_store=None, notifier=None, fs=None, schedule_state=None, **overrides):
        values = {'backup_path': str(backup_dir), 'auto_backup_interval': 1.0}
        values.update(overrides)
        return BackupOrchestrator(
            VaultSource(str(vault), fs=fs),
            settings_store=settings_store,
            notifier=notifier,
            fs=fs,
            temp_dir=str(temp_dir),
            configuration=BackupConfiguration(**values),
            schedule_state=schedule_state or ScheduleState()
        )

    return _make


@pytest.fixture
def app(tmp_path, vault):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite; the scheduler is not started.
    """
    app = create_app('testing', config_overrides={
        'DATA_DIR': str(tmp_path / 'data'),
        'TEMP_DIR': str(tmp_path / 'data' / 'temp'),
        'LOG_DIR': str(tmp_path / 'data' / 'logs'),
        'VAULT_PATH': str(vault),
    })

    yield app

    app.extensions[EXTENSION_KEY]['scheduler'].stop()


@pytest.fixture
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def components(app):
    """Backup objects wired by the app factory."""
    return app.extensions[EXTENSION_KEY]
