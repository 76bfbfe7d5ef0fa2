"""
Unit tests for archive building (vault_guardian/backup/compression.py).

Tests ArchiveBuilder layout, metadata tree handling and filename generation.
"""

import os
import shutil
import zipfile
from datetime import datetime, timezone

import pytest

from vault_guardian.backup.backup_models import BackupRun
from vault_guardian.backup.compression import (
    ArchiveBuilder,
    CompressionError,
    generate_archive_filename,
    get_archive_size,
    is_archive_filename,
)
from vault_guardian.backup.sources import VaultSource


def build_archive(vault, output_path, fs=None, source_fs=None, run=None, level=9):
    source = VaultSource(str(vault), fs=source_fs)
    run = run or BackupRun()
    builder = ArchiveBuilder(compression_level=level, fs=fs)
    result = builder.build(
        source.list_entries(),
        source.metadata_path,
        source.metadata_dir_name,
        str(output_path),
        run
    )
    return result, run


class TestArchiveBuilder:
    """Test archive contents."""

    def test_invalid_compression_level(self):
        """Test levels outside 0-9 are rejected."""
        with pytest.raises(ValueError, match='Invalid compression level'):
            ArchiveBuilder(compression_level=10)
        with pytest.raises(ValueError):
            ArchiveBuilder(compression_level=-1)

    def test_primary_files_at_relative_paths(self, vault, tmp_path):
        """Test vault files are stored at their vault-relative paths with exact bytes."""
        output = tmp_path / 'out.zip'
        result, run = build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            names = zipf.namelist()
            assert 'Welcome.md' in names
            assert 'notes/daily.md' in names
            assert zipf.read('notes/ideas.md') == b'Ideas'
            assert zipf.read('attachments/image.png') == b'\x89PNG\r\n\x1a\n\x00\xff'
            assert zipf.getinfo('Welcome.md').compress_type == zipfile.ZIP_DEFLATED

        assert result.archive_path == str(output)
        assert run.processed_files == 4
        assert not result.partial

    def test_primary_entries_in_walk_order(self, vault, tmp_path):
        """Test primary entries keep the source enumeration order."""
        output = tmp_path / 'out.zip'
        build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            primary = [n for n in zipf.namelist() if not n.startswith('.obsidian')]

        assert primary == ['Welcome.md', 'attachments/image.png', 'notes/daily.md', 'notes/ideas.md']

    def test_metadata_tree_mirrored(self, vault, tmp_path):
        """Test the metadata tree is stored under its directory name with directory entries."""
        output = tmp_path / 'out.zip'
        result, run = build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            names = zipf.namelist()
            assert zipf.read('.obsidian/app.json') == b'{"theme": "dark"}'
            assert '.obsidian/plugins/' in names
            assert '.obsidian/plugins/sync/' in names
            assert zipf.read('.obsidian/plugins/sync/main.js') == b'module.exports = {}'

        assert run.metadata_files == 2
        assert result.file_count == 6

    def test_empty_metadata_directory_kept(self, vault, tmp_path):
        """Test empty folders in the metadata tree appear as directory entries."""
        (vault / '.obsidian' / 'snippets').mkdir()
        output = tmp_path / 'out.zip'
        build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            assert '.obsidian/snippets/' in zipf.namelist()
            assert zipf.read('.obsidian/snippets/') == b''

    def test_symlink_stored_as_target(self, vault, tmp_path):
        """Test symbolic links in the metadata tree are stored as their target text."""
        os.symlink('app.json', vault / '.obsidian' / 'current.json')
        output = tmp_path / 'out.zip'
        build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            assert zipf.read('.obsidian/current.json') == b'app.json'

    def test_cyclic_symlink_not_followed(self, vault, tmp_path):
        """Test a link pointing at an ancestor is stored without recursion."""
        os.symlink('..', vault / '.obsidian' / 'plugins' / 'loop')
        output = tmp_path / 'out.zip'
        result, run = build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            assert zipf.read('.obsidian/plugins/loop') == b'..'
            assert not any(n.startswith('.obsidian/plugins/loop/') for n in zipf.namelist())

        assert not result.partial

    def test_unreadable_metadata_file_makes_archive_partial(self, vault, tmp_path, faulty_fs):
        """Test one unreadable metadata file is skipped and the rest are archived."""
        metadata = vault / '.obsidian'
        for i in range(9):
            (metadata / f'setting{i}.json').write_text(f'{{"n": {i}}}')
        (metadata / 'locked.json').write_text('{}')

        output = tmp_path / 'out.zip'
        result, run = build_archive(vault, output, fs=faulty_fs(unreadable={'locked.json'}))

        with zipfile.ZipFile(output) as zipf:
            names = zipf.namelist()
            assert '.obsidian/locked.json' not in names
            for i in range(9):
                assert f'.obsidian/setting{i}.json' in names

        assert result.partial
        assert run.partial
        assert len(result.warnings) == 1
        assert 'locked.json' in result.warnings[0]

    def test_unlistable_metadata_folder_skipped(self, vault, tmp_path, faulty_fs):
        """Test an unreadable metadata folder is skipped with a warning."""
        output = tmp_path / 'out.zip'
        result, run = build_archive(vault, output, fs=faulty_fs(unlistable={'plugins'}))

        with zipfile.ZipFile(output) as zipf:
            names = zipf.namelist()
            assert '.obsidian/app.json' in names
            assert '.obsidian/plugins/sync/main.js' not in names

        assert result.partial

    def test_missing_metadata_root_makes_archive_partial(self, vault, tmp_path):
        """Test a missing metadata folder still produces an archive of the vault."""
        shutil.rmtree(vault / '.obsidian')

        output = tmp_path / 'out.zip'
        result, run = build_archive(vault, output)

        with zipfile.ZipFile(output) as zipf:
            names = zipf.namelist()
            assert 'Welcome.md' in names
            assert not any(n.startswith('.obsidian') for n in names)

        assert result.partial
        assert len(result.warnings) == 1

    def test_primary_read_failure_aborts(self, vault, tmp_path, faulty_fs):
        """Test an unreadable vault file fails the build and removes the partial archive."""
        output = tmp_path / 'out.zip'

        with pytest.raises(CompressionError, match='daily.md'):
            build_archive(vault, output, source_fs=faulty_fs(unreadable={'daily.md'}))

        assert not output.exists()

    def test_unwritable_output_raises(self, vault, tmp_path):
        """Test a missing output directory raises CompressionError."""
        with pytest.raises(CompressionError, match='Failed to create archive'):
            build_archive(vault, tmp_path / 'missing' / 'out.zip')

    def test_progress_reported_per_file(self, vault, tmp_path):
        """Test progress and phase callbacks are driven by the run."""
        percents = []
        phases = []
        run = BackupRun(
            on_progress=lambda r: percents.append(r.percent),
            on_phase=phases.append
        )
        build_archive(vault, tmp_path / 'out.zip', run=run)

        assert run.total_files == 4
        assert percents == [25, 50, 75, 100]
        assert phases == ['verifying']

    def test_store_only_level(self, vault, tmp_path):
        """Test level 0 still produces a readable archive."""
        output = tmp_path / 'out.zip'
        build_archive(vault, output, level=0)

        with zipfile.ZipFile(output) as zipf:
            assert zipf.testzip() is None
            assert zipf.read('Welcome.md') == b'# Welcome'


class TestArchiveFilenames:
    """Test archive naming helpers."""

    def test_generate_archive_filename(self):
        """Test timestamp format and vault name."""
        timestamp = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert generate_archive_filename('My Vault', timestamp) == '2024-01-15T12-30-45_My Vault.zip'

    def test_generate_archive_filename_sanitizes(self):
        """Test characters that are illegal in filenames are replaced."""
        timestamp = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert generate_archive_filename('Work: 2024/Q1?', timestamp) == '2024-01-15T12-30-45_Work_ 2024_Q1_.zip'

    def test_filenames_sort_chronologically(self):
        """Test lexical order matches time order."""
        earlier = generate_archive_filename('v', datetime(2024, 1, 9, 23, 59, 59, tzinfo=timezone.utc))
        later = generate_archive_filename('v', datetime(2024, 1, 10, 0, 0, 0, tzinfo=timezone.utc))

        assert earlier < later

    def test_is_archive_filename(self):
        assert is_archive_filename('2024-01-15T12-30-45_v.zip')
        assert not is_archive_filename('notes.md')

    def test_get_archive_size(self, tmp_path):
        """Test size lookup and missing file error."""
        path = tmp_path / 'a.zip'
        path.write_bytes(b'x' * 10)

        assert get_archive_size(str(path)) == 10
        with pytest.raises(CompressionError, match='Archive not found'):
            get_archive_size(str(tmp_path / 'missing.zip'))
