"""
Archive building for vault backups.

Archives are zip files written with DEFLATE at a configurable level:
- Primary tree files at their vault-relative paths
- The metadata tree mirrored under its directory name (e.g. .obsidian/)
- Symbolic links stored as files whose content is the link target
"""

import logging
import os
import zipfile
from datetime import datetime, timezone
from typing import Iterable, Optional

from .backup_models import BackupRun, BuildResult
from .filesystem import DIRECTORY, FILE, SYMLINK, DirEntry, LocalFileSystem
from .sources import VaultEntry

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = 'zip'
TIMESTAMP_FORMAT = '%Y-%m-%dT%H-%M-%S'

# Characters not allowed in filenames on common platforms
_UNSAFE_FILENAME_CHARS = '<>:"/\\|?*'


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


class ArchiveBuilder:
    """
    Builds one backup archive from a primary tree and a metadata tree.

    Primary tree read errors propagate and fail the build. Errors inside the
    metadata tree are recorded as warnings on the run and the entry is
    skipped.
    """

    def __init__(self, compression_level: int = 9, fs: Optional[LocalFileSystem] = None):
        """
        Initialize archive builder.

        Args:
            compression_level: zlib level 0-9
            fs: Filesystem primitives used for the metadata tree
        """
        if not 0 <= compression_level <= 9:
            raise ValueError(f"Invalid compression level: {compression_level}. Valid range: 0-9")

        self.compression_level = compression_level
        self.fs = fs or LocalFileSystem()

    def build(
        self,
        entries: Iterable[VaultEntry],
        metadata_path: str,
        metadata_prefix: str,
        output_path: str,
        run: BackupRun
    ) -> BuildResult:
        """
        Write the archive to output_path.

        Args:
            entries: Primary tree entries, added in the given order
            metadata_path: Filesystem root of the metadata tree
            metadata_prefix: Archive directory the metadata tree is mirrored under
            output_path: Where to write the zip file
            run: Accumulator for progress, warnings and logs

        Returns:
            BuildResult describing the written archive

        Raises:
            CompressionError: If the archive cannot be written or a primary
                tree entry cannot be read
        """
        entries = list(entries)
        run.total_files = len(entries)

        try:
            with zipfile.ZipFile(
                output_path, 'w',
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compression_level
            ) as zipf:
                self._add_primary_entries(zipf, entries, run)

                run.enter_phase('verifying')
                self._add_metadata_tree(zipf, metadata_path, metadata_prefix, run)
        except Exception as e:
            # Clean up partial archive on failure
            if os.path.exists(output_path):
                try:
                    os.remove(output_path)
                except OSError as cleanup_error:
                    logger.warning(f"Failed to remove partial archive {output_path}: {cleanup_error}")
            if isinstance(e, CompressionError):
                raise
            raise CompressionError(f"Failed to create archive: {e}") from e

        return BuildResult(
            archive_path=output_path,
            file_count=run.processed_files + run.metadata_files,
            partial=run.partial,
            warnings=list(run.warnings)
        )

    def _add_primary_entries(self, zipf: zipfile.ZipFile, entries, run: BackupRun):
        """Add primary tree files. A read failure aborts the build."""
        for entry in entries:
            try:
                content = entry.read()
            except OSError as e:
                raise CompressionError(f"Failed to read vault file {entry.relative_path}: {e}") from e

            zipf.writestr(entry.relative_path, content)
            run.file_added()

    def _add_metadata_tree(self, zipf: zipfile.ZipFile, root_path: str, prefix: str, run: BackupRun):
        """
        Mirror the metadata tree under prefix.

        An unreadable root leaves the archive without a metadata tree and
        marks the run partial.
        """
        try:
            children = self.fs.list_dir(root_path)
        except OSError as e:
            run.warn(f"Metadata folder {prefix} could not be read, archive is partial: {e}")
            return

        for child in children:
            self._add_metadata_entry(zipf, child, f"{prefix}/{child.name}", run)

    def _add_metadata_entry(self, zipf: zipfile.ZipFile, entry: DirEntry, arcname: str, run: BackupRun):
        try:
            kind = self.fs.lstat_kind(entry.path)
        except OSError as e:
            run.warn(f"Skipping problematic path {arcname}: {e}")
            return

        if kind == SYMLINK:
            # Store the target instead of following it, so cyclic links cannot recurse
            try:
                target = self.fs.readlink(entry.path)
            except OSError as e:
                run.warn(f"Skipping unreadable link {arcname}: {e}")
                return
            zipf.writestr(arcname, target.encode('utf-8'))
            run.metadata_files += 1

        elif kind == DIRECTORY:
            zipf.writestr(f"{arcname}/", b'')
            try:
                children = self.fs.list_dir(entry.path)
            except OSError as e:
                run.warn(f"Skipping unreadable folder {arcname}: {e}")
                return
            for child in children:
                self._add_metadata_entry(zipf, child, f"{arcname}/{child.name}", run)

        elif kind == FILE:
            content = self._read_metadata_file(entry.path, arcname, run)
            if content is not None:
                zipf.writestr(arcname, content)
                run.metadata_files += 1

        else:
            logger.debug(f"Skipping special file {arcname}")

    def _read_metadata_file(self, path: str, arcname: str, run: BackupRun) -> Optional[bytes]:
        """Read raw bytes, falling back to a text read. None if both fail."""
        try:
            return self.fs.read_bytes(path)
        except OSError as e:
            logger.debug(f"Binary read failed for {arcname}, retrying as text: {e}")

        try:
            return self.fs.read_text(path).encode('utf-8')
        except (OSError, UnicodeError) as e:
            run.warn(f"Error reading file {arcname}: {e}")
            return None


def generate_archive_filename(vault_name: str, timestamp: Optional[datetime] = None) -> str:
    """
    Generate a standardized archive filename.

    Format: {YYYY-MM-DDTHH-MM-SS}_{vault_name}.zip (UTC), so that names sort
    chronologically.

    Args:
        vault_name: Display name of the vault
        timestamp: Time of the backup (default: now)

    Returns:
        Filename (without path)
    """
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)

    safe_name = "".join('_' if c in _UNSAFE_FILENAME_CHARS else c for c in vault_name).strip()

    return f"{timestamp.strftime(TIMESTAMP_FORMAT)}_{safe_name or 'vault'}.{ARCHIVE_EXTENSION}"


def is_archive_filename(filename: str) -> bool:
    """True for names that follow the archive naming convention."""
    return filename.endswith(f".{ARCHIVE_EXTENSION}")


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
