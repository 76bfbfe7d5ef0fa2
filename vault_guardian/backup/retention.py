"""
Retention policy enforcement for backups.

Keeps the newest N archives in a destination directory and deletes the rest.
Each destination is pruned independently with its own keep-count.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .compression import is_archive_filename
from .filesystem import FILE, LocalFileSystem

logger = logging.getLogger(__name__)


@dataclass
class PruneResult:
    """Summary of one prune() call."""
    directory: str
    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class RetentionManager:
    """
    Manages retention policy enforcement for backup destinations.

    prune() never raises: listing and deletion failures are logged and
    returned in the PruneResult.
    """

    def __init__(self, fs: Optional[LocalFileSystem] = None):
        """Initialize retention manager."""
        self.fs = fs or LocalFileSystem()

    def prune(self, directory: str, keep_count: int) -> PruneResult:
        """
        Delete all but the keep_count most recently modified archives.

        Args:
            directory: Destination directory
            keep_count: Number of archives to keep (0 or less = keep all)

        Returns:
            PruneResult with kept/deleted names and errors
        """
        result = PruneResult(directory=directory)

        if keep_count <= 0:
            logger.debug(f"Retention unlimited for {directory}, skipping")
            return result

        try:
            candidates = self._list_archives(directory, result)
        except OSError as e:
            error_msg = f"Error cleaning old backups in {directory}: {e}"
            logger.error(error_msg)
            result.errors.append(error_msg)
            return result

        # Newest first; name breaks mtime ties
        candidates.sort(key=lambda c: (c[1], c[0]), reverse=True)

        result.kept = [name for name, _ in candidates[:keep_count]]

        for name, _ in candidates[keep_count:]:
            path = os.path.join(directory, name)
            try:
                self.fs.delete(path)
                result.deleted.append(name)
                logger.info(f"Deleted old backup: {path}")
            except OSError as e:
                error_msg = f"Failed to delete backup {path}: {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)

        logger.info(
            f"Retention for {directory}: kept {len(result.kept)}, "
            f"deleted {len(result.deleted)}, errors {len(result.errors)}"
        )
        return result

    def _list_archives(self, directory: str, result: PruneResult) -> list:
        """
        List (name, mtime) for archive files in directory.

        Entries whose type or mtime cannot be read are left alone.

        Raises:
            OSError: If the directory cannot be listed
        """
        archives = []

        for entry in self.fs.list_dir(directory):
            if not is_archive_filename(entry.name):
                continue
            try:
                if self.fs.lstat_kind(entry.path) != FILE:
                    continue
                archives.append((entry.name, self.fs.getmtime(entry.path)))
            except OSError as e:
                error_msg = f"Failed to stat backup {entry.path}: {e}"
                logger.warning(error_msg)
                result.errors.append(error_msg)

        return archives
