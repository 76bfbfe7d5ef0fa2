"""
Primary tree source for backup operations.

VaultSource enumerates the files of a vault on local disk as an ordered
sequence of (relative path, content provider) pairs. The vault's metadata
directory is not part of this sequence; the archive builder walks it
separately.
"""

import logging
import os
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path, PurePath
from typing import Iterable, Iterator, List, Optional

from .filesystem import LocalFileSystem

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Raised when the primary tree cannot be enumerated."""
    pass


@dataclass(frozen=True)
class VaultEntry:
    """One file of the primary tree."""
    relative_path: str  # Always forward-slash separated
    full_path: str
    fs: LocalFileSystem

    def read(self) -> bytes:
        return self.fs.read_bytes(self.full_path)


class VaultSource:
    """
    Handler for a vault stored on the local filesystem.
    """

    def __init__(
        self,
        vault_path: str,
        metadata_dir_name: str = '.obsidian',
        exclude_patterns: Optional[List[str]] = None,
        name: Optional[str] = None,
        fs: Optional[LocalFileSystem] = None
    ):
        """
        Initialize vault source.

        Args:
            vault_path: Root directory of the vault
            metadata_dir_name: Name of the metadata directory at the vault root
            exclude_patterns: Glob patterns to exclude (e.g., *.tmp, .trash)
            name: Display name used in archive filenames (default: directory name)
            fs: Filesystem primitives
        """
        self.vault_path = str(Path(vault_path).expanduser())
        self.metadata_dir_name = metadata_dir_name
        self.exclude_patterns = exclude_patterns or []
        self.fs = fs or LocalFileSystem()
        self.name = name or Path(self.vault_path).resolve().name

    @property
    def metadata_path(self) -> str:
        return os.path.join(self.vault_path, self.metadata_dir_name)

    def _should_exclude(self, relative_path: str) -> bool:
        """
        Check if a path should be excluded based on exclude patterns.

        Args:
            relative_path: Forward-slash path relative to the vault root

        Returns:
            True if path matches any exclude pattern, False otherwise
        """
        if not self.exclude_patterns:
            return False

        path_name = PurePath(relative_path).name

        for pattern in self.exclude_patterns:
            # Match against relative path or just the name
            if fnmatch(relative_path, pattern) or fnmatch(path_name, pattern):
                return True
            if pattern.startswith('**/') and fnmatch(path_name, pattern[3:]):
                return True

        return False

    def iter_entries(self, skip_dirs: Optional[Iterable[str]] = None) -> Iterator[VaultEntry]:
        """
        Yield vault files in a stable walk order (sorted per directory).

        Only paths that resolve to regular files are yielded, so broken links
        never reach the archive builder.

        Args:
            skip_dirs: Directories to leave out wherever they sit in the vault,
                e.g. backup destinations given relative to the vault root

        Raises:
            SourceError: If the vault root does not exist
        """
        if not os.path.isdir(self.vault_path):
            raise SourceError(f"Vault path does not exist: {self.vault_path}")

        skipped = {os.path.realpath(d) for d in (skip_dirs or [])}

        for root, dirs, files in os.walk(self.vault_path):
            rel_root = os.path.relpath(root, self.vault_path)
            rel_root = '' if rel_root == '.' else Path(rel_root).as_posix()

            # Prune metadata and excluded directories in place
            kept = []
            for d in sorted(dirs):
                rel_dir = f"{rel_root}/{d}" if rel_root else d
                if not rel_root and d == self.metadata_dir_name:
                    continue
                if self._should_exclude(rel_dir):
                    continue
                if os.path.realpath(os.path.join(root, d)) in skipped:
                    logger.debug(f"Skipping backup destination inside vault: {rel_dir}")
                    continue
                kept.append(d)
            dirs[:] = kept

            for filename in sorted(files):
                rel_path = f"{rel_root}/{filename}" if rel_root else filename
                if self._should_exclude(rel_path):
                    continue
                full_path = os.path.join(root, filename)
                if not os.path.isfile(full_path):
                    logger.debug(f"Skipping non-regular file or broken link: {rel_path}")
                    continue
                yield VaultEntry(
                    relative_path=rel_path,
                    full_path=full_path,
                    fs=self.fs
                )

    def list_entries(self, skip_dirs: Optional[Iterable[str]] = None) -> List[VaultEntry]:
        """Snapshot the primary tree at the start of a run."""
        return list(self.iter_entries(skip_dirs))
