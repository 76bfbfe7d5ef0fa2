"""
Filesystem primitives used by the backup core.

All disk access made by the archive builder, the retention manager and the
orchestrator goes through LocalFileSystem so that a different implementation
(for example one that injects faults in tests) can be swapped in.
"""

import os
import shutil
import stat
from dataclasses import dataclass
from typing import List


class StorageError(Exception):
    """Raised when a destination cannot be prepared or written."""
    pass


FILE = 'file'
DIRECTORY = 'directory'
SYMLINK = 'symlink'
OTHER = 'other'


@dataclass(frozen=True)
class DirEntry:
    """A directory listing entry with its (non-followed) type."""
    name: str
    path: str


def _kind_from_mode(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return SYMLINK
    if stat.S_ISDIR(mode):
        return DIRECTORY
    if stat.S_ISREG(mode):
        return FILE
    return OTHER


class LocalFileSystem:
    """
    Thin wrapper over os/shutil.

    Errors are the native OSError subclasses; callers decide which of them
    are fatal.
    """

    def read_bytes(self, path: str) -> bytes:
        with open(path, 'rb') as f:
            return f.read()

    def read_text(self, path: str, encoding: str = 'utf-8') -> str:
        with open(path, 'r', encoding=encoding) as f:
            return f.read()

    def write_bytes(self, path: str, data: bytes):
        with open(path, 'wb') as f:
            f.write(data)

    def makedirs(self, path: str):
        """Create a directory recursively. An existing directory is not an error."""
        os.makedirs(path, exist_ok=True)

    def list_dir(self, path: str) -> List[DirEntry]:
        """
        List a directory in the order the OS returns it.

        Raises:
            OSError: If the directory cannot be read
        """
        with os.scandir(path) as it:
            return [DirEntry(name=entry.name, path=entry.path) for entry in it]

    def lstat_kind(self, path: str) -> str:
        """Return the entry type without following symbolic links."""
        return _kind_from_mode(os.lstat(path).st_mode)

    def readlink(self, path: str) -> str:
        return os.readlink(path)

    def getmtime(self, path: str) -> float:
        return os.path.getmtime(path)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def copy(self, source: str, destination: str):
        shutil.copy2(source, destination)

    def move(self, source: str, destination: str):
        shutil.move(source, destination)

    def delete(self, path: str):
        os.remove(path)
