# src/treesync/entry.py
"""
Value records passed between the pipeline stages.

An `Entry` describes one filesystem object relative to a tree root and is
never modified once produced. `SyncStats` is the per-worker accumulator
that executor workers hand to the aggregator when they finish.
"""

import os
import stat
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EntryKind(Enum):
    """The type of filesystem object an entry describes."""

    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"
    OTHER = "other"

    @classmethod
    def from_mode(cls, mode: int) -> "EntryKind":
        """
        Classifies an `st_mode` value as taken by `lstat`.

        Args:
            mode (int): The raw mode, type bits included.

        Returns:
            EntryKind: The matching kind.
        """
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISREG(mode):
            return cls.FILE
        return cls.OTHER


@dataclass(frozen=True)
class Entry:
    """
    One filesystem object under a tree root.

    Attributes:
        path (str): Root-relative, normalized path. The root itself is ".".
        kind (EntryKind): What the object is.
        size (int): Byte count; only meaningful for regular files.
        mode (int): Permission plus type bits, compared for equality.
        mtime_ns (int): Modification time in nanoseconds.
        link_target (str, optional): Where a symlink points. Absolute
            targets are kept verbatim, relative ones stay relative to the
            link's own directory. None for anything but symlinks.
    """

    path: str
    kind: EntryKind
    size: int
    mode: int
    mtime_ns: int
    link_target: Optional[str] = None

    @classmethod
    def from_stat(
        cls,
        path: str,
        st: os.stat_result,
        link_target: Optional[str] = None,
    ) -> "Entry":
        """
        Builds an entry from an `lstat` result.

        Args:
            path (str): The root-relative path of the object.
            st (os.stat_result): The result of `os.lstat` on the object.
            link_target (str, optional): The already-read symlink target.

        Returns:
            Entry: The new entry.
        """
        kind: EntryKind = EntryKind.from_mode(st.st_mode)
        return cls(
            path=os.path.normpath(path).lstrip(os.sep) or os.curdir,
            kind=kind,
            size=st.st_size if kind is EntryKind.FILE else 0,
            mode=st.st_mode,
            mtime_ns=st.st_mtime_ns,
            link_target=link_target if kind is EntryKind.SYMLINK else None,
        )

    @property
    def permissions(self) -> int:
        """The permission bits of `mode`, as accepted by `os.chmod`."""
        return stat.S_IMODE(self.mode)

    def under(self, root: str) -> str:
        """Joins this entry's path onto another tree root."""
        return os.path.normpath(os.path.join(root, self.path))


@dataclass
class SyncStats:
    """
    Statistics gathered by one executor worker.

    Attributes:
        files (int): Entries brought up to date.
        bytes (int): Bytes copied into regular files.
    """

    files: int = 0
    bytes: int = 0

    def __add__(self, other: "SyncStats") -> "SyncStats":
        return SyncStats(files=self.files + other.files, bytes=self.bytes + other.bytes)

    @property
    def megabytes(self) -> float:
        """Bytes copied, in MiB."""
        return self.bytes / 1024 / 1024
