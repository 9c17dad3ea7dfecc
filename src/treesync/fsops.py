# src/treesync/fsops.py
"""
Blocking filesystem operations performed by the pipeline workers.

Everything here runs on a worker thread via the event loop's executor.
Directory creation tolerates concurrent creators and only locks around
ancestors it creates on behalf of a child; link replacement removes
before it recreates.
"""

import errno
import logging
import os
import shutil
import stat
import threading
from typing import Set

from treesync.entry import Entry, EntryKind
from treesync.exceptions import SyncError

logger: logging.Logger = logging.getLogger(__name__)


class DirectoryMaker:
    """
    Creates target directories for a single run, from many threads at once.

    Several workers may race on overlapping ancestors, so creation is
    attempted first and an existing directory counts as success. Every
    directory created here receives exact permission bits regardless of
    the process umask.

    A child can be handled before its parent, in which case the missing
    parent is created on the child's behalf with the child's mode. Such
    directories are remembered, and when the parent's own entry arrives
    its mode is applied to them.
    """

    def __init__(self) -> None:
        """Initialize an empty record of directories made on a child's behalf."""
        self._lock: threading.RLock = threading.RLock()
        self._borrowed: Set[str] = set()

    def ensure(self, path: str, mode: int) -> bool:
        """
        Creates a directory and all of its missing ancestors.

        Args:
            path (str): The normalized directory path to create.
            mode (int): Source mode whose permission bits are applied.

        Returns:
            bool: True if `path` itself was created by this call.

        Raises:
            OSError: If creation failed for any reason other than pre-existence.
        """
        permissions: int = stat.S_IMODE(mode)
        try:
            os.mkdir(path, permissions)
        except FileExistsError:
            return self._existing(path, permissions)
        except FileNotFoundError:
            self._make_ancestor(_parent_of(path), mode)
            try:
                os.mkdir(path, permissions)
            except FileExistsError:
                return self._existing(path, permissions)
        os.chmod(path, permissions)
        logger.debug(f"Created directory '{path}'")
        return True

    def _existing(self, path: str, permissions: int) -> bool:
        """Handles a directory that is already there; always returns False."""
        if not os.path.isdir(path):
            raise FileExistsError(errno.EEXIST, "Not a directory", path)
        with self._lock:
            if path in self._borrowed:
                self._borrowed.discard(path)
                os.chmod(path, permissions)
                logger.debug(f"Applied own mode to directory '{path}'")
        return False

    def _make_ancestor(self, path: str, mode: int) -> None:
        """Creates a missing ancestor on behalf of a descendant."""
        permissions: int = stat.S_IMODE(mode)
        # Creation and registration happen under one lock so that the
        # ancestor's own entry cannot slip in between them
        with self._lock:
            try:
                os.mkdir(path, permissions)
            except FileExistsError:
                if not os.path.isdir(path):
                    raise
                return
            except FileNotFoundError:
                self._make_ancestor(_parent_of(path), mode)
                try:
                    os.mkdir(path, permissions)
                except FileExistsError:
                    if not os.path.isdir(path):
                        raise
                    return
            os.chmod(path, permissions)
            self._borrowed.add(path)
            logger.debug(f"Created ancestor directory '{path}'")


def _parent_of(path: str) -> str:
    """Returns the parent of `path`, raising if there is none left to create."""
    parent: str = os.path.dirname(path)
    if not parent or parent == path:
        raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
    return parent


def read_link(path: str) -> str:
    """
    Reads where a symlink points.

    Absolute targets are returned verbatim; relative targets are returned
    relative to the link's own directory, exactly as they are stored.

    Args:
        path (str): Path of the symlink.

    Returns:
        str: The link target.
    """
    return os.readlink(path)


def needs_sync(entry: Entry, target_path: str) -> bool:
    """
    Decides whether the target counterpart of a source entry is stale.

    Only size, mode and modification time are compared; contents are not.

    Args:
        entry (Entry): The source entry.
        target_path (str): Where the entry lives in the target tree.

    Returns:
        bool: True if the target must be updated.

    Raises:
        OSError: If the target could not be inspected for a reason other
            than not existing.
    """
    try:
        st: os.stat_result = os.lstat(target_path)
    except FileNotFoundError:
        return True

    if entry.kind is EntryKind.SYMLINK:
        if not stat.S_ISLNK(st.st_mode):
            return True
        return read_link(target_path) != entry.link_target

    return (
        entry.size != st.st_size
        or entry.mode != st.st_mode
        or entry.mtime_ns != st.st_mtime_ns
    )


def copy_file(
    entry: Entry,
    source_path: str,
    target_path: str,
    chunk_size: int = 1024 * 1024,
) -> int:
    """
    Copies a regular file and applies the source's mode and mtime.

    Args:
        entry (Entry): The source entry being synced.
        source_path (str): Absolute or cwd-relative source path.
        target_path (str): Absolute or cwd-relative target path.
        chunk_size (int): Read buffer size in bytes.

    Returns:
        int: The number of bytes copied.

    Raises:
        SyncError: If any step fails. Bytes already written are left as is.
    """
    try:
        if os.path.islink(target_path):
            os.unlink(target_path)
    except OSError as e:
        raise SyncError(f"failed to remove symbolic link {target_path}: {e}") from e

    try:
        src = open(source_path, "rb")
    except OSError as e:
        raise SyncError(f"failed to open file {source_path} for syncing: {e}") from e

    with src:
        try:
            dst = open(target_path, "wb")
        except OSError as e:
            raise SyncError(
                f"failed to create file {target_path} for syncing: {e}"
            ) from e
        with dst:
            try:
                shutil.copyfileobj(src, dst, chunk_size)
                dst.flush()
                copied: int = os.fstat(dst.fileno()).st_size
            except OSError as e:
                raise SyncError(
                    f"failed to copy file {source_path} to {target_path}: {e}"
                ) from e

    try:
        os.chmod(target_path, entry.permissions)
    except OSError as e:
        raise SyncError(f"failed to change file mode for {target_path}: {e}") from e

    try:
        os.utime(target_path, ns=(entry.mtime_ns, entry.mtime_ns))
    except OSError as e:
        raise SyncError(
            f"failed to change file modification time for {target_path}: {e}"
        ) from e

    return copied


def replace_symlink(entry: Entry, target_path: str) -> None:
    """
    Points the target path at the entry's link target.

    Whatever exists at `target_path` is removed first, since a symlink
    cannot be overwritten in place.

    Args:
        entry (Entry): The source symlink entry.
        target_path (str): Where the link must be created.

    Raises:
        SyncError: If removal or link creation fails.
    """
    if entry.link_target is None:
        raise SyncError(f"symbolic link {entry.path} has no resolved target")

    try:
        os.unlink(target_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        if e.errno not in (errno.EISDIR, errno.EPERM) or not os.path.isdir(
            target_path
        ):
            raise SyncError(
                f"failed to remove stale entry {target_path}: {e}"
            ) from e
        try:
            os.rmdir(target_path)
        except OSError as e:
            raise SyncError(
                f"failed to remove stale directory {target_path}: {e}"
            ) from e

    try:
        os.symlink(entry.link_target, target_path)
    except OSError as e:
        raise SyncError(
            f"failed to create symbolic link {target_path} to {entry.link_target}: {e}"
        ) from e
