# src/treesync/walker.py
"""
Single-threaded traversal of the source tree.

Both producers walk the tree top-down with `os.scandir`, one directory at
a time, offloading every blocking call to the default executor. Errors on
a single node are logged and that node is skipped; the walk carries on
with its siblings.
"""

import asyncio
import logging
import os
from typing import AsyncIterator, List, Optional, Tuple

from treesync.entry import Entry, EntryKind
from treesync.fsops import read_link
from treesync.queues import ClosableQueue

logger: logging.Logger = logging.getLogger(__name__)

_Listing = List[Tuple[str, os.stat_result]]


def _list_directory(path: str) -> _Listing:
    """
    Lists a directory and `lstat`s each child.

    Children that vanish or cannot be inspected are logged and left out.

    Args:
        path (str): The directory to list.

    Returns:
        List[Tuple[str, os.stat_result]]: Child names with their stat results,
            in name order.
    """
    listing: _Listing = []
    with os.scandir(path) as it:
        for dir_entry in it:
            try:
                st: os.stat_result = dir_entry.stat(follow_symlinks=False)
            except OSError as e:
                logger.error(f"Failed to stat '{dir_entry.path}': {e}")
                continue
            listing.append((dir_entry.name, st))
    listing.sort(key=lambda child: child[0])
    return listing


async def _walk(root: str) -> AsyncIterator[Tuple[str, os.stat_result]]:
    """
    Yields `(relative_path, lstat_result)` for the root and everything below it.

    Directory symlinks are reported but never descended into.

    Args:
        root (str): The tree root.
    """
    loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
    try:
        root_stat: os.stat_result = await loop.run_in_executor(None, os.stat, root)
    except OSError as e:
        logger.error(f"Failed to stat tree root '{root}': {e}")
        return
    yield os.curdir, root_stat

    pending: List[str] = [os.curdir] if EntryKind.from_mode(
        root_stat.st_mode
    ) is EntryKind.DIRECTORY else []
    while pending:
        rel_dir: str = pending.pop()
        try:
            listing: _Listing = await loop.run_in_executor(
                None, _list_directory, os.path.join(root, rel_dir)
            )
        except OSError as e:
            logger.error(
                f"Failed to read directory '{os.path.join(root, rel_dir)}': {e}"
            )
            continue

        subdirs: List[str] = []
        for name, st in listing:
            rel_path: str = os.path.normpath(os.path.join(rel_dir, name))
            yield rel_path, st
            if EntryKind.from_mode(st.st_mode) is EntryKind.DIRECTORY:
                subdirs.append(rel_path)
        # Reversed so that pop() visits children in name order
        pending.extend(reversed(subdirs))


async def iter_directories(root: str) -> AsyncIterator[Entry]:
    """
    Lazily yields an entry for every directory in the tree, root included.

    Args:
        root (str): The source tree root.

    Yields:
        Entry: A directory entry; the root is reported as ".".
    """
    async for rel_path, st in _walk(root):
        if EntryKind.from_mode(st.st_mode) is EntryKind.DIRECTORY:
            yield Entry.from_stat(rel_path, st)


async def iter_files(root: str) -> AsyncIterator[Entry]:
    """
    Lazily yields an entry for every non-directory object in the tree.

    Symlink targets are read here, before the entry is emitted. A symlink
    whose target cannot be read is logged and dropped.

    Args:
        root (str): The source tree root.

    Yields:
        Entry: A regular file, symlink or other entry.
    """
    loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
    async for rel_path, st in _walk(root):
        kind: EntryKind = EntryKind.from_mode(st.st_mode)
        if kind is EntryKind.DIRECTORY:
            continue

        link_target: Optional[str] = None
        if kind is EntryKind.SYMLINK:
            link_path: str = os.path.join(root, rel_path)
            try:
                link_target = await loop.run_in_executor(None, read_link, link_path)
            except OSError as e:
                logger.error(f"Failed to read symbolic link '{link_path}': {e}")
                continue
        yield Entry.from_stat(rel_path, st, link_target)


async def produce(
    entries: AsyncIterator[Entry],
    queue: "ClosableQueue[Entry]",
) -> int:
    """
    Feeds a queue from an entry sequence and closes it when the walk ends.

    The queue is closed exactly once, even if the walk fails unexpectedly.

    Args:
        entries (AsyncIterator[Entry]): The traversal to drain.
        queue (ClosableQueue[Entry]): The queue shared by the consumers.

    Returns:
        int: The number of entries produced.
    """
    count: int = 0
    try:
        async for entry in entries:
            await queue.put(entry)
            count += 1
    finally:
        await queue.close()
    logger.debug(f"Produced {count} entries into {queue.name}.")
    return count
