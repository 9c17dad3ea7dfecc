# src/treesync/worker.py
"""
Defines the pipeline's pool workers.

Each worker is a long-lived task that competes with its siblings for the
next entry on a shared queue, performs the blocking filesystem work for it
on the default executor, and stops once the queue is closed and drained.
A failure on one entry is logged and never stops the worker.
"""

import asyncio
import functools
import logging
from typing import TYPE_CHECKING, Optional

from treesync.entry import Entry, EntryKind, SyncStats
from treesync.exceptions import SyncError
from treesync.fsops import (
    DirectoryMaker,
    copy_file,
    needs_sync,
    replace_symlink,
)
from treesync.queues import ClosableQueue

if TYPE_CHECKING:
    from rich.progress import Progress, TaskID

logger: logging.Logger = logging.getLogger(__name__)


async def materialize_worker(
    worker_id: int,
    target_root: str,
    dir_queue: "ClosableQueue[Entry]",
    maker: Optional[DirectoryMaker] = None,
) -> int:
    """
    Ensures a target directory exists for every directory entry it receives.

    Args:
        worker_id (int): A unique identifier for this worker.
        target_root (str): Root of the target tree.
        dir_queue (ClosableQueue[Entry]): Directory entries from the producer.
        maker (DirectoryMaker, optional): Shared by every worker of the same
            run so that ancestors made for a child get their own mode later.

    Returns:
        int: The number of directories this worker created.
    """
    loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
    maker = maker if maker is not None else DirectoryMaker()
    created: int = 0
    logger.debug(f"Directory worker {worker_id} started.")
    async for entry in dir_queue:
        path: str = entry.under(target_root)
        try:
            if await loop.run_in_executor(None, maker.ensure, path, entry.mode):
                created += 1
        except OSError as e:
            logger.error(f"Failed to create directory '{path}': {e}")
        except Exception:
            logger.exception(f"Unexpected error creating directory '{path}'")
    logger.debug(f"Directory worker {worker_id} done ({created} created).")
    return created


async def check_worker(
    worker_id: int,
    target_root: str,
    file_queue: "ClosableQueue[Entry]",
    update_queue: "ClosableQueue[Entry]",
) -> int:
    """
    Forwards every source entry whose target counterpart is stale.

    An entry whose target cannot be inspected is logged and dropped rather
    than guessed at. This worker never closes `update_queue`; that is left
    to the completion coordinator once every checker has returned.

    Args:
        worker_id (int): A unique identifier for this worker.
        target_root (str): Root of the target tree.
        file_queue (ClosableQueue[Entry]): Non-directory entries from the producer.
        update_queue (ClosableQueue[Entry]): Entries that need syncing.

    Returns:
        int: The number of entries forwarded.
    """
    loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
    forwarded: int = 0
    logger.debug(f"Checker {worker_id} started.")
    async for entry in file_queue:
        path: str = entry.under(target_root)
        try:
            stale: bool = await loop.run_in_executor(None, needs_sync, entry, path)
        except OSError as e:
            logger.error(f"Failed to inspect '{path}': {e}")
            continue
        except Exception:
            logger.exception(f"Unexpected error inspecting '{path}'")
            continue
        if stale:
            logger.debug(f"'{entry.path}' needs syncing.")
            await update_queue.put(entry)
            forwarded += 1
    logger.debug(f"Checker {worker_id} done ({forwarded} forwarded).")
    return forwarded


def _sync_entry(
    entry: Entry,
    source_root: str,
    target_root: str,
    chunk_size: int,
) -> Optional[int]:
    """
    Brings one target entry up to date.

    Returns:
        Optional[int]: Bytes copied, 0 for a recreated link, or None if the
            entry's kind is not handled.
    """
    target_path: str = entry.under(target_root)
    if entry.kind is EntryKind.FILE:
        return copy_file(entry, entry.under(source_root), target_path, chunk_size)
    if entry.kind is EntryKind.SYMLINK:
        replace_symlink(entry, target_path)
        return 0
    return None


async def sync_worker(
    worker_id: int,
    source_root: str,
    target_root: str,
    update_queue: "ClosableQueue[Entry]",
    stats_queue: "asyncio.Queue[SyncStats]",
    chunk_size: int = 1024 * 1024,
    progress_bar: Optional["Progress"] = None,
    progress_task_id: Optional["TaskID"] = None,
) -> None:
    """
    Copies files and recreates links for every stale entry it receives.

    Only regular files and symlinks are handled; other kinds are skipped.
    A failed entry is logged and abandoned, with no retry and no rollback
    of bytes already written. When the queue is exhausted the worker's
    statistics are put on `stats_queue` exactly once.

    Args:
        worker_id (int): A unique identifier for this worker.
        source_root (str): Root of the source tree.
        target_root (str): Root of the target tree.
        update_queue (ClosableQueue[Entry]): Entries that need syncing.
        stats_queue (asyncio.Queue[SyncStats]): Where the final stats go.
        chunk_size (int): Copy buffer size in bytes.
        progress_bar (Progress, optional): The rich Progress instance for UI updates.
        progress_task_id (TaskID, optional): The TaskID for the progress display.
    """
    loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
    stats: SyncStats = SyncStats()
    logger.debug(f"Syncer {worker_id} started.")
    try:
        async for entry in update_queue:
            try:
                copied: Optional[int] = await loop.run_in_executor(
                    None,
                    functools.partial(
                        _sync_entry, entry, source_root, target_root, chunk_size
                    ),
                )
            except SyncError as e:
                logger.error(str(e))
                continue
            except Exception:
                logger.exception(f"Unexpected error syncing '{entry.path}'")
                continue
            if copied is None:
                continue

            stats.files += 1
            stats.bytes += copied
            logger.debug(f"Synced '{entry.path}' ({copied} bytes).")
            if progress_bar is not None and progress_task_id is not None:
                progress_bar.update(progress_task_id, advance=1)
    finally:
        logger.debug(
            f"Syncer {worker_id} done ({stats.files} files, {stats.bytes} bytes)."
        )
        await stats_queue.put(stats)
