# tests/unit/test_worker.py
"""
Unit tests for the pool workers.

Each worker is fed from a pre-filled, already-closed queue so that the
tests exercise the per-entry logic and the exhaustion behaviour without
needing the producers.
"""

import asyncio
import os
import stat
from pathlib import Path
from typing import Callable, List
from unittest.mock import patch

import pytest

from treesync.entry import Entry, EntryKind, SyncStats
from treesync.fsops import DirectoryMaker
from treesync.queues import ClosableQueue
from treesync.worker import check_worker, materialize_worker, sync_worker

FileFactory = Callable[..., Path]
LinkFactory = Callable[[Path, str, str], Path]


async def _closed_queue(entries: List[Entry]) -> "ClosableQueue[Entry]":
    """Build a queue holding `entries` followed by the close."""
    queue: ClosableQueue[Entry] = ClosableQueue()
    for entry in entries:
        await queue.put(entry)
    await queue.close()
    return queue


def _entry_for(root: Path, rel_path: str) -> Entry:
    """Build an entry for an object in a test tree, reading links as needed."""
    p: Path = root / rel_path
    link_target = os.readlink(p) if p.is_symlink() else None
    return Entry.from_stat(rel_path, os.lstat(p), link_target)


async def _drain(queue: "ClosableQueue[Entry]") -> List[Entry]:
    """Collect everything left in a closed queue."""
    return [entry async for entry in queue]


# --- materialize_worker ---
@pytest.mark.asyncio
async def test_materialize_worker_creates_directories(
    source_tree: Path, target_tree: Path
) -> None:
    """
    Tests that each directory entry ends up as a target directory.
    """
    # Arrange
    (source_tree / "a" / "b").mkdir(parents=True)
    os.chmod(source_tree / "a", 0o750)
    queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, "a"), _entry_for(source_tree, "a/b")]
    )

    # Act
    created: int = await materialize_worker(0, str(target_tree), queue)

    # Assert
    assert created == 2
    assert (target_tree / "a" / "b").is_dir()
    assert stat.S_IMODE((target_tree / "a").stat().st_mode) == 0o750


@pytest.mark.asyncio
async def test_materialize_worker_child_before_parent_keeps_parent_mode(
    source_tree: Path, target_tree: Path
) -> None:
    """
    Tests that a parent dequeued after its child still gets its own mode.

    Arrange:
        - Source `p` (0o755) holding `p/c` (0o700), queued child first.
    Act:
        - Drain the queue with two workers sharing one DirectoryMaker.
    Assert:
        - Target `p` is 0o755 and `p/c` is 0o700.
    """
    # Arrange
    (source_tree / "p" / "c").mkdir(parents=True)
    os.chmod(source_tree / "p", 0o755)
    os.chmod(source_tree / "p" / "c", 0o700)
    queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, "p/c"), _entry_for(source_tree, "p")]
    )
    maker: DirectoryMaker = DirectoryMaker()

    # Act
    await asyncio.gather(
        materialize_worker(0, str(target_tree), queue, maker),
        materialize_worker(1, str(target_tree), queue, maker),
    )

    # Assert
    assert stat.S_IMODE((target_tree / "p").stat().st_mode) == 0o755
    assert stat.S_IMODE((target_tree / "p" / "c").stat().st_mode) == 0o700


@pytest.mark.asyncio
async def test_materialize_worker_logs_and_continues(
    source_tree: Path,
    target_tree: Path,
    file_factory: FileFactory,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """
    Tests that a failed directory does not stop the worker.
    """
    (source_tree / "blocked").mkdir()
    (source_tree / "ok").mkdir()
    file_factory(target_tree, "blocked", content=b"a file in the way")
    queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, "blocked"), _entry_for(source_tree, "ok")]
    )

    created: int = await materialize_worker(0, str(target_tree), queue)

    assert created == 1
    assert (target_tree / "ok").is_dir()
    assert "Failed to create directory" in caplog.text


# --- check_worker ---
@pytest.mark.asyncio
async def test_check_worker_forwards_only_stale_entries(
    source_tree: Path,
    target_tree: Path,
    file_factory: FileFactory,
    link_factory: LinkFactory,
) -> None:
    """
    Tests that up-to-date entries are filtered out and stale ones forwarded.
    """
    # Arrange
    file_factory(source_tree, "same.txt", content=b"same")
    file_factory(target_tree, "same.txt", content=b"same")
    file_factory(source_tree, "new.txt", content=b"new")
    file_factory(source_tree, "changed.txt", content=b"v2")
    file_factory(target_tree, "changed.txt", content=b"v2", mtime_ns=0)
    link_factory(source_tree, "link", "same.txt")
    link_factory(target_tree, "link", "same.txt")
    names: List[str] = ["same.txt", "new.txt", "changed.txt", "link"]
    file_queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, n) for n in names]
    )
    update_queue: ClosableQueue[Entry] = ClosableQueue()

    # Act
    forwarded: int = await check_worker(0, str(target_tree), file_queue, update_queue)
    await update_queue.close()

    # Assert
    assert forwarded == 2
    assert {e.path for e in await _drain(update_queue)} == {"new.txt", "changed.txt"}


@pytest.mark.asyncio
async def test_check_worker_drops_uninspectable_entries(
    source_tree: Path,
    target_tree: Path,
    file_factory: FileFactory,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """
    Tests that an inspection failure drops the entry instead of forwarding it.
    """
    file_factory(source_tree, "f.txt")
    file_queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, "f.txt")]
    )
    update_queue: ClosableQueue[Entry] = ClosableQueue()

    with patch(
        "treesync.worker.needs_sync", side_effect=PermissionError("denied")
    ):
        forwarded: int = await check_worker(
            0, str(target_tree), file_queue, update_queue
        )

    assert forwarded == 0
    assert update_queue.empty()
    assert not update_queue.closed
    assert "Failed to inspect" in caplog.text


# --- sync_worker ---
@pytest.mark.asyncio
async def test_sync_worker_syncs_files_and_links(
    source_tree: Path,
    target_tree: Path,
    file_factory: FileFactory,
    link_factory: LinkFactory,
) -> None:
    """
    Tests that files are copied, links recreated and stats reported once.
    """
    # Arrange
    file_factory(source_tree, "a.txt", content=b"x" * 10)
    file_factory(source_tree, "b.txt", content=b"y" * 20)
    link_factory(source_tree, "c", "../x")
    other: Entry = Entry("fifo", EntryKind.OTHER, 0, stat.S_IFIFO | 0o644, 0)
    update_queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, n) for n in ("a.txt", "b.txt", "c")] + [other]
    )
    stats_queue: asyncio.Queue[SyncStats] = asyncio.Queue()

    # Act
    await sync_worker(
        0, str(source_tree), str(target_tree), update_queue, stats_queue
    )

    # Assert
    assert stats_queue.qsize() == 1
    assert stats_queue.get_nowait() == SyncStats(files=3, bytes=30)
    assert (target_tree / "a.txt").read_bytes() == b"x" * 10
    assert os.readlink(target_tree / "c") == "../x"
    assert not (target_tree / "fifo").exists()


@pytest.mark.asyncio
async def test_sync_worker_abandons_failed_entries(
    source_tree: Path,
    target_tree: Path,
    file_factory: FileFactory,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """
    Tests that a failing entry is logged, not counted, and not fatal.
    """
    # Arrange
    file_factory(source_tree, "missing/parent.txt", content=b"data")
    file_factory(source_tree, "ok.txt", content=b"fine")
    update_queue: ClosableQueue[Entry] = await _closed_queue(
        [
            _entry_for(source_tree, "missing/parent.txt"),
            _entry_for(source_tree, "ok.txt"),
        ]
    )
    stats_queue: asyncio.Queue[SyncStats] = asyncio.Queue()

    # Act
    await sync_worker(
        0, str(source_tree), str(target_tree), update_queue, stats_queue
    )

    # Assert
    assert stats_queue.get_nowait() == SyncStats(files=1, bytes=4)
    assert "failed to create file" in caplog.text


@pytest.mark.asyncio
async def test_sync_workers_compete_without_duplicates(
    source_tree: Path, target_tree: Path, file_factory: FileFactory
) -> None:
    """
    Tests that several workers share one queue and each entry is synced once.
    """
    # Arrange
    names: List[str] = [f"f{i}.txt" for i in range(20)]
    for name in names:
        file_factory(source_tree, name, content=b"12345")
    update_queue: ClosableQueue[Entry] = await _closed_queue(
        [_entry_for(source_tree, n) for n in names]
    )
    stats_queue: asyncio.Queue[SyncStats] = asyncio.Queue()

    # Act
    await asyncio.gather(
        *(
            sync_worker(i, str(source_tree), str(target_tree), update_queue, stats_queue)
            for i in range(3)
        )
    )

    # Assert
    reported: List[SyncStats] = [stats_queue.get_nowait() for _ in range(3)]
    assert stats_queue.empty()
    assert sum(s.files for s in reported) == 20
    assert sum(s.bytes for s in reported) == 100
