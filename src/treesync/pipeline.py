# src/treesync/pipeline.py
"""Core orchestration logic for the treesync pipeline."""

import asyncio
import logging
import time
from contextlib import nullcontext
from typing import Any, ContextManager, List, Optional, Sequence

from rich.progress import (
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from treesync.config import AppConfig, Config
from treesync.entry import Entry, SyncStats
from treesync.queues import ClosableQueue
from treesync.walker import iter_directories, iter_files, produce
from treesync.fsops import DirectoryMaker
from treesync.worker import check_worker, materialize_worker, sync_worker

logger: logging.Logger = logging.getLogger(__name__)


async def close_when_done(
    queue: "ClosableQueue[Any]",
    workers: Sequence["asyncio.Task[Any]"],
) -> None:
    """
    Closes a queue shared by several producers once all of them have finished.

    No individual producer owns the queue, so none of them may close it.

    Args:
        queue (ClosableQueue[Any]): The queue fed by `workers`.
        workers (Sequence[asyncio.Task[Any]]): Every task that puts into `queue`.
    """
    try:
        await asyncio.gather(*workers, return_exceptions=True)
    finally:
        await queue.close()


async def aggregate_stats(
    stats_queue: "asyncio.Queue[SyncStats]",
    count: int,
) -> SyncStats:
    """
    Sums the statistics reported by a pool of executor workers.

    Args:
        stats_queue (asyncio.Queue[SyncStats]): Where each worker reports once.
        count (int): The number of workers in the pool.

    Returns:
        SyncStats: The grand total.
    """
    total: SyncStats = SyncStats()
    for _ in range(count):
        total = total + await stats_queue.get()
    return total


class TreeSyncPipeline:
    """Orchestrates a single mirror run from start to finish."""

    def __init__(self, config: Config) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            config (Config): The run configuration.
        """
        self._config: Config = config
        self._source: str = str(config.source)
        self._target: str = str(config.target)

    async def run(self) -> SyncStats:
        """
        Executes both phases of the pipeline.

        The directory phase is fully drained before the file phase starts,
        since file writes assume their parent directory exists.

        Returns:
            SyncStats: Totals over every synced entry.
        """
        logger.info(f"Syncing '{self._source}' to '{self._target}'.")
        started: float = time.monotonic()

        created: int = await self._sync_directories()
        logger.info(f"Directory layout synced ({created} directories created).")

        stats: SyncStats = await self._sync_files()
        logger.info(
            f"File sync finished: {stats.files} entries, {stats.bytes} bytes "
            f"in {time.monotonic() - started:.2f}s."
        )
        return stats

    async def _sync_directories(self) -> int:
        """
        Runs phase one: directory producer and materializer pool.

        Returns:
            int: The number of target directories created.
        """
        app: AppConfig = self._config.app
        dir_queue: ClosableQueue[Entry] = ClosableQueue(
            app.queue_maxsize, name="directory queue"
        )

        producer_task: asyncio.Task[int] = asyncio.create_task(
            produce(iter_directories(self._source), dir_queue)
        )
        maker: DirectoryMaker = DirectoryMaker()
        worker_tasks: List[asyncio.Task[int]] = [
            asyncio.create_task(
                materialize_worker(i, self._target, dir_queue, maker)
            )
            for i in range(app.materializer_concurrency)
        ]

        # Phase barrier: every worker must have drained the queue
        results: List[Any] = await asyncio.gather(
            producer_task, *worker_tasks, return_exceptions=True
        )
        self._log_failures("directory phase", results)
        return sum(r for r in results[1:] if isinstance(r, int))

    async def _sync_files(self) -> SyncStats:
        """
        Runs phase two: file producer, checker pool, coordinator, executor pool.

        Returns:
            SyncStats: Totals aggregated over every executor worker.
        """
        app: AppConfig = self._config.app
        file_queue: ClosableQueue[Entry] = ClosableQueue(
            app.queue_maxsize, name="file queue"
        )
        update_queue: ClosableQueue[Entry] = ClosableQueue(
            app.queue_maxsize, name="update queue"
        )
        stats_queue: asyncio.Queue[SyncStats] = asyncio.Queue()

        progress_ctx: ContextManager[Optional[Progress]] = (
            Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                transient=True,
            )
            if app.show_progress
            else nullcontext()
        )

        with progress_ctx as progress:
            task_id: Optional[TaskID] = (
                progress.add_task("Syncing...", total=None)
                if progress is not None
                else None
            )

            producer_task: asyncio.Task[int] = asyncio.create_task(
                produce(iter_files(self._source), file_queue)
            )
            checker_tasks: List[asyncio.Task[int]] = [
                asyncio.create_task(
                    check_worker(i, self._target, file_queue, update_queue)
                )
                for i in range(app.checker_concurrency)
            ]
            closer_task: asyncio.Task[None] = asyncio.create_task(
                close_when_done(update_queue, checker_tasks)
            )
            syncer_tasks: List[asyncio.Task[None]] = [
                asyncio.create_task(
                    sync_worker(
                        worker_id=i,
                        source_root=self._source,
                        target_root=self._target,
                        update_queue=update_queue,
                        stats_queue=stats_queue,
                        chunk_size=app.copy_chunk_size,
                        progress_bar=progress,
                        progress_task_id=task_id,
                    )
                )
                for i in range(app.syncer_concurrency)
            ]

            total: SyncStats = await aggregate_stats(
                stats_queue, app.syncer_concurrency
            )

            results: List[Any] = await asyncio.gather(
                producer_task,
                *checker_tasks,
                closer_task,
                *syncer_tasks,
                return_exceptions=True,
            )
            self._log_failures("file phase", results)

        return total

    @staticmethod
    def _log_failures(phase: str, results: List[Any]) -> None:
        """Logs any task of a phase that ended with an exception."""
        for result in results:
            if isinstance(result, BaseException):
                logger.error(
                    f"A task in the {phase} failed: {type(result).__name__} - {result}",
                    exc_info=result,
                )
