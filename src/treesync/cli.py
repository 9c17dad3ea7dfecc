# src/treesync/cli.py
"""Command-line interface for the treesync tool."""

import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Any

import click
from rich.logging import RichHandler

from treesync.config import AppConfig, Config, normalize_tree_path, validate_trees
from treesync.entry import SyncStats
from treesync.exceptions import TreeSyncError
from treesync.pipeline import TreeSyncPipeline

logger: logging.Logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)


async def main_async(config: Config) -> SyncStats:
    """
    Asynchronously execute the sync pipeline.

    Args:
        config (Config): The run configuration.

    Returns:
        SyncStats: Totals reported by the pipeline.
    """
    pipeline: TreeSyncPipeline = TreeSyncPipeline(config)
    return await pipeline.run()


def format_summary(stats: SyncStats, elapsed_s: float) -> str:
    """
    Renders the end-of-run summary line.

    Args:
        stats (SyncStats): Totals over the run.
        elapsed_s (float): Wall-clock duration of the run in seconds.

    Returns:
        str: The human-readable summary.
    """
    rate: float = stats.megabytes / elapsed_s if elapsed_s > 0 else 0.0
    return (
        f"Synced {stats.files} files with {stats.megabytes:.5g} MB "
        f"in {elapsed_s:.5g} s ({rate:.5g} MB/s)"
    )


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument("source", type=str)
@click.argument("target", type=str)
@click.option(
    "--dir-workers",
    type=click.IntRange(min=1),
    default=3,
    help="Number of concurrent directory creators.",
    show_default=True,
)
@click.option(
    "--checkers",
    type=click.IntRange(min=1),
    default=3,
    help="Number of concurrent staleness checkers.",
    show_default=True,
)
@click.option(
    "--syncers",
    type=click.IntRange(min=1),
    default=2,
    help="Number of concurrent file copiers.",
    show_default=True,
)
@click.option(
    "--no-progress",
    is_flag=True,
    default=False,
    help="Disable the live progress display.",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Mirror the SOURCE directory tree into the TARGET directory tree.

    Missing directories are created, regular files that are new or differ
    in size, mode or modification time are copied, and symbolic links that
    are missing or point elsewhere are recreated. Nothing is ever deleted
    from TARGET.
    """
    setup_logging(kwargs["log_level"])

    try:
        started: float = time.monotonic()
        source: Path = normalize_tree_path(kwargs["source"])
        target: Path = normalize_tree_path(kwargs["target"])
        validate_trees(source, target)

        app_config: AppConfig = AppConfig(
            materializer_concurrency=kwargs["dir_workers"],
            checker_concurrency=kwargs["checkers"],
            syncer_concurrency=kwargs["syncers"],
            show_progress=not kwargs["no_progress"],
        )
        config: Config = Config(source=source, target=target, app=app_config)

        click.echo(f"syncing {source} to {target}")
        stats: SyncStats = asyncio.run(main_async(config))
        click.echo(format_summary(stats, time.monotonic() - started))
        click.echo("done syncing")
    except TreeSyncError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(1)
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
