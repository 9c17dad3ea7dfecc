# src/treesync/config.py
"""
Configuration for the treesync pipeline.

This module centralizes all configuration as typed, immutable dataclasses
and provides the startup validation of the source and target trees.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from treesync.exceptions import ConfigError, InputError


def normalize_tree_path(raw: str) -> Path:
    """
    Strips surrounding whitespace from a tree path and cleans it.

    Args:
        raw (str): The path as typed by the user.

    Returns:
        Path: The cleaned path, with `.`/`..` noise and trailing
            separators removed.
    """
    return Path(os.path.normpath(raw.strip()))


def validate_trees(source: Path, target: Path) -> None:
    """
    Performs sanity checks on the source and target trees.

    Args:
        source (Path): The tree to mirror from.
        target (Path): The tree to mirror into.

    Raises:
        InputError: If both paths are identical, or if the source does
            not exist or is not a directory.
    """
    if source == target:
        raise InputError("source and target tree cannot be identical")
    try:
        is_dir: bool = source.is_dir()
        exists: bool = is_dir or source.exists()
    except OSError as e:
        raise InputError(f"cannot access source tree '{source}': {e}") from e
    if not exists:
        raise InputError(f"source tree '{source}' does not exist")
    if not is_dir:
        raise InputError(f"'{source}' is not a valid source directory tree")


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the application's operational parameters.

    Attributes:
        materializer_concurrency (int): Workers creating target directories.
        checker_concurrency (int): Workers comparing source and target entries.
        syncer_concurrency (int): Workers copying files and recreating links.
        queue_maxsize (int): Capacity of each inter-stage queue.
        copy_chunk_size (int): Buffer size in bytes used when copying files.
        show_progress (bool): Whether to render a progress display.
    """

    materializer_concurrency: int = 3
    checker_concurrency: int = 3
    syncer_concurrency: int = 2
    queue_maxsize: int = 1000
    copy_chunk_size: int = 1024 * 1024
    show_progress: bool = True

    def __post_init__(self) -> None:
        """Rejects pool and buffer sizes that would stall the pipeline."""
        for name in (
            "materializer_concurrency",
            "checker_concurrency",
            "syncer_concurrency",
            "copy_chunk_size",
        ):
            if getattr(self, name) < 1:
                raise ConfigError(f"'{name}' must be at least 1.")
        if self.queue_maxsize < 0:
            raise ConfigError("'queue_maxsize' must not be negative.")


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for a single run.

    Attributes:
        source (Path): Root of the tree to mirror from.
        target (Path): Root of the tree to mirror into.
        app (AppConfig): General application settings.
    """

    source: Path
    target: Path
    app: AppConfig = field(default_factory=AppConfig)
