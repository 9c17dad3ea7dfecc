# src/treesync/__init__.py
"""
treesync: A concurrent, one-way directory tree mirror.

This package mirrors a source directory tree into a target tree, creating
missing directories, copying new or changed regular files and recreating
stale symbolic links. Staleness is judged from size, mode and modification
time; nothing is ever deleted from the target.

The primary entry point for programmatic use is the `TreeSyncPipeline` class.
"""

from typing import List

from treesync.config import AppConfig, Config
from treesync.entry import Entry, EntryKind, SyncStats
from treesync.pipeline import TreeSyncPipeline

__all__: List[str] = [
    "AppConfig",
    "Config",
    "Entry",
    "EntryKind",
    "SyncStats",
    "TreeSyncPipeline",
]
