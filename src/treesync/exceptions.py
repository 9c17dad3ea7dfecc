# src/treesync/exceptions.py
"""Custom exceptions for the treesync application."""


class TreeSyncError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(TreeSyncError):
    """Raised for configuration-related issues."""

    pass


class InputError(ConfigError):
    """Raised when the source or target tree given on startup is unusable."""

    pass


class SyncError(TreeSyncError):
    """Raised when a single entry could not be brought up to date."""

    pass


class QueueClosedError(TreeSyncError):
    """Raised when a closed queue is written to or closed a second time."""

    pass
