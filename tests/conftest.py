# tests/conftest.py
"""
Pytest configuration and fixtures for the treesync test suite.

This module sets up the testing environment, including:
- Creating isolated source and target trees for each test function.
- Providing a Config object wired to those trees.
- Offering helper factories for populating trees with files and links.
"""

import os
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from treesync.config import AppConfig, Config

# --- Constants ---
FIXED_MTIME_NS: int = 1_600_000_000_123_456_789

FileFactory = Callable[..., Path]
LinkFactory = Callable[[Path, str, str], Path]


@pytest.fixture(scope="function")
def source_tree(tmp_path: Path) -> Path:
    """
    Provide an empty source tree.

    Args:
        tmp_path (Path): The pytest fixture for a temporary directory.

    Returns:
        Path: The root of the source tree.
    """
    root: Path = tmp_path / "source"
    root.mkdir()
    os.chmod(root, 0o755)
    return root


@pytest.fixture(scope="function")
def target_tree(tmp_path: Path) -> Path:
    """
    Provide an empty target tree.

    Args:
        tmp_path (Path): The pytest fixture for a temporary directory.

    Returns:
        Path: The root of the target tree.
    """
    root: Path = tmp_path / "target"
    root.mkdir()
    os.chmod(root, 0o755)
    return root


@pytest.fixture(scope="function")
def test_config(source_tree: Path, target_tree: Path) -> Config:
    """
    Provide a Config object pointing at the isolated trees.

    Queues are kept small so that back-pressure between stages is exercised.

    Args:
        source_tree (Path): The source tree fixture.
        target_tree (Path): The target tree fixture.

    Returns:
        Config: A Config instance for use in tests.
    """
    app_config: AppConfig = AppConfig(queue_maxsize=4, show_progress=False)
    return Config(source=source_tree, target=target_tree, app=app_config)


@pytest.fixture(scope="function")
def file_factory() -> Generator[FileFactory, None, None]:
    """
    Provide a factory that writes a file with a given content, mode and mtime.

    Missing parent directories are created with mode 0o755.

    Yields:
        A factory function accepting a root, a relative path, and optional
        `content`, `mode` and `mtime_ns` keywords, returning the file path.
    """

    def _creator(
        root: Path,
        rel_path: str,
        content: bytes = b"",
        mode: int = 0o644,
        mtime_ns: Optional[int] = FIXED_MTIME_NS,
    ) -> Path:
        """
        The actual factory implementation.

        Args:
            root (Path): The tree root to create the file in.
            rel_path (str): The file path relative to `root`.
            content (bytes): The bytes to write.
            mode (int): Permission bits to apply.
            mtime_ns (int, optional): Modification time to apply, if any.

        Returns:
            Path: The path of the created file.
        """
        p: Path = root / rel_path
        p.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
        p.write_bytes(content)
        os.chmod(p, mode)
        if mtime_ns is not None:
            os.utime(p, ns=(mtime_ns, mtime_ns))
        return p

    yield _creator


@pytest.fixture(scope="function")
def link_factory() -> Generator[LinkFactory, None, None]:
    """
    Provide a factory that creates a symbolic link inside a tree.

    Yields:
        A factory function accepting a root, a relative link path and the
        link target, returning the link path.
    """

    def _creator(root: Path, rel_path: str, link_target: str) -> Path:
        p: Path = root / rel_path
        p.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
        os.symlink(link_target, p)
        return p

    yield _creator
