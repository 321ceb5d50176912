"""
Filesystem utilities for Unit Cache

This module provides directory handling, atomic writes and size
accounting for the cache directory.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ..core.exceptions import CacheError


def ensure_directory(path: str, create: bool = True) -> bool:
    """
    Ensure a directory exists, optionally creating it

    Args:
        path: Directory path to check/create
        create: Whether to create the directory if it doesn't exist

    Returns:
        True if directory exists or was created successfully

    Raises:
        CacheError: If directory creation fails
    """
    path_obj = Path(path)

    if path_obj.exists():
        if path_obj.is_dir():
            return True
        raise CacheError(
            f"Path exists but is not a directory: {path}",
            source_path=path
        )

    if not create:
        return False

    try:
        path_obj.mkdir(parents=True, exist_ok=True)
        return True
    except OSError as e:
        raise CacheError(
            f"Failed to ensure directory: {str(e)}",
            details=str(e),
            source_path=path
        )


def atomic_write_text(filepath: str, content: str, encoding: str = 'utf-8'):
    """
    Write a text file atomically (temp file in the same directory + replace)

    Raises:
        OSError: If the write or the replace fails
    """
    directory = os.path.dirname(os.path.abspath(filepath))
    fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.json', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, filepath)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def directory_size(directory: str) -> int:
    """
    Total size of all files below a directory in bytes

    Missing directories count as empty; files that vanish mid-walk are skipped.
    """
    path = Path(directory)
    if not path.is_dir():
        return 0

    total = 0
    for file_path in path.rglob('*'):
        try:
            if file_path.is_file():
                total += file_path.stat().st_size
        except OSError:
            continue
    return total


def remove_directory(directory: str) -> bool:
    """
    Recursively delete a directory

    Returns:
        True if something was removed, False if it did not exist

    Raises:
        CacheError: If the removal fails
    """
    path = Path(directory)
    if not path.exists():
        return False

    try:
        shutil.rmtree(path)
        return True
    except OSError as e:
        raise CacheError(
            f"Failed to remove directory: {str(e)}",
            details=str(e),
            source_path=directory
        )


def normalize_path(filepath: str, base: Optional[str] = None) -> str:
    """Absolute, user-expanded form of a path"""
    expanded = os.path.expanduser(filepath)
    if base and not os.path.isabs(expanded):
        expanded = os.path.join(base, expanded)
    return os.path.abspath(expanded)


__all__ = [
    'ensure_directory',
    'atomic_write_text',
    'directory_size',
    'remove_directory',
    'normalize_path'
]
