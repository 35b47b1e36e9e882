"""Filesystem helpers: well-known directories, recursive copy and scoped temp directories."""
from __future__ import annotations

import logging
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional, Union

from tooler.constants import Constants

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def user_local_app_data() -> Optional[Path]:
    """Return the OS-appropriate per-user local application data directory."""
    if sys.platform == "win32":
        local = os.environ.get("LOCALAPPDATA")
        return Path(local) if local else None
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    try:
        return Path.home() / ".local" / "share"
    except RuntimeError:
        return None


def from_path_segments(first: PathLike, *others: str) -> Path:
    """Join path segments, rejecting an empty first segment."""
    if not str(first).strip():
        raise ValueError("Value cannot be empty or whitespace: first")
    return Path(first).joinpath(*others)


def ensure_exists(directory: PathLike) -> Path:
    """Create ``directory`` (and parents) when missing and return it."""
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    return path


def copy_recursive(source: PathLike, target: PathLike) -> int:
    """Copy every file under ``source`` into ``target``, overwriting existing files.

    Returns the number of files copied.
    """
    source_path = Path(source)
    target_path = Path(target)
    if source_path.resolve() == target_path.resolve():
        raise ValueError(f"Could not copy from and to the same directory '{source_path}'")
    if not source_path.is_dir():
        return 0

    ensure_exists(target_path)
    copied = 0
    for item in source_path.iterdir():
        destination = target_path / item.name
        if item.is_dir():
            copied += copy_recursive(item, destination)
        else:
            shutil.copyfile(item, destination)
            copied += 1
    return copied


def remove_tree_quietly(directory: PathLike) -> bool:
    """Recursively delete ``directory``; failures are logged, never raised."""
    path = Path(directory)
    if not path.exists():
        return True
    try:
        shutil.rmtree(path)
        return True
    except OSError as exc:
        logger.warning("Could not delete temp directory '%s': %s", path, exc)
        return False


class TempDirectory:
    """Uniquely named working directory removed when the scope exits.

    Usage::

        with TempDirectory.create() as temp:
            ...  # temp.path exists here
    """

    def __init__(self, path: Path) -> None:
        self.path: Optional[Path] = path

    @classmethod
    def create(cls, name: Optional[str] = None, parent: Optional[PathLike] = None) -> "TempDirectory":
        base = Path(parent) if parent else Path(tempfile.gettempdir())
        prefix = (name or "").strip() or Constants.TEMP_DIRECTORY_PREFIX
        path = base / f"{prefix}-{time.time_ns()}-{os.getpid()}"
        return cls(ensure_exists(path))

    def cleanup(self) -> None:
        if self.path is not None:
            remove_tree_quietly(self.path)
            self.path = None

    def __enter__(self) -> "TempDirectory":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
