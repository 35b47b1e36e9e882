"""Local package cache layout and scanning.

A cached version is a directory named after a semantic version that holds at
least one archive file somewhere beneath it. Directories without an archive
are leftovers of interrupted installs and do not count.
"""
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Union

from tooler.common import fs
from tooler.constants import Constants
from tooler.versioning import semver
from tooler.versioning.models import CachedPackage
from tooler.versioning.semver import Version

logger = logging.getLogger(__name__)


def resolve_cache_root(install_base_directory: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Explicit directory, then the environment override, then local app data."""
    if install_base_directory is not None and str(install_base_directory).strip():
        return Path(install_base_directory)
    from_env = os.environ.get(Constants.ENV_PACKAGES_DIRECTORY)
    if from_env and from_env.strip():
        return Path(from_env)
    app_data = fs.user_local_app_data()
    if app_data is None:
        return None
    return fs.from_path_segments(app_data, Constants.TOOL_NAME, "packages")


def contains_archive(directory: Path) -> bool:
    return any(path.is_file() for path in directory.rglob(f"*.{Constants.ARCHIVE_EXTENSION}"))


def scan_cached_packages(package_directory: Union[str, Path], allow_prerelease: bool) -> List[CachedPackage]:
    """Valid cached versions under ``package_directory``, in no particular order."""
    root = Path(package_directory)
    if not root.is_dir():
        return []

    entries = []
    for directory in root.iterdir():
        if not directory.is_dir():
            continue
        version = semver.try_parse(directory.name)
        if version is None or not contains_archive(directory):
            continue
        entries.append(CachedPackage(directory=directory, version=version, parsed=True))

    if not allow_prerelease:
        logger.debug("Filtering out pre-release versions in package directory '%s'", root)
        entries = [entry for entry in entries if not semver.is_prerelease(entry.version)]
    return entries


def find_cached(entries: Iterable[CachedPackage], version: Version) -> Optional[CachedPackage]:
    return next((entry for entry in entries if entry.version == version), None)


def latest_cached(entries: Iterable[CachedPackage]) -> Optional[CachedPackage]:
    return max(entries, key=lambda entry: entry.version, default=None)


def clear_extracted(package_directory: Union[str, Path]) -> None:
    """Remove previously extracted archive contents, keeping version directories."""
    root = Path(package_directory)
    if not root.is_dir():
        return
    for item in root.iterdir():
        if item.is_dir() and semver.try_parse(item.name) is not None:
            continue
        if item.is_dir():
            shutil.rmtree(item)
        else:
            item.unlink()
