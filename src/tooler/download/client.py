"""Ensures the package-management executable exists locally.

The executable is downloaded from a templated URI when missing (or when
``force`` is set) and can optionally be kept up to date against the remote
release index. Every expected failure is returned as a ``DownloadResult``.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import time
import urllib.parse
from pathlib import Path
from typing import List, Optional

import aiohttp

from tooler.common import fs
from tooler.common.http_client import download_to_file, is_success, session_scope
from tooler.common.logging_utils import extra_context, safe_url
from tooler.common.process import run_process
from tooler.constants import Constants
from tooler.download.index import fetch_available_versions
from tooler.download.results import DownloadResult
from tooler.errors import ExecutableUnavailableError
from tooler.settings import CliSettings, DownloadSettings
from tooler.versioning import semver
from tooler.versioning.semver import Version

module_logger = logging.getLogger(__name__)


def build_download_uri(uri_format: str, version: str) -> str:
    """Substitute ``version`` into ``uri_format``; templates without a placeholder are used verbatim."""
    if Constants.VERSION_PLACEHOLDER in uri_format:
        return uri_format.replace(Constants.VERSION_PLACEHOLDER, version)
    return uri_format


def is_http_uri(uri: str) -> bool:
    """Return True for absolute http/https URIs."""
    try:
        parts = urllib.parse.urlsplit(uri)
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc)


def resolve_download_directory(settings: DownloadSettings) -> Optional[Path]:
    """Explicit directory, then the environment override, then local app data."""
    if settings.download_directory and settings.download_directory.strip():
        return Path(settings.download_directory)
    from_env = os.environ.get(Constants.ENV_EXE_DOWNLOAD_DIRECTORY)
    if from_env and from_env.strip():
        return Path(from_env)
    app_data = fs.user_local_app_data()
    if app_data is None:
        return None
    return fs.from_path_segments(app_data, Constants.TOOL_NAME, "tools", "nuget", settings.exe_version or "")


def parse_installed_version(lines: List[str], label: str = Constants.VERSION_OUTPUT_LABEL) -> Optional[Version]:
    """Find the ``label`` line (e.g. ``NuGet Version: 4.7.1.5393``) and parse its version."""
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(label):
            return semver.parse_leading_triplet(stripped[len(label):].strip())
    return None


class ExecutableDownloadClient:
    """Downloads and updates the package-management executable."""

    def __init__(self, index_url: str = Constants.VERSION_INDEX_URL) -> None:
        self.index_url = index_url

    async def download_executable(
        self,
        settings: DownloadSettings,
        logger: Optional[logging.Logger] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> DownloadResult:
        """Ensure the executable exists, downloading it when needed."""
        if settings is None:
            raise ValueError("settings is required")
        log = logger or module_logger

        if not settings.download_enabled:
            return DownloadResult.disabled()
        if not settings.download_uri_format or not settings.download_uri_format.strip():
            return DownloadResult.missing_uri_format()
        if not settings.exe_version or not settings.exe_version.strip():
            return DownloadResult.missing_version()

        directory = resolve_download_directory(settings)
        if directory is None:
            return DownloadResult.missing_directory()
        try:
            fs.ensure_exists(directory)
        except OSError as exc:
            return DownloadResult.from_exception(exc)

        target = directory / Constants.EXE_NAME

        existing = target.exists() and not settings.force
        if existing:
            log.debug("Found existing %s at %s, skipping download", Constants.EXE_NAME, target)
            if not settings.update_enabled:
                return DownloadResult.success(str(target))

        async with session_scope(session) as client:
            try:
                if existing:
                    updated = await self._ensure_latest(target, log, client)
                    if updated is not None and updated.succeeded:
                        return updated
                    return DownloadResult.success(str(target))

                uri = build_download_uri(settings.download_uri_format, settings.exe_version)
                if not is_http_uri(uri):
                    return DownloadResult.invalid_uri(uri)

                result = await self._download(uri, target, log, client)
                if result.succeeded and settings.update_enabled:
                    updated = await self._ensure_latest(target, log, client)
                    if updated is not None and updated.succeeded:
                        return updated
                return result
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                log.warning(
                    "Could not download %s: %s",
                    Constants.EXE_NAME,
                    exc,
                    extra=extra_context(event="download", outcome="exception", target=str(target)),
                )
                return DownloadResult.from_exception(exc)

    async def _download(
        self,
        uri: str,
        target: Path,
        log: logging.Logger,
        session: aiohttp.ClientSession,
    ) -> DownloadResult:
        temp_file = target.parent / f"{target.name}-{time.time_ns()}-{os.getpid()}.tmp"
        log.debug("Downloading %s to %s", safe_url(uri), temp_file)

        try:
            status = await download_to_file(session, uri, temp_file, context="executable")
            if not is_success(status):
                log.warning("Downloading %s failed with status code %s", safe_url(uri), status)
                return DownloadResult.download_failed(f"HTTP status {status}")

            size = temp_file.stat().st_size
            if size <= Constants.MIN_EXE_SIZE_BYTES:
                log.warning(
                    "Downloaded file %s is only %d bytes, expected more than %d bytes",
                    temp_file,
                    size,
                    Constants.MIN_EXE_SIZE_BYTES,
                )
                return DownloadResult.download_failed(f"Downloaded file is too small ({size} bytes)")

            log.debug("Successfully downloaded %s", temp_file)

            if target.exists():
                await asyncio.sleep(Constants.EXE_REPLACE_DELAY_SEC)

            log.debug("Copying temp file %s to target file %s", temp_file, target)
            shutil.copyfile(temp_file, target)
            _make_executable(target)
        finally:
            if temp_file.exists():
                temp_file.unlink()
                log.debug("Deleted temp file %s", temp_file)

        return DownloadResult.success(str(target))

    async def _ensure_latest(
        self,
        target: Path,
        log: logging.Logger,
        session: aiohttp.ClientSession,
    ) -> Optional[DownloadResult]:
        """Best-effort update check; returns None when nothing was updated."""
        if not target.exists():
            log.warning("The target %s file '%s' does not exist, skipping latest check", Constants.EXE_NAME, target)
            return None

        current = await self._installed_version(target, log)
        if current is None:
            return None

        available = await fetch_available_versions(session, self.index_url, log)
        if not available:
            return None

        newest = max(available, key=lambda item: item.version)
        if newest.version <= current:
            log.debug(
                "Newest available version found was %s which is not greater than the installed version %s",
                semver.normalize(newest.version),
                semver.normalize(current),
            )
            return None

        log.debug(
            "Newest available version found was %s which is greater than the installed version %s, downloading newer version",
            semver.normalize(newest.version),
            semver.normalize(current),
        )
        try:
            result = await self._download(newest.download_url, target, log, session)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            log.warning("Could not download newest %s version %s: %s", Constants.EXE_NAME, newest.version, exc)
            return None
        if result.succeeded:
            return result
        log.warning("Could not download newest %s version %s: %s", Constants.EXE_NAME, newest.version, result)
        return None

    async def _installed_version(self, target: Path, log: logging.Logger) -> Optional[Version]:
        output: List[str] = []
        try:
            exit_code = await run_process(
                target,
                [],
                on_stdout=output.append,
                timeout=Constants.VERSION_PROBE_TIMEOUT_SEC,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            log.warning("Could not run %s to determine its version: %s", target, exc)
            return None

        if exit_code != 0:
            log.warning("Running %s to determine its version exited with code %s", target, exit_code)
            return None

        version = parse_installed_version(output)
        if version is None:
            log.warning("Could not find current %s version, could not find expected output", Constants.EXE_NAME)
        return version


def _make_executable(path: Path) -> None:
    if os.name == "nt":
        return
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


async def resolve_executable_path(
    download_client: ExecutableDownloadClient,
    download_settings: DownloadSettings,
    cli_settings: CliSettings,
    logger: Optional[logging.Logger] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> str:
    """Return a usable executable path, downloading the executable when needed.

    An explicitly configured, existing executable is used as-is unless a forced
    download is requested.

    Raises:
        ExecutableUnavailableError: the executable could not be obtained.
    """
    explicit = cli_settings.exe_path
    if explicit and explicit.strip() and Path(explicit).is_file() and not download_settings.force:
        return explicit

    result = await download_client.download_executable(download_settings, logger, session)
    if not result.succeeded or not result.path:
        raise ExecutableUnavailableError(f"Could not download {Constants.EXE_NAME}, {result}", result)
    return result.path
