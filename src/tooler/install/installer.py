"""Package install engine.

Installs check the local cache first and only acquire a package when the
requested version is not already present. Two acquisition strategies exist and
produce different cache layouts:

- HTTP (default): ``{cache_root}/{id}.nupkg`` plus, with ``extract``, the
  archive contents in ``{cache_root}/{id}/``
- subprocess: the full package in ``{cache_root}/{id}/{version}/``
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import shutil
import zipfile
from pathlib import Path
from typing import List, Optional, Union

import aiohttp

from tooler.common import fs
from tooler.common.http_client import session_scope
from tooler.common.logging_utils import extra_context, is_debug_enabled, truncate_line
from tooler.common.process import run_process
from tooler.constants import Constants
from tooler.download.client import ExecutableDownloadClient, resolve_executable_path
from tooler.install import archive, cache
from tooler.resolution.api import ApiVersionResolver, PackageFromResource
from tooler.resolution.options import ResolveOptions
from tooler.settings import CliSettings, DownloadSettings, PackageSettings
from tooler.versioning import semver
from tooler.versioning.models import (
    LATEST_AVAILABLE,
    InstallResult,
    PackageId,
    PackageReference,
    VersionKind,
)

module_logger = logging.getLogger(__name__)


def build_install_arguments(
    reference: PackageReference,
    settings: PackageSettings,
    output_directory: Path,
    verbose: bool = False,
) -> List[str]:
    arguments = ["install", reference.package_id.value]
    if settings.config_file and settings.config_file.strip():
        arguments.extend(["-ConfigFile", settings.config_file])
    if settings.source_name and settings.source_name.strip():
        arguments.extend(["-Source", settings.source_name])
    if reference.version.is_concrete:
        arguments.extend(["-Version", semver.normalize(reference.version.version)])
    if settings.allow_prerelease:
        arguments.append("-PreRelease")
    if verbose:
        arguments.extend(["-verbosity", "detailed"])
    arguments.extend(["-OutputDirectory", str(output_directory)])
    return arguments


def _matching_directories(parent: Path, package_id: PackageId) -> List[Path]:
    prefix = f"{package_id.value.lower()}."
    return sorted(item for item in parent.iterdir() if item.is_dir() and item.name.lower().startswith(prefix))


def _matching_archives(parent: Path, package_id: PackageId) -> List[Path]:
    prefix = f"{package_id.value.lower()}."
    suffix = f".{Constants.ARCHIVE_EXTENSION}"
    return sorted(
        item
        for item in parent.iterdir()
        if item.is_file() and item.name.lower().startswith(prefix) and item.name.lower().endswith(suffix)
    )


class PackageInstaller:
    """Installs packages into a local cache directory."""

    def __init__(
        self,
        download_client: Optional[ExecutableDownloadClient] = None,
        cli_settings: Optional[CliSettings] = None,
        download_settings: Optional[DownloadSettings] = None,
        api_resolver: Optional[ApiVersionResolver] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or module_logger
        self.download_client = download_client or ExecutableDownloadClient()
        self.cli_settings = cli_settings or CliSettings()
        self.download_settings = download_settings or DownloadSettings()
        self.api_resolver = api_resolver or ApiVersionResolver(self.logger)

    async def install_package_id(self, package_id: str) -> InstallResult:
        """Install the latest available version of ``package_id`` with default settings."""
        return await self.install_package(PackageReference(PackageId(package_id), LATEST_AVAILABLE))

    async def install_package(
        self,
        reference: PackageReference,
        settings: Optional[PackageSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        install_base_directory: Optional[Union[str, Path]] = None,
    ) -> InstallResult:
        """Install ``reference`` and return where it lives.

        Raises:
            ExecutableUnavailableError: the subprocess strategy is selected and
                the executable cannot be obtained.
        """
        if reference is None:
            raise ValueError("reference is required")
        settings = settings or PackageSettings()
        log = self.logger
        package_id = reference.package_id

        if is_debug_enabled(log):
            log.debug("Using package settings %s", settings)

        cache_root = cache.resolve_cache_root(install_base_directory)
        if cache_root is None:
            log.error("Could not determine the package cache directory for %s", package_id)
            return InstallResult.failed(package_id)

        try:
            fs.ensure_exists(cache_root)
            package_directory = fs.ensure_exists(cache_root / package_id.value)
        except OSError as exc:
            log.error(
                "Could not create package directory in '%s': %s",
                cache_root,
                exc,
                extra=extra_context(event="install", component="installer", outcome="exception", package_id=package_id.value),
            )
            return InstallResult.failed(package_id, exc)

        log.debug("Using package install base directory '%s'", cache_root)

        try:
            cached = self._from_cache(reference, settings, package_directory)
            if cached is not None:
                return cached
            if reference.version.kind is VersionKind.LATEST_DOWNLOADED:
                log.warning("Found no downloaded versions of %s", package_id)
                return InstallResult.failed(package_id)

            if settings.use_cli:
                try:
                    return await self._install_with_cli(reference, settings, cache_root, package_directory)
                except OSError as exc:
                    log.error(
                        "Could not install package %s: %s",
                        package_id,
                        exc,
                        extra=extra_context(event="install", component="installer", outcome="exception", package_id=package_id.value),
                    )
                    return InstallResult.failed(package_id, exc)
            return await self._install_from_source(reference, settings, cache_root, package_directory, session)
        finally:
            _remove_if_empty(package_directory)

    def _from_cache(
        self,
        reference: PackageReference,
        settings: PackageSettings,
        package_directory: Path,
    ) -> Optional[InstallResult]:
        log = self.logger
        package_id = reference.package_id
        selector = reference.version

        if selector.kind is VersionKind.LATEST_AVAILABLE:
            return None

        entries = cache.scan_cached_packages(
            package_directory,
            settings.allow_prerelease or (selector.is_concrete and semver.is_prerelease(selector.version)),
        )

        if selector.kind is VersionKind.LATEST_DOWNLOADED:
            latest = cache.latest_cached(entries)
            if latest is None:
                return None
            log.debug("Found existing version %s", semver.normalize(latest.version))
            return InstallResult(package_id, latest.version, latest.directory)

        existing = cache.find_cached(entries, selector.version)
        if existing is not None:
            log.debug("Found specific version %s, version %s", package_id, semver.normalize(selector.version))
            return InstallResult(package_id, existing.version, existing.directory)

        flat = self._from_flat_archive(package_id, selector.version, settings, package_directory.parent)
        if flat is not None:
            log.debug("Found downloaded archive of %s %s", package_id, semver.normalize(selector.version))
        return flat

    def _from_flat_archive(
        self,
        package_id: PackageId,
        version: semver.Version,
        settings: PackageSettings,
        cache_root: Path,
    ) -> Optional[InstallResult]:
        """Result for an archive already downloaded by the HTTP strategy, if it is ``version``."""
        if settings.use_cli:
            return None
        flat_archive = cache_root / f"{package_id.value}.{Constants.ARCHIVE_EXTENSION}"
        if archive.read_nuspec_version(flat_archive) != version:
            return None
        extracted = cache_root / package_id.value
        if settings.extract:
            if not extracted.is_dir() or not any(extracted.iterdir()):
                return None
            return InstallResult(package_id, version, extracted)
        return InstallResult(package_id, version, cache_root)

    async def _install_from_source(
        self,
        reference: PackageReference,
        settings: PackageSettings,
        cache_root: Path,
        package_directory: Path,
        session: Optional[aiohttp.ClientSession],
    ) -> InstallResult:
        log = self.logger
        package_id = reference.package_id
        selector = reference.version
        options = ResolveOptions(
            source_name=settings.source_name,
            config_file=settings.config_file,
            allow_prerelease=settings.allow_prerelease or (selector.is_concrete and semver.is_prerelease(selector.version)),
        )

        try:
            async with session_scope(session) as client:
                packages = await self.api_resolver.find_packages(package_id, options, client)
                package = self._select(packages, reference)
                if package is None:
                    log.error(
                        "Could not find package %s version %s",
                        package_id,
                        selector,
                        extra=extra_context(event="install", component="installer", outcome="not_found", package_id=package_id.value),
                    )
                    return InstallResult.failed(package_id)

                if not selector.is_concrete:
                    existing = self._from_flat_archive(package_id, package.version, settings, cache_root)
                    if existing is not None:
                        log.debug("Latest version %s of %s is already downloaded", semver.normalize(package.version), package_id)
                        return existing

                with fs.TempDirectory.create(parent=settings.temp_directory) as temp:
                    temp_file = temp.path / f"{package_id.value}.{Constants.ARCHIVE_EXTENSION}"
                    log.debug("Downloading %s %s to '%s'", package_id, semver.normalize(package.version), temp_file)
                    if not await package.copy_to(package_id.value, temp_file):
                        log.error("Could not download package %s %s", package_id, semver.normalize(package.version))
                        return InstallResult.failed(package_id)

                    target_file = cache_root / temp_file.name
                    shutil.copyfile(temp_file, target_file)
                    log.debug("Copied package %s to '%s'", package_id, target_file)

                    directory = cache_root
                    if settings.extract:
                        staging = temp.path / "extracted"
                        count = archive.extract_archive(target_file, staging)
                        cache.clear_extracted(package_directory)
                        fs.copy_recursive(staging, package_directory)
                        log.debug("Extracted %d files of %s to '%s'", count, package_id, package_directory)
                        directory = package_directory

                    return InstallResult(package_id, package.version, directory)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, zipfile.BadZipFile) as exc:
            log.error(
                "Could not install package %s: %s",
                package_id,
                exc,
                extra=extra_context(event="install", component="installer", outcome="exception", package_id=package_id.value),
            )
            return InstallResult.failed(package_id, exc)

    @staticmethod
    def _select(packages: List[PackageFromResource], reference: PackageReference) -> Optional[PackageFromResource]:
        if not packages:
            return None
        if reference.version.is_concrete:
            return next((package for package in packages if package.version == reference.version.version), None)
        return packages[0]

    async def _install_with_cli(
        self,
        reference: PackageReference,
        settings: PackageSettings,
        cache_root: Path,
        package_directory: Path,
    ) -> InstallResult:
        log = self.logger
        package_id = reference.package_id
        settings = dataclasses.replace(
            settings,
            source_name=settings.source_name or self.cli_settings.source_name,
            config_file=settings.config_file or self.cli_settings.config_file,
        )

        exe_path = await resolve_executable_path(self.download_client, self.download_settings, self.cli_settings, log)

        if settings.config_file and settings.config_file.strip() and not Path(settings.config_file).is_file():
            log.error("The specified config file %s does not exist", settings.config_file)
            return InstallResult.failed(package_id)

        with fs.TempDirectory.create(parent=settings.temp_directory) as temp:
            arguments = build_install_arguments(reference, settings, temp.path, verbose=is_debug_enabled(log))
            log.debug("Running process %s with args %s", exe_path, " ".join(f'"{argument}"' for argument in arguments))

            try:
                exit_code = await run_process(
                    exe_path,
                    arguments,
                    on_stdout=lambda line: log.info("%s", truncate_line(line)),
                    on_stderr=lambda line: log.error("%s", truncate_line(line)),
                )
            except OSError as exc:
                log.error("Could not run %s: %s", exe_path, exc)
                return InstallResult.failed(package_id, exc)

            if exit_code != 0:
                log.error(
                    "The process %s with arguments %s failed with exit code %s",
                    exe_path,
                    arguments,
                    exit_code,
                    extra=extra_context(event="install", component="installer", outcome="failed", exit_code=exit_code, package_id=package_id.value),
                )
                return InstallResult.failed(package_id)

            directories = _matching_directories(temp.path, package_id)
            if len(directories) != 1:
                log.error(
                    "Expected exactly 1 directory matching '%s.*' in temp directory '%s' but found %d",
                    package_id,
                    temp.path,
                    len(directories),
                )
                return InstallResult.failed(package_id)
            work_directory = directories[0]

            archives = _matching_archives(work_directory, package_id)
            if len(archives) != 1:
                log.error(
                    "Expected exactly 1 package %s in directory '%s' but found %d",
                    package_id,
                    work_directory,
                    len(archives),
                )
                return InstallResult.failed(package_id)

            archive_name = archives[0].name[: -len(Constants.ARCHIVE_EXTENSION) - 1]
            version = semver.try_parse(archive_name[len(package_id.value) + 1:])
            if version is None:
                log.error("The downloaded file '%s' is not a semantic version package", archives[0])
                return InstallResult.failed(package_id)

            existing = cache.find_cached(cache.scan_cached_packages(package_directory, True), version)
            if existing is not None:
                log.debug("Returning existing package %s %s", package_id, semver.normalize(version))
                return InstallResult(package_id, existing.version, existing.directory)

            target_directory = fs.ensure_exists(package_directory / semver.normalize(version))
            count = fs.copy_recursive(work_directory, target_directory)
            log.debug(
                "Copied %d files recursively from '%s' to target '%s'",
                count,
                work_directory,
                target_directory,
            )
            return InstallResult(package_id, version, target_directory)


def _remove_if_empty(directory: Path) -> None:
    try:
        if directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
    except OSError as exc:
        module_logger.debug("Could not remove empty directory '%s': %s", directory, exc)
