"""Version resolution by listing versions through the package-management executable.

The executable's ``list`` output is plain text, one ``<id> <version>`` pair per
line. Search indexes behind some feeds match package ids as substrings, so
the listing can be flooded with unrelated packages; the adaptive prefix logic
stops such a listing early and retries with a narrower search, remembering per
(config, source) which prefix worked.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Iterable, List, Optional

from tooler.common.logging_utils import extra_context, is_debug_enabled, truncate_line
from tooler.common.process import ProcessCancelledError, run_process
from tooler.constants import Constants
from tooler.download.client import ExecutableDownloadClient, resolve_executable_path
from tooler.errors import ExecutableUnavailableError
from tooler.resolution.options import ResolveOptions
from tooler.resolution.prefix_cache import SourcePrefixCache
from tooler.settings import CliSettings, DownloadSettings
from tooler.versioning import semver
from tooler.versioning.models import PackageId
from tooler.versioning.semver import Version

module_logger = logging.getLogger(__name__)


def is_ignored_line(line: str) -> bool:
    """Noise lines that carry no package information."""
    lowered = line.lower()
    return any(statement.lower() in lowered for statement in Constants.IGNORED_OUTPUT_STATEMENTS)


def build_list_arguments(
    package_id: PackageId,
    prefix: str,
    source_name: Optional[str] = None,
    config_file: Optional[str] = None,
    allow_prerelease: bool = False,
) -> List[str]:
    arguments = ["list", f"{prefix}{package_id.value}", "-AllVersions"]
    if source_name and source_name.strip():
        arguments.extend(["-source", source_name])
    if config_file and config_file.strip():
        arguments.extend(["-ConfigFile", config_file])
    if allow_prerelease:
        arguments.append("-Prerelease")
    return arguments


def parse_list_output(
    lines: Iterable[str],
    package_id: PackageId,
    logger: Optional[logging.Logger] = None,
) -> List[Version]:
    """Versions of ``package_id`` found in listing output, newest first.

    Lines for other ids and lines whose last token is not a semantic version
    are skipped.
    """
    log = logger or module_logger
    versions: List[Version] = []
    for line in lines:
        if not line or is_ignored_line(line):
            continue
        parts = line.split()
        if not parts:
            continue
        current_id = parts[0].strip()
        version = semver.try_parse(parts[-1])
        if version is None:
            log.debug(
                "Found package version %s for package %s, skipping because it could not be parsed as semantic version",
                parts[-1],
                current_id,
            )
            continue
        if not package_id.matches(current_id):
            log.debug(
                "Found package '%s', skipping because it does not match requested package '%s'",
                current_id,
                package_id,
            )
            continue
        versions.append(version)
    return semver.sort_descending(versions)


class CliVersionResolver:
    """Lists versions by running ``<exe> list <prefix><id> -AllVersions``."""

    def __init__(
        self,
        download_client: Optional[ExecutableDownloadClient] = None,
        download_settings: Optional[DownloadSettings] = None,
        cli_settings: Optional[CliSettings] = None,
        prefix_cache: Optional[SourcePrefixCache] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.download_client = download_client or ExecutableDownloadClient()
        self.download_settings = download_settings or DownloadSettings()
        self.cli_settings = cli_settings or CliSettings()
        self.prefix_cache = prefix_cache if prefix_cache is not None else SourcePrefixCache()
        self.logger = logger or module_logger

    def _adaptive_enabled(self, options: ResolveOptions) -> bool:
        return self.cli_settings.adaptive_prefix_enabled and options.adaptive_enabled is not False

    def _with_default_source(self, options: ResolveOptions) -> ResolveOptions:
        return dataclasses.replace(
            options,
            source_name=options.source_name or self.cli_settings.source_name,
            config_file=options.config_file or self.cli_settings.config_file,
        )

    def _initial_prefix(self, options: ResolveOptions, adaptive: bool) -> str:
        if options.prefix is not None:
            return options.prefix
        if adaptive:
            remembered = self.prefix_cache.get(options.config_file, options.source_name)
            if remembered is not None:
                return remembered
        return Constants.DEFAULT_PREFIX

    async def resolve_all_versions(self, package_id: PackageId, options: ResolveOptions) -> List[Version]:
        log = self.logger
        try:
            exe_path = await resolve_executable_path(
                self.download_client,
                self.download_settings,
                self.cli_settings,
                log,
            )
        except ExecutableUnavailableError as exc:
            log.error(
                "Could not list versions of %s: %s",
                package_id,
                exc,
                extra=extra_context(event="resolve", component="cli_resolver", outcome="no_executable", package_id=package_id.value),
            )
            return []

        options = self._with_default_source(options)
        adaptive = self._adaptive_enabled(options)
        prefix = self._initial_prefix(options, adaptive)
        return await self._list(package_id, exe_path, prefix, options, adaptive, first_attempt=True)

    async def _list(
        self,
        package_id: PackageId,
        exe_path: str,
        prefix: str,
        options: ResolveOptions,
        adaptive: bool,
        first_attempt: bool,
    ) -> List[Version]:
        log = self.logger
        arguments = build_list_arguments(
            package_id,
            prefix,
            options.source_name,
            options.config_file,
            options.allow_prerelease,
        )

        log.info("Getting available versions of package id %s", package_id)

        lines: List[str] = []
        package_lines: List[str] = []
        cancel_event = asyncio.Event()

        def on_stdout(line: str) -> None:
            if is_debug_enabled(log):
                log.debug("%s", truncate_line(line))
            lines.append(line)
            if not adaptive or cancel_event.is_set() or is_ignored_line(line):
                return
            package_lines.append(line)
            if len(package_lines) > self.cli_settings.adaptive_abort_line_threshold and any(
                not item.lower().startswith(package_id.value.lower()) for item in package_lines
            ):
                log.warning("Got packages with other ids than %s, aborting package version listing", package_id)
                cancel_event.set()

        def on_stderr(line: str) -> None:
            log.error("%s", truncate_line(line))

        try:
            exit_code = await run_process(
                exe_path,
                arguments,
                on_stdout=on_stdout,
                on_stderr=on_stderr,
                cancel_event=cancel_event,
                timeout=options.timeout,
            )
        except (ProcessCancelledError, asyncio.TimeoutError, OSError) as exc:
            log.warning("Could not get versions for package id %s: %s", package_id, exc)
            mismatch_abort = isinstance(exc, ProcessCancelledError) and cancel_event.is_set()
            if mismatch_abort and adaptive and not prefix.strip() and first_attempt:
                with_prefix = await self._list(
                    package_id,
                    exe_path,
                    Constants.DEFAULT_PREFIX,
                    options,
                    adaptive,
                    first_attempt=False,
                )
                if with_prefix:
                    self.prefix_cache.set(options.config_file, options.source_name, Constants.DEFAULT_PREFIX)
                    return with_prefix
            return []

        if exit_code != 0:
            log.warning(
                "Package listing failed with exit code %s",
                exit_code,
                extra=extra_context(event="resolve", component="cli_resolver", outcome="failed", exit_code=exit_code, package_id=package_id.value),
            )
            return []

        versions = parse_list_output(lines, package_id, log)
        if is_debug_enabled(log):
            for version in versions:
                log.debug("Found package %s %s", package_id, semver.normalize(version))

        if not versions and adaptive and prefix.strip() and first_attempt:
            log.debug(
                "Could not find any package versions of %s when using prefix '%s', listing without any prefix",
                package_id,
                prefix,
            )
            without_prefix = await self._list(package_id, exe_path, "", options, adaptive, first_attempt=False)
            if without_prefix:
                log.debug("Found %d versions of %s when removing prefix", len(without_prefix), package_id)
                self.prefix_cache.set(options.config_file, options.source_name, "")
            return without_prefix

        return versions
