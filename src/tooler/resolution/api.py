"""Version resolution over the package source network protocols."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

import aiohttp

from tooler.common.http_client import session_scope
from tooler.common.logging_utils import extra_context, is_debug_enabled, safe_url
from tooler.resolution.options import ResolveOptions
from tooler.sources import config as source_config
from tooler.sources.repository import get_resource
from tooler.sources.resources import FindPackageByIdResource
from tooler.versioning import semver
from tooler.versioning.models import PackageId
from tooler.versioning.semver import Version

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageFromResource:
    """A resolved version and the resource that can deliver its archive."""

    version: Version
    resource: FindPackageByIdResource
    original_version: str

    async def copy_to(self, package_id: str, destination) -> bool:
        return await self.resource.copy_package(package_id, self.original_version, destination)


def load_source_settings(config_file: Optional[str]) -> source_config.SourceSettings:
    """Explicit config file when given, else the default resolution chain."""
    if config_file and config_file.strip():
        return source_config.load_specific_settings(config_file)
    return source_config.load_default_settings()


class ApiVersionResolver:
    """Queries every enabled source through its find-package-by-id resource."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or module_logger

    async def find_packages(
        self,
        package_id: PackageId,
        options: ResolveOptions,
        session: aiohttp.ClientSession,
    ) -> List[PackageFromResource]:
        """Versions of ``package_id`` with their resources, deduplicated and newest first.

        Pre-release filtering is applied; ``max_rows`` is not.
        """
        log = self.logger
        try:
            settings = load_source_settings(options.config_file)
        except (OSError, ET.ParseError) as exc:
            log.warning("Could not load package source configuration '%s': %s", options.config_file, exc)
            return []

        found: Dict[str, PackageFromResource] = {}
        for source in source_config.enabled_sources(settings):
            if options.source_name and source.name.casefold() != options.source_name.strip().casefold():
                continue

            try:
                resource = await get_resource(source, session)
                if resource is None:
                    continue
                raw_versions = await resource.get_all_versions(package_id.value)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ET.ParseError) as exc:
                log.warning(
                    "Could not get versions of %s from source %s: %s",
                    package_id,
                    source.name,
                    exc,
                    extra=extra_context(
                        event="resolve",
                        component="api_resolver",
                        outcome="exception",
                        target=safe_url(source.source),
                        package_id=package_id.value,
                    ),
                )
                continue

            for raw in raw_versions:
                version = semver.try_parse(raw)
                if version is None:
                    if is_debug_enabled(log):
                        log.debug("Skipping version '%s' of %s, not a semantic version", raw, package_id)
                    continue
                found.setdefault(semver.normalize(version), PackageFromResource(version, resource, raw))

        packages = [
            package
            for package in found.values()
            if options.allow_prerelease or not semver.is_prerelease(package.version)
        ]
        packages.sort(key=lambda package: package.version, reverse=True)

        if is_debug_enabled(log):
            log.debug(
                "Found %d versions of %s",
                len(packages),
                package_id,
                extra=extra_context(event="resolve", component="api_resolver", outcome="success", package_id=package_id.value),
            )
        return packages

    async def resolve_all_versions(
        self,
        package_id: PackageId,
        options: ResolveOptions,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> List[Version]:
        async with session_scope(session) as client:
            packages = await self.find_packages(package_id, options, client)
        return [package.version for package in packages]
