"""Version resolution facade selecting the network or subprocess strategy."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Union

import aiohttp

from tooler.common.logging_utils import extra_context
from tooler.resolution.api import ApiVersionResolver
from tooler.resolution.cli import CliVersionResolver
from tooler.resolution.options import ResolveOptions
from tooler.versioning import semver
from tooler.versioning.models import PackageId
from tooler.versioning.semver import Version

module_logger = logging.getLogger(__name__)


class VersionResolver:
    """Resolves all versions of a package id, newest first.

    The network strategy is the default; ``ResolveOptions.use_cli`` selects the
    subprocess strategy. Each call is bounded by ``ResolveOptions.timeout`` and
    a timeout yields an empty result.
    """

    def __init__(
        self,
        api_resolver: Optional[ApiVersionResolver] = None,
        cli_resolver: Optional[CliVersionResolver] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or module_logger
        self.api_resolver = api_resolver or ApiVersionResolver(self.logger)
        self.cli_resolver = cli_resolver or CliVersionResolver(logger=self.logger)

    async def resolve_all_versions(
        self,
        package_id: Union[PackageId, str],
        options: Optional[ResolveOptions] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> List[Version]:
        package_id = package_id if isinstance(package_id, PackageId) else PackageId(package_id)
        options = options or ResolveOptions()

        if options.use_cli:
            call = self.cli_resolver.resolve_all_versions(package_id, options)
        else:
            call = self.api_resolver.resolve_all_versions(package_id, options, session)

        try:
            if options.timeout:
                versions = await asyncio.wait_for(call, timeout=options.timeout)
            else:
                versions = await call
        except asyncio.TimeoutError:
            self.logger.warning(
                "Resolving versions of %s timed out after %s seconds",
                package_id,
                options.timeout,
                extra=extra_context(event="resolve", component="resolver", outcome="timeout", package_id=package_id.value),
            )
            return []

        ordered = [
            version
            for version in semver.sort_descending(versions)
            if options.allow_prerelease or not semver.is_prerelease(version)
        ]
        if options.max_rows is not None and options.max_rows >= 0:
            ordered = ordered[: options.max_rows]
        return ordered

    async def get_latest_version(
        self,
        package_id: Union[PackageId, str],
        options: Optional[ResolveOptions] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> Optional[Version]:
        """Highest resolved version, or None when nothing was found."""
        versions = await self.resolve_all_versions(package_id, options, session)
        return versions[0] if versions else None
