"""Protocol detection for package sources and resource construction."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from tooler.common.http_client import get_json, is_success, open_response
from tooler.common.logging_utils import extra_context, is_debug_enabled, safe_url
from tooler.constants import Constants
from tooler.sources.config import PackageSource
from tooler.sources.resources import (
    FindPackageByIdResource,
    FlatContainerResource,
    LocalFolderResource,
    ODataFeedResource,
)

logger = logging.getLogger(__name__)


def _auth(source: PackageSource) -> Optional[aiohttp.BasicAuth]:
    if source.credentials is None:
        return None
    return aiohttp.BasicAuth(source.credentials.username, source.credentials.password)


async def _probe(session: aiohttp.ClientSession, source: PackageSource, method: str) -> Optional[str]:
    """Return the response content type, or None when the request failed."""
    try:
        async with open_response(session, method, source.source, auth=_auth(source), context="protocol-probe") as response:
            if not is_success(response.status):
                logger.debug("%s %s returned status code %s", method, safe_url(source.source), response.status)
                return None
            return response.headers.get("Content-Type", "")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.debug("%s %s failed: %s", method, safe_url(source.source), exc)
        return None


async def is_v3_source(source: PackageSource, session: aiohttp.ClientSession) -> Optional[bool]:
    """Decide whether ``source`` speaks the V3 protocol.

    An explicit protocol version 3 wins. Otherwise the source URL is probed
    with HEAD, falling back to GET, and a JSON content type means V3. Returns
    None when the source could not be reached at all.
    """
    if source.protocol_version == 3:
        return True

    content_type = await _probe(session, source, "HEAD")
    if content_type is None:
        content_type = await _probe(session, source, "GET")
    if content_type is None:
        return None
    return "json" in content_type.lower()


def find_package_base_address(service_index: Any) -> Optional[str]:
    """Return the flat container base address declared by a V3 service index."""
    if not isinstance(service_index, dict):
        return None
    for resource in service_index.get("resources") or []:
        if not isinstance(resource, dict):
            continue
        resource_type = resource.get("@type")
        types = resource_type if isinstance(resource_type, list) else [resource_type]
        if Constants.PACKAGE_BASE_ADDRESS_TYPE in types and resource.get("@id"):
            return str(resource["@id"])
    return None


async def get_resource(
    source: PackageSource,
    session: aiohttp.ClientSession,
) -> Optional[FindPackageByIdResource]:
    """Build the find-package-by-id resource for ``source``; None when it is unusable."""
    if not source.is_http:
        return LocalFolderResource(source)

    v3 = await is_v3_source(source, session)
    if v3 is None:
        logger.warning(
            "Could not reach package source %s (%s), skipping",
            source.name,
            safe_url(source.source),
            extra=extra_context(event="protocol_probe", component="repository", outcome="unreachable", target=safe_url(source.source)),
        )
        return None

    if not v3:
        if is_debug_enabled(logger):
            logger.debug("Using V2 feed protocol for source %s", source.name)
        return ODataFeedResource(source, session)

    status, _, service_index = await get_json(session, source.source, auth=_auth(source), context="service-index")
    base_address = find_package_base_address(service_index)
    if base_address is None:
        logger.warning(
            "Source %s does not expose %s (status code %s), skipping",
            source.name,
            Constants.PACKAGE_BASE_ADDRESS_TYPE,
            status,
        )
        return None

    if is_debug_enabled(logger):
        logger.debug("Using V3 flat container %s for source %s", safe_url(base_address), source.name)
    return FlatContainerResource(source, base_address, session)
