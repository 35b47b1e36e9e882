"""Remote release index of the package-management executable.

The index is a JSON document shaped as::

    {"artifacts": [{"name": ..., "displayName": ...,
                    "versions": [{"displayName": ..., "version": ..., "url": ..., "releasedate": ...}]}]}
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import aiohttp

from tooler.common.http_client import get_json
from tooler.common.logging_utils import extra_context, is_debug_enabled, safe_url
from tooler.constants import Constants
from tooler.versioning import semver
from tooler.versioning.semver import Version

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableVersion:
    """A downloadable release of the executable."""

    download_url: str
    version: Version

    def __str__(self) -> str:
        return f"{semver.normalize(self.version)} {self.download_url}"


def parse_version_index(
    payload: Any,
    artifact_name: str = Constants.VERSION_INDEX_ARTIFACT,
    exe_name: str = Constants.EXE_NAME,
) -> List[AvailableVersion]:
    """Extract stable releases of ``exe_name`` for ``artifact_name``, newest first.

    Entries with unparseable versions or non-absolute URLs are skipped.
    """
    if not isinstance(payload, dict):
        return []
    artifacts = payload.get("artifacts")
    if not isinstance(artifacts, list):
        return []

    artifact = next(
        (
            item
            for item in artifacts
            if isinstance(item, dict) and str(item.get("name", "")).lower() == artifact_name.lower()
        ),
        None,
    )
    if artifact is None:
        return []

    found: List[AvailableVersion] = []
    for entry in artifact.get("versions") or []:
        if not isinstance(entry, dict):
            continue
        if str(entry.get("displayName", "")).lower() != exe_name.lower():
            continue
        version = semver.try_parse(entry.get("version"))
        url = str(entry.get("url") or "")
        if version is None or semver.is_prerelease(version):
            continue
        if not url.lower().startswith(("http://", "https://")):
            continue
        found.append(AvailableVersion(download_url=url, version=version))

    return sorted(found, key=lambda available: available.version, reverse=True)


async def fetch_available_versions(
    session: aiohttp.ClientSession,
    url: str = Constants.VERSION_INDEX_URL,
    logger: Optional[logging.Logger] = None,
) -> List[AvailableVersion]:
    """Fetch and parse the release index; failures yield an empty list."""
    log = logger or module_logger
    try:
        status, _, payload = await get_json(session, url, context="version-index")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        log.warning("Could not get available %s versions: %s", Constants.EXE_NAME, exc)
        return []

    if status != 200 or payload is None:
        log.warning(
            "Could not get available %s versions, http status code was not successful %s",
            Constants.EXE_NAME,
            status,
            extra=extra_context(event="version_index", outcome="failed", status_code=status, target=safe_url(url)),
        )
        return []

    available = parse_version_index(payload)
    if available and is_debug_enabled(log):
        log.debug(
            "Found available %s versions [%d]: %s",
            Constants.EXE_NAME,
            len(available),
            ", ".join(semver.normalize(item.version) for item in available),
        )
    return available
