"""Find-package-by-id resources: list versions of a package and fetch its archive.

Three flavours exist:
- FlatContainerResource: V3 ``PackageBaseAddress`` (flat container) JSON API
- ODataFeedResource: V2 OData Atom feed
- LocalFolderResource: a directory of archives, flat or hierarchical
"""
from __future__ import annotations

import abc
import logging
import shutil
import urllib.parse
from pathlib import Path
from typing import List, Optional, Set
from xml.etree import ElementTree as ET

import aiohttp

from tooler.common.http_client import download_to_file, get_json, get_text, is_success
from tooler.common.logging_utils import extra_context, is_debug_enabled, safe_url
from tooler.constants import Constants
from tooler.sources.config import PackageSource

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
DATASERVICES_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices"
METADATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"
HEADERS_ATOM = {"Accept": "application/atom+xml,application/xml"}

# Upper bound on followed "next" links of a paged feed
MAX_FEED_PAGES = 100


class FindPackageByIdResource(abc.ABC):
    """Lists the versions of a package id and copies a package archive."""

    def __init__(self, source: PackageSource) -> None:
        self.source = source

    @abc.abstractmethod
    async def get_all_versions(self, package_id: str) -> List[str]:
        """Return the raw version strings published for ``package_id``."""

    @abc.abstractmethod
    async def copy_package(self, package_id: str, version: str, destination: Path) -> bool:
        """Write the archive of ``package_id`` ``version`` to ``destination``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source.name!r}, {safe_url(self.source.source)!r})"


class _HttpResource(FindPackageByIdResource):
    def __init__(self, source: PackageSource, session: aiohttp.ClientSession) -> None:
        super().__init__(source)
        self.session = session

    @property
    def auth(self) -> Optional[aiohttp.BasicAuth]:
        credentials = self.source.credentials
        if credentials is None:
            return None
        return aiohttp.BasicAuth(credentials.username, credentials.password)

    async def _download(self, url: str, destination: Path, package_id: str) -> bool:
        status = await download_to_file(self.session, url, destination, auth=self.auth, context="package")
        if not is_success(status):
            logger.warning(
                "Could not download package %s from %s, status code %s",
                package_id,
                safe_url(url),
                status,
                extra=extra_context(
                    event="download",
                    component="resource",
                    outcome="failed",
                    status_code=status,
                    target=safe_url(url),
                    package_id=package_id,
                ),
            )
            return False
        return True


class FlatContainerResource(_HttpResource):
    """V3 flat container rooted at a ``PackageBaseAddress/3.0.0`` URL."""

    def __init__(self, source: PackageSource, base_address: str, session: aiohttp.ClientSession) -> None:
        super().__init__(source, session)
        self.base_address = base_address if base_address.endswith("/") else f"{base_address}/"

    def _package_root(self, package_id: str) -> str:
        return f"{self.base_address}{urllib.parse.quote(package_id.lower(), safe='')}/"

    def index_url(self, package_id: str) -> str:
        return f"{self._package_root(package_id)}index.json"

    def content_url(self, package_id: str, version: str) -> str:
        lower_id = package_id.lower()
        lower_version = version.lower()
        return f"{self._package_root(package_id)}{lower_version}/{lower_id}.{lower_version}.{Constants.ARCHIVE_EXTENSION}"

    async def get_all_versions(self, package_id: str) -> List[str]:
        url = self.index_url(package_id)
        status, _, payload = await get_json(self.session, url, auth=self.auth, context="flat-container")
        if status == 404:
            return []
        if not is_success(status) or not isinstance(payload, dict):
            logger.warning(
                "Could not list versions of %s from %s, status code %s",
                package_id,
                safe_url(url),
                status,
            )
            return []
        versions = payload.get("versions")
        if not isinstance(versions, list):
            return []
        return [str(version) for version in versions if version]

    async def copy_package(self, package_id: str, version: str, destination: Path) -> bool:
        return await self._download(self.content_url(package_id, version), destination, package_id)


def parse_feed_page(text: str) -> "tuple[List[str], Optional[str]]":
    """Parse one Atom page into (versions, next page URL)."""
    root = ET.fromstring(text)
    versions: List[str] = []
    for entry in root.findall(f"{{{ATOM_NS}}}entry"):
        properties = entry.find(f"{{{METADATA_NS}}}properties")
        if properties is None:
            continue
        version_element = properties.find(f"{{{DATASERVICES_NS}}}Version")
        if version_element is not None and version_element.text:
            versions.append(version_element.text.strip())

    next_url = None
    for link in root.findall(f"{{{ATOM_NS}}}link"):
        if link.get("rel") == "next" and link.get("href"):
            next_url = link.get("href")
            break
    return versions, next_url


class ODataFeedResource(_HttpResource):
    """V2 OData feed."""

    @property
    def feed_root(self) -> str:
        return self.source.source.rstrip("/")

    def query_url(self, package_id: str) -> str:
        return f"{self.feed_root}/FindPackagesById()?id='{urllib.parse.quote(package_id, safe='')}'"

    def content_url(self, package_id: str, version: str) -> str:
        return f"{self.feed_root}/package/{urllib.parse.quote(package_id, safe='')}/{version}"

    async def get_all_versions(self, package_id: str) -> List[str]:
        versions: List[str] = []
        url: Optional[str] = self.query_url(package_id)
        visited: Set[str] = set()

        while url and url not in visited and len(visited) < MAX_FEED_PAGES:
            visited.add(url)
            status, text = await get_text(self.session, url, headers=HEADERS_ATOM, auth=self.auth, context="odata-feed")
            if status == 404:
                break
            if text is None:
                logger.warning(
                    "Could not list versions of %s from %s, status code %s",
                    package_id,
                    safe_url(url),
                    status,
                )
                break
            try:
                page_versions, url = parse_feed_page(text)
            except ET.ParseError as exc:
                logger.warning("Could not parse feed response from %s: %s", safe_url(url), exc)
                break
            versions.extend(page_versions)

        if is_debug_enabled(logger):
            logger.debug(
                "Found %d versions of %s in feed %s",
                len(versions),
                package_id,
                safe_url(self.feed_root),
            )
        return versions

    async def copy_package(self, package_id: str, version: str, destination: Path) -> bool:
        return await self._download(self.content_url(package_id, version), destination, package_id)


class LocalFolderResource(FindPackageByIdResource):
    """A folder holding ``{id}.{version}.nupkg`` files or ``{id}/{version}/*.nupkg``."""

    @property
    def root(self) -> Path:
        return Path(self.source.source)

    def _archives(self, package_id: str) -> "dict[str, Path]":
        found = {}
        root = self.root
        if not root.is_dir():
            return found

        extension = f".{Constants.ARCHIVE_EXTENSION}"
        prefix = f"{package_id.lower()}."
        for item in root.iterdir():
            name = item.name.lower()
            if item.is_file() and name.startswith(prefix) and name.endswith(extension):
                found.setdefault(item.name[len(prefix):-len(extension)], item)
            elif item.is_dir() and name == package_id.lower():
                for version_dir in item.iterdir():
                    archives = sorted(version_dir.glob(f"*{extension}")) if version_dir.is_dir() else []
                    if archives:
                        found.setdefault(version_dir.name, archives[0])
        return found

    async def get_all_versions(self, package_id: str) -> List[str]:
        return list(self._archives(package_id))

    async def copy_package(self, package_id: str, version: str, destination: Path) -> bool:
        archives = {key.lower(): value for key, value in self._archives(package_id).items()}
        archive = archives.get(version.lower())
        if archive is None:
            logger.warning("Package %s %s was not found in folder '%s'", package_id, version, self.root)
            return False
        shutil.copyfile(archive, destination)
        return True
