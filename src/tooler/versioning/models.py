"""Data models for package identity, version selection and install outcomes."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from tooler.errors import InvalidPackageIdError
from tooler.versioning import semver
from tooler.versioning.semver import Version


@dataclass(frozen=True)
class PackageId:
    """Package identifier compared and hashed case-insensitively."""

    value: str
    _key: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise InvalidPackageIdError("Package id cannot be empty or whitespace")
        object.__setattr__(self, "_key", self.value.casefold())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PackageId):
            return self._key == other._key
        if isinstance(other, str):
            return self._key == other.casefold()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return self.value

    def matches(self, candidate: str) -> bool:
        """Case-insensitive comparison with a raw id string."""
        return self._key == candidate.strip().casefold()


class VersionKind(Enum):
    """Variant tag of a package version selector."""

    CONCRETE = "concrete"
    LATEST_AVAILABLE = "latest-available"
    LATEST_DOWNLOADED = "latest-downloaded"


@dataclass(frozen=True)
class PackageVersion:
    """Selects which version of a package to install.

    Either a concrete semantic version, or one of the sentinels
    ``LATEST_AVAILABLE`` (resolve remotely) and ``LATEST_DOWNLOADED`` (resolve
    from the local cache only).
    """

    kind: VersionKind
    version: Optional[Version] = None

    def __post_init__(self) -> None:
        if self.kind is VersionKind.CONCRETE and self.version is None:
            raise ValueError("A concrete package version requires a semantic version")
        if self.kind is not VersionKind.CONCRETE and self.version is not None:
            raise ValueError(f"{self.kind.value} does not carry a semantic version")

    @classmethod
    def concrete(cls, version: Union[Version, str]) -> "PackageVersion":
        if isinstance(version, str):
            parsed = semver.try_parse(version)
            if parsed is None:
                raise ValueError(f"'{version}' is not a valid semantic version")
            version = parsed
        return cls(VersionKind.CONCRETE, version)

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["PackageVersion"]:
        """Parse a selector string; ``latest`` is an alias of latest-available."""
        if text is None or not text.strip():
            return None
        lowered = text.strip().lower()
        if lowered in (VersionKind.LATEST_AVAILABLE.value, "latest"):
            return LATEST_AVAILABLE
        if lowered == VersionKind.LATEST_DOWNLOADED.value:
            return LATEST_DOWNLOADED
        parsed = semver.try_parse(text)
        if parsed is None:
            return None
        return cls(VersionKind.CONCRETE, parsed)

    @property
    def is_concrete(self) -> bool:
        return self.kind is VersionKind.CONCRETE

    def __str__(self) -> str:
        if self.version is not None:
            return semver.normalize(self.version)
        return f"[{self.kind.value}]"


LATEST_AVAILABLE = PackageVersion(VersionKind.LATEST_AVAILABLE)
LATEST_DOWNLOADED = PackageVersion(VersionKind.LATEST_DOWNLOADED)


@dataclass(frozen=True)
class PackageReference:
    """What to install: a package id and a version selector."""

    package_id: PackageId
    version: PackageVersion = LATEST_AVAILABLE

    @classmethod
    def of(cls, package_id: str, version: Optional[str] = None) -> "PackageReference":
        selector = PackageVersion.parse(version) if version else LATEST_AVAILABLE
        if selector is None:
            raise ValueError(f"'{version}' is not a valid package version")
        return cls(PackageId(package_id), selector)

    def __str__(self) -> str:
        return f"{self.package_id} {self.version}"


@dataclass(frozen=True)
class CachedPackage:
    """A version directory found under a package's cache root."""

    directory: Path
    version: Optional[Version]
    parsed: bool


@dataclass(frozen=True)
class InstallResult:
    """Outcome of an install; version and directory are None on failure.

    ``exception`` carries the captured cause when the failure came from an I/O
    error rather than from the package not being found.
    """

    package_id: PackageId
    version: Optional[Version] = None
    directory: Optional[Path] = None
    exception: Optional[BaseException] = field(default=None, compare=False)

    @classmethod
    def failed(cls, package_id: PackageId, exception: Optional[BaseException] = None) -> "InstallResult":
        return cls(package_id, None, None, exception)

    @property
    def succeeded(self) -> bool:
        return self.version is not None and self.directory is not None

    def __str__(self) -> str:
        version = semver.normalize(self.version) if self.version is not None else None
        return f"package_id: {self.package_id}, version: {version}, directory: {self.directory}"
