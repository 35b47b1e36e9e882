"""Package identity, version selectors and semantic version helpers.

- semver.py: parsing/normalization on top of the semantic_version library
- models.py: PackageId, PackageVersion, PackageReference, CachedPackage, InstallResult
"""

from .models import (  # noqa: F401
    LATEST_AVAILABLE,
    LATEST_DOWNLOADED,
    CachedPackage,
    InstallResult,
    PackageId,
    PackageReference,
    PackageVersion,
    VersionKind,
)
from .semver import Version  # noqa: F401

__all__ = [
    "LATEST_AVAILABLE",
    "LATEST_DOWNLOADED",
    "CachedPackage",
    "InstallResult",
    "PackageId",
    "PackageReference",
    "PackageVersion",
    "Version",
    "VersionKind",
]
