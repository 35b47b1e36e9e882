"""Semantic version parsing and normalization built on ``semantic_version``.

Versions are strict three-part semantic versions with optional pre-release
labels. Build metadata is dropped on parse so that equality, hashing and
ordering follow version precedence.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional

import semantic_version

Version = semantic_version.Version

_NUMERIC_PREFIX = re.compile(r"^\s*(\d+)\.(\d+)\.(\d+)")


def try_parse(text: Optional[str]) -> Optional[Version]:
    """Parse ``text`` as a semantic version, returning None when it is invalid."""
    if text is None:
        return None
    candidate = str(text).strip()
    if not candidate:
        return None
    try:
        version = Version(candidate)
    except ValueError:
        return None
    return version.truncate("prerelease")


def parse_leading_triplet(text: Optional[str]) -> Optional[Version]:
    """Parse the first three dot-separated numeric components of ``text``.

    A fourth legacy component (``4.7.1.5393``) is ignored.
    """
    if not text:
        return None
    match = _NUMERIC_PREFIX.match(text)
    if not match:
        return None
    return try_parse(".".join(match.groups()))


def is_prerelease(version: Version) -> bool:
    """Return True when ``version`` carries a pre-release label."""
    return bool(version.prerelease)


def normalize(version: Version) -> str:
    """Return the normalized string form (no build metadata)."""
    return str(version.truncate("prerelease"))


def sort_descending(versions: Iterable[Version]) -> List[Version]:
    """Deduplicate by normalized form and sort newest first."""
    unique = {normalize(version): version for version in versions}
    return sorted(unique.values(), reverse=True)
