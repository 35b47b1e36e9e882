"""Immutable settings consumed by the download client, resolvers and installer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tooler.constants import Constants


@dataclass(frozen=True)
class DownloadSettings:
    """How the package-management executable is obtained."""

    download_enabled: bool = True
    exe_version: Optional[str] = Constants.DEFAULT_EXE_VERSION
    download_uri_format: Optional[str] = Constants.DEFAULT_EXE_DOWNLOAD_URI_FORMAT
    download_directory: Optional[str] = None
    update_enabled: bool = False
    force: bool = False


@dataclass(frozen=True)
class CliSettings:
    """Settings for the subprocess-based strategies.

    ``source_name`` and ``config_file`` are used when a call does not name its own.
    """

    source_name: Optional[str] = None
    config_file: Optional[str] = None
    exe_path: Optional[str] = None
    adaptive_prefix_enabled: bool = True
    adaptive_abort_line_threshold: int = Constants.ADAPTIVE_ABORT_LINE_THRESHOLD


@dataclass(frozen=True)
class PackageSettings:
    """Per-install settings."""

    allow_prerelease: bool = False
    source_name: Optional[str] = None
    config_file: Optional[str] = None
    temp_directory: Optional[str] = None
    use_cli: bool = False
    extract: bool = False
