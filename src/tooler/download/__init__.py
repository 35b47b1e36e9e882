"""Bootstrap and self-update of the package-management executable.

- results.py: DownloadOutcome / DownloadResult
- index.py: remote release index parsing
- client.py: ExecutableDownloadClient
"""

from .client import (  # noqa: F401
    ExecutableDownloadClient,
    build_download_uri,
    resolve_download_directory,
    resolve_executable_path,
)
from .results import DownloadOutcome, DownloadResult  # noqa: F401

__all__ = [
    "DownloadOutcome",
    "DownloadResult",
    "ExecutableDownloadClient",
    "build_download_uri",
    "resolve_download_directory",
    "resolve_executable_path",
]
