"""Package install engine and local cache scanning."""

from .cache import resolve_cache_root, scan_cached_packages  # noqa: F401
from .installer import PackageInstaller  # noqa: F401

__all__ = ["PackageInstaller", "resolve_cache_root", "scan_cached_packages"]
