"""Version resolution engine.

- options.py: ResolveOptions
- prefix_cache.py: SourcePrefixCache
- api.py: network protocol strategy
- cli.py: subprocess strategy with adaptive prefix search
- resolver.py: VersionResolver facade
"""

from .api import ApiVersionResolver, PackageFromResource  # noqa: F401
from .cli import CliVersionResolver  # noqa: F401
from .options import ResolveOptions  # noqa: F401
from .prefix_cache import SourcePrefixCache  # noqa: F401
from .resolver import VersionResolver  # noqa: F401

__all__ = [
    "ApiVersionResolver",
    "CliVersionResolver",
    "PackageFromResource",
    "ResolveOptions",
    "SourcePrefixCache",
    "VersionResolver",
]
