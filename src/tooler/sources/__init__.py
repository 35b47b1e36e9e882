"""Package sources: configuration, protocol detection and find-by-id resources."""

from .config import (  # noqa: F401
    ConfigTreeNode,
    PackageSource,
    SourceCredentials,
    SourceSettings,
    enabled_sources,
    flatten,
    load_default_settings,
    load_specific_settings,
    used_configuration_files,
)
from .repository import get_resource  # noqa: F401
from .resources import (  # noqa: F401
    FindPackageByIdResource,
    FlatContainerResource,
    LocalFolderResource,
    ODataFeedResource,
)
