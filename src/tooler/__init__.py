"""tooler: package version resolution, installation and executable bootstrap."""

from tooler.download import DownloadOutcome, DownloadResult, ExecutableDownloadClient  # noqa: F401
from tooler.install import PackageInstaller  # noqa: F401
from tooler.resolution import ResolveOptions, SourcePrefixCache, VersionResolver  # noqa: F401
from tooler.settings import CliSettings, DownloadSettings, PackageSettings  # noqa: F401
from tooler.versioning import (  # noqa: F401
    LATEST_AVAILABLE,
    LATEST_DOWNLOADED,
    InstallResult,
    PackageId,
    PackageReference,
    PackageVersion,
)

__version__ = "0.1.0"
