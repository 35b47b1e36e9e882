"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the console front-end.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FAILURE = 1
    USAGE_ERROR = 2


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    TOOL_NAME = "tooler"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    MAX_LOGGED_LINE_LENGTH = 2000

    # Executable download
    EXE_NAME = "nuget.exe"
    DEFAULT_EXE_VERSION = "latest"
    DEFAULT_EXE_DOWNLOAD_URI_FORMAT = "https://dist.nuget.org/win-x86-commandline/{0}/nuget.exe"
    VERSION_PLACEHOLDER = "{0}"
    VERSION_INDEX_URL = "https://dist.nuget.org/index.json"
    VERSION_INDEX_ARTIFACT = "win-x86-commandline"
    VERSION_OUTPUT_LABEL = "NuGet Version:"
    MIN_EXE_SIZE_BYTES = 1024 * 1024
    EXE_REPLACE_DELAY_SEC = 2.0
    VERSION_PROBE_TIMEOUT_SEC = 2.0
    DOWNLOAD_CHUNK_SIZE = 8192

    # Version resolution
    REQUEST_TIMEOUT = 30  # Default timeout in seconds for a version resolution call
    DEFAULT_PREFIX = "packageid:"
    ADAPTIVE_ABORT_LINE_THRESHOLD = 5
    IGNORED_OUTPUT_STATEMENTS = ("Using credentials", "No packages found", "MSBuild auto-detection")

    # Packages
    ARCHIVE_EXTENSION = "nupkg"
    NUGET_ORG_SOURCE_NAME = "nuget.org"
    NUGET_ORG_SOURCE_URL = "https://api.nuget.org/v3/index.json"
    PACKAGE_BASE_ADDRESS_TYPE = "PackageBaseAddress/3.0.0"
    TEMP_DIRECTORY_PREFIX = "tooler"

    # Environment
    ENV_CONFIG = "TOOLER_CONFIG"
    ENV_LOG_LEVEL = "TOOLER_LOG_LEVEL"
    ENV_EXE_DOWNLOAD_DIRECTORY = "TOOLER_EXE_DOWNLOAD_DIRECTORY"
    ENV_PACKAGES_DIRECTORY = "TOOLER_PACKAGES_DIRECTORY"
