"""Console front-end for tooler.

Commands:
    list          list versions of a package, newest first
    download-exe  download the package-management executable
    install       install a package into the local cache
    config-files  show the package source config files in effect
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

from tooler.common.logging_utils import configure_logging, extra_context, is_debug_enabled
from tooler.config import ToolerConfig, load_config
from tooler.constants import Constants, ExitCodes
from tooler.download.client import ExecutableDownloadClient
from tooler.errors import ExecutableUnavailableError, ToolerError
from tooler.install.installer import PackageInstaller
from tooler.resolution.cli import CliVersionResolver
from tooler.resolution.options import ResolveOptions
from tooler.resolution.resolver import VersionResolver
from tooler.sources.config import flatten, used_configuration_files
from tooler.versioning import semver
from tooler.versioning.models import PackageReference

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog=Constants.TOOL_NAME,
        description="tooler - package version listing, installation and executable bootstrap",
        add_help=True,
    )
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--config-file",
                        dest="CONFIG_FILE",
                        help="Path to a YAML configuration file",
                        action="store",
                        type=str)

    commands = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    commands.required = True

    list_parser = commands.add_parser("list", help="List available versions of a package")
    list_parser.add_argument("--package-id", dest="PACKAGE_ID", required=True, type=str,
                             help="Package id to list versions of")
    list_parser.add_argument("--source", dest="SOURCE", type=str, help="Only query the source with this name")
    list_parser.add_argument("--config", dest="NUGET_CONFIG", type=str, help="Path to a nuget.config file")
    list_parser.add_argument("--take", dest="TAKE", type=int, help="Maximum number of versions to print")
    list_parser.add_argument("--prerelease", dest="PRERELEASE", action="store_true",
                             help="Include pre-release versions")
    list_parser.add_argument("--use-cli", dest="USE_CLI", action="store_true",
                             help="List through the package-management executable")

    download_parser = commands.add_parser("download-exe", help="Download the package-management executable")
    download_parser.add_argument("--output-directory", dest="OUTPUT_DIRECTORY", required=True, type=str,
                                 help="Target directory, or 'default' for the per-user tools directory")
    download_parser.add_argument("--exe-version", dest="EXE_VERSION", type=str,
                                 help="Executable version to download (default: latest)")
    download_parser.add_argument("--force", dest="FORCE", action="store_true",
                                 help="Download even when the executable exists")
    download_parser.add_argument("--update", dest="UPDATE", action="store_true",
                                 help="Update an existing executable to the newest release")

    install_parser = commands.add_parser("install", help="Install a package into the local cache")
    install_parser.add_argument("--package-id", dest="PACKAGE_ID", required=True, type=str,
                                help="Package id to install")
    install_parser.add_argument("--version", dest="VERSION", type=str,
                                help="Version, 'latest' or 'latest-downloaded' (default: latest)")
    install_parser.add_argument("--source", dest="SOURCE", type=str, help="Only use the source with this name")
    install_parser.add_argument("--config", dest="NUGET_CONFIG", type=str, help="Path to a nuget.config file")
    install_parser.add_argument("--prerelease", dest="PRERELEASE", action="store_true",
                                help="Allow pre-release versions")
    install_parser.add_argument("--use-cli", dest="USE_CLI", action="store_true",
                                help="Install through the package-management executable")
    install_parser.add_argument("--extract", dest="EXTRACT", action="store_true",
                                help="Extract the downloaded archive")
    install_parser.add_argument("--install-directory", dest="INSTALL_DIRECTORY", type=str,
                                help="Package cache root directory")

    config_parser = commands.add_parser("config-files", help="Show the package source config files in effect")
    config_parser.add_argument("--root", dest="ROOT", type=str, help="Directory to resolve from (default: cwd)")

    return parser.parse_args(argv)


async def _list_versions(args: argparse.Namespace, config: ToolerConfig) -> int:
    cli_resolver = CliVersionResolver(
        download_settings=config.download,
        cli_settings=config.cli,
    )
    resolver = VersionResolver(cli_resolver=cli_resolver)
    take = args.TAKE if args.TAKE and args.TAKE > 0 else None
    package = config.package
    options = ResolveOptions(
        source_name=args.SOURCE or package.source_name,
        config_file=args.NUGET_CONFIG or package.config_file,
        allow_prerelease=args.PRERELEASE or package.allow_prerelease,
        max_rows=take,
        use_cli=args.USE_CLI or package.use_cli,
    )
    versions = await resolver.resolve_all_versions(args.PACKAGE_ID, options)
    for version in versions:
        print(semver.normalize(version))
    return ExitCodes.SUCCESS.value if versions else ExitCodes.FAILURE.value


async def _download_exe(args: argparse.Namespace, config: ToolerConfig) -> int:
    output_directory = args.OUTPUT_DIRECTORY
    if output_directory.strip().lower() == "default":
        output_directory = None

    changes = {"download_directory": output_directory, "force": args.FORCE or config.download.force}
    if args.EXE_VERSION:
        changes["exe_version"] = args.EXE_VERSION
    if args.UPDATE:
        changes["update_enabled"] = True
    settings = dataclasses.replace(config.download, **changes)

    result = await ExecutableDownloadClient().download_executable(settings)
    if result.succeeded:
        print(result.path)
        return ExitCodes.SUCCESS.value
    logger.error("Could not download %s, %s", Constants.EXE_NAME, result)
    return ExitCodes.FAILURE.value


async def _install(args: argparse.Namespace, config: ToolerConfig) -> int:
    try:
        reference = PackageReference.of(args.PACKAGE_ID, args.VERSION)
    except ValueError as exc:
        logger.error("%s", exc)
        return ExitCodes.USAGE_ERROR.value

    settings = dataclasses.replace(
        config.package,
        allow_prerelease=args.PRERELEASE or config.package.allow_prerelease,
        source_name=args.SOURCE or config.package.source_name,
        config_file=args.NUGET_CONFIG or config.package.config_file,
        use_cli=args.USE_CLI or config.package.use_cli,
        extract=args.EXTRACT or config.package.extract,
    )
    installer = PackageInstaller(cli_settings=config.cli, download_settings=config.download)
    result = await installer.install_package(
        reference,
        settings,
        install_base_directory=args.INSTALL_DIRECTORY or config.packages_directory,
    )
    if not result.succeeded:
        logger.error("Could not install %s", reference)
        return ExitCodes.FAILURE.value
    print(result.directory)
    return ExitCodes.SUCCESS.value


def _config_files(args: argparse.Namespace) -> int:
    for path in flatten(used_configuration_files(args.ROOT)):
        print(path)
    return ExitCodes.SUCCESS.value


def run(args: argparse.Namespace) -> int:
    """Execute the parsed command and return the process exit code."""
    config = load_config(args.CONFIG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    if args.COMMAND == "config-files":
        return _config_files(args)
    if args.COMMAND == "list":
        return asyncio.run(_list_versions(args, config))
    if args.COMMAND == "download-exe":
        return asyncio.run(_download_exe(args, config))
    if args.COMMAND == "install":
        return asyncio.run(_install(args, config))
    return ExitCodes.USAGE_ERROR.value


def main(argv: Optional[List[str]] = None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)

    try:
        exit_code = run(args)
    except ExecutableUnavailableError as exc:
        logger.error("%s", exc)
        exit_code = ExitCodes.FAILURE.value
    except ToolerError as exc:
        logger.error("%s", exc)
        exit_code = ExitCodes.USAGE_ERROR.value
    except KeyboardInterrupt:
        exit_code = ExitCodes.FAILURE.value

    logger.debug("Exit code is %s", exit_code)
    sys.exit(exit_code)
