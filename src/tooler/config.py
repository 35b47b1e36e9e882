"""YAML configuration file loading.

Example ``config.yml``::

    packages_directory: /opt/tooler/packages
    download:
      exe_version: 6.7.0
      update_enabled: true
    cli:
      adaptive_prefix_enabled: false
      adaptive_abort_line_threshold: 10
      source_name: internal
    package:
      allow_prerelease: true
      source_name: nuget.org

Path precedence: explicit argument, then ``TOOLER_CONFIG``, then
``$XDG_CONFIG_HOME/tooler/config.yml`` (``~/.config/tooler/config.yml``).
A missing file yields defaults; so does a malformed one, with an error logged.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import yaml

from tooler.constants import Constants
from tooler.settings import CliSettings, DownloadSettings, PackageSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ToolerConfig:
    """Settings loaded from the configuration file."""

    download: DownloadSettings = field(default_factory=DownloadSettings)
    cli: CliSettings = field(default_factory=CliSettings)
    package: PackageSettings = field(default_factory=PackageSettings)
    packages_directory: Optional[str] = None
    path: Optional[Path] = None


def default_config_path() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / Constants.TOOL_NAME / "config.yml"


def _resolve_path(path: Optional[str]) -> Path:
    if path:
        return Path(path)
    from_env = os.environ.get(Constants.ENV_CONFIG)
    if from_env and from_env.strip():
        return Path(from_env)
    return default_config_path()


def _build(section_name: str, cls: Type[T], data: Any) -> T:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        logger.warning("Config section '%s' is not a mapping, using defaults", section_name)
        return cls()

    known = {item.name for item in dataclasses.fields(cls)}
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown config key '%s.%s'", section_name, key)
            continue
        values[key] = value
    return cls(**values)


def load_config(path: Optional[str] = None) -> ToolerConfig:
    """Load the configuration file; see the module docstring for lookup rules."""
    config_path = _resolve_path(path)
    if not config_path.is_file():
        if path:
            logger.warning("Config file not found: %s", config_path)
        return ToolerConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load config '%s': %s", config_path, exc)
        return ToolerConfig()

    if not isinstance(data, dict):
        logger.error("Config file '%s' does not contain a mapping", config_path)
        return ToolerConfig()

    for key in data:
        if key not in ("download", "cli", "package", "packages_directory"):
            logger.warning("Ignoring unknown config key '%s'", key)

    packages_directory = data.get("packages_directory")
    return ToolerConfig(
        download=_build("download", DownloadSettings, data.get("download")),
        cli=_build("cli", CliSettings, data.get("cli")),
        package=_build("package", PackageSettings, data.get("package")),
        packages_directory=str(packages_directory) if packages_directory else None,
        path=config_path,
    )
