"""Package source configuration read from ``nuget.config`` files.

Only the parts needed to enumerate sources are understood: ``packageSources``,
``disabledPackageSources`` and ``packageSourceCredentials``. Default resolution
merges the user configuration with every config file found walking up from a
root directory; closer files take precedence and ``<clear/>`` drops whatever
was inherited from files further away.
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union
from xml.etree import ElementTree as ET

from tooler.constants import Constants

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ("NuGet.Config", "nuget.config", "NuGet.config")


@dataclass(frozen=True)
class SourceCredentials:
    """Clear-text credentials for a package source."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class PackageSource:
    """A configured package source (HTTP feed or local folder)."""

    name: str
    source: str
    protocol_version: Optional[int] = None
    enabled: bool = True
    credentials: Optional[SourceCredentials] = None

    @property
    def is_http(self) -> bool:
        return self.source.lower().startswith(("http://", "https://"))


@dataclass
class SourceSettings:
    """Effective source configuration and the files it was read from."""

    sources: List[PackageSource] = field(default_factory=list)
    config_files: List[Path] = field(default_factory=list)


@dataclass
class ConfigTreeNode:
    """A configuration root or file; ``hops`` is the directory distance to the lookup root."""

    path: str
    nodes: List["ConfigTreeNode"] = field(default_factory=list)
    hops: int = 0

    def add_node(self, node: "ConfigTreeNode") -> None:
        self.nodes.append(node)


class _Accumulator:
    """Merges config files from lowest to highest precedence."""

    def __init__(self) -> None:
        self.sources: Dict[str, dict] = {}
        self.disabled: Dict[str, bool] = {}
        self.credentials: Dict[str, SourceCredentials] = {}
        self.cleared = False

    def apply(self, path: Path) -> None:
        root = ET.parse(path).getroot()

        sources_element = root.find("packageSources")
        if sources_element is not None:
            for child in sources_element:
                if child.tag == "clear":
                    self.sources.clear()
                    self.cleared = True
                elif child.tag == "add" and child.get("key") and child.get("value"):
                    key = child.get("key", "")
                    self.sources.pop(key.casefold(), None)
                    self.sources[key.casefold()] = {
                        "name": key,
                        "source": _expand_source(child.get("value", ""), path),
                        "protocol_version": _parse_int(child.get("protocolVersion")),
                    }
                elif child.tag == "remove" and child.get("key"):
                    self.sources.pop(child.get("key", "").casefold(), None)

        disabled_element = root.find("disabledPackageSources")
        if disabled_element is not None:
            for child in disabled_element:
                if child.tag == "clear":
                    self.disabled.clear()
                elif child.tag == "add" and child.get("key"):
                    self.disabled[child.get("key", "").casefold()] = child.get("value", "").strip().lower() == "true"

        credentials_element = root.find("packageSourceCredentials")
        if credentials_element is not None:
            for source_element in credentials_element:
                values = {
                    item.get("key", ""): item.get("value", "")
                    for item in source_element
                    if item.tag == "add"
                }
                source_name = _decode_element_name(source_element.tag)
                if "ClearTextPassword" in values:
                    self.credentials[source_name.casefold()] = SourceCredentials(
                        values.get("Username", ""), values["ClearTextPassword"]
                    )
                elif "Password" in values:
                    logger.warning(
                        "Encrypted password for source '%s' in '%s' is not supported, the source will be used without credentials",
                        source_name,
                        path,
                    )

    def build(self, config_files: List[Path]) -> SourceSettings:
        sources = []
        for key, entry in self.sources.items():
            sources.append(
                PackageSource(
                    name=entry["name"],
                    source=entry["source"],
                    protocol_version=entry["protocol_version"],
                    enabled=not self.disabled.get(key, False),
                    credentials=self.credentials.get(key),
                )
            )
        if not sources and not self.cleared:
            sources.append(
                PackageSource(
                    name=Constants.NUGET_ORG_SOURCE_NAME,
                    source=Constants.NUGET_ORG_SOURCE_URL,
                    protocol_version=3,
                )
            )
        return SourceSettings(sources=sources, config_files=config_files)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _decode_element_name(tag: str) -> str:
    # Source names containing spaces are encoded as _x0020_ in element names
    return tag.replace("_x0020_", " ")


def _expand_source(value: str, config_path: Path) -> str:
    expanded = os.path.expandvars(value.strip())
    if expanded.lower().startswith(("http://", "https://")):
        return expanded
    candidate = Path(expanded)
    if not candidate.is_absolute():
        candidate = config_path.parent / candidate
    return str(candidate)


def user_config_file() -> Path:
    """Return the per-user configuration file path."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / "NuGet" / "NuGet.Config"
    return Path.home() / ".nuget" / "NuGet" / "NuGet.Config"


def _config_file_in(directory: Path) -> Optional[Path]:
    for name in CONFIG_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def discover_config_files(root: Optional[Union[str, Path]] = None) -> List[Path]:
    """Config files contributing to the default settings, closest first.

    The user configuration file comes last.
    """
    start = Path(root) if root else Path.cwd()
    start = start.resolve()

    found: List[Path] = []
    for directory in [start, *start.parents]:
        config_file = _config_file_in(directory)
        if config_file is not None and config_file not in found:
            found.append(config_file)

    user_file = user_config_file()
    if user_file.is_file() and user_file.resolve() not in [item.resolve() for item in found]:
        found.append(user_file)
    return found


def load_specific_settings(path: Union[str, Path]) -> SourceSettings:
    """Read exactly one configuration file.

    Raises:
        FileNotFoundError: the file does not exist.
        xml.etree.ElementTree.ParseError: the file is not well-formed XML.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"The config file '{config_path}' does not exist")
    accumulator = _Accumulator()
    accumulator.apply(config_path)
    return accumulator.build([config_path])


def load_default_settings(root: Optional[Union[str, Path]] = None) -> SourceSettings:
    """Merge the default chain of configuration files.

    Unreadable files are skipped with a warning.
    """
    config_files = discover_config_files(root)
    accumulator = _Accumulator()
    used: List[Path] = []
    for config_file in reversed(config_files):
        try:
            accumulator.apply(config_file)
        except (OSError, ET.ParseError) as exc:
            logger.warning("Could not read config file '%s': %s", config_file, exc)
            continue
        used.append(config_file)
    used.reverse()
    return accumulator.build(used)


def enabled_sources(settings: SourceSettings) -> List[PackageSource]:
    """Enabled sources in configuration order."""
    return [source for source in settings.sources if source.enabled]


def used_configuration_files(root: Optional[Union[str, Path]] = None) -> List[ConfigTreeNode]:
    """Tree of the configuration files used when resolving from ``root``.

    Top-level nodes are configuration roots (the filesystem anchor and the user
    configuration directory); files hang below the most specific root
    containing them.
    """
    start = (Path(root) if root else Path.cwd()).resolve()
    config_files = [path.resolve() for path in discover_config_files(start)]

    root_paths = {start.anchor}
    user_file = user_config_file()
    if user_file.is_file():
        root_paths.add(str(user_file.resolve().parent))

    nodes: List[ConfigTreeNode] = []
    all_roots: List[ConfigTreeNode] = []
    for root_path in sorted(root_paths, key=len):
        node = ConfigTreeNode(root_path)
        parent = next((item for item in reversed(all_roots) if _is_within(root_path, item.path)), None)
        if parent is not None:
            parent.add_node(node)
        else:
            nodes.append(node)
        all_roots.append(node)

    for config_file in sorted(config_files, key=lambda item: len(item.parts)):
        parent = next(
            (item for item in sorted(all_roots, key=lambda item: len(item.path), reverse=True) if _is_within(str(config_file), item.path)),
            None,
        )
        node = ConfigTreeNode(str(config_file), hops=_hops(config_file, start))
        if parent is not None:
            parent.add_node(node)
        else:
            nodes.append(node)

    return nodes


def _is_within(path: str, root: str) -> bool:
    try:
        Path(path).relative_to(root)
    except ValueError:
        return False
    return True


def _hops(config_file: Path, start: Path) -> int:
    hops = 0
    directory: Optional[Path] = config_file.parent
    while directory is not None:
        if directory == start:
            break
        hops += 1
        directory = directory.parent if directory.parent != directory else None
    return hops


def flatten(nodes: Iterable[ConfigTreeNode]) -> Iterator[str]:
    """Yield every node path depth-first."""
    for node in nodes:
        yield node.path
        yield from flatten(node.nodes)
