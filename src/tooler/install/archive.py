"""Reading and extracting package archives (zip files with a ``.nuspec`` manifest)."""
from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Optional, Union
from xml.etree import ElementTree as ET

from tooler.versioning import semver
from tooler.versioning.semver import Version

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def read_nuspec_version(archive: Union[str, Path]) -> Optional[Version]:
    """Version declared by the manifest at the root of ``archive``; None when unreadable."""
    path = Path(archive)
    if not path.is_file():
        return None
    try:
        with zipfile.ZipFile(path) as package:
            manifest = next(
                (name for name in package.namelist() if "/" not in name and name.lower().endswith(".nuspec")),
                None,
            )
            if manifest is None:
                return None
            root = ET.fromstring(package.read(manifest))
    except (OSError, zipfile.BadZipFile, ET.ParseError) as exc:
        logger.debug("Could not read manifest of '%s': %s", path, exc)
        return None

    for element in root.iter():
        if _local_name(element.tag) == "version" and element.text:
            return semver.try_parse(element.text)
    return None


def extract_archive(archive: Union[str, Path], target: Union[str, Path]) -> int:
    """Extract ``archive`` into ``target``; entries escaping ``target`` are skipped.

    Returns the number of extracted files.
    """
    target_path = Path(target)
    target_path.mkdir(parents=True, exist_ok=True)
    resolved_target = target_path.resolve()
    count = 0
    with zipfile.ZipFile(archive) as package:
        for member in package.infolist():
            destination = (target_path / member.filename).resolve()
            if resolved_target != destination and resolved_target not in destination.parents:
                logger.warning("Skipping archive entry '%s' outside of '%s'", member.filename, target_path)
                continue
            package.extract(member, target_path)
            if not member.is_dir():
                count += 1
    return count
