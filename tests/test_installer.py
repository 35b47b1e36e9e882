"""Tests for the package install engine."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from fakes import FakeResponse, FakeSession, make_nupkg
from tooler.download.results import DownloadResult
from tooler.errors import ExecutableUnavailableError
from tooler.install import installer as installer_module
from tooler.install.installer import PackageInstaller, build_install_arguments
from tooler.settings import CliSettings, PackageSettings
from tooler.versioning import semver
from tooler.versioning.models import (
    LATEST_AVAILABLE,
    LATEST_DOWNLOADED,
    PackageId,
    PackageReference,
    PackageVersion,
)

PACKAGE_ID = PackageId("Arbor.Tooler")
SERVICE_INDEX_URL = "https://feed.example/v3/index.json"
FLAT_BASE = "https://feed.example/flat/"


def _run(coro):
    return asyncio.run(coro)


def _reference(version):
    return PackageReference(PACKAGE_ID, version)


def _cache_version(root, version, archive=True):
    directory = root / PACKAGE_ID.value / version
    directory.mkdir(parents=True)
    if archive:
        (directory / f"{PACKAGE_ID.value}.{version}.nupkg").write_bytes(b"archive")
    return directory


@pytest.fixture
def feed(tmp_path):
    """A V3 source publishing 1.0.0 and 2.0.0."""
    config = tmp_path / "nuget.config"
    config.write_text(
        "<configuration><packageSources><clear />"
        f'<add key="feed" value="{SERVICE_INDEX_URL}" protocolVersion="3" />'
        "</packageSources></configuration>",
        encoding="utf-8",
    )
    routes = {
        SERVICE_INDEX_URL: FakeResponse(
            200, {"resources": [{"@id": FLAT_BASE, "@type": "PackageBaseAddress/3.0.0"}]}
        ),
        f"{FLAT_BASE}arbor.tooler/index.json": FakeResponse(200, {"versions": ["1.0.0", "2.0.0"]}),
    }
    for version in ("1.0.0", "2.0.0"):
        routes[f"{FLAT_BASE}arbor.tooler/{version}/arbor.tooler.{version}.nupkg"] = FakeResponse(
            200, make_nupkg(PACKAGE_ID.value, version, {"lib/tool.dll": f"tool {version}"})
        )
    return PackageSettings(config_file=str(config)), routes


class TestFromCache:
    """Installs satisfied by the local cache."""

    def test_concrete_version_hit_makes_no_requests(self, tmp_path):
        """A cached version is returned without any network traffic."""
        root = tmp_path / "cache"
        directory = _cache_version(root, "1.2.3")
        session = FakeSession()

        result = _run(
            PackageInstaller().install_package(
                _reference(PackageVersion.concrete("1.2.3")), session=session, install_base_directory=root
            )
        )

        assert result.succeeded
        assert result.directory == directory
        assert result.version == semver.try_parse("1.2.3")
        assert session.calls == []

    def test_latest_downloaded_picks_highest(self, tmp_path):
        """The highest cached stable version wins."""
        root = tmp_path / "cache"
        _cache_version(root, "1.0.0")
        expected = _cache_version(root, "1.10.0")
        _cache_version(root, "2.0.0-beta")
        _cache_version(root, "3.0.0", archive=False)

        result = _run(PackageInstaller().install_package(_reference(LATEST_DOWNLOADED), install_base_directory=root))

        assert result.directory == expected
        assert semver.normalize(result.version) == "1.10.0"

    def test_latest_downloaded_with_prerelease(self, tmp_path):
        """Pre-release cached versions count when allowed."""
        root = tmp_path / "cache"
        _cache_version(root, "1.0.0")
        expected = _cache_version(root, "2.0.0-beta")

        result = _run(
            PackageInstaller().install_package(
                _reference(LATEST_DOWNLOADED), PackageSettings(allow_prerelease=True), install_base_directory=root
            )
        )

        assert result.directory == expected

    def test_latest_downloaded_miss_fails_offline(self, tmp_path):
        """Nothing cached means failure without touching the network."""
        root = tmp_path / "cache"
        session = FakeSession()

        result = _run(
            PackageInstaller().install_package(_reference(LATEST_DOWNLOADED), session=session, install_base_directory=root)
        )

        assert not result.succeeded
        assert result.exception is None
        assert session.calls == []
        assert not (root / PACKAGE_ID.value).exists()

    def test_environment_cache_root(self, tmp_path, monkeypatch):
        """The environment variable selects the cache root."""
        root = tmp_path / "env-cache"
        directory = _cache_version(root, "1.0.0")
        monkeypatch.setenv("TOOLER_PACKAGES_DIRECTORY", str(root))

        result = _run(PackageInstaller().install_package(_reference(PackageVersion.concrete("1.0.0"))))

        assert result.directory == directory


class TestHttpInstall:
    """Installs through the package source network protocols."""

    def test_latest_available(self, tmp_path, feed):
        """The newest version is downloaded next to the package directory."""
        settings, routes = feed
        root = tmp_path / "cache"

        result = _run(
            PackageInstaller().install_package(
                _reference(LATEST_AVAILABLE), settings, session=FakeSession(routes), install_base_directory=root
            )
        )

        assert semver.normalize(result.version) == "2.0.0"
        assert result.directory == root
        assert (root / "Arbor.Tooler.nupkg").is_file()
        assert not (root / PACKAGE_ID.value).exists()

    def test_second_install_is_offline(self, tmp_path, feed):
        """Installing the same concrete version again makes no requests."""
        settings, routes = feed
        root = tmp_path / "cache"
        reference = _reference(PackageVersion.concrete("1.0.0"))

        first = _run(PackageInstaller().install_package(reference, settings, session=FakeSession(routes), install_base_directory=root))
        session = FakeSession(routes)
        second = _run(PackageInstaller().install_package(reference, settings, session=session, install_base_directory=root))

        assert first == second
        assert session.calls == []

    def test_latest_available_skips_download_when_current(self, tmp_path, feed):
        """Resolution still happens but an up to date archive is not fetched again."""
        settings, routes = feed
        root = tmp_path / "cache"
        _run(PackageInstaller().install_package(_reference(LATEST_AVAILABLE), settings, session=FakeSession(routes), install_base_directory=root))

        session = FakeSession(routes)
        result = _run(PackageInstaller().install_package(_reference(LATEST_AVAILABLE), settings, session=session, install_base_directory=root))

        assert semver.normalize(result.version) == "2.0.0"
        assert session.calls
        assert all(not call[1].endswith(".nupkg") for call in session.calls)

    def test_extract(self, tmp_path, feed):
        """Extraction unpacks into the package directory, and repeats are offline."""
        settings, routes = feed
        settings = PackageSettings(config_file=settings.config_file, extract=True)
        root = tmp_path / "cache"
        reference = _reference(PackageVersion.concrete("2.0.0"))

        result = _run(PackageInstaller().install_package(reference, settings, session=FakeSession(routes), install_base_directory=root))

        assert result.directory == root / PACKAGE_ID.value
        assert (result.directory / "lib" / "tool.dll").read_text() == "tool 2.0.0"

        session = FakeSession(routes)
        again = _run(PackageInstaller().install_package(reference, settings, session=session, install_base_directory=root))
        assert again == result
        assert session.calls == []

    def test_extract_replaces_previous_version(self, tmp_path, feed):
        """Files of an earlier extracted version are gone, version directories stay."""
        settings, routes = feed
        routes[f"{FLAT_BASE}arbor.tooler/1.0.0/arbor.tooler.1.0.0.nupkg"] = FakeResponse(
            200, make_nupkg(PACKAGE_ID.value, "1.0.0", {"lib/old.dll": "old"})
        )
        settings = PackageSettings(config_file=settings.config_file, extract=True)
        root = tmp_path / "cache"
        kept = _cache_version(root, "0.9.0")

        _run(PackageInstaller().install_package(
            _reference(PackageVersion.concrete("1.0.0")), settings, session=FakeSession(routes), install_base_directory=root
        ))
        result = _run(PackageInstaller().install_package(
            _reference(PackageVersion.concrete("2.0.0")), settings, session=FakeSession(routes), install_base_directory=root
        ))

        assert semver.normalize(result.version) == "2.0.0"
        assert result.directory == root / PACKAGE_ID.value
        assert not (result.directory / "lib" / "old.dll").exists()
        assert (result.directory / "lib" / "tool.dll").read_text() == "tool 2.0.0"
        assert (kept / f"{PACKAGE_ID.value}.0.9.0.nupkg").is_file()

    def test_unknown_version_fails(self, tmp_path, feed):
        """A version the source does not publish fails without exception."""
        settings, routes = feed
        root = tmp_path / "cache"

        result = _run(
            PackageInstaller().install_package(
                _reference(PackageVersion.concrete("9.9.9")), settings, session=FakeSession(routes), install_base_directory=root
            )
        )

        assert not result.succeeded
        assert result.exception is None
        assert not (root / PACKAGE_ID.value).exists()

    def test_corrupt_archive_is_captured(self, tmp_path, feed):
        """A broken archive during extraction becomes a failed result carrying the error."""
        settings, routes = feed
        routes[f"{FLAT_BASE}arbor.tooler/2.0.0/arbor.tooler.2.0.0.nupkg"] = FakeResponse(200, b"not a zip")
        settings = PackageSettings(config_file=settings.config_file, extract=True)

        result = _run(
            PackageInstaller().install_package(
                _reference(LATEST_AVAILABLE), settings, session=FakeSession(routes), install_base_directory=tmp_path / "cache"
            )
        )

        assert not result.succeeded
        assert result.exception is not None


class FakeNuGetInstall:
    """Mimics the executable's install command writing into -OutputDirectory."""

    def __init__(self, versions=("1.2.0",), exit_code=0):
        self.versions = versions
        self.exit_code = exit_code
        self.calls = []

    async def __call__(self, executable, arguments, on_stdout=None, on_stderr=None, **kwargs):
        self.calls.append(list(arguments))
        output = Path(arguments[arguments.index("-OutputDirectory") + 1])
        for version in self.versions:
            directory = output / f"{PACKAGE_ID.value}.{version}"
            directory.mkdir()
            (directory / f"{PACKAGE_ID.value}.{version}.nupkg").write_bytes(b"archive")
            (directory / "lib").mkdir()
            (directory / "lib" / "tool.dll").write_bytes(b"dll")
        on_stdout(f"Successfully installed '{PACKAGE_ID.value}'")
        return self.exit_code


def _cli_installer(tmp_path):
    exe = tmp_path / "nuget.exe"
    exe.write_bytes(b"exe")
    return PackageInstaller(cli_settings=CliSettings(exe_path=str(exe)))


class TestCliInstall:
    """Installs through the package-management executable."""

    def test_install_and_reuse(self, tmp_path):
        """The package lands in a version directory and is reused next time."""
        root = tmp_path / "cache"
        process = FakeNuGetInstall()
        settings = PackageSettings(use_cli=True)

        with patch.object(installer_module, "run_process", new=process):
            result = _run(_cli_installer(tmp_path).install_package(_reference(LATEST_AVAILABLE), settings, install_base_directory=root))
            again = _run(
                _cli_installer(tmp_path).install_package(
                    _reference(PackageVersion.concrete("1.2.0")), settings, install_base_directory=root
                )
            )

        assert result.directory == root / PACKAGE_ID.value / "1.2.0"
        assert (result.directory / "lib" / "tool.dll").is_file()
        assert again == result
        assert len(process.calls) == 1
        assert process.calls[0][:2] == ["install", PACKAGE_ID.value]

    def test_non_zero_exit_fails(self, tmp_path):
        """A failing executable produces a failed result and no leftovers."""
        root = tmp_path / "cache"
        with patch.object(installer_module, "run_process", new=FakeNuGetInstall(exit_code=1)):
            result = _run(
                _cli_installer(tmp_path).install_package(
                    _reference(LATEST_AVAILABLE), PackageSettings(use_cli=True), install_base_directory=root
                )
            )
        assert not result.succeeded
        assert not (root / PACKAGE_ID.value).exists()

    def test_ambiguous_output_fails(self, tmp_path):
        """More than one matching output directory is an error."""
        with patch.object(installer_module, "run_process", new=FakeNuGetInstall(versions=("1.0.0", "1.1.0"))):
            result = _run(
                _cli_installer(tmp_path).install_package(
                    _reference(LATEST_AVAILABLE), PackageSettings(use_cli=True), install_base_directory=tmp_path / "cache"
                )
            )
        assert not result.succeeded

    def test_missing_config_file_fails_before_running(self, tmp_path):
        """A config file that does not exist is reported without running anything."""
        process = AsyncMock()
        settings = PackageSettings(use_cli=True, config_file=str(tmp_path / "missing.config"))
        with patch.object(installer_module, "run_process", process):
            result = _run(
                _cli_installer(tmp_path).install_package(
                    _reference(LATEST_AVAILABLE), settings, install_base_directory=tmp_path / "cache"
                )
            )
        assert not result.succeeded
        process.assert_not_called()

    def test_executable_unavailable_raises(self, tmp_path):
        """Without an executable the subprocess strategy raises."""
        installer = PackageInstaller()
        installer.download_client.download_executable = AsyncMock(return_value=DownloadResult.disabled())

        with pytest.raises(ExecutableUnavailableError):
            _run(
                installer.install_package(
                    _reference(LATEST_AVAILABLE), PackageSettings(use_cli=True), install_base_directory=tmp_path / "cache"
                )
            )

    def test_build_install_arguments(self, tmp_path):
        """Flags follow the settings and the requested version."""
        settings = PackageSettings(source_name="feed", config_file="/cfg/nuget.config", allow_prerelease=True)
        arguments = build_install_arguments(_reference(PackageVersion.concrete("1.2.3")), settings, tmp_path)
        assert arguments == [
            "install", "Arbor.Tooler",
            "-ConfigFile", "/cfg/nuget.config",
            "-Source", "feed",
            "-Version", "1.2.3",
            "-PreRelease",
            "-OutputDirectory", str(tmp_path),
        ]


def test_reference_is_required(tmp_path):
    """Calling without a reference is misuse."""
    with pytest.raises(ValueError):
        _run(PackageInstaller().install_package(None, install_base_directory=tmp_path))
