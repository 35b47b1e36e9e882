"""Tests for the local package cache scanner."""

from pathlib import Path

from fakes import make_nupkg
from tooler.install import cache
from tooler.install.archive import extract_archive, read_nuspec_version
from tooler.versioning import semver


def _version_dir(root, name, archive=True, nested=False):
    directory = root / name
    directory.mkdir(parents=True)
    if archive:
        target = directory / "lib" if nested else directory
        target.mkdir(exist_ok=True)
        (target / f"pkg.{name}.nupkg").write_bytes(b"archive")
    return directory


def _names(entries):
    return sorted(semver.normalize(entry.version) for entry in entries)


class TestScanCachedPackages:
    """Finding valid version directories."""

    def test_only_version_directories_with_archives(self, tmp_path):
        """Directories need a semantic version name and an archive below them."""
        _version_dir(tmp_path, "1.0.0")
        _version_dir(tmp_path, "1.1.0", nested=True)
        _version_dir(tmp_path, "2.0.0", archive=False)
        _version_dir(tmp_path, "not-a-version")
        (tmp_path / "3.0.0").write_text("a file, not a directory")

        assert _names(cache.scan_cached_packages(tmp_path, allow_prerelease=False)) == ["1.0.0", "1.1.0"]

    def test_prerelease_filter(self, tmp_path):
        """Pre-release directories only count when allowed."""
        _version_dir(tmp_path, "1.0.0")
        _version_dir(tmp_path, "2.0.0-rc.1")

        assert _names(cache.scan_cached_packages(tmp_path, allow_prerelease=False)) == ["1.0.0"]
        assert _names(cache.scan_cached_packages(tmp_path, allow_prerelease=True)) == ["1.0.0", "2.0.0-rc.1"]

    def test_missing_directory(self, tmp_path):
        """A package never installed has no cached versions."""
        assert cache.scan_cached_packages(tmp_path / "missing", allow_prerelease=True) == []

    def test_latest_and_find(self, tmp_path):
        """Helpers pick by semantic version precedence."""
        _version_dir(tmp_path, "1.9.0")
        _version_dir(tmp_path, "1.10.0")
        entries = cache.scan_cached_packages(tmp_path, allow_prerelease=False)

        assert semver.normalize(cache.latest_cached(entries).version) == "1.10.0"
        assert cache.find_cached(entries, semver.try_parse("1.9.0")).directory == tmp_path / "1.9.0"
        assert cache.find_cached(entries, semver.try_parse("5.0.0")) is None
        assert cache.latest_cached([]) is None


class TestResolveCacheRoot:
    """Cache root precedence."""

    def test_explicit_wins(self, tmp_path, monkeypatch):
        """An explicit directory beats the environment."""
        monkeypatch.setenv("TOOLER_PACKAGES_DIRECTORY", str(tmp_path / "env"))
        assert cache.resolve_cache_root(tmp_path / "explicit") == tmp_path / "explicit"

    def test_environment(self, tmp_path, monkeypatch):
        """The environment variable applies without an explicit directory."""
        monkeypatch.setenv("TOOLER_PACKAGES_DIRECTORY", str(tmp_path / "env"))
        assert cache.resolve_cache_root(None) == tmp_path / "env"
        assert cache.resolve_cache_root("  ") == tmp_path / "env"

    def test_app_data_fallback(self, tmp_path, monkeypatch):
        """Without overrides the per-user data directory is used."""
        monkeypatch.delenv("TOOLER_PACKAGES_DIRECTORY", raising=False)
        monkeypatch.setattr(cache.fs, "user_local_app_data", lambda: tmp_path)
        assert cache.resolve_cache_root() == tmp_path / "tooler" / "packages"

    def test_no_app_data(self, monkeypatch):
        """No resolvable directory yields None."""
        monkeypatch.delenv("TOOLER_PACKAGES_DIRECTORY", raising=False)
        monkeypatch.setattr(cache.fs, "user_local_app_data", lambda: None)
        assert cache.resolve_cache_root() is None


class TestArchive:
    """Manifest reading and extraction."""

    def test_read_nuspec_version(self, tmp_path):
        """The manifest version is read from the archive root."""
        path = tmp_path / "pkg.nupkg"
        path.write_bytes(make_nupkg("Pkg", "1.2.3-beta"))
        assert read_nuspec_version(path) == semver.try_parse("1.2.3-beta")

    def test_unreadable_archives(self, tmp_path):
        """Missing and corrupt archives have no version."""
        broken = tmp_path / "broken.nupkg"
        broken.write_bytes(b"garbage")
        assert read_nuspec_version(tmp_path / "missing.nupkg") is None
        assert read_nuspec_version(broken) is None

    def test_extract_skips_escaping_entries(self, tmp_path):
        """Entries resolving outside the target are not written."""
        path = tmp_path / "pkg.nupkg"
        path.write_bytes(make_nupkg("Pkg", "1.0.0", {"lib/a.dll": "a", "../evil.txt": "x"}))
        target = tmp_path / "out"

        count = extract_archive(path, target)

        assert count == 2
        assert (target / "lib" / "a.dll").read_text() == "a"
        assert not Path(tmp_path / "evil.txt").exists()
