"""Tests for the remote executable release index."""

import asyncio

from fakes import FakeResponse, FakeSession
from tooler.download.index import fetch_available_versions, parse_version_index
from tooler.versioning import semver

INDEX = {
    "artifacts": [
        {
            "name": "win-x86-commandline",
            "displayName": "NuGet.exe",
            "versions": [
                {"displayName": "nuget.exe", "version": "5.4.0", "url": "https://dist.example/v5.4.0/nuget.exe"},
                {"displayName": "nuget.exe", "version": "6.0.0-preview.1", "url": "https://dist.example/v6.0.0-preview.1/nuget.exe"},
                {"displayName": "nuget.exe", "version": "5.11.0", "url": "https://dist.example/v5.11.0/nuget.exe"},
                {"displayName": "nuget.exe", "version": "4.9", "url": "https://dist.example/v4.9/nuget.exe"},
                {"displayName": "other.exe", "version": "9.0.0", "url": "https://dist.example/v9/other.exe"},
                {"displayName": "nuget.exe", "version": "7.0.0", "url": "file:///tmp/nuget.exe"},
            ],
        },
        {
            "name": "other-artifact",
            "versions": [{"displayName": "nuget.exe", "version": "10.0.0", "url": "https://dist.example/v10/nuget.exe"}],
        },
    ]
}


class TestParseVersionIndex:
    """Selection of releases from the index document."""

    def test_stable_matching_releases_newest_first(self):
        """Only stable nuget.exe releases of the artifact with http URLs are kept."""
        available = parse_version_index(INDEX)
        assert [semver.normalize(item.version) for item in available] == ["5.11.0", "5.4.0"]
        assert available[0].download_url == "https://dist.example/v5.11.0/nuget.exe"

    def test_artifact_name_is_case_insensitive(self):
        """Artifact names match regardless of case."""
        assert parse_version_index(INDEX, artifact_name="WIN-X86-COMMANDLINE")

    def test_malformed_documents(self):
        """Unexpected shapes yield no versions."""
        assert parse_version_index(None) == []
        assert parse_version_index({"artifacts": "nope"}) == []
        assert parse_version_index({"artifacts": [{"name": "other"}]}) == []


class TestFetchAvailableVersions:
    """Fetching the index over HTTP."""

    def test_fetch_success(self):
        """A successful response is parsed."""
        url = "https://dist.example/index.json"
        session = FakeSession({url: FakeResponse(200, INDEX)})
        available = asyncio.run(fetch_available_versions(session, url))
        assert len(available) == 2

    def test_fetch_failure_is_empty(self):
        """HTTP failures yield an empty list instead of raising."""
        available = asyncio.run(fetch_available_versions(FakeSession(), "https://dist.example/index.json"))
        assert available == []
