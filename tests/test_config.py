"""Tests for the YAML configuration file."""

import textwrap

from tooler.config import ToolerConfig, default_config_path, load_config
from tooler.settings import CliSettings, DownloadSettings, PackageSettings


def _write(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_sections_are_loaded(tmp_path):
    """Known keys populate the settings objects."""
    path = _write(
        tmp_path,
        """
        packages_directory: /opt/tooler/packages
        download:
          exe_version: 6.7.0
          update_enabled: true
        cli:
          adaptive_prefix_enabled: false
          adaptive_abort_line_threshold: 8
          source_name: internal
        package:
          allow_prerelease: true
          source_name: nuget.org
        """,
    )

    config = load_config(str(path))

    assert config.packages_directory == "/opt/tooler/packages"
    assert config.download == DownloadSettings(exe_version="6.7.0", update_enabled=True)
    assert config.cli == CliSettings(adaptive_prefix_enabled=False, adaptive_abort_line_threshold=8, source_name="internal")
    assert config.package == PackageSettings(allow_prerelease=True, source_name="nuget.org")
    assert config.path == path


def test_unknown_keys_are_ignored(tmp_path, caplog):
    """Unknown keys are reported and skipped."""
    path = _write(
        tmp_path,
        """
        colour: blue
        download:
          speed: fast
          force: true
        """,
    )

    with caplog.at_level("WARNING"):
        config = load_config(str(path))

    assert config.download.force is True
    assert "colour" in caplog.text
    assert "download.speed" in caplog.text


def test_missing_file_yields_defaults(tmp_path):
    """A config file that does not exist gives the defaults."""
    config = load_config(str(tmp_path / "missing.yml"))
    assert config == ToolerConfig()


def test_malformed_file_yields_defaults(tmp_path, caplog):
    """Invalid YAML is logged and ignored."""
    path = _write(tmp_path, "download: [unclosed\n")
    with caplog.at_level("ERROR"):
        config = load_config(str(path))
    assert config == ToolerConfig()
    assert "Failed to load config" in caplog.text


def test_non_mapping_section(tmp_path):
    """A section that is not a mapping falls back to defaults."""
    path = _write(tmp_path, "cli: just a string\n")
    assert load_config(str(path)).cli == CliSettings()


def test_environment_variable(tmp_path, monkeypatch):
    """TOOLER_CONFIG points at the file when no path is given."""
    path = _write(tmp_path, "packages_directory: /srv/packages\n")
    monkeypatch.setenv("TOOLER_CONFIG", str(path))
    assert load_config().packages_directory == "/srv/packages"


def test_default_path_honours_xdg(tmp_path, monkeypatch):
    """The default location lives under XDG_CONFIG_HOME."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert default_config_path() == tmp_path / "tooler" / "config.yml"
