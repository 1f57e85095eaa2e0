"""Basic tests for grantsync."""

import pytest


def test_import():
    """Test that the main module can be imported."""
    import grantsync
    assert hasattr(grantsync, "__version__")


def test_version():
    """Test version string format."""
    from grantsync import __version__
    assert isinstance(__version__, str)
    parts = __version__.split(".")
    assert len(parts) >= 2


def test_config_loads():
    """Test that config module loads without error."""
    from grantsync.config import config
    assert config is not None
    assert config.max_retries >= 0


def test_config_env_override(monkeypatch):
    """Environment variables override config.yaml values."""
    from grantsync.config import config

    monkeypatch.setenv("GRANTSYNC_DB_URL", "sqlite:///grants.db")
    monkeypatch.setenv("GRANTSYNC_REQUEST_DELAY", "0.5")
    config.reload()
    try:
        assert config.database_url == "sqlite:///grants.db"
        assert config.request_delay_seconds == 0.5
        assert config.get("scheduler", "request_delay_seconds") == 0.5
        assert config.get("no", "such", "key", default="fallback") == "fallback"
    finally:
        monkeypatch.undo()
        config.reload()


def test_slugify():
    """Test label slugs used for tags."""
    from grantsync.ingestion.records import slugify

    assert slugify("Department of Energy") == "department-of-energy"
    assert slugify("  SBIR / STTR  ") == "sbir-sttr"


def test_cli_help():
    """Test that the CLI group loads and lists its commands."""
    from click.testing import CliRunner
    from grantsync.cli import cli

    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("init", "sync", "grants", "match", "quality", "scheduler"):
        assert command in result.output
