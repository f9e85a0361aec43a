"""
Unit tests for the config module.

Tests for Config path resolution and sources.yaml loading.
"""

from pathlib import Path

import pytest

from eventsync.configs.config import Config


class TestConfigPaths:
    """Tests for Config path attributes."""

    def test_config_dir_is_path(self):
        """CONFIG_DIR should be a Path object."""
        assert isinstance(Config.CONFIG_DIR, Path)

    def test_config_dir_exists(self):
        """CONFIG_DIR should exist."""
        assert Config.CONFIG_DIR.exists()


class TestLoadSourcesConfig:
    """Tests for load_sources_config method."""

    def test_bundled_config_loads(self, settings):
        """The bundled sources.yaml should parse into a slug mapping."""
        sources = Config.load_sources_config(Config.CONFIG_DIR / "sources.yaml", settings=settings)

        assert "do512" in sources
        assert sources["do512"]["scraper_class"] == "do512"

    def test_missing_file(self, settings, tmp_path):
        """Should raise FileNotFoundError for a missing file."""
        with pytest.raises(FileNotFoundError):
            Config.load_sources_config(tmp_path / "nope.yaml", settings=settings)

    def test_defaults_to_settings_path(self, settings):
        """Without a path the SOURCES_CONFIG_PATH setting should be used."""
        settings.SOURCES_CONFIG_PATH.write_text("sources:\n  a:\n    name: A\n", encoding="utf-8")

        assert Config.load_sources_config(settings=settings) == {"a": {"name": "A"}}

    def test_top_level_mapping_without_sources_key(self, settings, tmp_path):
        """A file without a sources key is treated as the mapping itself."""
        path = tmp_path / "flat.yaml"
        path.write_text("a:\n  name: A\n", encoding="utf-8")

        assert Config.load_sources_config(path, settings=settings) == {"a": {"name": "A"}}

    def test_empty_file(self, settings, tmp_path):
        """An empty file should load as no sources."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert Config.load_sources_config(path, settings=settings) == {}

    def test_placeholder_substitution(self, settings, tmp_path):
        """Should replace ${VAR} placeholders with settings values, secrets included."""
        path = tmp_path / "sources.yaml"
        path.write_text(
            "sources:\n  a:\n    tz: ${TIMEZONE}\n    key: ${FIRECRAWL_API_KEY}\n",
            encoding="utf-8",
        )

        sources = Config.load_sources_config(path, settings=settings)

        assert sources["a"] == {"tz": "America/Chicago", "key": "fc-test-key"}
