"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from speaker_extractor.config import Settings


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self, monkeypatch):
        for name in (
            "FIRECRAWL_API_KEY", "FIRECRAWL_BASE_URL", "EXTRACTOR_MAX_PAGES",
            "EXTRACTOR_STORE_DIR", "EXTRACTOR_NETWORK_PROBE", "EXTRACTOR_HEADLESS",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.firecrawl_api_key is None
        assert settings.firecrawl_base_url == "https://api.firecrawl.dev"
        assert settings.max_pages == 25
        assert settings.store_dir == Path(".cache") / "extractor"
        assert settings.network_probe_enabled is True
        assert settings.headless is True

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FIRECRAWL_API_KEY", "fc-123")
        monkeypatch.setenv("EXTRACTOR_MAX_PAGES", "5")
        monkeypatch.setenv("EXTRACTOR_STORE_DIR", str(tmp_path))
        monkeypatch.setenv("EXTRACTOR_NETWORK_PROBE", "off")
        monkeypatch.setenv("EXTRACTOR_HEADLESS", "0")
        settings = Settings.from_env()
        assert settings.require_firecrawl_key() == "fc-123"
        assert settings.max_pages == 5
        assert settings.store_dir == tmp_path
        assert settings.network_probe_enabled is False
        assert settings.headless is False

    def test_missing_key(self):
        with pytest.raises(ValueError):
            Settings().require_firecrawl_key()
