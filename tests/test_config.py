"""
Tests for configuration loading and validation
"""

import pytest
from pydantic import ValidationError

from slot_engine.config import EngineConfig, get_config, reset_config


class TestEngineConfig:
    """Tests for EngineConfig"""

    def test_defaults(self, monkeypatch):
        for name in ("SLOT_ENGINE_API_BASE_URL", "SLOT_ENGINE_DB_FILE", "SLOT_ENGINE_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        config = EngineConfig(_env_file=None)

        assert config.api_base_url is None
        assert config.db_file == "slot_engine.db"
        assert config.scan_batch_size == 7
        assert config.scan_months == 2
        assert config.page_size == 100
        assert config.log_level == "INFO"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("SLOT_ENGINE_API_BASE_URL", "https://api.example.com/api/")
        monkeypatch.setenv("SLOT_ENGINE_SCAN_BATCH_SIZE", "3")
        monkeypatch.setenv("SLOT_ENGINE_LOG_LEVEL", "debug")
        config = EngineConfig(_env_file=None)

        assert config.api_base_url == "https://api.example.com/api"
        assert config.scan_batch_size == 3
        assert config.log_level == "DEBUG"

    def test_invalid_url(self):
        with pytest.raises(ValidationError):
            EngineConfig(_env_file=None, api_base_url="ftp://example.com")

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            EngineConfig(_env_file=None, log_level="LOUD")

    @pytest.mark.parametrize("value", [0, 32])
    def test_batch_size_bounds(self, value):
        with pytest.raises(ValidationError):
            EngineConfig(_env_file=None, scan_batch_size=value)

    def test_singleton(self):
        assert get_config() is get_config()
        first = get_config()
        reset_config()
        assert get_config() is not first
