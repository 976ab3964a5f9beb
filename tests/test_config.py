"""
Tests for configuration system
"""

import os
import tempfile
from pathlib import Path

from duochat.config.app_config import (
    AppConfig, APIConfig, LLMConfig, StorageConfig, StreamingConfig, UIConfig,
    DEFAULT_PROXY_URL, get_config, reload_config
)
from duochat.services.chat_service.models import ChatSettings


class TestAPIConfig:
    """Test API configuration"""

    def test_from_secrets_fallback_to_env(self, monkeypatch):
        """Test environment variables are used under pytest"""
        monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
        monkeypatch.setenv("DEEPSEEK_PROXY_URL", "https://proxy.example/api/deepseek")
        monkeypatch.setenv("DEEPSEEK_PROXY_TOKEN", "test-proxy-token")

        config = APIConfig.from_secrets()

        assert config.openai_api_key == "test-openai-key"
        assert config.proxy_url == "https://proxy.example/api/deepseek"
        assert config.proxy_token == "test-proxy-token"

    def test_proxy_url_default(self, monkeypatch):
        monkeypatch.delenv("DEEPSEEK_PROXY_URL", raising=False)

        config = APIConfig.from_env()

        assert config.proxy_url == DEFAULT_PROXY_URL


class TestLLMConfig:
    """Test LLM configuration"""

    def test_default_values(self):
        config = LLMConfig()

        assert config.model_name == "gpt-4o-mini"
        assert config.temperature == 0.9
        assert config.default_backend == "openai"
        assert config.request_timeout == 60.0


class TestAppConfig:
    """Test main application configuration"""

    def test_default_initialization(self):
        config = AppConfig()

        assert isinstance(config.api, APIConfig)
        assert isinstance(config.llm, LLMConfig)
        assert isinstance(config.storage, StorageConfig)
        assert isinstance(config.streaming, StreamingConfig)
        assert isinstance(config.ui, UIConfig)
        assert config.storage.catalog_key == "duochat-chat-index"
        assert config.ui.default_title == "New Chat"

    def test_environment_detection(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        assert AppConfig().environment == "production"

        monkeypatch.setenv("APP_ENV", "development")
        assert AppConfig().environment == "development"

    def test_debug_flag(self, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        assert AppConfig().debug is True

        monkeypatch.setenv("DEBUG", "false")
        assert AppConfig().debug is False

    def test_production_overrides(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        config = AppConfig.load()

        assert config.debug is False
        assert config.logging.level == "WARNING"

    def test_development_overrides(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "development")
        config = AppConfig.load()

        assert config.debug is True
        assert config.logging.level == "DEBUG"

    def test_db_path_override(self, monkeypatch):
        monkeypatch.setenv("DUOCHAT_DB_PATH", "/tmp/duochat-test.db")

        config = AppConfig.load()

        assert config.storage.db_path == "/tmp/duochat-test.db"

    def test_validate_missing_api_key(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = AppConfig()
            config.api.openai_api_key = ""
            config.storage.db_path = os.path.join(temp_dir, "chat.db")
            config.logging.enable_file_logging = False

            errors = config.validate()

        assert "OpenAI API key is required" in errors

    def test_validate_backend_and_temperature(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = AppConfig()
            config.api.openai_api_key = "key"
            config.llm.default_backend = "gemini"
            config.llm.temperature = 1.5
            config.storage.db_path = os.path.join(temp_dir, "chat.db")
            config.logging.enable_file_logging = False

            errors = config.validate()

        assert "Unknown default backend 'gemini'" in errors
        assert "Default temperature must be between 0 and 1" in errors

    def test_validate_creates_directories(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = AppConfig()
            config.storage.db_path = os.path.join(temp_dir, "subdir", "chat.db")
            config.logging.log_file = os.path.join(temp_dir, "logs", "test.log")
            config.logging.enable_file_logging = True

            config.validate()

            assert Path(temp_dir, "subdir").exists()
            assert Path(temp_dir, "logs").exists()

    def test_default_settings(self):
        config = AppConfig()
        config.llm.temperature = 0.4
        config.llm.default_backend = "deepseek"

        settings = config.default_settings()

        assert settings == ChatSettings(temperature=0.4, model="deepseek")
        assert settings is not config.default_settings()


class TestConfigSingleton:
    """Test configuration singleton behavior"""

    def test_get_config_singleton(self):
        config1 = get_config()
        config2 = get_config()

        assert config1 is config2

    def test_reload_config(self):
        config1 = get_config()
        config2 = reload_config()

        assert config1 is not config2
        assert get_config() is config2
