"""
Unified Configuration System for DuoChat

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import streamlit as st
import os
from pathlib import Path

from duochat.services.chat_service.models import ChatSettings, BACKENDS, BACKEND_OPENAI


DEFAULT_PROXY_URL = "http://localhost:3000/api/deepseek"


@dataclass
class APIConfig:
    """Credentials and endpoints for the two backends"""
    openai_api_key: str = ""
    proxy_url: str = DEFAULT_PROXY_URL
    proxy_token: str = ""

    @classmethod
    def from_env(cls) -> 'APIConfig':
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            proxy_url=os.getenv("DEEPSEEK_PROXY_URL", DEFAULT_PROXY_URL),
            proxy_token=os.getenv("DEEPSEEK_PROXY_TOKEN", "")
        )

    @classmethod
    def from_secrets(cls) -> 'APIConfig':
        """Load API config from Streamlit secrets"""
        # In test environment, prefer environment variables
        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            return cls.from_env()

        try:
            return cls(
                openai_api_key=st.secrets.get("OPENAI_API_KEY", ""),
                proxy_url=st.secrets.get("DEEPSEEK_PROXY_URL", DEFAULT_PROXY_URL),
                proxy_token=st.secrets.get("DEEPSEEK_PROXY_TOKEN", "")
            )
        except Exception:
            # Fallback to environment variables if secrets not available
            return cls.from_env()


@dataclass
class LLMConfig:
    """Language model configuration"""
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.9
    default_backend: str = BACKEND_OPENAI
    request_timeout: float = 60.0


@dataclass
class StorageConfig:
    """Local conversation storage"""
    db_path: str = "data/duochat.db"
    catalog_key: str = "duochat-chat-index"
    conversation_key_prefix: str = "duochat-chat-"


@dataclass
class StreamingConfig:
    """Streaming response configuration"""
    update_every: int = 3


@dataclass
class UIConfig:
    """User interface configuration"""
    app_title: str = "DuoChat"
    greeting: str = "Hello! How can I help you today?"
    default_title: str = "New Chat"
    title_max_length: int = 30
    error_message: str = "Sorry, something went wrong. Please try again."


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = True
    log_file: str = "logs/app.log"


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        # Load API configuration from secrets/environment
        config.api = APIConfig.from_secrets()

        db_path = os.getenv("DUOCHAT_DB_PATH")
        if db_path:
            config.storage.db_path = db_path

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.api.openai_api_key:
            errors.append("OpenAI API key is required")

        if not self.api.proxy_url:
            errors.append("DeepSeek proxy URL is required")

        if self.llm.default_backend not in BACKENDS:
            errors.append(f"Unknown default backend '{self.llm.default_backend}'")

        if not 0.0 <= self.llm.temperature <= 1.0:
            errors.append("Default temperature must be between 0 and 1")

        if not Path(self.storage.db_path).parent.exists():
            Path(self.storage.db_path).parent.mkdir(parents=True, exist_ok=True)

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def default_settings(self) -> ChatSettings:
        """Settings given to every new conversation"""
        return ChatSettings(
            temperature=self.llm.temperature,
            model=self.llm.default_backend
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = AppConfig.load()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
