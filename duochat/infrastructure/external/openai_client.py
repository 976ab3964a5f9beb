"""
OpenAI client adapter for the application.
Handles OpenAI API client creation and configuration.
"""

from typing import Optional
import openai

from duochat.config.app_config import get_config
from duochat.utils.logging_config import get_logger


class OpenAIClient:
    """
    Adapter for the OpenAI SDK client.
    Builds the credentialed client lazily so a missing key only fails the
    requests that need it.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.logger = get_logger(__name__)
        self._api_key = api_key
        self._timeout = timeout
        self._chat_client = None

    def get_chat_client(self) -> openai.OpenAI:
        """
        Get configured OpenAI client

        Returns:
            openai.OpenAI: Configured client
        """
        if self._chat_client is None:
            try:
                config = get_config()
                api_key = self._api_key or config.api.openai_api_key
                if not api_key:
                    raise ValueError("OpenAI API key not configured")

                self._chat_client = openai.OpenAI(
                    api_key=api_key,
                    timeout=self._timeout or config.llm.request_timeout
                )

                self.logger.info("OpenAI client initialized")

            except Exception as e:
                self.logger.error(f"Error initializing OpenAI client: {e}")
                raise

        return self._chat_client


# Global client instance
_openai_client: Optional[OpenAIClient] = None


def get_openai_client() -> OpenAIClient:
    """Get the global OpenAI client instance"""
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient()
    return _openai_client
