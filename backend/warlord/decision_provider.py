"""Decision provider interface and implementations for the Warlord controller."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from openai import APIError, APITimeoutError, OpenAI

logger = logging.getLogger(__name__)


class ModelCallError(RuntimeError):
    """The model call failed, timed out or returned no content."""


class DecisionProvider(ABC):
    """Abstract base class for LLM decision providers."""

    @abstractmethod
    def get_decision(self, messages: List[Dict[str, str]]) -> str:
        """
        Generate a trading decision from a prepared prompt.

        Args:
            messages: Chat messages built by the PromptBuilder

        Returns:
            str: Raw LLM response (expected to contain a JSON object)

        Raises:
            ModelCallError: If the call fails or returns nothing
        """

    @abstractmethod
    def test_connection(self) -> bool:
        """Check that the model endpoint answers."""


class DeepSeekDecisionProvider(DecisionProvider):
    """DeepSeek LLM decision provider implementation."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        timeout: float = 60.0,
    ):
        """
        Initialize DeepSeek decision provider.

        Args:
            api_key: DeepSeek API key
            base_url: OpenAI-compatible endpoint
            model: Model name
            timeout: Per-request deadline in seconds
        """
        if not api_key:
            raise ValueError("DeepSeek API key is required")
        self.model = model
        self.timeout = timeout
        self.client = OpenAI(api_key=api_key, base_url=base_url)

    def get_decision(self, messages: List[Dict[str, str]]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=1.0,
                max_tokens=4096,
                timeout=self.timeout,
            )
        except APITimeoutError as e:
            raise ModelCallError(f"DeepSeek API timed out after {self.timeout:.0f}s") from e
        except APIError as e:
            raise ModelCallError(f"DeepSeek API error: {e}") from e

        if not response.choices:
            raise ModelCallError("DeepSeek API returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise ModelCallError("DeepSeek API returned empty content")

        logger.debug(f"DeepSeek raw response: {content[:500]}")
        return content

    def test_connection(self) -> bool:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
                timeout=min(self.timeout, 15.0),
            )
        except APIError as e:
            logger.error(f"DeepSeek connection test failed: {e}")
            return False
        return bool(response.choices)
