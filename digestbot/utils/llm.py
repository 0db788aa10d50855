"""
Chat-completion backend for digestbot.
"""
import logging
from typing import Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from digestbot.config import LLMConfig

# Configure logging
logger = logging.getLogger(__name__)


class ChatBackend(Protocol):
    """Anything that turns a list of chat messages into a completion text."""

    async def chat(self, messages: List[Dict[str, str]], max_tokens: int, temperature: float,
                   presence_penalty: float, top_p: float) -> str:
        ...


class ChatClient:
    """
    Thin wrapper over an OpenAI-compatible chat-completions endpoint.
    """
    def __init__(self, config: LLMConfig, client: Optional[AsyncOpenAI] = None):
        """
        Initialize the ChatClient.

        Args:
            config: Credentials, model id, base url and timeout
            client: Optional preconfigured AsyncOpenAI client
        """
        self.config = config
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url or None,
                timeout=self.config.timeout_seconds,
                max_retries=1,
            )
        return self._client

    async def chat(self, messages: List[Dict[str, str]], max_tokens: int, temperature: float,
                   presence_penalty: float, top_p: float) -> str:
        """
        Request one completion.

        Args:
            messages: System and user messages
            max_tokens: Completion token limit
            temperature: Sampling temperature
            presence_penalty: Presence penalty
            top_p: Nucleus sampling mass

        Returns:
            The text of the first choice, or an empty string
        """
        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            presence_penalty=presence_penalty,
            top_p=top_p,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None
