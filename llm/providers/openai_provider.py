"""
OpenAI LLM Provider.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """
    OpenAI chat-completions provider.

    Implements TextCompletion over the async client.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        max_tokens: int = 300,
        temperature: float = 0.7,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY)
            model_id: Chat model ID
            base_url: Optional API base URL override
            max_tokens: Default maximum tokens
            temperature: Default generation temperature
            client: Pre-built async client
        """
        if client is not None:
            self._client = client
        else:
            kwargs = {}
            if api_key:
                kwargs["api_key"] = api_key
            if base_url:
                kwargs["base_url"] = base_url
            self._client = AsyncOpenAI(**kwargs)

        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"OpenAI provider initialized: {model_id}")

    async def complete(
        self,
        system: str,
        user_text: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Generate a completion.

        Args:
            system: System instruction
            user_text: User message
            max_tokens: Override max tokens
            temperature: Override temperature

        Returns:
            Completion text, stripped; empty string when the model returned none
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user_text})

        try:
            response = await self._client.chat.completions.create(
                model=self.model_id,
                messages=messages,
                max_tokens=max_tokens or self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature,
            )
        except Exception as e:
            logger.error(f"OpenAI completion failed: {e}")
            raise

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def aclose(self) -> None:
        await self._client.close()
