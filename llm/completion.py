"""
Text completion protocol.

Any provider that turns a system instruction plus a user message into text
can back signal extraction and response composition.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class TextCompletion(Protocol):
    """Protocol for text-completion providers."""

    async def complete(
        self,
        system: str,
        user_text: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the completion text for one system/user exchange."""
        ...
