"""
Text-completion providers backing signal extraction and reply composition.
"""

from .bedrock import BedrockProvider
from .openai_provider import OpenAIProvider

__all__ = ["BedrockProvider", "OpenAIProvider"]
