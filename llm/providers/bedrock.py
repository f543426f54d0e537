"""
AWS Bedrock LLM Provider.
"""

import asyncio
import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class BedrockProvider:
    """
    AWS Bedrock LLM provider.

    Supports Claude models via Bedrock. boto3 is blocking, so completions
    run in a worker thread.
    """

    DEFAULT_MODEL = "us.anthropic.claude-sonnet-4-20250514-v1:0"

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL,
        region: str = "us-east-1",
        max_tokens: int = 300,
        temperature: float = 0.7,
        client=None,
    ):
        """
        Initialize Bedrock provider.

        Args:
            model_id: Bedrock model ID
            region: AWS region
            max_tokens: Default maximum tokens for response
            temperature: Default generation temperature
            client: Pre-built bedrock-runtime client
        """
        self.model_id = model_id
        self.region = region
        self.max_tokens = max_tokens
        self.temperature = temperature

        self._client = client or boto3.client("bedrock-runtime", region_name=region)
        logger.info(f"Bedrock provider initialized: {model_id} in {region}")

    def _invoke(
        self,
        system: str,
        user_text: str,
        max_tokens: Optional[int],
        temperature: Optional[float],
    ) -> str:
        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": user_text}]
                }
            ]
        }
        if system:
            body["system"] = system

        try:
            response = self._client.invoke_model(
                modelId=self.model_id,
                body=json.dumps(body),
                contentType="application/json",
                accept="application/json",
            )
        except ClientError as e:
            logger.error(f"Bedrock API error: {e}")
            raise

        response_body = json.loads(response["body"].read())

        if response_body.get("content"):
            return response_body["content"][0]["text"].strip()

        logger.warning("Empty response from Bedrock")
        return ""

    async def complete(
        self,
        system: str,
        user_text: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Generate a completion in a worker thread."""
        return await asyncio.to_thread(self._invoke, system, user_text, max_tokens, temperature)
