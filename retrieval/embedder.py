"""
Query Embedding Service.

Embeds customer messages for knowledge search using AWS Bedrock Titan or
OpenAI. Repeated queries are served from a small LRU cache.
"""

import asyncio
import hashlib
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import boto3
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class QueryEmbeddingCache:
    """LRU cache of query embeddings keyed by normalized text."""

    def __init__(self, maxsize: int = 512):
        self.maxsize = maxsize
        self._entries: "OrderedDict[str, List[float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha1(" ".join(text.lower().split()).encode()).hexdigest()

    def get(self, text: str) -> Optional[List[float]]:
        key = self._key(text)
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return vector

    def put(self, text: str, vector: List[float]) -> None:
        key = self._key(text)
        self._entries[key] = vector
        self._entries.move_to_end(key)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}


class EmbeddingProvider(Enum):
    """Supported embedding providers."""
    BEDROCK_TITAN = "bedrock_titan"
    OPENAI = "openai"


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding service."""
    provider: EmbeddingProvider = EmbeddingProvider.OPENAI
    model_id: str = "text-embedding-3-small"
    aws_region: str = "us-east-1"
    openai_api_key: Optional[str] = None
    max_chars: int = 8000


class EmbeddingService:
    """
    Generates query embeddings.

    OpenAI calls use the async client; Bedrock's blocking invoke_model runs
    in a worker thread.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, cache_size: int = 512, client=None):
        """
        Initialize the embedding service.

        Args:
            config: Embedding configuration
            cache_size: LRU cache size; 0 disables caching
            client: Pre-built provider client (AsyncOpenAI or bedrock-runtime)
        """
        self.config = config or EmbeddingConfig()
        self._cache = QueryEmbeddingCache(cache_size) if cache_size > 0 else None
        self._client = client or self._build_client()

    def _build_client(self):
        if self.config.provider == EmbeddingProvider.BEDROCK_TITAN:
            logger.info(f"Bedrock embedding client initialized in {self.config.aws_region}")
            return boto3.client("bedrock-runtime", region_name=self.config.aws_region)
        logger.info(f"OpenAI embedding client initialized: {self.config.model_id}")
        return AsyncOpenAI(api_key=self.config.openai_api_key) if self.config.openai_api_key else AsyncOpenAI()

    async def embed_text(self, text: str) -> List[float]:
        """
        Embed one query.

        Args:
            text: Query text

        Returns:
            Embedding vector
        """
        if self._cache:
            cached = self._cache.get(text)
            if cached is not None:
                return cached

        text = text[:self.config.max_chars]
        if self.config.provider == EmbeddingProvider.BEDROCK_TITAN:
            vector = await asyncio.to_thread(self._embed_bedrock, text)
        else:
            vector = await self._embed_openai(text)

        if self._cache:
            self._cache.put(text, vector)
        return vector

    def _embed_bedrock(self, text: str) -> List[float]:
        try:
            response = self._client.invoke_model(
                modelId=self.config.model_id,
                body=json.dumps({"inputText": text}),
                contentType="application/json",
                accept="application/json",
            )
        except Exception as e:
            logger.error(f"Bedrock embedding failed: {e}")
            raise

        return json.loads(response["body"].read())["embedding"]

    async def _embed_openai(self, text: str) -> List[float]:
        try:
            response = await self._client.embeddings.create(model=self.config.model_id, input=text)
        except Exception as e:
            logger.error(f"OpenAI embedding failed: {e}")
            raise

        return response.data[0].embedding
