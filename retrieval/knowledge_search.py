"""
Knowledge search over the Pinecone knowledge base.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, runtime_checkable

from lead_scoring.metrics import record_retrieval_latency

from .embedder import EmbeddingService
from .pinecone_client import PineconeClient

logger = logging.getLogger(__name__)


@dataclass
class KnowledgeSnippet:
    """One ranked knowledge-base hit."""
    content: str
    source: str
    relevance_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "source": self.source,
            "relevance_score": self.relevance_score,
        }


@runtime_checkable
class KnowledgeSearch(Protocol):
    """Protocol for knowledge search backends. Empty results are valid."""

    async def search(self, query: str, limit: int = 3) -> List[KnowledgeSnippet]:
        ...


class EmptyKnowledgeSearch:
    """Used when no knowledge index is configured."""

    async def search(self, query: str, limit: int = 3) -> List[KnowledgeSnippet]:
        return []


class PineconeKnowledgeSearch:
    """Embeds the query and runs a similarity search on the index."""

    def __init__(
        self,
        embedder: EmbeddingService,
        pinecone: PineconeClient,
        namespace: str = "public",
        min_score: float = 0.5,
    ):
        self.embedder = embedder
        self.pinecone = pinecone
        self.namespace = namespace
        self.min_score = min_score

    async def search(self, query: str, limit: int = 3) -> List[KnowledgeSnippet]:
        if not query or not query.strip():
            return []

        start = time.time()
        embedding = await self.embedder.embed_text(query)
        results = await asyncio.to_thread(
            self.pinecone.query,
            embedding,
            top_k=limit,
            namespace=self.namespace,
            min_score=self.min_score,
        )
        record_retrieval_latency(time.time() - start)

        return [
            KnowledgeSnippet(
                content=r.text,
                source=r.source or r.id,
                relevance_score=float(r.score),
            )
            for r in results
            if r.text
        ]
