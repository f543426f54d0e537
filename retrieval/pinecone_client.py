"""
Pinecone Client for the knowledge base.

Read-only: the index is populated by the separate ingestion pipeline.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pinecone import Pinecone

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Result from a vector search."""
    id: str
    score: float
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None


@dataclass
class PineconeConfig:
    """Configuration for Pinecone client."""
    api_key: str
    index_name: str = "lead-knowledge"
    namespace: str = "public"


class PineconeClient:
    """
    Client for Pinecone similarity search.
    """

    def __init__(self, config: PineconeConfig, index=None):
        """
        Initialize the Pinecone client.

        Args:
            config: Pinecone configuration
            index: Pre-built index handle
        """
        self.config = config
        if index is not None:
            self._index = index
        else:
            try:
                self._index = Pinecone(api_key=config.api_key).Index(config.index_name)
            except Exception as e:
                logger.error(f"Failed to initialize Pinecone: {e}")
                raise
            logger.info(f"Using Pinecone index: {config.index_name}")

    def query(
        self,
        embedding: List[float],
        top_k: int = 3,
        namespace: Optional[str] = None,
        min_score: float = 0.0,
    ) -> List[SearchResult]:
        """
        Query for similar vectors.

        Args:
            embedding: Query embedding
            top_k: Number of results to return
            namespace: Namespace to search (defaults to the configured one)
            min_score: Minimum similarity score

        Returns:
            List of SearchResult objects, best first
        """
        try:
            response = self._index.query(
                vector=embedding,
                top_k=top_k,
                namespace=self.config.namespace if namespace is None else namespace,
                include_metadata=True,
            )
        except Exception as e:
            logger.error(f"Query failed: {e}")
            raise

        results = []
        for match in response.matches:
            if match.score < min_score:
                continue

            metadata = match.metadata or {}
            results.append(SearchResult(
                id=match.id,
                score=match.score,
                text=metadata.get("text", ""),
                metadata=metadata,
                source=metadata.get("source"),
            ))

        logger.debug(f"Query returned {len(results)} results")
        return results
