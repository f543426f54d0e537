"""
Retrieval Module for the lead qualification engine.

This module grounds replies in the knowledge base:
- Query embedding (Bedrock/OpenAI)
- Pinecone similarity search
- Context assembly and message snippets
"""

from .embedder import EmbeddingService, EmbeddingProvider, EmbeddingConfig
from .pinecone_client import PineconeClient, PineconeConfig, SearchResult
from .knowledge_search import (
    EmptyKnowledgeSearch,
    KnowledgeSearch,
    KnowledgeSnippet,
    PineconeKnowledgeSearch,
)
from .context_builder import ContextBuilder, KnowledgeContext, NO_KNOWLEDGE_CONTEXT

__all__ = [
    "EmbeddingService",
    "EmbeddingProvider",
    "EmbeddingConfig",
    "PineconeClient",
    "PineconeConfig",
    "SearchResult",
    "EmptyKnowledgeSearch",
    "KnowledgeSearch",
    "KnowledgeSnippet",
    "PineconeKnowledgeSearch",
    "ContextBuilder",
    "KnowledgeContext",
    "NO_KNOWLEDGE_CONTEXT",
]
