"""
Context Builder for reply composition.

Turns knowledge-search hits into the context string embedded in the phase
prompt, and into the truncated snippets stored on the outbound message.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .knowledge_search import KnowledgeSnippet

logger = logging.getLogger(__name__)


NO_KNOWLEDGE_CONTEXT = "No specific knowledge base information found for this query."


@dataclass
class KnowledgeContext:
    """Assembled knowledge context for one turn."""
    text: str
    snippets: List[KnowledgeSnippet] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.snippets

    def message_snippets(self, preview_chars: int = 200) -> List[Dict[str, Any]]:
        """Snippets as stored on the outbound message: content cut to a preview."""
        return [
            {
                "content": s.content[:preview_chars] + "...",
                "source": s.source,
                "relevance_score": s.relevance_score,
            }
            for s in self.snippets
        ]


class ContextBuilder:
    """
    Builds the knowledge context from search hits.

    Features:
    - Near-duplicate removal (word overlap)
    - Explicit "nothing found" context on empty results
    """

    def __init__(self, deduplicate: bool = True, similarity_threshold: float = 0.95):
        """
        Initialize the context builder.

        Args:
            deduplicate: Remove near-duplicate snippets
            similarity_threshold: Word-overlap ratio above which two snippets are duplicates
        """
        self.deduplicate = deduplicate
        self.similarity_threshold = similarity_threshold

    def build(self, snippets: List[KnowledgeSnippet]) -> KnowledgeContext:
        """
        Build context from search hits.

        Args:
            snippets: Ranked knowledge snippets, best first

        Returns:
            KnowledgeContext; empty input yields NO_KNOWLEDGE_CONTEXT
        """
        snippets = [s for s in snippets if s.content and s.content.strip()]
        if not snippets:
            return KnowledgeContext(text=NO_KNOWLEDGE_CONTEXT)

        if self.deduplicate:
            snippets = self._deduplicate(snippets)

        return KnowledgeContext(
            text="\n\n".join(s.content.strip() for s in snippets),
            snippets=snippets,
        )

    def _deduplicate(self, snippets: List[KnowledgeSnippet]) -> List[KnowledgeSnippet]:
        kept = [snippets[0]]
        for snippet in snippets[1:]:
            if not any(self._is_similar(snippet.content, existing.content) for existing in kept):
                kept.append(snippet)

        if len(kept) < len(snippets):
            logger.debug(f"Deduplicated {len(snippets)} -> {len(kept)} snippets")
        return kept

    def _is_similar(self, text1: str, text2: str) -> bool:
        words1 = set(text1.lower().split())
        words2 = set(text2.lower().split())

        if not words1 or not words2:
            return False

        overlap = len(words1 & words2)
        return overlap / min(len(words1), len(words2)) > self.similarity_threshold
