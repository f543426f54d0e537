"""Tests for retrieval components."""

from types import SimpleNamespace

import pytest

from retrieval.embedder import EmbeddingConfig, EmbeddingService, QueryEmbeddingCache
from retrieval.knowledge_search import EmptyKnowledgeSearch, PineconeKnowledgeSearch
from retrieval.pinecone_client import PineconeClient, PineconeConfig


class FakeEmbeddings:
    def __init__(self):
        self.inputs = []

    async def create(self, model, input):
        self.inputs.append(input)
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, float(len(input))])])


class FakeIndex:
    def __init__(self, matches):
        self.matches = matches
        self.queries = []

    def query(self, vector, top_k, namespace, include_metadata):
        self.queries.append({"vector": vector, "top_k": top_k, "namespace": namespace})
        return SimpleNamespace(matches=self.matches[:top_k])


def match(id, score, text, source=None):
    metadata = {"text": text}
    if source:
        metadata["source"] = source
    return SimpleNamespace(id=id, score=score, metadata=metadata)


@pytest.fixture
def openai_embedder():
    embeddings = FakeEmbeddings()
    service = EmbeddingService(EmbeddingConfig(), client=SimpleNamespace(embeddings=embeddings))
    return service, embeddings


# ── Embedding ─────────────────────────────────────────

class TestQueryEmbeddingCache:
    def test_normalized_key(self):
        cache = QueryEmbeddingCache()
        cache.put("What  does it COST?", [1.0])
        assert cache.get("what does it cost?") == [1.0]
        assert cache.stats()["hits"] == 1

    def test_lru_eviction(self):
        cache = QueryEmbeddingCache(maxsize=2)
        cache.put("a", [1.0])
        cache.put("b", [2.0])
        cache.get("a")
        cache.put("c", [3.0])
        assert cache.get("b") is None
        assert cache.get("a") == [1.0]


class TestEmbeddingService:
    async def test_openai_embedding(self, openai_embedder):
        service, embeddings = openai_embedder
        vector = await service.embed_text("pricing")
        assert vector == [0.1, 0.2, 7.0]
        assert embeddings.inputs == ["pricing"]

    async def test_repeat_query_cached(self, openai_embedder):
        service, embeddings = openai_embedder
        await service.embed_text("pricing")
        await service.embed_text("Pricing ")
        assert len(embeddings.inputs) == 1

    async def test_long_input_truncated(self):
        embeddings = FakeEmbeddings()
        service = EmbeddingService(
            EmbeddingConfig(max_chars=10),
            cache_size=0,
            client=SimpleNamespace(embeddings=embeddings),
        )
        await service.embed_text("x" * 50)
        assert embeddings.inputs == ["x" * 10]


# ── Pinecone / knowledge search ───────────────────────

class TestPineconeClient:
    def test_filters_low_scores(self):
        index = FakeIndex([
            match("a", 0.9, "Plans start at $99.", source="pricing.md"),
            match("b", 0.3, "Unrelated."),
        ])
        client = PineconeClient(PineconeConfig(api_key="k", namespace="public"), index=index)

        results = client.query([0.1], top_k=3, min_score=0.5)

        assert [r.id for r in results] == ["a"]
        assert results[0].source == "pricing.md"
        assert index.queries[0]["namespace"] == "public"


class TestKnowledgeSearch:
    async def test_search_returns_snippets(self, openai_embedder):
        service, _ = openai_embedder
        index = FakeIndex([
            match("a", 0.92, "Plans start at $99.", source="pricing.md"),
            match("b", 0.81, "SSO is on the enterprise plan."),
            match("c", 0.40, "Office hours."),
        ])
        search = PineconeKnowledgeSearch(
            service,
            PineconeClient(PineconeConfig(api_key="k"), index=index),
            namespace="public",
            min_score=0.5,
        )

        snippets = await search.search("How much does it cost?", limit=3)

        assert [s.content for s in snippets] == ["Plans start at $99.", "SSO is on the enterprise plan."]
        assert snippets[0].source == "pricing.md"
        assert snippets[1].source == "b"
        assert snippets[0].relevance_score == pytest.approx(0.92)
        assert index.queries[0]["top_k"] == 3

    async def test_blank_query_skips_search(self, openai_embedder):
        service, embeddings = openai_embedder
        index = FakeIndex([])
        search = PineconeKnowledgeSearch(service, PineconeClient(PineconeConfig(api_key="k"), index=index))

        assert await search.search("   ") == []
        assert embeddings.inputs == []
        assert index.queries == []

    async def test_empty_search(self):
        assert await EmptyKnowledgeSearch().search("anything") == []
