"""Tests for policy retrieval and its user-scoped fallback."""

from typing import Any, Dict, List, Optional

import pytest

from claim_pipeline.plugins.policy_retriever import TOOL_NAME, PolicyRetrieverPlugin
from claim_pipeline.utils.errors import VectorStoreError
from conftest import FakeBedrockClient


def hit(chunk_id: str, score: float, **metadata) -> Dict[str, Any]:
    return {"id": chunk_id, "text": f"Policy text for {chunk_id}", "score": score, **metadata}


class StubVectorStore:
    """Returns canned results keyed by the filter it is searched with."""

    def __init__(self, results_by_filter: Dict[tuple, List[Dict[str, Any]]], error: Optional[Exception] = None):
        self.results_by_filter = results_by_filter
        self.error = error
        self.searches: List[Dict[str, Any]] = []
        self.loaded = False

    async def ensure_loaded(self) -> None:
        if self.error is not None:
            raise self.error
        self.loaded = True

    def search(self, query_embedding, top_k=5, filters=None):
        self.searches.append({"top_k": top_k, "filters": dict(filters or {})})
        key = tuple(sorted((filters or {}).items()))
        return list(self.results_by_filter.get(key, []))[:top_k]


SOURCE_KEY = (("source", "insurance_claim_policy"),)
USER_KEY = (("source", "insurance_claim_policy"), ("userId", "u1"))


@pytest.mark.asyncio
async def test_fallback_results_replace_empty_primary():
    store = StubVectorStore({
        SOURCE_KEY: [],
        USER_KEY: [hit("t-1", 0.9, userId="u1"), hit("t-2", 0.8, userId="u1"), hit("t-3", 0.7, userId="u1")],
    })
    retriever = PolicyRetrieverPlugin(store, FakeBedrockClient())

    chunks = await retriever.retrieve_policies("collision coverage", limit=10, user_id="u1")

    assert [c.id for c in chunks] == ["t-1", "t-2", "t-3"]
    assert [s["filters"] for s in store.searches] == [
        {"source": "insurance_claim_policy"},
        {"source": "insurance_claim_policy", "userId": "u1"},
    ]


@pytest.mark.asyncio
async def test_no_top_up_when_primary_is_below_limit():
    store = StubVectorStore({
        SOURCE_KEY: [hit("p-1", 0.9)],
        USER_KEY: [hit("t-1", 0.95, userId="u1")],
    })
    retriever = PolicyRetrieverPlugin(store, FakeBedrockClient())

    chunks = await retriever.retrieve_policies("collision coverage", limit=10, user_id="u1")

    assert [c.id for c in chunks] == ["p-1"]
    assert len(store.searches) == 1


@pytest.mark.asyncio
async def test_no_fallback_without_user_id():
    store = StubVectorStore({USER_KEY: [hit("t-1", 0.9)]})
    retriever = PolicyRetrieverPlugin(store, FakeBedrockClient())

    assert await retriever.retrieve_policies("coverage", user_id=None) == []
    assert len(store.searches) == 1


@pytest.mark.asyncio
async def test_search_ranks_and_truncates():
    store = StubVectorStore({SOURCE_KEY: [hit("a", 0.2), hit("b", 0.9), hit("c", 0.5)]})
    retriever = PolicyRetrieverPlugin(store, FakeBedrockClient())

    chunks = await retriever.search("q", 2, {"source": "insurance_claim_policy"})

    # The store hands back its first two hits unsorted
    assert [c.id for c in chunks] == ["b", "a"]
    assert chunks[0].score >= chunks[1].score


@pytest.mark.asyncio
async def test_chunk_fields_from_metadata():
    store = StubVectorStore({
        SOURCE_KEY: [
            {"chunk_id": "legacy-7", "content": "Legacy content", "score": 0.4,
             "source": "insurance_claim_policy", "section": "Exclusions"},
        ]
    })
    retriever = PolicyRetrieverPlugin(store, FakeBedrockClient())

    [chunk] = await retriever.retrieve_policies("exclusions")

    assert chunk.id == "legacy-7"
    assert chunk.content == "Legacy content"
    assert chunk.score == pytest.approx(0.4)
    assert chunk.metadata == {"source": "insurance_claim_policy", "section": "Exclusions"}


@pytest.mark.asyncio
async def test_default_limit_used_when_missing():
    store = StubVectorStore({})
    retriever = PolicyRetrieverPlugin(store, FakeBedrockClient(), default_limit=7)

    await retriever.retrieve_policies("coverage")

    assert store.searches[0]["top_k"] == 7


@pytest.mark.asyncio
async def test_retrieval_errors_become_empty_results():
    store = StubVectorStore({}, error=VectorStoreError.index_not_found("data/policy_index.faiss"))
    bedrock = FakeBedrockClient()
    retriever = PolicyRetrieverPlugin(store, bedrock)

    assert await retriever.retrieve_policies("coverage", user_id="u1") == []
    assert bedrock.embedding_calls == []


@pytest.mark.asyncio
async def test_embedding_errors_become_empty_results():
    class FailingEmbeddings(FakeBedrockClient):
        async def generate_embedding(self, text):
            raise RuntimeError("embedding service unavailable")

    store = StubVectorStore({SOURCE_KEY: [hit("p-1", 0.9)]})
    retriever = PolicyRetrieverPlugin(store, FailingEmbeddings())

    assert await retriever.search("coverage", 5, {"source": "insurance_claim_policy"}) == []


def test_tool_spec_shape():
    retriever = PolicyRetrieverPlugin(StubVectorStore({}), FakeBedrockClient())
    spec = retriever.tool_spec()["toolSpec"]

    assert spec["name"] == TOOL_NAME == "retrieve_policies"
    schema = spec["inputSchema"]["json"]
    assert schema["required"] == ["query"]
    assert schema["properties"]["limit"]["type"] == "integer"
