"""Tests for concrete collaborator adapters (no network access)."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from conftest import FakeLLM, make_item, make_items
from ragloom.adapters import base
from ragloom.adapters.base import AdapterSet, Embedder, GraphStore, LLM, Scorer, VectorStore
from ragloom.adapters.llm_scorer import LLMScorer
from ragloom.adapters.memory import InMemoryVectorStore
from ragloom.adapters.neo4j_store import Neo4jGraphStore
from ragloom.adapters.openrouter import OpenRouterEmbedder, OpenRouterLLM
from ragloom.adapters.weaviate_store import WeaviateVectorStore
from ragloom.rag_pipeline.retrieval.query_schemas import RelevanceScores
from ragloom.shared import openrouter_client
from ragloom.shared.errors import (
    AdapterUnavailableError,
    CollaboratorTimeoutError,
    DimensionMismatchError,
    InvalidResponseError,
    LLMFailureError,
    NotConfiguredError,
)
from ragloom.shared.openrouter_client import APIError, RateLimitError, parse_structured


# =========================================================================
# Helpers
# =========================================================================


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}
        self.text = str(payload)

    def json(self):
        return self._payload


class FakePost:
    """Replaces requests.post with scripted responses (or exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def chat_payload(content):
    return {"choices": [{"message": {"content": content}, "finish_reason": "stop"}]}


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(openrouter_client, "OPENROUTER_API_KEY", "test-key")
    monkeypatch.setattr(openrouter_client.time, "sleep", lambda seconds: None)


@pytest.fixture
def fake_post(monkeypatch, api_key):
    def install(*responses):
        post = FakePost(*responses)
        monkeypatch.setattr(openrouter_client.requests, "post", post)
        return post

    return install


# =========================================================================
# OpenRouter
# =========================================================================


class TestOpenRouterLLM:
    def test_complete(self, fake_post):
        post = fake_post(FakeResponse(payload=chat_payload("4")))

        completion = OpenRouterLLM(model="default/model").complete(
            [{"role": "user", "content": "2+2?"}], {"model": "other/model", "temperature": 0.0}
        )

        assert completion.content == "4"
        assert post.calls[0]["url"].endswith("/chat/completions")
        assert post.calls[0]["json"]["model"] == "other/model"
        assert post.calls[0]["json"]["temperature"] == 0.0
        assert post.calls[0]["headers"]["Authorization"] == "Bearer test-key"

    def test_retries_rate_limit(self, fake_post):
        post = fake_post(
            FakeResponse(429, headers={"retry-after": "0"}),
            FakeResponse(payload=chat_payload("done")),
        )

        assert OpenRouterLLM().complete([{"role": "user", "content": "hi"}]).content == "done"
        assert len(post.calls) == 2

    def test_rate_limit_exhausted(self, fake_post):
        fake_post(FakeResponse(429), FakeResponse(429))

        with pytest.raises(RateLimitError):
            OpenRouterLLM(max_retries=1).complete([{"role": "user", "content": "hi"}])

    def test_client_error_is_llm_failure(self, fake_post):
        fake_post(FakeResponse(400, payload={"error": {"message": "bad model"}}))

        with pytest.raises(APIError) as exc_info:
            OpenRouterLLM().complete([{"role": "user", "content": "hi"}])
        assert isinstance(exc_info.value, LLMFailureError)
        assert "bad model" in str(exc_info.value)

    def test_timeout(self, fake_post):
        fake_post(requests.Timeout("slow"))

        with pytest.raises(CollaboratorTimeoutError):
            OpenRouterLLM(max_retries=0).complete([{"role": "user", "content": "hi"}])

    def test_missing_choices(self, fake_post):
        fake_post(FakeResponse(payload={"error": {"message": "provider down"}}))

        with pytest.raises(APIError):
            OpenRouterLLM().complete([{"role": "user", "content": "hi"}])

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(openrouter_client, "OPENROUTER_API_KEY", None)

        with pytest.raises(NotConfiguredError) as exc_info:
            OpenRouterLLM().complete([{"role": "user", "content": "hi"}])
        assert exc_info.value.key == "OPENROUTER_API_KEY"


class TestOpenRouterEmbedder:
    def test_embed(self, fake_post):
        post = fake_post(FakeResponse(payload={"data": [{"embedding": [0.1, 0.2, 0.3]}]}))

        embedding = OpenRouterEmbedder(model="embed/model").embed("hello")

        assert embedding.vector == [0.1, 0.2, 0.3]
        assert embedding.dimensions == 3
        assert post.calls[0]["url"].endswith("/embeddings")
        assert post.calls[0]["json"] == {"model": "embed/model", "input": ["hello"]}

    def test_empty_data(self, fake_post):
        fake_post(FakeResponse(payload={"data": []}))

        with pytest.raises(InvalidResponseError):
            OpenRouterEmbedder().embed("hello")


class TestParseStructured:
    def test_strips_code_fences(self):
        content = '```json\n{"scores": [{"index": 0, "score": 7}]}\n```'
        assert parse_structured(content, RelevanceScores).scores[0].score == 7

    def test_repairs_trailing_comma(self):
        result = parse_structured('{"scores": [{"index": 1, "score": 3},]}', RelevanceScores)
        assert result.scores[0].index == 1


# =========================================================================
# In-memory store
# =========================================================================


class TestInMemoryVectorStore:
    def test_vector_search_orders_by_cosine(self, vector_store):
        items = vector_store.search("docs", [1.0, 0.0, 0.0], 2)

        assert [item.id for item in items] == ["elixir", "go"]
        assert items[0].score == pytest.approx(1.0)
        assert items[1].score == pytest.approx(0.8)

    def test_keyword_search(self, vector_store):
        items = vector_store.search("docs", "memory safety in rust", 5)

        assert [item.id for item in items] == ["rust"]
        assert items[0].score == pytest.approx(0.75)

    def test_dimension_mismatch_on_search(self, vector_store):
        with pytest.raises(DimensionMismatchError) as exc_info:
            vector_store.search("docs", [1.0, 0.0], 2)
        assert (exc_info.value.expected, exc_info.value.actual) == (3, 2)

    def test_dimension_mismatch_on_add(self, vector_store):
        with pytest.raises(DimensionMismatchError):
            vector_store.add("docs", "bad", "text", [1.0])

    def test_unknown_index_is_empty(self, vector_store):
        assert vector_store.search("nothing", "elixir", 3) == []

    def test_metadata_is_copied(self):
        store = InMemoryVectorStore()
        store.add("i", "a", "alpha", [1.0], {"book": "x"})

        item = store.search("i", [1.0], 1)[0]
        item.metadata["book"] = "changed"

        assert store.search("i", [1.0], 1)[0].metadata == {"book": "x"}
        assert len(store) == 1


# =========================================================================
# Scorers
# =========================================================================


class TestLLMScorer:
    def test_normalises_and_sorts(self):
        llm = FakeLLM(['{"scores": [{"index": 0, "score": 2}, {"index": 1, "score": 9}]}'])
        items = make_items("a", "b", "c")

        rescored = LLMScorer(llm).rerank("query", items)

        assert [item.id for item in rescored] == ["b", "a", "c"]
        assert rescored[0].score == pytest.approx(0.9)
        assert rescored[1].score == pytest.approx(0.2)
        assert rescored[2].score == 0.0
        assert rescored[0].metadata["retrieval_score"] == pytest.approx(0.9)
        assert "[2] passage c" in llm.prompts[0]

    def test_out_of_range_indices_ignored(self):
        llm = FakeLLM(['{"scores": [{"index": 5, "score": 10}, {"index": 0, "score": 15}]}'])
        rescored = LLMScorer(llm).rerank("q", make_items("a"))

        assert rescored[0].score == 1.0

    def test_empty_items_skip_llm(self):
        llm = FakeLLM()
        assert LLMScorer(llm).rerank("q", []) == []
        assert llm.calls == []

    def test_llm_failure_propagates(self):
        with pytest.raises(LLMFailureError):
            LLMScorer(FakeLLM([LLMFailureError("down")])).rerank("q", make_items("a"))


class TestCrossEncoderScorer:
    def test_scores_with_model(self, monkeypatch):
        pytest.importorskip("sentence_transformers")
        from ragloom.adapters import cross_encoder

        class FakeModel:
            def predict(self, pairs):
                return [len(doc) / 100 for _, doc in pairs]

        monkeypatch.setitem(cross_encoder._models, "fake-model", FakeModel())
        items = [make_item("short", 0.1, content="x" * 10), make_item("long", 0.3, content="x" * 50)]

        rescored = cross_encoder.CrossEncoderScorer("fake-model").rerank("q", items)

        assert [item.id for item in rescored] == ["long", "short"]
        assert rescored[0].score == pytest.approx(0.5)
        assert rescored[0].metadata["retrieval_score"] == 0.3


# =========================================================================
# Weaviate + Neo4j (client objects mocked)
# =========================================================================


def _weaviate_object(props, distance=None, score=None):
    return SimpleNamespace(
        properties=props,
        metadata=SimpleNamespace(distance=distance, score=score),
        uuid="00000000-0000-0000-0000-000000000001",
    )


class TestWeaviateVectorStore:
    def test_vector_search_converts_distance(self):
        client = MagicMock()
        collection = client.collections.get.return_value
        collection.query.near_vector.return_value = SimpleNamespace(objects=[
            _weaviate_object({"chunk_id": "c1", "text": "Elixir", "book_id": "b"}, distance=0.25),
        ])

        items = WeaviateVectorStore(client).search("Chunks", [0.1, 0.2], 3)

        client.collections.get.assert_called_once_with("Chunks")
        assert collection.query.near_vector.call_args.kwargs["limit"] == 3
        assert items[0].id == "c1"
        assert items[0].content == "Elixir"
        assert items[0].score == pytest.approx(0.75)
        assert items[0].metadata == {"book_id": "b"}

    def test_text_query_uses_bm25(self):
        client = MagicMock()
        collection = client.collections.get.return_value
        collection.query.bm25.return_value = SimpleNamespace(objects=[
            _weaviate_object({"text": "Go"}, score=2.5),
        ])

        items = WeaviateVectorStore(client).search("Chunks", "goroutines", 5)

        assert collection.query.bm25.call_args.kwargs["query"] == "goroutines"
        assert items[0].score == 2.5
        assert items[0].id == "00000000-0000-0000-0000-000000000001"


class TestNeo4jGraphStore:
    def test_query_returns_record_dicts(self):
        record = MagicMock()
        record.data.return_value = {"id": "elixir"}
        driver = MagicMock()
        driver.execute_query.return_value = SimpleNamespace(records=[record])

        rows = Neo4jGraphStore(driver).query("books", "MATCH (n) RETURN n.id AS id", {"limit": 3})

        assert rows == [{"id": "elixir"}]
        kwargs = driver.execute_query.call_args.kwargs
        assert kwargs["parameters_"] == {"graph_id": "books", "limit": 3}

    def test_unavailable_database(self):
        from neo4j.exceptions import ServiceUnavailable

        driver = MagicMock()
        driver.execute_query.side_effect = ServiceUnavailable("connection refused")

        with pytest.raises(AdapterUnavailableError) as exc_info:
            Neo4jGraphStore(driver).query("g", "RETURN 1")
        assert exc_info.value.name == "graph_store"


# =========================================================================
# AdapterSet
# =========================================================================


class TestAdapterSet:
    def test_available_and_check(self, vector_store):
        adapters = AdapterSet(vector_store=vector_store, llm=FakeLLM())

        assert adapters.available() == {"vector_store", "llm"}
        adapters.check({"llm"})
        with pytest.raises(AdapterUnavailableError) as exc_info:
            adapters.check({"llm", "graph_store", "embedder"})
        assert exc_info.value.name == "embedder"

    def test_require(self):
        with pytest.raises(AdapterUnavailableError):
            AdapterSet().require("scorer")

    def test_protocols_match_adapters(self, vector_store):
        assert isinstance(vector_store, VectorStore)
        assert isinstance(OpenRouterLLM(), LLM)
        assert isinstance(OpenRouterEmbedder(), Embedder)
        assert isinstance(LLMScorer(FakeLLM()), Scorer)
        assert isinstance(Neo4jGraphStore(MagicMock()), GraphStore)

    def test_complete_text_strips(self):
        assert base.complete_text(FakeLLM(["  answer \n"]), "prompt") == "answer"
