"""End-to-end tests for RAGManager over fake collaborators."""

from __future__ import annotations

import json

import pytest

from fakes import FakeChat, FakeEmbeddings, QuotaError, client_error, seed_record
from silo.config.prompt_templates import NO_CONTENT_RESPONSE
from silo.src.core.answer_synthesizer import AnswerSynthesizer
from silo.src.core.embedder import Embedder
from silo.src.core.exceptions import ConfigurationError, TerminalFailure, UpstreamUnavailable
from silo.src.core.rag_engine import RAGManager
from silo.src.models.request_models import CallerItem, EmbeddingRequest, QueryRequest

FITNESS_QUERY = "what fitness content do I have"


def _manager(store, embeddings: FakeEmbeddings | None = None, chat: FakeChat | None = None) -> RAGManager:
    return RAGManager(Embedder(embeddings or FakeEmbeddings()), store, AnswerSynthesizer(chat or FakeChat()))


class TestAnswerQuery:
    @pytest.mark.asyncio
    async def test_embedding_search_answer(self, store, s3):
        for i in range(8):
            seed_record(s3, "u1", f"fit{i}", [1.0, i * 0.05, 0.0], f"Workout {i}", tags=["fitness"])
        seed_record(s3, "u1", "cake", [0.0, 0.0, 1.0], "Chocolate cake")
        chat = FakeChat(reply="You have several workouts saved.")

        response = await _manager(store, FakeEmbeddings(vectors={FITNESS_QUERY: [1.0, 0.0, 0.0]}), chat).answer_query(QueryRequest(user_id="u1", query=FITNESS_QUERY))

        assert response.answer == "You have several workouts saved."
        assert 1 <= len(response.sources) <= 5
        assert all(s.relevance > 0.3 for s in response.sources)
        assert "cake" not in [s.item_id for s in response.sources]
        assert response.suggested_event is None

    @pytest.mark.asyncio
    async def test_quota_with_caller_items(self, store, s3):
        items = [CallerItem(id=f"c{i}", title=f"Saved {i}") for i in range(20)]
        chat = FakeChat()

        response = await _manager(store, FakeEmbeddings(error=QuotaError("quota")), chat).answer_query(QueryRequest(user_id="u1", query="anything", items=items))

        assert len(response.sources) == 15
        assert {s.relevance for s in response.sources} == {0.8}
        assert "15. Saved 14" in chat.last_prompt
        assert "Saved 15" not in chat.last_prompt
        assert s3.calls == []

    @pytest.mark.asyncio
    async def test_nothing_saved_anywhere(self, store, s3):
        chat = FakeChat()

        response = await _manager(store, FakeEmbeddings(error=QuotaError("quota")), chat).answer_query(QueryRequest(user_id="u1", query="what do I have"))

        assert response.answer == NO_CONTENT_RESPONSE
        assert response.sources == []
        assert chat.calls == []

    @pytest.mark.asyncio
    async def test_lenient_parse_keeps_raw_text(self, store, s3):
        seed_record(s3, "u1", "run", [1.0, 0.0, 0.0], "Morning run")
        reply = "Here's an idea: { not json at all }"

        response = await _manager(store, chat=FakeChat(reply=reply)).answer_query(QueryRequest(user_id="u1", query="I'm bored", suggest_event=True))

        assert response.answer == reply
        assert response.suggested_event is None

    @pytest.mark.asyncio
    async def test_structured_reply_with_event(self, store, s3):
        seed_record(s3, "u1", "run", [1.0, 0.0, 0.0], "Morning run")
        reply = json.dumps({"answer": "Go for a run!", "suggestedEvent": {"title": "Run", "date": "2026-10-21", "time": "07:00", "description": "Morning run from your saves"}})

        response = await _manager(store, chat=FakeChat(reply=reply)).answer_query(QueryRequest(user_id="u1", query="suggest something", suggest_event=True))

        assert response.answer == "Go for a run!"
        assert response.suggested_event.date == "2026-10-21"

    @pytest.mark.asyncio
    async def test_corrupt_record_does_not_fail_query(self, store, s3):
        for item_id in ("a", "b", "c"):
            seed_record(s3, "u1", item_id, [1.0, 0.0, 0.0], item_id.upper())
        s3.objects["embeddings/u1/d.json"] = b'{"itemId": "d", "embedding": "oops"'

        response = await _manager(store).answer_query(QueryRequest(user_id="u1", query="anything"))

        assert sorted(s.item_id for s in response.sources) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_generation_failure_is_terminal(self, store, s3):
        seed_record(s3, "u1", "run", [1.0, 0.0, 0.0], "Morning run")

        with pytest.raises(TerminalFailure):
            await _manager(store, chat=FakeChat(error=RuntimeError("LLM unavailable"))).answer_query(QueryRequest(user_id="u1", query="anything"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_", [QueryRequest(query="q"), QueryRequest(user_id="u1"), QueryRequest(user_id="u1", query="   ")])
    async def test_missing_fields_make_no_external_calls(self, store, s3, request_):
        embeddings, chat = FakeEmbeddings(), FakeChat()

        with pytest.raises(ConfigurationError, match="Missing required fields: userId, query"):
            await _manager(store, embeddings, chat).answer_query(request_)

        assert embeddings.calls == []
        assert chat.calls == []
        assert s3.calls == []


class TestIndexItem:
    @pytest.mark.asyncio
    async def test_embeds_and_stores(self, store, s3):
        embeddings = FakeEmbeddings(default=[0.1, 0.2, 0.3])

        response = await _manager(store, embeddings).index_item(EmbeddingRequest(user_id="u1", item_id="a1", title="Leg day", description="Squats", tags=["gym"], classification="fitness"))

        assert response.stored is True
        assert response.embedding == [0.1, 0.2, 0.3]
        assert embeddings.calls == ["Leg day Squats gym"]
        payload = json.loads(s3.objects["embeddings/u1/a1.json"])
        assert payload["metadata"]["classification"] == "fitness"

    @pytest.mark.asyncio
    async def test_reindexing_keeps_one_record(self, store, s3):
        manager = _manager(store)
        request = EmbeddingRequest(user_id="u1", item_id="a1", title="Leg day")

        await manager.index_item(request)
        await manager.index_item(request)

        assert await store.count("u1") == 1

    @pytest.mark.asyncio
    async def test_degraded_embedding_is_not_stored(self, store, s3):
        response = await _manager(store, FakeEmbeddings(error=QuotaError("quota"))).index_item(EmbeddingRequest(user_id="u1", item_id="a1", title="Leg day"))

        assert response.stored is False
        assert response.embedding == []
        assert s3.calls_to("put_object") == []

    @pytest.mark.asyncio
    async def test_store_failure_reports_not_stored(self, store, s3):
        s3.put_error = client_error("SlowDown", "PutObject")

        response = await _manager(store).index_item(EmbeddingRequest(user_id="u1", item_id="a1", title="Leg day"))

        assert response.stored is False
        assert response.embedding == [1.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_provider_outage_raises(self, store):
        with pytest.raises(UpstreamUnavailable):
            await _manager(store, FakeEmbeddings(error=ConnectionError("reset"))).index_item(EmbeddingRequest(user_id="u1", item_id="a1", title="Leg day"))

    @pytest.mark.asyncio
    async def test_missing_title(self, store):
        with pytest.raises(ConfigurationError, match="userId, itemId, title"):
            await _manager(store).index_item(EmbeddingRequest(user_id="u1", item_id="a1"))
