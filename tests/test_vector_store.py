"""Tests for SiloVectorStore against an in-memory S3 client."""

from __future__ import annotations

import json

import pytest

from fakes import TEST_BUCKET, FakeS3Client, client_error, factory_for, seed_record
from silo.src.core.exceptions import UpstreamUnavailable
from silo.src.database.vector_store import SiloVectorStore
from silo.src.models.embedding_models import ItemMetadata


class TestKeyScheme:
    def test_record_key(self, store):
        assert store.record_key("u1", "item-9") == "embeddings/u1/item-9.json"

    def test_user_prefix(self, store):
        assert store.user_prefix("u1") == "embeddings/u1/"

    @pytest.mark.parametrize("user_id, item_id", [("", "x"), ("u1", "")])
    def test_empty_ids_rejected(self, store, user_id, item_id):
        with pytest.raises(ValueError):
            store.record_key(user_id, item_id)


class TestPut:
    @pytest.mark.asyncio
    async def test_writes_camel_case_record(self, store, s3):
        stored = await store.put_record("u1", "a1", [0.1, 0.2], ItemMetadata(title="Leg day", tags=["gym"]))

        assert stored is True
        payload = json.loads(s3.objects["embeddings/u1/a1.json"])
        assert payload["itemId"] == "a1"
        assert payload["embedding"] == [0.1, 0.2]
        assert payload["metadata"]["title"] == "Leg day"
        assert payload["metadata"]["tags"] == ["gym"]
        assert "timestamp" in payload

    @pytest.mark.asyncio
    async def test_put_is_idempotent(self, store, s3):
        for _ in range(3):
            await store.put_record("u1", "a1", [0.5, 0.5], {"title": "Same"})

        records = await store.list_records("u1")

        assert len(records) == 1
        assert records[0].vector == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store):
        await store.put_record("u1", "a1", [1.0, 0.0], {"title": "Old"})
        await store.put_record("u1", "a1", [0.0, 1.0], {"title": "New"})

        (record,) = await store.list_records("u1")

        assert record.metadata.title == "New"
        assert record.vector == [0.0, 1.0]

    @pytest.mark.asyncio
    async def test_storage_error_reports_false(self, store, s3):
        s3.put_error = client_error("AccessDenied", "PutObject")
        assert await store.put_record("u1", "a1", [0.1], {"title": "x"}) is False


class TestList:
    @pytest.mark.asyncio
    async def test_empty_prefix(self, store, s3):
        assert await store.list_records("nobody") == []
        assert s3.calls_to("get_object") == []

    @pytest.mark.asyncio
    async def test_only_the_users_records(self, store, s3):
        seed_record(s3, "u1", "a", [1.0], "A")
        seed_record(s3, "u2", "b", [1.0], "B")

        records = await store.list_records("u1")

        assert [r.item_id for r in records] == ["a"]

    @pytest.mark.asyncio
    async def test_corrupt_record_is_skipped(self, store, s3):
        for item_id in ("a", "b", "c"):
            seed_record(s3, "u1", item_id, [0.1, 0.2], item_id.upper())
        s3.objects["embeddings/u1/broken.json"] = b"{not json"

        records = await store.list_records("u1")

        assert sorted(r.item_id for r in records) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_record_missing_fields_is_skipped(self, store, s3):
        seed_record(s3, "u1", "good", [0.1], "Good")
        s3.objects["embeddings/u1/no-vector.json"] = json.dumps({"itemId": "no-vector", "metadata": {"title": "x"}}).encode()

        records = await store.list_records("u1")

        assert [r.item_id for r in records] == ["good"]

    @pytest.mark.asyncio
    async def test_unparseable_timestamp_keeps_record(self, store, s3):
        s3.objects["embeddings/u1/a.json"] = json.dumps({"itemId": "a", "embedding": [1.0, 0.0], "metadata": {"title": "Run"}, "timestamp": "Tue Oct 20 2026"}).encode()
        s3.objects["embeddings/u1/b.json"] = json.dumps({"itemId": "b", "embedding": [0.0, 1.0], "metadata": {"title": "Ramen"}}).encode()

        records = sorted(await store.list_records("u1"), key=lambda r: r.item_id)

        assert [r.item_id for r in records] == ["a", "b"]
        assert records[0].timestamp is None
        assert records[0].metadata.title == "Run"

    @pytest.mark.asyncio
    async def test_failed_fetch_is_skipped(self, store, s3):
        seed_record(s3, "u1", "a", [0.1], "A")
        key = seed_record(s3, "u1", "b", [0.1], "B")
        s3.get_errors[key] = client_error("InternalError", "GetObject")

        records = await store.list_records("u1")

        assert [r.item_id for r in records] == ["a"]

    @pytest.mark.asyncio
    async def test_slow_fetch_is_skipped(self, s3):
        seed_record(s3, "u1", "a", [0.1], "A")
        s3.get_delay = 0.5
        slow_store = SiloVectorStore(client_factory=factory_for(s3), bucket=TEST_BUCKET, prefix="embeddings", timeout_s=0.01)

        assert await slow_store.list_records("u1") == []

    @pytest.mark.asyncio
    async def test_non_record_keys_ignored(self, store, s3):
        seed_record(s3, "u1", "a", [0.1], "A")
        s3.objects["embeddings/u1/notes.txt"] = b"hello"

        records = await store.list_records("u1")

        assert [r.item_id for r in records] == ["a"]
        assert "embeddings/u1/notes.txt" not in s3.calls_to("get_object")

    @pytest.mark.asyncio
    async def test_follows_continuation_tokens(self):
        s3 = FakeS3Client(page_size=2)
        for i in range(5):
            seed_record(s3, "u1", f"i{i}", [0.1], f"Item {i}")
        paged_store = SiloVectorStore(client_factory=factory_for(s3), bucket=TEST_BUCKET, prefix="embeddings")

        records = await paged_store.list_records("u1")

        assert len(records) == 5
        assert len(s3.calls_to("list_objects_v2")) == 3

    @pytest.mark.asyncio
    async def test_fetch_parallelism_is_bounded(self):
        s3 = FakeS3Client(get_delay=0.01)
        for i in range(12):
            seed_record(s3, "u1", f"i{i}", [0.1], f"Item {i}")
        bounded_store = SiloVectorStore(client_factory=factory_for(s3), bucket=TEST_BUCKET, prefix="embeddings", max_workers=3)

        records = await bounded_store.list_records("u1")

        assert len(records) == 12
        assert 1 < s3.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_listing_failure_raises_unavailable(self, store, s3):
        s3.list_error = client_error("ServiceUnavailable", "ListObjectsV2")
        with pytest.raises(UpstreamUnavailable):
            await store.list_records("u1")

    @pytest.mark.asyncio
    async def test_count(self, store, s3):
        for i in range(4):
            seed_record(s3, "u1", f"i{i}", [0.1], f"Item {i}")
        assert await store.count("u1") == 4


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_each_call_opens_a_client_when_not_entered(self, store, s3):
        await store.put_record("u1", "a", [0.1], {"title": "A"})
        await store.list_records("u1")
        await store.count("u1")

        assert s3.sessions == 3

    @pytest.mark.asyncio
    async def test_entered_store_shares_one_client(self, store, s3):
        async with store:
            await store.put_record("u1", "a", [0.1], {"title": "A"})
            await store.list_records("u1")
            assert await store.count("u1") == 1

        assert s3.sessions == 1

    @pytest.mark.asyncio
    async def test_reopens_after_exit(self, store, s3):
        async with store:
            await store.count("u1")
        await store.count("u1")
        async with store:
            await store.count("u1")

        assert s3.sessions == 3

    @pytest.mark.asyncio
    async def test_double_enter_rejected(self, store):
        async with store:
            with pytest.raises(RuntimeError):
                await store.__aenter__()
