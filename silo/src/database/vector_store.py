"""
Silo - SiloVectorStore
========================
Per-user embedding records in S3-compatible object storage:
  • One JSON object per saved item at ``embeddings/{userId}/{itemId}.json``
  • Overwrite-on-put (last write wins, idempotent by construction)
  • Listing = enumerate the user's prefix, then fetch every key with
    bounded parallelism

Design decisions:
  • **No local state** — no cache, no index; every call goes to the store.
  • **Dependency Injection** — the S3 client factory is injected, never
    hard-coded, making the store testable with an in-memory fake.
  • **Per-record isolation** — a record that fails to fetch or decode is
    logged and skipped; one bad object never fails a listing.
  • **Client reuse** — inside ``async with store:`` every call shares one
    S3 client (one connection pool); outside it each call opens its own.
  • **Signing** — delegated to ``aiobotocore`` (Signature V4), which is
    what S3-compatible providers require.

Usage:
    from silo.src.database.vector_store import SiloVectorStore

    store = SiloVectorStore()
    await store.put_record("user-1", "item-9", vector, {"title": "Morning run"})
    records = await store.list_records("user-1")
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from typing import Any

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from silo.config.settings import settings
from silo.src.core.exceptions import MalformedRecord, UpstreamUnavailable
from silo.src.models.embedding_models import EmbeddingRecord, ItemMetadata
from silo.src.utils.logger import elapsed_ms, get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
S3ClientFactory = Callable[[], AbstractAsyncContextManager[Any]]

# ── Constants ──────────────────────────────────────────────────────────
_RECORD_SUFFIX = ".json"
_CONTENT_TYPE = "application/json"


def s3_client_factory() -> S3ClientFactory:
    """
    Build a factory that opens an ``aiobotocore`` S3 client for the
    configured provider.  Each call returns an async context manager.
    """
    session = get_session()
    config = AioConfig(signature_version="s3v4", retries={"max_attempts": 2, "mode": "standard"})

    def _factory() -> AbstractAsyncContextManager[Any]:
        return session.create_client("s3", endpoint_url=settings.OBJECT_STORE_ENDPOINT, region_name=settings.OBJECT_STORE_REGION, aws_access_key_id=settings.OBJECT_STORE_ACCESS_KEY.get_secret_value(), aws_secret_access_key=settings.OBJECT_STORE_SECRET_KEY.get_secret_value(), config=config)

    return _factory


class SiloVectorStore:
    """
    High-level abstraction over the per-user embedding prefix.

    Parameters
    ----------
    client_factory
        Zero-argument callable returning an async context manager that
        yields an S3 client.  Defaults to ``s3_client_factory()``.
    bucket
        Override the bucket.  Defaults to ``settings.OBJECT_STORE_BUCKET``.
    prefix
        Override the top-level key prefix.  Defaults to ``settings.EMBEDDINGS_PREFIX``.
    timeout_s
        Sub-deadline for each storage call.  Defaults to ``settings.STORE_TIMEOUT_S``.
    max_workers
        Concurrent record fetches during a listing.  Defaults to ``settings.MAX_WORKERS``.
    """

    __slots__ = ("_client_factory", "_bucket", "_prefix", "_timeout_s", "_max_workers", "_exit_stack", "_shared_client")

    def __init__(self, client_factory: S3ClientFactory | None = None, bucket: str | None = None, prefix: str | None = None, timeout_s: float | None = None, max_workers: int | None = None) -> None:
        self._client_factory: S3ClientFactory = client_factory or s3_client_factory()
        self._bucket: str = bucket or settings.OBJECT_STORE_BUCKET
        self._prefix: str = (prefix or settings.EMBEDDINGS_PREFIX).strip("/")
        self._timeout_s: float = timeout_s or settings.STORE_TIMEOUT_S
        self._max_workers: int = max_workers or settings.MAX_WORKERS
        self._exit_stack: AsyncExitStack | None = None
        self._shared_client: Any = None

    # ══════════════════════════════════════════════════════════════════
    #  CLIENT LIFECYCLE
    # ══════════════════════════════════════════════════════════════════

    async def __aenter__(self) -> SiloVectorStore:
        """Open one client and reuse it until the block exits."""
        if self._exit_stack is not None:
            raise RuntimeError("SiloVectorStore is already open.")
        stack = AsyncExitStack()
        self._shared_client = await stack.enter_async_context(self._client_factory())
        self._exit_stack = stack
        logger.info("[STORE] Shared client opened for bucket '%s'.", self._bucket)
        return self


    async def __aexit__(self, *exc_info: Any) -> None:
        stack, self._exit_stack, self._shared_client = self._exit_stack, None, None
        if stack is not None:
            await stack.aclose()
            logger.info("[STORE] Shared client closed.")


    @asynccontextmanager
    async def _client(self) -> AsyncIterator[Any]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with self._client_factory() as s3:
            yield s3

    # ══════════════════════════════════════════════════════════════════
    #  KEY SCHEME
    # ══════════════════════════════════════════════════════════════════

    def user_prefix(self, user_id: str) -> str:
        if not user_id:
            raise ValueError("user_id must be non-empty.")
        return f"{self._prefix}/{user_id}/"


    def record_key(self, user_id: str, item_id: str) -> str:
        """Deterministic object key for one record."""
        if not item_id:
            raise ValueError("item_id must be non-empty.")
        return f"{self.user_prefix(user_id)}{item_id}{_RECORD_SUFFIX}"

    # ══════════════════════════════════════════════════════════════════
    #  WRITE
    # ══════════════════════════════════════════════════════════════════

    async def put_record(self, user_id: str, item_id: str, vector: Sequence[float], metadata: ItemMetadata | dict[str, Any]) -> bool:
        """
        Write (or overwrite) the record for *item_id*.

        Returns
        -------
        bool
            ``True`` if the store acknowledged the write.  Storage errors
            and timeouts are logged and reported as ``False``.
        """
        key = self.record_key(user_id, item_id)
        record = EmbeddingRecord(item_id=item_id, vector=list(vector), metadata=ItemMetadata.model_validate(metadata))
        body = record.to_json().encode("utf-8")

        t_start = time.perf_counter()
        try:
            async with self._client() as s3:
                await asyncio.wait_for(s3.put_object(Bucket=self._bucket, Key=key, Body=body, ContentType=_CONTENT_TYPE), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            logger.error("[STORE] PUT %s timed out after %.1fs.", key, self._timeout_s)
            return False
        except (BotoCoreError, ClientError) as exc:
            logger.error("[STORE] PUT %s failed: %s", key, exc)
            return False

        logger.info("[STORE] PUT %s (%d-dim, %d bytes) in %.1fms.", key, len(record.vector), len(body), elapsed_ms(t_start))
        return True

    # ══════════════════════════════════════════════════════════════════
    #  READ
    # ══════════════════════════════════════════════════════════════════

    async def list_records(self, user_id: str) -> list[EmbeddingRecord]:
        """
        Return every decodable record under the user's prefix.

        Keys are enumerated first; the per-key fetches are then issued
        concurrently, at most ``max_workers`` at a time.  Records that
        fail to fetch or decode are skipped.

        Raises
        ------
        UpstreamUnavailable
            If the key enumeration itself fails.
        """
        t_start = time.perf_counter()

        async with self._client() as s3:
            keys = await self._list_keys(s3, user_id)
            if not keys:
                logger.info("[STORE] No records under '%s'.", self.user_prefix(user_id))
                return []

            semaphore = asyncio.Semaphore(self._max_workers)

            async def _fetch_isolated(key: str) -> EmbeddingRecord | None:
                async with semaphore:
                    try:
                        return await self._fetch_record(s3, key)
                    except MalformedRecord as exc:
                        logger.warning("[STORE] Skipping malformed record %s", exc)
                    except asyncio.TimeoutError:
                        logger.warning("[STORE] Skipping %s: fetch timed out after %.1fs.", key, self._timeout_s)
                    except Exception as exc:
                        logger.warning("[STORE] Skipping %s: fetch failed (%s: %s).", key, type(exc).__name__, exc)
                    return None

            results = await asyncio.gather(*(_fetch_isolated(k) for k in keys))

        records = [r for r in results if r is not None]
        logger.info("[STORE] Listed %d/%d record(s) for user '%s' in %.1fms (workers=%d).", len(records), len(keys), user_id, elapsed_ms(t_start), self._max_workers)
        return records


    async def count(self, user_id: str) -> int:
        """Number of record keys under the user's prefix."""
        async with self._client() as s3:
            return len(await self._list_keys(s3, user_id))

    # ── Internal ───────────────────────────────────────────────────────

    async def _list_keys(self, s3: Any, user_id: str) -> list[str]:
        """Enumerate record keys, following continuation tokens."""
        prefix = self.user_prefix(user_id)
        keys: list[str] = []
        token: str | None = None

        while True:
            params: dict[str, str] = {"Bucket": self._bucket, "Prefix": prefix}
            if token:
                params["ContinuationToken"] = token
            try:
                page = await asyncio.wait_for(s3.list_objects_v2(**params), timeout=self._timeout_s)
            except asyncio.TimeoutError as exc:
                logger.warning("[STORE] LIST %s timed out after %.1fs.", prefix, self._timeout_s)
                raise UpstreamUnavailable(f"listing '{prefix}' timed out") from exc
            except (BotoCoreError, ClientError) as exc:
                logger.warning("[STORE] LIST %s failed: %s", prefix, exc)
                raise UpstreamUnavailable(f"listing '{prefix}' failed: {exc}") from exc

            keys.extend(obj["Key"] for obj in page.get("Contents", []) if obj.get("Key", "").endswith(_RECORD_SUFFIX))

            token = page.get("NextContinuationToken")
            if not page.get("IsTruncated") or not token:
                break

        return keys


    async def _fetch_record(self, s3: Any, key: str) -> EmbeddingRecord:
        payload = await asyncio.wait_for(self._read_object(s3, key), timeout=self._timeout_s)
        try:
            return EmbeddingRecord.model_validate_json(payload)
        except ValidationError as exc:
            raise MalformedRecord(key, f"{exc.error_count()} validation error(s)") from exc


    async def _read_object(self, s3: Any, key: str) -> bytes:
        response = await s3.get_object(Bucket=self._bucket, Key=key)
        async with response["Body"] as stream:
            return await stream.read()


    def __repr__(self) -> str:
        return f"SiloVectorStore(bucket='{self._bucket}', prefix='{self._prefix}', workers={self._max_workers})"
