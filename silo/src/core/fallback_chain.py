"""
Silo - Fallback Chain
======================
Resolves the context for a question through an ordered list of tiers,
each weaker than the last, so that a question is never left unanswered.

Tiers
-----
``EMBEDDING_SEARCH``
    Embed the query, list the user's records, rank by cosine similarity.
    A degraded embedding skips the store entirely.
``CALLER_SUPPLIED_ITEMS``
    The items the client sent with the request (first 15).
``STORE_METADATA``
    The user's stored records, unranked, vectors ignored (first 10).
``NO_CONTEXT``
    Nothing resolved; the caller answers with a fixed apology.

Every tier is an async step ``(ContextQuery) -> TierOutcome``.  A step that
raises is converted into a failed outcome, exactly like a step that finds
nothing, and the chain moves on.  ``FallbackChain.resolve`` never raises
(task cancellation excepted).

Usage:
    chain = FallbackChain(embedder, vector_store, retriever)
    resolution = await chain.resolve(ContextQuery(user_id="u1", query="what fitness content do I have"))
    resolution.tier, resolution.context, resolution.sources
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from silo.config.settings import settings
from silo.src.core.embedder import Embedder, is_degraded
from silo.src.core.retriever import Retriever
from silo.src.database.vector_store import SiloVectorStore
from silo.src.models.embedding_models import EmbeddingRecord
from silo.src.models.request_models import CallerItem
from silo.src.models.response_models import ContextItem, Source
from silo.src.utils.logger import elapsed_ms, get_logger

logger = get_logger(__name__)

# No ranking signal exists for the unranked tiers; every source gets this.
DEFAULT_FALLBACK_RELEVANCE: float = 0.8


class Tier(str, Enum):
    EMBEDDING_SEARCH = "embedding_search"
    CALLER_SUPPLIED_ITEMS = "caller_supplied_items"
    STORE_METADATA = "store_metadata"
    NO_CONTEXT = "no_context"


# ══════════════════════════════════════════════════════════════════════
#  RESULT TYPES
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ContextQuery:
    """The request-scoped inputs every tier may look at."""

    user_id: str
    query: str
    caller_items: Sequence[CallerItem] = ()


@dataclass(frozen=True)
class TierOutcome:
    """Either resolved context (``ok``) or the reason the tier gave up."""

    tier: Tier
    context: list[ContextItem] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None and bool(self.context)

    @classmethod
    def failed(cls, tier: Tier, reason: str) -> TierOutcome:
        return cls(tier=tier, reason=reason)


@dataclass(frozen=True)
class Resolution:
    """Final chain output plus the trail of tiers that were tried."""

    tier: Tier
    context: list[ContextItem]
    sources: list[Source]
    attempts: list[TierOutcome]

    @property
    def has_context(self) -> bool:
        return bool(self.context)


TierStep = Callable[[ContextQuery], Awaitable[TierOutcome]]


# ══════════════════════════════════════════════════════════════════════
#  CONVERSIONS
# ══════════════════════════════════════════════════════════════════════


def _context_from_record(record: EmbeddingRecord) -> ContextItem:
    meta = record.metadata
    return ContextItem(title=meta.title, description=meta.description, tags=meta.tags, classification=meta.classification)


def _source_from_record(record: EmbeddingRecord, relevance: float) -> Source:
    return Source(item_id=record.item_id, title=record.metadata.title, description=record.metadata.description, relevance=relevance)


# ══════════════════════════════════════════════════════════════════════
#  TIERS
# ══════════════════════════════════════════════════════════════════════


class EmbeddingSearchTier:
    """Tier 1: vector similarity search over the user's stored records."""

    tier = Tier.EMBEDDING_SEARCH

    __slots__ = ("_embedder", "_store", "_retriever")

    def __init__(self, embedder: Embedder, store: SiloVectorStore, retriever: Retriever) -> None:
        self._embedder = embedder
        self._store = store
        self._retriever = retriever


    async def __call__(self, request: ContextQuery) -> TierOutcome:
        query_vector = await self._embedder.embed(request.query)
        if is_degraded(query_vector):
            return TierOutcome.failed(self.tier, f"embedding degraded ({query_vector.reason})")

        records = await self._store.list_records(request.user_id)
        if not records:
            return TierOutcome.failed(self.tier, "no stored embeddings")

        matches = self._retriever.retrieve(query_vector, records)
        if not matches:
            return TierOutcome.failed(self.tier, "no record cleared the relevance threshold")

        return TierOutcome(
            tier=self.tier,
            context=[_context_from_record(m.record) for m in matches],
            sources=[_source_from_record(m.record, m.similarity) for m in matches],
        )


class CallerSuppliedItemsTier:
    """Tier 2: the items the client sent, in the order it sent them."""

    tier = Tier.CALLER_SUPPLIED_ITEMS

    __slots__ = ("_limit",)

    def __init__(self, limit: int | None = None) -> None:
        self._limit = limit or settings.CALLER_ITEMS_LIMIT


    async def __call__(self, request: ContextQuery) -> TierOutcome:
        items = list(request.caller_items or ())[: self._limit]
        if not items:
            return TierOutcome.failed(self.tier, "no caller-supplied items")

        return TierOutcome(
            tier=self.tier,
            context=[ContextItem(title=i.title, description=i.description, tags=i.tags, classification=i.classification) for i in items],
            sources=[Source(item_id=i.id, title=i.title, description=i.description, relevance=DEFAULT_FALLBACK_RELEVANCE) for i in items],
        )


class StoreMetadataTier:
    """Tier 3: stored records' metadata, unranked."""

    tier = Tier.STORE_METADATA

    __slots__ = ("_store", "_limit")

    def __init__(self, store: SiloVectorStore, limit: int | None = None) -> None:
        self._store = store
        self._limit = limit or settings.STORE_FALLBACK_LIMIT


    async def __call__(self, request: ContextQuery) -> TierOutcome:
        records = (await self._store.list_records(request.user_id))[: self._limit]
        if not records:
            return TierOutcome.failed(self.tier, "no stored records")

        return TierOutcome(
            tier=self.tier,
            context=[_context_from_record(r) for r in records],
            sources=[_source_from_record(r, DEFAULT_FALLBACK_RELEVANCE) for r in records],
        )


# ══════════════════════════════════════════════════════════════════════
#  CHAIN
# ══════════════════════════════════════════════════════════════════════


class FallbackChain:
    """
    Runs tiers left to right and stops at the first that resolves context.

    Parameters
    ----------
    embedder, store, retriever
        Collaborators for the default tier list.
    steps
        Optional explicit ``(Tier, step)`` list, replacing the defaults.
    """

    __slots__ = ("_steps",)

    def __init__(self, embedder: Embedder | None = None, store: SiloVectorStore | None = None, retriever: Retriever | None = None, steps: Sequence[tuple[Tier, TierStep]] | None = None) -> None:
        if steps is not None:
            self._steps: list[tuple[Tier, TierStep]] = list(steps)
            return
        if embedder is None or store is None:
            raise ValueError("embedder and store are required unless explicit steps are given.")
        self._steps = [
            (Tier.EMBEDDING_SEARCH, EmbeddingSearchTier(embedder, store, retriever or Retriever())),
            (Tier.CALLER_SUPPLIED_ITEMS, CallerSuppliedItemsTier()),
            (Tier.STORE_METADATA, StoreMetadataTier(store)),
        ]


    @property
    def tiers(self) -> list[Tier]:
        return [tier for tier, _ in self._steps]


    async def resolve(self, request: ContextQuery) -> Resolution:
        """Walk the tiers; return the first success or a ``NO_CONTEXT`` resolution."""
        attempts: list[TierOutcome] = []

        for tier, step in self._steps:
            t_tier = time.perf_counter()
            outcome = await self._run_step(tier, step, request)
            attempts.append(outcome)

            if outcome.ok:
                logger.info("[FALLBACK] Resolved via %s: %d item(s) in %.1fms.", tier.value, len(outcome.context), elapsed_ms(t_tier))
                return Resolution(tier=tier, context=outcome.context, sources=outcome.sources, attempts=attempts)

            logger.warning("[FALLBACK] %s gave up after %.1fms: %s", tier.value, elapsed_ms(t_tier), outcome.reason)

        logger.warning("[FALLBACK] No tier produced context for user '%s'.", request.user_id)
        return Resolution(tier=Tier.NO_CONTEXT, context=[], sources=[], attempts=attempts)


    @staticmethod
    async def _run_step(tier: Tier, step: TierStep, request: ContextQuery) -> TierOutcome:
        try:
            outcome = await step(request)
        except Exception as exc:
            return TierOutcome.failed(tier, f"{type(exc).__name__}: {exc}")
        if not outcome.ok and outcome.reason is None:
            return TierOutcome.failed(tier, "empty result")
        return outcome
