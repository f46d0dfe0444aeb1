"""
Silo - RAG Engine
==================
Orchestrates the two use cases the service exposes.

``RAGManager.answer_query``
    Stateless query pipeline.  Flow:
        1. Validate → ``userId`` and ``query`` required (no external calls otherwise)
        2. Resolve context → ``FallbackChain`` (embedding search → caller
           items → stored metadata → nothing)
        3. Nothing resolved → fixed "no content" answer, success
        4. Synthesize → prompt + Gemini call + lenient parse
        5. Return answer, sources, optional suggested event

``RAGManager.index_item``
    Embedding generation for one saved item.  Flow:
        1. Validate → ``userId``, ``itemId``, ``title`` required
        2. Embed title + description + tags
        3. Degraded → report ``stored: false`` without writing
        4. Put the record (last write wins)

Concurrency
-----------
``RAGManager`` holds no request-scoped state, so one instance serves
concurrent requests.  Deadlines live in the collaborators; the HTTP layer
adds the whole-request deadline and cancellation.

Usage:
    from silo.src.core.rag_engine import RAGManager
    rag = RAGManager(embedder, vector_store, synthesizer)
    response = await rag.answer_query(QueryRequest(user_id="u1", query="what fitness content do I have"))
"""

from __future__ import annotations

import time

from silo.config.prompt_templates import NO_CONTENT_RESPONSE
from silo.src.core.answer_synthesizer import AnswerSynthesizer
from silo.src.core.embedder import Embedder, is_degraded
from silo.src.core.exceptions import ConfigurationError
from silo.src.core.fallback_chain import ContextQuery, FallbackChain
from silo.src.core.retriever import Retriever
from silo.src.database.vector_store import SiloVectorStore
from silo.src.models.embedding_models import ItemMetadata
from silo.src.models.request_models import EmbeddingRequest, QueryRequest
from silo.src.models.response_models import EmbeddingResponse, QueryResponse
from silo.src.utils.logger import elapsed_ms, get_logger

logger = get_logger(__name__)

QUERY_REQUIRED_FIELDS = "userId, query"
EMBEDDING_REQUIRED_FIELDS = "userId, itemId, title"


class RAGManager:
    """
    Parameters
    ----------
    embedder
        ``Embedder`` used for both queries and item indexing.
    vector_store
        ``SiloVectorStore`` holding the per-user records.
    synthesizer
        ``AnswerSynthesizer`` wrapping the chat model.
    chain
        Optional custom ``FallbackChain``; built from the other
        collaborators when omitted.
    """

    __slots__ = ("_embedder", "_store", "_synthesizer", "_chain")

    def __init__(self, embedder: Embedder, vector_store: SiloVectorStore, synthesizer: AnswerSynthesizer, chain: FallbackChain | None = None) -> None:
        self._embedder = embedder
        self._store = vector_store
        self._synthesizer = synthesizer
        self._chain = chain or FallbackChain(embedder, vector_store, Retriever())


    @property
    def vector_store(self) -> SiloVectorStore:
        return self._store


    async def answer_query(self, request: QueryRequest) -> QueryResponse:
        """
        Full query pipeline.

        Raises
        ------
        ConfigurationError
            ``userId`` or ``query`` missing.  Raised before any external call.
        TerminalFailure
            The answer-generation call failed.
        """
        if not request.user_id or not request.query or not request.query.strip():
            raise ConfigurationError(f"Missing required fields: {QUERY_REQUIRED_FIELDS}")

        t_start = time.perf_counter()

        # ── 1. Resolve context ────────────────────────────────────────
        resolution = await self._chain.resolve(ContextQuery(user_id=request.user_id, query=request.query, caller_items=tuple(request.items or ())))
        resolve_ms = elapsed_ms(t_start)

        # ── 2. Nothing to answer from ─────────────────────────────────
        if not resolution.has_context:
            logger.info("[RAG] No context for user '%s' after %d tier(s) — returning no-content answer.", request.user_id, len(resolution.attempts))
            return QueryResponse(answer=NO_CONTENT_RESPONSE, sources=[])

        # ── 3. Synthesize ─────────────────────────────────────────────
        t_synth = time.perf_counter()
        result = await self._synthesizer.synthesize(request.query, resolution.context, request.suggest_event)
        synth_ms = elapsed_ms(t_synth)

        logger.info("[RAG] Pipeline total: %.1fms (resolve=%.1f via %s, synthesize=%.1f, sources=%d, event=%s)", elapsed_ms(t_start), resolve_ms, resolution.tier.value, synth_ms, len(resolution.sources), result.suggested_event is not None)
        return QueryResponse(answer=result.answer, sources=resolution.sources, suggested_event=result.suggested_event)


    async def index_item(self, request: EmbeddingRequest) -> EmbeddingResponse:
        """
        Embed one saved item and store its record.

        Raises
        ------
        ConfigurationError
            ``userId``, ``itemId`` or ``title`` missing.
        UpstreamUnavailable
            The embedding provider failed for a reason other than quota.
        """
        if not request.user_id or not request.item_id or not request.title:
            raise ConfigurationError(f"Missing required fields: {EMBEDDING_REQUIRED_FIELDS}")

        t_start = time.perf_counter()
        vector = await self._embedder.embed_item(request.title, request.description, request.tags)
        if is_degraded(vector):
            logger.warning("[RAG] Embedding degraded for item '%s' — not stored.", request.item_id)
            return EmbeddingResponse(embedding=[], stored=False)

        metadata = ItemMetadata(title=request.title, description=request.description, tags=request.tags, classification=request.classification)
        stored = await self._store.put_record(request.user_id, request.item_id, vector, metadata)

        logger.info("[RAG] Indexed item '%s' for user '%s' (stored=%s) in %.1fms.", request.item_id, request.user_id, stored, elapsed_ms(t_start))
        return EmbeddingResponse(embedding=vector, stored=stored)


def build_rag_manager() -> RAGManager:
    """Wire the production collaborators (Gemini + S3) from ``settings``."""
    from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings

    from silo.config.settings import settings

    api_key = settings.GOOGLE_API_KEY.get_secret_value()
    embeddings = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=api_key)
    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, google_api_key=api_key)
    logger.info("LLM initialised: %s (temperature=%.1f), embeddings: %s", settings.LLM_MODEL, settings.LLM_TEMPERATURE, settings.EMBEDDING_MODEL)

    embedder = Embedder(embeddings)
    return RAGManager(embedder, SiloVectorStore(), AnswerSynthesizer(llm))
