"""
Silo - Embedder
================
Wraps the external embedding API: text in, fixed-dimension vector out.

Quota exhaustion is a routine condition, not an error: when the provider
reports it, ``embed`` returns ``DEGRADED`` (an explicit empty-vector
sentinel) and the rest of the pipeline falls back accordingly.  Every
other provider failure is raised as ``UpstreamUnavailable``.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from silo.src.core.embedder import Embedder, is_degraded

    embedder = Embedder(GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value()))
    vector = await embedder.embed("what fitness content do I have")
    if is_degraded(vector):
        ...
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from silo.config.settings import settings
from silo.src.core.exceptions import UpstreamUnavailable
from silo.src.utils.logger import elapsed_ms, get_logger
from silo.src.utils.text_utils import build_item_text

logger = get_logger(__name__)

# gRPC status token; free-text words like "quota" also appear in auth errors.
_QUOTA_STATUS = "RESOURCE_EXHAUSTED"
_QUOTA_EXCEPTION_NAMES = frozenset({"ResourceExhausted", "TooManyRequests"})


# ── Embeddings Protocol ───────────────────────────────────────────────

@runtime_checkable
class AsyncEmbeddings(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_query(self, text: str) -> list[float]: ...


# ── Degraded Sentinel ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Degraded:
    """No embedding is available right now.  Behaves as an empty vector."""

    reason: str = "quota exhausted"

    def __len__(self) -> int:
        return 0

    def __iter__(self):
        return iter(())


DEGRADED = Degraded()

Vector = list[float]


def is_degraded(result: Vector | Degraded) -> bool:
    return isinstance(result, Degraded)


def is_quota_error(exc: BaseException) -> bool:
    """
    Return True if *exc*, or anything in its cause chain, is a provider
    quota / rate-limit signal.

    Only structured signals count: a 429 ``code`` / ``status_code`` (or on
    ``response``), a ``google.api_core`` ``ResourceExhausted`` /
    ``TooManyRequests`` in the class hierarchy, or the gRPC
    ``RESOURCE_EXHAUSTED`` status token.  LangChain wraps provider errors,
    so the whole chain is inspected.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        for attr in ("code", "status_code"):
            if getattr(current, attr, None) == 429:
                return True
        response = getattr(current, "response", None)
        if getattr(response, "status_code", None) == 429:
            return True
        if any(cls.__name__ in _QUOTA_EXCEPTION_NAMES for cls in type(current).__mro__):
            return True
        if _QUOTA_STATUS in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


class Embedder:
    """
    Async text → vector conversion with an explicit degraded mode.

    Parameters
    ----------
    model
        Any object satisfying ``AsyncEmbeddings`` (e.g.
        ``GoogleGenerativeAIEmbeddings``).
    timeout_s
        Sub-deadline for one provider call.  Defaults to
        ``settings.EMBED_TIMEOUT_S``.
    """

    __slots__ = ("_model", "_timeout_s")

    def __init__(self, model: AsyncEmbeddings, timeout_s: float | None = None) -> None:
        self._model = model
        self._timeout_s = timeout_s or settings.EMBED_TIMEOUT_S


    async def embed(self, text: str) -> Vector | Degraded:
        """
        Embed *text*.

        Returns
        -------
        list[float] | Degraded
            The vector, or ``DEGRADED`` when the provider enforces a quota
            or returns no values.

        Raises
        ------
        UpstreamUnavailable
            Network error, 5xx, timeout, or a malformed response.
        """
        t_start = time.perf_counter()
        try:
            values = await asyncio.wait_for(self._model.aembed_query(text), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("[EMBED] Provider timed out after %.1fs.", self._timeout_s)
            raise UpstreamUnavailable(f"embedding timed out after {self._timeout_s}s") from exc
        except Exception as exc:
            if is_quota_error(exc):
                logger.warning("[EMBED] Provider quota exhausted — returning degraded sentinel.")
                return DEGRADED
            logger.error("[EMBED] Provider call failed: %s", exc)
            raise UpstreamUnavailable(f"embedding failed: {exc}") from exc

        if values is None or (isinstance(values, (list, tuple)) and not values):
            logger.warning("[EMBED] Provider returned no values — returning degraded sentinel.")
            return Degraded(reason="empty embedding")

        try:
            vector = [float(v) for v in values]
        except (TypeError, ValueError) as exc:
            raise UpstreamUnavailable(f"malformed embedding response: {exc}") from exc

        logger.debug("[EMBED] %d-dim vector in %.1fms (%d chars).", len(vector), elapsed_ms(t_start), len(text))
        return vector


    async def embed_item(self, title: str, description: str | None = None, tags: Iterable[str] | None = None) -> Vector | Degraded:
        """Embed a saved item from its title, description and tags."""
        return await self.embed(build_item_text(title, description, tags))
