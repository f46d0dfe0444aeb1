"""
Silo - API Routes
==================
Thin controllers: parse the body, hand it to ``RAGManager``, map the
outcome to a status code.  No business logic lives here.

Routes (mounted under ``/api``):
  - POST /rag-query           → answer a question from saved content
  - POST /generate-embedding  → embed and store one saved item

Every pipeline runs under ``REQUEST_TIMEOUT_S`` and is cancelled, with
all of its in-flight outbound calls, if the client disconnects.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from silo.config.settings import settings
from silo.src.core.exceptions import ConfigurationError, TerminalFailure, UpstreamUnavailable
from silo.src.core.rag_engine import RAGManager
from silo.src.models.request_models import EmbeddingRequest, QueryRequest
from silo.src.models.response_models import EmbeddingResponse, ErrorResponse, QueryResponse
from silo.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

T = TypeVar("T")

QUERY_FAILED = "Failed to process query"
EMBEDDING_FAILED = "Failed to generate embedding"

_DISCONNECT_POLL_S = 0.25
_ERROR_RESPONSES = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def get_rag_manager(request: Request) -> RAGManager:
    return request.app.state.rag_manager


def error_response(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, details=details).model_dump(exclude_none=True))


async def run_bound_to_request(request: Request, awaitable: Awaitable[T], timeout_s: float) -> T:
    """
    Await *awaitable* under a deadline, cancelling it if the client goes away.

    Raises ``asyncio.TimeoutError`` when the deadline passes.
    """
    task = asyncio.ensure_future(asyncio.wait_for(awaitable, timeout=timeout_s))
    watcher = asyncio.create_task(_cancel_on_disconnect(request, task))
    try:
        return await task
    finally:
        watcher.cancel()


async def _cancel_on_disconnect(request: Request, task: asyncio.Future) -> None:
    while not task.done():
        if await request.is_disconnected():
            logger.warning("[API] Client disconnected — cancelling in-flight pipeline.")
            task.cancel()
            return
        await asyncio.sleep(_DISCONNECT_POLL_S)


# ══════════════════════════════════════════════════════════════════════
#  ROUTES
# ══════════════════════════════════════════════════════════════════════


@router.post("/rag-query", response_model=QueryResponse, response_model_exclude_none=True, responses=_ERROR_RESPONSES)
async def rag_query(body: QueryRequest, request: Request, rag: RAGManager = Depends(get_rag_manager)):
    try:
        return await run_bound_to_request(request, rag.answer_query(body), settings.REQUEST_TIMEOUT_S)
    except ConfigurationError as exc:
        return error_response(400, str(exc))
    except TerminalFailure as exc:
        logger.error("[API] Query failed for user '%s': %s", body.user_id, exc.details)
        return error_response(500, QUERY_FAILED, exc.details)
    except asyncio.TimeoutError:
        logger.error("[API] Query for user '%s' exceeded %.1fs deadline.", body.user_id, settings.REQUEST_TIMEOUT_S)
        return error_response(500, QUERY_FAILED, f"Request exceeded {settings.REQUEST_TIMEOUT_S}s deadline")
    except Exception as exc:
        logger.exception("[API] Unexpected query failure.")
        return error_response(500, QUERY_FAILED, str(exc))


@router.post("/generate-embedding", response_model=EmbeddingResponse, responses=_ERROR_RESPONSES)
async def generate_embedding(body: EmbeddingRequest, request: Request, rag: RAGManager = Depends(get_rag_manager)):
    try:
        return await run_bound_to_request(request, rag.index_item(body), settings.REQUEST_TIMEOUT_S)
    except ConfigurationError as exc:
        return error_response(400, str(exc))
    except UpstreamUnavailable as exc:
        logger.error("[API] Embedding failed for item '%s': %s", body.item_id, exc)
        return error_response(500, EMBEDDING_FAILED, str(exc))
    except asyncio.TimeoutError:
        return error_response(500, EMBEDDING_FAILED, f"Request exceeded {settings.REQUEST_TIMEOUT_S}s deadline")
    except Exception as exc:
        logger.exception("[API] Unexpected embedding failure.")
        return error_response(500, EMBEDDING_FAILED, str(exc))
