"""
Silo - Application Entry Point
===============================
FastAPI application factory.  Registers the API routes, configures CORS,
and builds the shared ``RAGManager`` during the lifespan startup.

Environment variables are loaded from ``silo/.env`` via python-dotenv
before the settings singleton is first imported.

Run:
    uvicorn silo.src.main:app --reload
"""

from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from contextlib import asynccontextmanager  # noqa: E402

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from silo.config.settings import settings  # noqa: E402
from silo.src.api.routes import error_response, router  # noqa: E402
from silo.src.core.rag_engine import RAGManager, build_rag_manager  # noqa: E402
from silo.src.utils.logger import get_logger  # noqa: E402

logger = get_logger(__name__)

SERVICE_NAME = "Silo API"
ENDPOINTS = {
    "ragQuery": "POST /api/rag-query",
    "generateEmbedding": "POST /api/generate-embedding",
}


def create_app(rag_manager: RAGManager | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Parameters
    ----------
    rag_manager
        Pre-built manager (tests inject fakes here).  When omitted the
        production manager is wired at startup from ``settings``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "rag_manager", None) is None:
            app.state.rag_manager = build_rag_manager()
        # One S3 client for the whole app lifetime
        async with app.state.rag_manager.vector_store:
            logger.info("%s v%s ready (env=%s, bucket=%s).", SERVICE_NAME, settings.APP_VERSION, settings.ENV, settings.OBJECT_STORE_BUCKET)
            yield
        logger.info("%s shutting down.", SERVICE_NAME)

    app = FastAPI(title=SERVICE_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.state.rag_manager = rag_manager

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["Content-Type"])
    app.include_router(router, prefix="/api", tags=["rag"])

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError):
        logger.warning("[API] Rejected malformed body on %s: %s", request.url.path, exc.errors())
        return error_response(400, "Invalid request body", "; ".join(str(e.get("msg", e)) for e in exc.errors()))

    @app.get("/")
    @app.get("/api")
    async def health_check():
        return {"status": "ok", "service": SERVICE_NAME, "version": settings.APP_VERSION, "endpoints": ENDPOINTS}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
