"""
Silo - Centralized Configuration
=================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.
- ``OBJECT_STORE_ACCESS_KEY`` / ``OBJECT_STORE_SECRET_KEY`` are also
  ``SecretStr`` — object storage credentials must never leak into logs.

Deadlines
---------
Every outbound call runs under its own sub-deadline (``*_TIMEOUT_S``);
the whole request runs under ``REQUEST_TIMEOUT_S``.

Concurrency
-----------
``MAX_WORKERS`` bounds the number of concurrent per-record fetches issued
by ``SiloVectorStore.list_records`` (default 8).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# silo/.env, also loaded into os.environ by silo.src.main
ENV_FILE: Path = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required** — the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini).  **Required.**
        Access the raw value with ``settings.GOOGLE_API_KEY.get_secret_value()``.
    OBJECT_STORE_ACCESS_KEY, OBJECT_STORE_SECRET_KEY : SecretStr
        S3-compatible object storage credentials.  **Required.**
    OBJECT_STORE_ENDPOINT : str
        Endpoint URL of the S3-compatible provider.
    OBJECT_STORE_BUCKET : str
        Bucket holding the per-user embedding records.
    EMBEDDINGS_PREFIX : str
        Top-level key prefix; records live at ``{prefix}/{userId}/{itemId}.json``.
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    LLM_MODEL : str
        Model identifier for the answer-generation LLM.
    RELEVANCE_THRESHOLD : float
        Minimum (exclusive) cosine similarity for a retrieval match.
    TOP_K : int
        Maximum number of ranked matches kept from a retrieval.
    CALLER_ITEMS_LIMIT, STORE_FALLBACK_LIMIT : int
        Context caps for the two unranked fallback tiers.
    MAX_WORKERS : int
        Concurrent record fetches during a store listing.
    """

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    APP_VERSION: str = "1.0.0"

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── Object Storage (credentials REQUIRED — no default) ─────────────
    OBJECT_STORE_ACCESS_KEY: SecretStr
    OBJECT_STORE_SECRET_KEY: SecretStr
    OBJECT_STORE_ENDPOINT: str = "https://ewr1.vultrobjects.com"
    OBJECT_STORE_REGION: str = "us-east-1"
    OBJECT_STORE_BUCKET: str = "silo"
    EMBEDDINGS_PREFIX: str = "embeddings"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.7

    # ── Retrieval Parameters ───────────────────────────────────────────
    RELEVANCE_THRESHOLD: float = 0.3
    TOP_K: int = 5
    CALLER_ITEMS_LIMIT: int = 15
    STORE_FALLBACK_LIMIT: int = 10

    # ── Deadlines (seconds) ────────────────────────────────────────────
    EMBED_TIMEOUT_S: float = 10.0
    STORE_TIMEOUT_S: float = 10.0
    LLM_TIMEOUT_S: float = 45.0
    REQUEST_TIMEOUT_S: float = 60.0

    # ── Concurrency ────────────────────────────────────────────────────
    MAX_WORKERS: int = 8

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("RELEVANCE_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"RELEVANCE_THRESHOLD must be 0.0–1.0, got {v}")
        return v


    @field_validator("TOP_K", "CALLER_ITEMS_LIMIT", "STORE_FALLBACK_LIMIT")
    @classmethod
    def _limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"limit must be ≥ 1, got {v}")
        return v


    @field_validator("EMBED_TIMEOUT_S", "STORE_TIMEOUT_S", "LLM_TIMEOUT_S", "REQUEST_TIMEOUT_S")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeouts must be > 0, got {v}")
        return v


    @field_validator("MAX_WORKERS")
    @classmethod
    def _workers_range(cls, v: int) -> int:
        if not 1 <= v <= 16:
            raise ValueError(f"MAX_WORKERS must be 1–16, got {v}")
        return v

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=ENV_FILE, env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from silo.config.settings import settings
settings = Settings()
