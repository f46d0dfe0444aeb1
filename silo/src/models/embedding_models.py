# Data classes for stored vector embeddings
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidatorFunctionWrapHandler, field_validator
from pydantic.alias_generators import to_camel


class ItemMetadata(BaseModel):
    """Denormalized copy of a saved item's salient fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = ""
    description: str | None = None
    tags: list[str] | None = None
    classification: str | None = None


class EmbeddingRecord(BaseModel):
    """
    One stored embedding per saved item per user.

    Wire form (``embeddings/{userId}/{itemId}.json``)::

        {"itemId": "...", "embedding": [0.1, ...], "metadata": {...}, "timestamp": "..."}
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item_id: str = Field(min_length=1)
    vector: list[float] = Field(alias="embedding")
    metadata: ItemMetadata
    timestamp: datetime | None = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("timestamp", mode="wrap")
    @classmethod
    def _lenient_timestamp(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> datetime | None:
        # Informational only; an unparseable value must not drop the record.
        try:
            return handler(value)
        except ValidationError:
            return None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ScoredRecord(BaseModel):
    """A stored record paired with its similarity to a query vector."""

    record: EmbeddingRecord
    similarity: float
