# Pydantic models for incoming API requests
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CallerItem(_CamelModel):
    """An item the client already holds locally and sends along with a query."""

    id: str = ""
    title: str = ""
    description: str | None = None
    tags: list[str] | None = None
    classification: str | None = None


class QueryRequest(_CamelModel):
    # Required fields are checked by RAGManager so the client gets the
    # service's own 400 body rather than a schema error.
    user_id: str | None = None
    query: str | None = None
    suggest_event: bool = False
    items: list[CallerItem] | None = None


class EmbeddingRequest(_CamelModel):
    user_id: str | None = None
    item_id: str | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    classification: str | None = None
