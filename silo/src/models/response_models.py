# Pydantic models for outgoing API responses
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContextItem(_CamelModel):
    """One piece of resolved context handed to the answer synthesizer."""

    title: str = ""
    description: str | None = None
    tags: list[str] | None = None
    classification: str | None = None


class Source(_CamelModel):
    item_id: str
    title: str
    description: str | None = None
    relevance: float


class SuggestedEvent(_CamelModel):
    title: str
    date: str
    time: str
    description: str


class SynthesizedAnswer(_CamelModel):
    answer: str
    suggested_event: SuggestedEvent | None = None


class QueryResponse(_CamelModel):
    answer: str
    sources: list[Source]
    suggested_event: SuggestedEvent | None = None


class EmbeddingResponse(_CamelModel):
    embedding: list[float]
    stored: bool


class ErrorResponse(_CamelModel):
    error: str
    details: str | None = None
