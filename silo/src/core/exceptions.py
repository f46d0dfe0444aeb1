"""
Silo - Error Taxonomy
======================
Every failure the RAG subsystem distinguishes.  Only ``ConfigurationError``
and ``TerminalFailure`` ever reach a caller; the rest are absorbed by the
stage that observes them (see the fallback chain and the vector store).
"""

from __future__ import annotations


class SiloError(Exception):
    """Base class for all Silo errors."""


class ConfigurationError(SiloError):
    """A request is missing required fields.  Raised before any external call."""


class UpstreamQuotaExceeded(SiloError):
    """A provider reported quota or rate-limit exhaustion."""


class UpstreamUnavailable(SiloError):
    """Network error, 5xx, timeout, or malformed response from a collaborator."""


class MalformedRecord(SiloError):
    """A stored embedding record could not be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class GenerationParseError(SiloError):
    """The generator's response held no well-formed structured block."""


class TerminalFailure(SiloError):
    """The final answer-generation call failed; surfaced to the caller."""

    def __init__(self, details: str) -> None:
        super().__init__(details)
        self.details = details
