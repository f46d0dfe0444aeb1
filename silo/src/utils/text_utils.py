"""
Silo - Text Utilities
======================
Helper functions for text cleaning and for building the text that gets
embedded for a saved content item.

These utilities are consumed by the ``Embedder`` and the prompt builder
and should remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable


# ── Non-printable character pattern ────────────────────────────────────
# Control characters (C0/C1) except \n, \r, \t, which the whitespace
# collapse handles. Also BOM, zero-width chars, soft hyphens.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")
_WHITESPACE_RE = re.compile(r"\s+")


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise captured text before it is embedded or put into a prompt.

    Steps:
        1. Unicode NFC normalisation (canonical composition).
        2. Strip non-printable / zero-width characters and formatting
           artifacts (BOM, soft hyphens, directional marks).
        3. Collapse every whitespace run (newlines included) into a
           single space.

    Args:
        text: Raw text as captured by an upstream collaborator.

    Returns:
        Cleaned single-line text.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def build_item_text(title: str, description: str | None = None, tags: Iterable[str] | None = None) -> str:
    """
    Build the indexing text for one content item.

    Title, description and tags are space-joined; empty parts are dropped::

        build_item_text("Morning run", None, ["fitness", "cardio"])
        → "Morning run fitness cardio"
    """
    parts = [clean_text(title or ""), clean_text(description or ""), clean_text(" ".join(t for t in (tags or []) if t))]
    return " ".join(p for p in parts if p)
