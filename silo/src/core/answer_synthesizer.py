"""
Silo - Answer Synthesizer
==========================
Turns resolved context into an answer through the text-generation model.

Architecture
------------
``QuerySignalScanner``
    Table-driven keyword classifier.  Scans the lower-cased query for
    "wants suggestions" phrases and for interest categories, using the
    tables in ``silo.config.prompt_templates``.  The result is injected
    into the prompt as extra instructions and drives nothing else.

``parse_generation``
    Lenient structured-output parser.  Takes the first ``{`` through the
    last ``}`` of the response and tries to load it as JSON.  Anything
    that does not parse leaves the raw text as the answer, without an
    event.

``AnswerSynthesizer``
    Builds the prompt, calls the chat model under a sub-deadline, and
    parses the reply.  A failed generation call is the only failure in the
    query pipeline that reaches the caller (``TerminalFailure``).

Usage:
    from langchain_google_genai import ChatGoogleGenerativeAI
    synthesizer = AnswerSynthesizer(ChatGoogleGenerativeAI(model=settings.LLM_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value()))
    result = await synthesizer.synthesize("what should I cook tonight", context, suggest_event=True)
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from silo.config.prompt_templates import EVENT_RESPONSE_FORMAT, INTEREST_KEYWORDS, INTERESTS_INSTRUCTION, NO_SAVED_CONTENT_LINE, PLAIN_RESPONSE_FORMAT, RAG_PROMPT_TEMPLATE, SUGGESTION_INSTRUCTION, SUGGESTION_PHRASES, SYSTEM_PROMPT
from silo.config.settings import settings
from silo.src.core.embedder import is_quota_error
from silo.src.core.exceptions import GenerationParseError, TerminalFailure, UpstreamQuotaExceeded
from silo.src.models.response_models import ContextItem, SuggestedEvent, SynthesizedAnswer
from silo.src.utils.logger import elapsed_ms, get_logger

logger = get_logger(__name__)

# Greedy on purpose: first "{" through last "}".
_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


@runtime_checkable
class ChatModel(Protocol):
    """Anything with LangChain's async chat interface."""

    async def ainvoke(self, input: Any, **kwargs: Any) -> Any: ...


# ══════════════════════════════════════════════════════════════════════
#  QUERY SIGNAL SCANNER
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class QuerySignals:
    wants_suggestions: bool
    interests: tuple[str, ...]
    matched_phrases: tuple[str, ...] = ()


class QuerySignalScanner:
    """
    Keyword classifier for the two prompt heuristics.

    Parameters
    ----------
    suggestion_phrases
        Phrases that flag a request for suggestions.
    interest_keywords
        Ordered ``{category: keywords}`` table.
    """

    __slots__ = ("_phrases", "_interests")

    def __init__(self, suggestion_phrases: Sequence[str] = SUGGESTION_PHRASES, interest_keywords: dict[str, Sequence[str]] | None = None) -> None:
        self._phrases = tuple(p.lower() for p in suggestion_phrases)
        table = INTEREST_KEYWORDS if interest_keywords is None else interest_keywords
        self._interests = {category: tuple(k.lower() for k in keywords) for category, keywords in table.items()}


    def scan(self, query: str) -> QuerySignals:
        text_lower = query.lower()
        matched = tuple(p for p in self._phrases if p in text_lower)
        interests = tuple(category for category, keywords in self._interests.items() if any(k in text_lower for k in keywords))

        logger.debug("[SIGNALS] wants_suggestions=%s, phrases=%s, interests=%s", bool(matched), list(matched), list(interests))
        return QuerySignals(wants_suggestions=bool(matched), interests=interests, matched_phrases=matched)


# ══════════════════════════════════════════════════════════════════════
#  LENIENT PARSING
# ══════════════════════════════════════════════════════════════════════


def extract_json_block(text: str) -> dict[str, Any]:
    """
    Load the first ``{`` … last ``}`` substring of *text* as a JSON object.

    Raises
    ------
    GenerationParseError
        No braces, invalid JSON, or a JSON value that is not an object.
    """
    match = _JSON_BLOCK_RE.search(text)
    if match is None:
        raise GenerationParseError("no JSON object in response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise GenerationParseError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise GenerationParseError("structured block is not a JSON object")
    return parsed


def parse_generation(text: str, suggest_event: bool) -> SynthesizedAnswer:
    """Never raises: falls back to the raw text as the answer."""
    if not suggest_event:
        return SynthesizedAnswer(answer=text)

    try:
        parsed = extract_json_block(text)
    except GenerationParseError as exc:
        logger.info("[SYNTH] Structured parse failed (%s) — using raw text.", exc)
        return SynthesizedAnswer(answer=text)

    answer = parsed.get("answer")
    if not isinstance(answer, str) or not answer:
        answer = text

    event: SuggestedEvent | None = None
    raw_event = parsed.get("suggestedEvent")
    if raw_event is not None:
        try:
            event = SuggestedEvent.model_validate(raw_event)
        except ValidationError:
            logger.info("[SYNTH] Dropping malformed suggestedEvent: %r", raw_event)

    return SynthesizedAnswer(answer=answer, suggested_event=event)


# ══════════════════════════════════════════════════════════════════════
#  SYNTHESIZER
# ══════════════════════════════════════════════════════════════════════


class AnswerSynthesizer:
    """
    Parameters
    ----------
    llm
        A LangChain chat model (e.g. ``ChatGoogleGenerativeAI``).
    scanner
        Optional custom ``QuerySignalScanner``.
    timeout_s
        Sub-deadline for the generation call.  Defaults to ``settings.LLM_TIMEOUT_S``.
    """

    __slots__ = ("_llm", "_scanner", "_timeout_s")

    def __init__(self, llm: ChatModel, scanner: QuerySignalScanner | None = None, timeout_s: float | None = None) -> None:
        self._llm = llm
        self._scanner = scanner or QuerySignalScanner()
        self._timeout_s = timeout_s or settings.LLM_TIMEOUT_S


    async def synthesize(self, query: str, context: Sequence[ContextItem], suggest_event: bool) -> SynthesizedAnswer:
        """
        Generate the answer for *query* over *context*.

        Raises
        ------
        TerminalFailure
            The generation call failed, hit its quota, or timed out.
        """
        signals = self._scanner.scan(query)
        prompt = self.build_prompt(query, context, signals, suggest_event)
        messages = [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]

        t_llm = time.perf_counter()
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.error("[SYNTH] LLM call timed out after %.1fs.", self._timeout_s)
            raise TerminalFailure(f"Answer generation timed out after {self._timeout_s}s") from exc
        except Exception as exc:
            if is_quota_error(exc):
                logger.error("[SYNTH] LLM quota exhausted: %s", exc)
                raise TerminalFailure(f"Answer generation quota exceeded: {exc}") from UpstreamQuotaExceeded(str(exc))
            logger.exception("[SYNTH] LLM call failed.")
            raise TerminalFailure(str(exc)) from exc

        text = self._response_text(response)
        logger.info("[SYNTH] LLM response: %.1fms (%d chars, suggest_event=%s).", elapsed_ms(t_llm), len(text), suggest_event)
        return parse_generation(text, suggest_event)

    # ── Prompt formatting ──────────────────────────────────────────────

    @staticmethod
    def format_context(context: Sequence[ContextItem]) -> str:
        """Numbered lines: ``1. Title: description [classification] (Tags: a, b)``."""
        if not context:
            return NO_SAVED_CONTENT_LINE

        lines: list[str] = []
        for i, item in enumerate(context, 1):
            line = f"{i}. {item.title}"
            if item.description:
                line += f": {item.description}"
            if item.classification:
                line += f" [{item.classification}]"
            if item.tags:
                line += f" (Tags: {', '.join(item.tags)})"
            lines.append(line)
        return "\n".join(lines)


    @classmethod
    def build_prompt(cls, query: str, context: Sequence[ContextItem], signals: QuerySignals, suggest_event: bool) -> str:
        extra: list[str] = []
        if signals.wants_suggestions:
            extra.append(SUGGESTION_INSTRUCTION)
        if signals.interests:
            extra.append(INTERESTS_INSTRUCTION.format(interests=", ".join(signals.interests)))
        signals_block = "\n".join(extra) + "\n" if extra else ""

        return RAG_PROMPT_TEMPLATE.format(
            context=cls.format_context(context),
            today=datetime.now(timezone.utc).date().isoformat(),
            question=query,
            signals=signals_block,
            response_format=EVENT_RESPONSE_FORMAT if suggest_event else PLAIN_RESPONSE_FORMAT,
        )


    @staticmethod
    def _response_text(response: Any) -> str:
        """Flatten a LangChain message (``content`` may be a list of parts)."""
        content = getattr(response, "content", response)
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts = [p if isinstance(p, str) else str(p.get("text", "")) for p in content if isinstance(p, (str, dict))]
            return "".join(parts)
        return str(content)
