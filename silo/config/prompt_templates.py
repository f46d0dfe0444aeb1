"""
Silo - Prompt Templates & Query Signal Tables
===============================================
Centralised prompt management and the keyword tables behind the query
signal scanner.  All prompts live here so they can be versioned,
reviewed, and A/B-tested independently of application logic.

Exports
-------
SYSTEM_PROMPT, RAG_PROMPT_TEMPLATE, EVENT_RESPONSE_FORMAT,
PLAIN_RESPONSE_FORMAT, SUGGESTION_INSTRUCTION, INTERESTS_INSTRUCTION,
NO_SAVED_CONTENT_LINE, NO_CONTENT_RESPONSE,
SUGGESTION_PHRASES, INTEREST_KEYWORDS.
"""

# ══════════════════════════════════════════════════════════════════════
#  QUERY SIGNALS — Keyword Tables
# ══════════════════════════════════════════════════════════════════════
# Used by QuerySignalScanner.  Matching is case-insensitive substring
# matching against the whole query.

SUGGESTION_PHRASES: tuple[str, ...] = ("don't know", "dont know", "what to do", "bored", "nothing to do", "suggest", "recommend", "idea", "help me")

# Insertion order is the order interests are reported in.
INTEREST_KEYWORDS: dict[str, tuple[str, ...]] = {
    "fitness": ("fitness", "workout", "exercise"),
    "food": ("food", "cook", "recipe"),
    "tech": ("tech", "code", "programming"),
    "career": ("career", "job", "work"),
    "academia": ("academia", "study", "learn"),
    "outdoor": ("outdoor", "hike", "park"),
    "places": ("place", "visit", "go"),
}


# ══════════════════════════════════════════════════════════════════════
#  NO-CONTEXT FALLBACK
# ══════════════════════════════════════════════════════════════════════

NO_CONTENT_RESPONSE: str = "I couldn't find any saved content to answer your question. Try saving some content first!"

NO_SAVED_CONTENT_LINE: str = "No saved content yet."


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPT
# ══════════════════════════════════════════════════════════════════════

SYSTEM_PROMPT: str = """You are a proactive, friendly personal AI assistant named Silo. Your job is to help users discover and act on their saved content, and suggest new activities based on their interests."""


# ══════════════════════════════════════════════════════════════════════
#  RAG PROMPT TEMPLATE
# ══════════════════════════════════════════════════════════════════════

RAG_PROMPT_TEMPLATE: str = """User's Saved Content:
{context}

Today's date: {today}

User's Question: {question}

{signals}
Instructions:
1. Answer their question in a friendly, conversational way
2. Reference their saved content when relevant
3. If they're asking for suggestions or seem unsure what to do:
   - Ask about their interests (fitness, food, tech, career, academia, outdoor activities, places to visit)
   - Suggest specific activities from their saved content
   - Recommend new things to try based on their interests
4. Always be encouraging and actionable
5. If they have saved content that could be scheduled, mention it naturally

{response_format}"""

SUGGESTION_INSTRUCTION: str = "IMPORTANT: The user seems to be asking for suggestions or ideas. Be proactive and helpful!"

INTERESTS_INSTRUCTION: str = "The user mentioned interests in: {interests}. Focus on these areas."


# ══════════════════════════════════════════════════════════════════════
#  RESPONSE FORMATS
# ══════════════════════════════════════════════════════════════════════
# Inserted as *values* into RAG_PROMPT_TEMPLATE, so the JSON braces
# below are never seen by str.format.

PLAIN_RESPONSE_FORMAT: str = "Return your response as plain text (no JSON)."

EVENT_RESPONSE_FORMAT: str = """ALWAYS suggest a calendar event if relevant! Look for:
- Workouts or fitness routines that should be scheduled
- Recipes that need time to cook
- Study plans or learning resources
- Career prep activities
- Places to visit
- Any time-bound activities

Return your response as JSON with this structure:
{
  "answer": "your conversational answer (be friendly and proactive!)",
  "suggestedEvent": {
    "title": "event title",
    "date": "YYYY-MM-DD (within next 7 days)",
    "time": "HH:MM (reasonable time like 09:00, 14:00, 18:00)",
    "description": "why this event is useful"
  }
}

If no event should be suggested, omit the "suggestedEvent" field."""
