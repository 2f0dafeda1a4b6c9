"""
GenBI Adaptors - AI error catalog.

Maps error codes reported by the AI service to the messages rendered to
clients. Unknown codes fall back to the generic AI service error.
"""

from typing import Any

from genbi.adaptors.schemas import AIError

NO_RELEVANT_DATA = "NO_RELEVANT_DATA"
NO_RELEVANT_RELATIONSHIP = "NO_RELEVANT_RELATIONSHIP"
NO_RELEVANT_SQL = "NO_RELEVANT_SQL"
MISLEADING_QUERY = "MISLEADING_QUERY"
AI_SERVICE_UNDEFINED_ERROR = "AI_SERVICE_UNDEFINED_ERROR"
INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

# code -> (message, short_message)
ERROR_MESSAGES: dict[str, tuple[str, str]] = {
    NO_RELEVANT_DATA: (
        "I can't find the exact data you're looking for, but feel free to ask about other available topics.",
        "Try a different query",
    ),
    NO_RELEVANT_RELATIONSHIP: (
        "No relevant relationships were found between the models for this question.",
        "No relevant relationship",
    ),
    NO_RELEVANT_SQL: (
        "Could you please provide more details or specify the information you're seeking?",
        "Clarification needed",
    ),
    MISLEADING_QUERY: (
        "The question does not relate to the available data. Please rephrase it.",
        "Misleading query",
    ),
    AI_SERVICE_UNDEFINED_ERROR: (
        "Sorry, we couldn't process this request. Please try again.",
        "AI service error",
    ),
    INTERNAL_SERVER_ERROR: (
        "Internal server error",
        "Internal server error",
    ),
}

# The AI service message is more helpful than ours for these codes.
PASSTHROUGH_CODES = frozenset({NO_RELEVANT_SQL, AI_SERVICE_UNDEFINED_ERROR})


def build_ai_error(payload: Any) -> AIError | None:
    """Build a client-facing AIError from the wire error payload, if any."""
    if not isinstance(payload, dict):
        return None
    code = payload.get("code")
    if not code:
        return None

    message, short_message = ERROR_MESSAGES.get(code, ERROR_MESSAGES[AI_SERVICE_UNDEFINED_ERROR])
    if code in PASSTHROUGH_CODES and payload.get("message"):
        message = payload["message"]

    return AIError(code=code, message=message, short_message=short_message)
