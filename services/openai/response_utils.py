"""Helpers to read chat-completions responses."""

from typing import Any, Dict, Optional


def extract_text(response: Any) -> str:
    """Return the content of the first choice's message, or an empty string."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None) or ""


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage if present."""
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "prompt_tokens", None) if usage else None,
        "output_tokens": getattr(usage, "completion_tokens", None) if usage else None,
    }


def serialize_response(response: Any) -> Any:
    """Convert a response object into a serializable structure."""
    if hasattr(response, "model_dump"):
        return response.model_dump()
    if hasattr(response, "to_dict"):
        return response.to_dict()
    return str(response)
