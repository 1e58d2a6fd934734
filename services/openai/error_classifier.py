"""Map reasoning-service failures onto stable user-facing messages."""

import asyncio
import socket
import ssl
from typing import Optional

import openai

TIMEOUT_MESSAGE = "Network timeout"
HOST_MESSAGE = "Network connection failed"
TLS_MESSAGE = "SSL certificate error"

STATUS_MESSAGES = {
    401: "API authentication failed",
    403: "API access denied",
    404: "API endpoint not found",
    429: "API rate limited",
}


def _find_cause(exc: BaseException, kinds) -> Optional[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, kinds):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def classify_status(status_code: int) -> str:
    """Return the message for a non-2xx status code."""
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if 500 <= status_code < 600:
        return "Server error"
    return f"API error ({status_code})"


def classify_exception(exc: BaseException) -> str:
    """Return a stable category message for a failed reasoning call."""
    if isinstance(exc, openai.APIStatusError):
        return classify_status(exc.status_code)
    if isinstance(exc, (openai.APITimeoutError, asyncio.TimeoutError, TimeoutError)):
        return TIMEOUT_MESSAGE
    if _find_cause(exc, ssl.SSLError) is not None:
        return TLS_MESSAGE
    if _find_cause(exc, socket.gaierror) is not None:
        return HOST_MESSAGE
    if isinstance(exc, openai.APIConnectionError):
        return HOST_MESSAGE
    return f"Network error: {exc}"
