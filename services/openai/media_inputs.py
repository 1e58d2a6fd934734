"""Utilities to build multimodal chat payloads for the reasoning service."""

import base64
from typing import Any, Dict, Iterable, List

from models.session_models import ContentPart, Message


def to_image_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Convert raw image bytes into a data URL suitable for vision input."""
    if not image_bytes:
        raise ValueError("Image bytes are required to build a data URL.")
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def build_screen_turn(text: str, image_bytes: bytes) -> Message:
    """Compose the per-step user turn: screen info text followed by the frame."""
    return Message(
        role="user",
        content=[
            ContentPart.of_text(text),
            ContentPart.of_image(to_image_data_url(image_bytes)),
        ],
    )


def to_chat_messages(messages: Iterable[Message]) -> List[Dict[str, Any]]:
    """Serialize messages into the chat-completions `messages` array."""
    return [message.to_payload() for message in messages]
