from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Command:
    """Normalized device instruction parsed from one reasoning-service reply.

    Attributes:
        verb: Lower-cased action name (e.g. "tap", "long press", "finish").
        coordinates: Normalized [0, 1000] coordinates; 2 ints for point verbs,
            4 ints (start then end) for swipes.
        text: Textual payload taken from `text=`, `message=` or `app=`.
        duration: Optional duration in milliseconds.
        instruction: Free-text instruction used by `call_api`.
        message: Sensitive-action or terminal message, when the reply carried one.
    """

    verb: str
    coordinates: Optional[List[int]] = None
    text: Optional[str] = None
    duration: Optional[int] = None
    instruction: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_finish(self) -> bool:
        return self.verb == "finish"

    def describe(self) -> str:
        """Return a short single-line summary used in transcripts and logs."""
        parts = [self.verb]
        if self.coordinates:
            parts.append(str(list(self.coordinates)))
        payload = self.text or self.message or self.instruction
        if payload:
            parts.append(repr(payload[:40]))
        if self.duration is not None:
            parts.append(f"{self.duration}ms")
        return " ".join(parts)

    def to_dict(self) -> dict:
        return {
            "verb": self.verb,
            "coordinates": list(self.coordinates) if self.coordinates else None,
            "text": self.text,
            "duration": self.duration,
            "instruction": self.instruction,
            "message": self.message,
        }


@dataclass(frozen=True)
class ParseResult:
    """Parser output for a single completion."""

    rationale: Optional[str]
    command: Optional[Command]


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of executing one command.

    `should_continue=False` means the user declined a confirmation or a
    hand-off was cancelled, and the loop must stop.
    """

    success: bool
    should_continue: bool = True
    error_message: Optional[str] = None
