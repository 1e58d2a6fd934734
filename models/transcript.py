"""User-visible transcript of a running task."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from models.command import Command
from models.task_record import TaskStatus


class MessageLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


@dataclass
class TranscriptEntry:
    """One surfaced item: a rationale, an action, or a system message."""

    kind: str
    text: str
    step: Optional[int] = None
    level: Optional[MessageLevel] = None
    created_at: float = field(default_factory=lambda: time.time())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level.value if self.level else None
        return data


@dataclass(frozen=True)
class LoopOutcome:
    """Terminal state of one control-loop run."""

    status: TaskStatus
    level: MessageLevel
    message: str
    step_count: int


class TaskTranscript:
    """Collect everything the control loop surfaces for a task."""

    def __init__(self) -> None:
        self.entries: List[TranscriptEntry] = []
        self.actions: List[Command] = []

    def rationale(self, step: int, text: str) -> None:
        self.entries.append(TranscriptEntry(kind="rationale", text=text, step=step))

    def action(self, step: int, command: Command) -> None:
        self.actions.append(command)
        self.entries.append(TranscriptEntry(kind="action", text=command.describe(), step=step))

    def system(self, text: str, level: MessageLevel = MessageLevel.INFO) -> None:
        self.entries.append(TranscriptEntry(kind="system", text=text, level=level))

    def outcome(self, outcome: LoopOutcome) -> None:
        """Record the single terminal message of a run."""
        self.entries.append(
            TranscriptEntry(kind="outcome", text=outcome.message, step=outcome.step_count, level=outcome.level)
        )

    def outcomes(self) -> List[TranscriptEntry]:
        return [entry for entry in self.entries if entry.kind == "outcome"]

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    def actions_as_list(self) -> List[Dict[str, Any]]:
        return [command.to_dict() for command in self.actions]
