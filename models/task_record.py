from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.PENDING


@dataclass
class TaskRecord:
    """In-memory representation of a row in the TASK_HISTORY table.

    Attributes:
        id: Primary key (None for new records).
        task_description: The task the agent was asked to perform.
        model: Reasoning model used for the run.
        start_time: Unix timestamp (milliseconds) when the task started.
        end_time: Unix timestamp (milliseconds) when the task ended.
        duration_ms: Total run time in milliseconds.
        status: One of `TaskStatus`.
        status_message: Final user-visible message.
        step_count: Number of loop iterations executed.
        messages_json: Serialized transcript entries.
        actions_json: Serialized commands in execution order.
        api_context_json: Serialized text-only conversation history, used to resume.
        created_at: Unix timestamp (seconds) when the row was inserted.
    """

    id: Optional[int]
    task_description: str
    model: str
    start_time: int
    end_time: Optional[int] = None
    duration_ms: Optional[int] = None
    status: TaskStatus = TaskStatus.PENDING
    status_message: Optional[str] = None
    step_count: int = 0
    messages_json: str = "[]"
    actions_json: str = "[]"
    api_context_json: str = "[]"
    created_at: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_description": self.task_description,
            "model": self.model,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "status_message": self.status_message,
            "step_count": self.step_count,
            "created_at": self.created_at,
        }
