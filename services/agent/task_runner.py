"""Assemble and run one agent task, persisting it to task history."""

import asyncio
import json
import logging
import time
from typing import List, Optional

from dal.task_history_dal import TaskHistoryDAL
from models.agent_config import AgentConfig
from models.session_models import Message
from models.task_record import TaskRecord, TaskStatus
from models.transcript import LoopOutcome, MessageLevel, TaskTranscript
from services.agent.action_executor import ActionExecutor
from services.agent.control_loop import STOPPED_MESSAGE, ControlLoop
from services.agent.interaction_gate import InteractionGate
from services.agent.session_manager import AgentSession
from services.device.app_registry import AppRegistry
from services.device.coordinate_mapper import CoordinateMapper
from services.device.frame_capture import FrameGrabber
from services.openai.reasoning_client import ReasoningClient

LOGGER = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class TaskRun:
    """Everything belonging to one task attempt.

    The config is a frozen snapshot taken when the task starts; nothing read
    later from the environment reaches a running task.
    """

    def __init__(
        self,
        task: str,
        config: AgentConfig,
        reasoning: ReasoningClient,
        device,
        app_registry: AppRegistry,
        history_dal: Optional[TaskHistoryDAL] = None,
        *,
        api_history: Optional[List[Message]] = None,
    ) -> None:
        self.task = task
        self.config = config
        self.history_dal = history_dal
        self.api_history = api_history
        self.gate = InteractionGate()
        self.transcript = TaskTranscript()
        self.mapper = CoordinateMapper()
        self.session = AgentSession(reasoning, device, app_registry, on_error=self._on_error)
        self.executor = ActionExecutor(
            device,
            self.mapper,
            app_registry,
            config,
            on_confirmation=self.gate.request_confirmation,
            on_take_over=self.gate.request_take_over,
            on_interact=self._on_interact,
            on_note=self.session.add_note,
        )
        self.loop = ControlLoop(
            self.session,
            self.executor,
            FrameGrabber(device),
            self.mapper,
            config,
            self.transcript,
            on_step=self._on_step,
        )
        self.record_id: Optional[int] = None
        self.start_time: Optional[int] = None
        self.outcome: Optional[LoopOutcome] = None

    @property
    def step_count(self) -> int:
        return self.loop.step_count

    def _on_error(self, message: str) -> None:
        self.transcript.system(message, MessageLevel.ERROR)

    async def _on_interact(self, message: str) -> Optional[str]:
        choice = await self.gate.request_choice(message)
        if choice:
            self.session.add_user_message(f"User choice: {choice}")
        return choice

    async def _on_step(self, step: int) -> None:
        if self.history_dal is None or self.record_id is None:
            return
        try:
            await self.history_dal.update_step_count(self.record_id, step)
        except Exception as exc:
            LOGGER.error("Failed to update step count: %s", exc)

    async def cleanup(self) -> None:
        """Release the input method; registered with the supervisor."""
        await self.executor.restore_ime()

    def _start_session(self) -> None:
        if self.api_history:
            self.session.restore_session(self.task, self.api_history)
            self.session.resume()
        else:
            self.session.start_session(self.task)

    async def _create_record(self) -> None:
        if self.history_dal is None:
            return
        try:
            self.record_id = await self.history_dal.create_task(
                TaskRecord(
                    id=None,
                    task_description=self.task,
                    model=self.config.model,
                    start_time=self.start_time,
                    status=TaskStatus.RUNNING,
                )
            )
        except Exception as exc:
            LOGGER.error("Failed to create history record: %s", exc)

    async def _persist(self, outcome: LoopOutcome) -> None:
        if self.history_dal is None or self.record_id is None:
            return
        end_time = _now_ms()
        try:
            await self.history_dal.update_task(
                self.record_id,
                end_time=end_time,
                duration_ms=end_time - (self.start_time or end_time),
                status=outcome.status,
                status_message=outcome.message,
                step_count=outcome.step_count,
                messages_json=json.dumps(self.transcript.to_list(), ensure_ascii=False),
                actions_json=json.dumps(self.transcript.actions_as_list(), ensure_ascii=False),
                api_context_json=json.dumps(self.session.api_context(), ensure_ascii=False),
            )
        except Exception as exc:
            LOGGER.error("Failed to save task %s: %s", self.record_id, exc)

    def _record_outcome(self, status: TaskStatus, level: MessageLevel, message: str) -> LoopOutcome:
        outcome = LoopOutcome(status=status, level=level, message=message, step_count=self.loop.step_count)
        self.transcript.outcome(outcome)
        return outcome

    async def run(self) -> LoopOutcome:
        self.start_time = _now_ms()
        self._start_session()
        await self._create_record()

        try:
            outcome = await self.loop.run()
        except asyncio.CancelledError:
            self.session.stop()
            if not self.transcript.outcomes():
                self.outcome = self._record_outcome(TaskStatus.CANCELLED, MessageLevel.INFO, STOPPED_MESSAGE)
                await self._persist(self.outcome)
            raise
        except Exception as exc:
            LOGGER.exception("Task failed: %s", exc)
            outcome = self._record_outcome(TaskStatus.FAILED, MessageLevel.ERROR, f"Unexpected error: {exc}")

        self.session.stop()
        self.outcome = outcome
        await self._persist(outcome)
        return outcome
