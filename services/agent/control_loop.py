"""The capture → reason → execute loop for one task."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from models.agent_config import MAX_CONSECUTIVE_FAILURES, MAX_STEPS, AgentConfig
from models.task_record import TaskStatus
from models.transcript import LoopOutcome, MessageLevel, TaskTranscript
from services.agent.action_executor import DEFAULT_FINISH_MESSAGE, ActionExecutor
from services.agent.session_manager import AgentSession
from services.device.coordinate_mapper import CoordinateMapper
from services.device.frame_capture import FrameGrabber

LOGGER = logging.getLogger(__name__)

CAPTURE_FAILED_MESSAGE = "Failed to capture the screen"
DECLINED_MESSAGE = "Task cancelled by user"
STOPPED_MESSAGE = "Task stopped"


class ControlLoop:
    """Run steps strictly one after another until a terminal state.

    Every run ends with exactly one outcome, recorded in the transcript and
    returned. No single step error ends the loop; only capture failure, the
    consecutive-failure cap, the step cap, `finish`, a declined confirmation
    or an external stop do.
    """

    def __init__(
        self,
        session: AgentSession,
        executor: ActionExecutor,
        grabber: FrameGrabber,
        mapper: CoordinateMapper,
        config: AgentConfig,
        transcript: Optional[TaskTranscript] = None,
        on_step: Optional[Callable[[int], Awaitable[None]]] = None,
    ) -> None:
        self.session = session
        self.executor = executor
        self.grabber = grabber
        self.mapper = mapper
        self.config = config
        self.timing = config.timing
        self.transcript = transcript or TaskTranscript()
        self.on_step = on_step
        self.step_count = 0
        self.consecutive_failures = 0

    def _end(self, status: TaskStatus, level: MessageLevel, message: str) -> LoopOutcome:
        outcome = LoopOutcome(status=status, level=level, message=message, step_count=self.step_count)
        self.transcript.outcome(outcome)
        LOGGER.info("Loop ended after %d steps: %s (%s)", self.step_count, message, status.value)
        return outcome

    def _failure_cap_reached(self) -> bool:
        return self.consecutive_failures >= MAX_CONSECUTIVE_FAILURES

    def _failure_cap_outcome(self) -> LoopOutcome:
        return self._end(
            TaskStatus.FAILED,
            MessageLevel.ERROR,
            f"Stopped after {self.consecutive_failures} consecutive failures",
        )

    async def run(self) -> LoopOutcome:
        while self.step_count < MAX_STEPS:
            if not self.session.is_running:
                return self._end(TaskStatus.CANCELLED, MessageLevel.INFO, STOPPED_MESSAGE)

            self.step_count += 1
            LOGGER.debug("Step %d", self.step_count)

            frame = await self.grabber.capture()
            if frame is None:
                return self._end(TaskStatus.FAILED, MessageLevel.ERROR, CAPTURE_FAILED_MESSAGE)
            self.mapper.update(frame.width, frame.height)

            command = await self.session.step(frame)
            if self.on_step is not None:
                await self.on_step(self.step_count)

            if command is None:
                if not self.session.is_running:
                    return self._end(TaskStatus.CANCELLED, MessageLevel.INFO, STOPPED_MESSAGE)
                self.consecutive_failures += 1
                LOGGER.warning(
                    "No command at step %d (%d/%d)",
                    self.step_count,
                    self.consecutive_failures,
                    MAX_CONSECUTIVE_FAILURES,
                )
                if self._failure_cap_reached():
                    return self._failure_cap_outcome()
                await asyncio.sleep(self.timing.after_empty_step_pause)
                continue

            self.consecutive_failures = 0
            rationale = self.session.last_rationale
            if rationale and rationale.strip():
                self.transcript.rationale(self.step_count, rationale)
            self.transcript.action(self.step_count, command)

            if command.is_finish:
                return self._end(
                    TaskStatus.COMPLETED,
                    MessageLevel.SUCCESS,
                    command.message or DEFAULT_FINISH_MESSAGE,
                )

            result = await self.executor.execute(command)
            if not result.should_continue:
                return self._end(TaskStatus.CANCELLED, MessageLevel.INFO, DECLINED_MESSAGE)

            if not result.success:
                self.consecutive_failures += 1
                self.transcript.system(result.error_message or "Action failed", MessageLevel.ERROR)
                await asyncio.sleep(self.timing.after_failure_pause)
                continue

            await asyncio.sleep(self.timing.after_action_pause)

        return self._end(
            TaskStatus.TIMEOUT,
            MessageLevel.WARNING,
            f"Reached the maximum of {MAX_STEPS} steps",
        )
