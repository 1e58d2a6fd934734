"""Conversation state and the per-step exchange with the reasoning service."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Callable, List, Optional

from models.command import Command
from models.session_models import Message, SessionState
from services.agent.prompts import (
	screen_info_block,
	summary_system_prompt,
	summary_user_prompt,
	system_prompt,
	task_message,
)
from services.agent.response_parser import parse
from services.device.app_registry import AppRegistry
from services.device.frame_capture import Frame
from services.openai.error_classifier import classify_exception
from services.openai.media_inputs import build_screen_turn, to_chat_messages
from services.openai.reasoning_client import ReasoningClient

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_RATIONALE = "Working on the next action..."
NO_NOTES_SUMMARY = "No notes have been recorded."


class AgentSession:
	"""Own the ordered history of one task attempt and step it frame by frame.

	At most one message carrying image data exists at any time: the frame is
	attached only to the outbound request and stripped from the persisted
	copy as soon as the reply arrives.
	"""

	def __init__(
		self,
		reasoning: ReasoningClient,
		device,
		app_registry: AppRegistry,
		*,
		on_error: Optional[Callable[[str], None]] = None,
	) -> None:
		if reasoning is None:
			raise ValueError("A reasoning client is required.")
		self.reasoning = reasoning
		self.device = device
		self.app_registry = app_registry
		self.on_error = on_error
		self.state = SessionState()

	def start_session(self, task: str) -> None:
		"""Reset history and notes, seed the system prompt and task, and start running."""
		self.state.reset(task)
		self.state.history.append(Message(role="system", content=system_prompt()))
		self.state.history.append(Message(role="user", content=task_message(task)))
		self.state.running = True
		LOGGER.info("Session started: %s", task)

	def restore_session(self, task: str, api_history: List[Message]) -> None:
		"""Seed a session from a previous run's text-only history without starting it."""
		self.state.reset(task)
		self.state.history.append(Message(role="system", content=system_prompt()))
		for message in api_history:
			if message.role != "system":
				self.state.history.append(message.without_images())
		self.state.history.append(Message(role="user", content=task_message(task, resumed=True)))
		self.state.running = False
		LOGGER.info("Session restored with %d context messages: %s", len(api_history), task)

	def resume(self) -> None:
		self.state.running = True

	def stop(self) -> None:
		self.state.running = False

	@property
	def is_running(self) -> bool:
		return self.state.running

	@property
	def last_rationale(self) -> Optional[str]:
		return self.state.last_rationale

	@property
	def notes(self) -> List[str]:
		return list(self.state.notes)

	def add_note(self, note: str) -> None:
		self.state.notes.append(note)
		LOGGER.debug("Note added (total: %d): %s", len(self.state.notes), note)

	def add_user_message(self, text: str) -> None:
		self.state.history.append(Message(role="user", content=text))

	def history(self) -> List[Message]:
		return list(self.state.history)

	def api_context(self) -> List[dict]:
		"""Return the text-only history as chat payloads for persistence."""
		return to_chat_messages(message.without_images() for message in self.state.history)

	async def _build_screen_info(self) -> str:
		info = {"current_time": datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
		try:
			package = await self.device.get_current_foreground_app()
			if package:
				info["current_app"] = self.app_registry.app_name_for(package) or package
			else:
				info["current_app"] = "System Home"
		except Exception as exc:
			LOGGER.error("Failed to get current app: %s", exc)
			info["current_app"] = "Unknown"
		return json.dumps(info, ensure_ascii=False)

	def _update_rationale(self, rationale: Optional[str]) -> None:
		if rationale:
			self.state.previous_rationale = rationale
			self.state.last_rationale = rationale
		elif self.state.previous_rationale:
			LOGGER.debug("Reply omitted a rationale, reusing the previous one")
			self.state.last_rationale = self.state.previous_rationale
		else:
			self.state.last_rationale = PLACEHOLDER_RATIONALE

	def _report_error(self, message: str) -> None:
		if self.on_error is None:
			return
		try:
			self.on_error(message)
		except Exception as exc:
			LOGGER.error("Error callback failed: %s", exc)

	async def call_api(self, instruction: str) -> Optional[str]:
		"""Summarize the recorded notes following `instruction`."""
		if not self.state.notes:
			LOGGER.warning("No notes to summarize")
			return NO_NOTES_SUMMARY

		messages = [
			Message(role="system", content=summary_system_prompt()),
			Message(role="user", content=summary_user_prompt(self.state.notes, instruction)),
		]
		LOGGER.debug("Requesting summary of %d notes", len(self.state.notes))
		try:
			return await self.reasoning.complete(
				to_chat_messages(messages),
				max_tokens=self.reasoning.config.summary_max_tokens,
				temperature=self.reasoning.config.summary_temperature,
			)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			LOGGER.error("Notes summary failed: %s", exc)
			return None

	async def step(self, frame: Frame) -> Optional[Command]:
		"""Send the frame with the conversation and return the parsed command."""
		if not self.state.running:
			LOGGER.warning("Session stopped, step skipped")
			return None

		await asyncio.sleep(0)
		if not self.state.running:
			return None

		leading = task_message(self.state.task) if self.state.first_step else None
		self.state.first_step = False
		turn = build_screen_turn(screen_info_block(await self._build_screen_info(), leading), frame.image_bytes)

		history = self.state.history
		history[:] = [message for message in history if not message.has_image]
		request = to_chat_messages(history + [turn])

		if not self.state.running:
			LOGGER.warning("Session stopped before reasoning call")
			return None

		try:
			content = await self.reasoning.complete(request)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			message = classify_exception(exc)
			LOGGER.error("Reasoning call failed (%s): %s", message, exc)
			self._report_error(message)
			return None

		if not self.state.running:
			LOGGER.warning("Session stopped after reasoning call")
			return None

		history.append(turn.without_images())
		history.append(Message(role="assistant", content=content))
		LOGGER.debug("Reply: %s", content)

		result = parse(content)
		self._update_rationale(result.rationale)
		command = result.command
		if command is None:
			LOGGER.warning("Failed to parse a command from reply")
			return None

		if command.verb == "call_api":
			summary = await self.call_api(command.instruction or command.text or "")
			if summary is not None:
				self.add_user_message(f"API Summary: {summary}")

		return command
