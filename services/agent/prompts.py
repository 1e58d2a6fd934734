"""Prompt helpers for the screen-driven agent and its notes summaries."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional


def system_prompt(today: Optional[datetime] = None) -> str:
	"""Return the system prompt describing the reply format and action grammar."""
	date_text = (today or datetime.now()).strftime("%Y-%m-%d")
	return (
		f"Today's date is {date_text}. "
		"You are an agent operating an Android phone to complete the user's task. "
		"Each turn you receive the current screenshot and screen info. "
		"Reply with your reasoning inside <think>...</think> followed by exactly one action "
		"inside <answer>...</answer>.\n\n"
		"Actions (coordinates are integers normalized to 0-1000, origin at the top-left):\n"
		'- do(action="Launch", app="Settings")\n'
		'- do(action="Tap", element=[x,y]) and, for payments, deletions or other sensitive taps, '
		'do(action="Tap", element=[x,y], message="why confirmation is needed")\n'
		'- do(action="Type", text="...")\n'
		'- do(action="Swipe", start=[x1,y1], end=[x2,y2])\n'
		'- do(action="Long Press", element=[x,y])\n'
		'- do(action="Double Tap", element=[x,y])\n'
		'- do(action="Back"), do(action="Home"), do(action="Enter")\n'
		'- do(action="Wait", duration="2000")\n'
		'- do(action="Note", message="information worth remembering")\n'
		'- do(action="Call_API", instruction="what to do with the recorded notes")\n'
		'- do(action="Take_over", message="what the user must do manually")\n'
		'- do(action="Interact", message="question when several options fit")\n'
		'- finish(message="summary of the result")\n\n'
		"Use Take_over for logins and captchas. Finish as soon as the task is complete."
	)


def screen_info_block(screen_info: str, task_message: Optional[str] = None) -> str:
	"""Return the text part of a step's user turn."""
	block = f"** Screen Info **\n\n{screen_info}"
	if task_message:
		return f"{task_message}\n\n{block}"
	return block


def task_message(task: str, resumed: bool = False) -> str:
	if resumed:
		return f"Task: {task} (continuing from history)"
	return f"Task: {task}"


def summary_system_prompt() -> str:
	return "You are a helpful assistant skilled at summarizing and analyzing information."


def summary_user_prompt(notes: Iterable[str], instruction: str) -> str:
	"""Return the summarization request for the recorded notes."""
	notes_text = "\n\n".join(f"- {note}" for note in notes)
	goal = instruction.strip() or "summarize them"
	return (
		f"Based on the following recorded notes, {goal}:\n\n"
		f"{notes_text}\n\n"
		"Provide a concise summary or answer."
	)
