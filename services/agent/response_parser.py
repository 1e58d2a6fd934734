"""Extract a rationale and a device command from free-text model replies.

Replies are expected to look like::

	<think>...</think><answer>do(action="Tap", element=[500, 120])</answer>

but the wrapper tags are not guaranteed, so extraction falls back through
three tiers: tagged answer, bare `do(...)`/`finish(...)` scan, then nothing.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from models.command import Command, ParseResult

LOGGER = logging.getLogger(__name__)

_DO_CALL = re.compile(r"(?<![A-Za-z0-9_])do\s*\([^)]+\)", re.DOTALL)
_FINISH_CALL = re.compile(r"(?<![A-Za-z0-9_])finish\s*\([^)]+\)", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")

MAX_COORDINATE = 1000


def extract_tag(content: str, tag: str) -> Optional[str]:
	"""Return the trimmed body of the first `<tag>...</tag>` region, if any."""
	match = re.search(rf"<{tag}>(.*?)</{tag}>", content, re.DOTALL)
	if match is None:
		return None
	return match.group(1).strip()


def extract_call_from_raw(content: str) -> Optional[str]:
	"""Return the first `do(...)` call, else the first `finish(...)` call."""
	match = _DO_CALL.search(content) or _FINISH_CALL.search(content)
	if match is None:
		return None
	LOGGER.debug("Found bare action call: %s", match.group(0))
	return match.group(0)


def extract_param(call: str, key: str) -> Optional[str]:
	"""Return the quoted value of `key="..."` (or single quotes) in a call string."""
	match = re.search(rf"(?<![\w]){key}\s*=\s*([\"'])(.*?)\1", call, re.DOTALL)
	if match is None:
		return None
	return match.group(2)


def extract_int(call: str, key: str) -> Optional[int]:
	"""Return `key=N` or `key="N"` as an int."""
	match = re.search(rf"(?<![\w]){key}\s*=\s*[\"']?\s*(\d+)", call)
	if match is None:
		return None
	try:
		return int(match.group(1))
	except ValueError:
		return None


def extract_point(call: str, key: str) -> Optional[List[int]]:
	"""Return `key=[x,y]` as two ints within the normalized range."""
	match = re.search(rf"(?<![\w]){key}\s*=\s*\[\s*(\d+)\s*,\s*(\d+)\s*\]", call)
	if match is None:
		return None
	try:
		point = [int(match.group(1)), int(match.group(2))]
	except ValueError:
		LOGGER.warning("Unparsable coordinates for %s in %s", key, call)
		return None
	if any(value > MAX_COORDINATE for value in point):
		LOGGER.warning("Coordinates for %s outside [0, %d]: %s", key, MAX_COORDINATE, point)
		return None
	return point


def normalize_verb(verb: str) -> str:
	return _WHITESPACE.sub(" ", verb.strip()).lower()


def parse_call(call: str) -> Optional[Command]:
	"""Turn `do(...)` or `finish(...)` text into a Command, or None."""
	trimmed = call.strip()

	if trimmed.startswith("finish"):
		return Command(verb="finish", message=extract_param(trimmed, "message"))

	if not trimmed.startswith("do"):
		LOGGER.warning("Unknown action format: %s", trimmed)
		return None

	verb = extract_param(trimmed, "action")
	if not verb or not verb.strip():
		LOGGER.warning("No action verb in: %s", trimmed)
		return None

	start = extract_point(trimmed, "start")
	end = extract_point(trimmed, "end")
	coordinates = start + end if start and end else extract_point(trimmed, "element")

	message = extract_param(trimmed, "message")
	text = extract_param(trimmed, "text")
	if text is None:
		text = message if message is not None else extract_param(trimmed, "app")

	return Command(
		verb=normalize_verb(verb),
		coordinates=coordinates,
		text=text,
		duration=extract_int(trimmed, "duration"),
		instruction=extract_param(trimmed, "instruction"),
		message=message,
	)


def parse(content: str) -> ParseResult:
	"""Parse one completion into `ParseResult(rationale, command)`."""
	rationale = extract_tag(content, "think")

	answer = extract_tag(content, "answer")
	if answer is None:
		LOGGER.debug("No <answer> tag found, scanning raw content")
		answer = extract_call_from_raw(content)

	if answer is None:
		LOGGER.warning("No action found in content")
		return ParseResult(rationale=rationale, command=None)

	command = parse_call(answer)
	if command is None:
		# answer tag present but malformed; the raw scan may still recover a call
		fallback = extract_call_from_raw(answer)
		if fallback and fallback.strip() != answer.strip():
			command = parse_call(fallback)
	LOGGER.debug("Parsed command: %s", command)
	return ParseResult(rationale=rationale, command=command)
