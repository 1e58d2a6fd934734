"""Conversation models for agent sessions."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

TEXT_PART = "text"
IMAGE_PART = "image_url"


@dataclass(frozen=True)
class ContentPart:
	"""One typed chunk of a multimodal message."""

	type: str
	text: Optional[str] = None
	image_url: Optional[str] = None

	@classmethod
	def of_text(cls, text: str) -> "ContentPart":
		return cls(type=TEXT_PART, text=text)

	@classmethod
	def of_image(cls, data_url: str) -> "ContentPart":
		return cls(type=IMAGE_PART, image_url=data_url)

	def to_payload(self) -> Dict[str, Any]:
		if self.type == IMAGE_PART:
			return {"type": IMAGE_PART, "image_url": {"url": self.image_url}}
		return {"type": TEXT_PART, "text": self.text or ""}


@dataclass
class Message:
	"""Structured message in the reasoning-service conversation."""

	role: str
	content: Union[str, List[ContentPart]]
	created_at: float = field(default_factory=lambda: time.time())

	@property
	def has_image(self) -> bool:
		if isinstance(self.content, str):
			return False
		return any(part.type == IMAGE_PART for part in self.content)

	def without_images(self) -> "Message":
		"""Return a copy keeping only text parts."""
		if isinstance(self.content, str):
			return self
		text_parts = [part for part in self.content if part.type == TEXT_PART]
		return Message(role=self.role, content=text_parts, created_at=self.created_at)

	def text(self) -> str:
		if isinstance(self.content, str):
			return self.content
		return "\n".join(part.text or "" for part in self.content if part.type == TEXT_PART)

	def to_payload(self) -> Dict[str, Any]:
		if isinstance(self.content, str):
			return {"role": self.role, "content": self.content}
		return {"role": self.role, "content": [part.to_payload() for part in self.content]}

	@classmethod
	def from_payload(cls, payload: Dict[str, Any]) -> "Message":
		"""Rebuild a message stored as a chat payload (text parts only)."""
		content = payload.get("content", "")
		if isinstance(content, list):
			parts = [
				ContentPart.of_text(item.get("text", ""))
				for item in content
				if isinstance(item, dict) and item.get("type") == TEXT_PART
			]
			return cls(role=payload.get("role", "user"), content=parts)
		return cls(role=payload.get("role", "user"), content=str(content))


@dataclass
class SessionState:
	"""In-memory state for one task attempt."""

	task: str = ""
	history: List[Message] = field(default_factory=list)
	notes: List[str] = field(default_factory=list)
	running: bool = False
	first_step: bool = True
	last_rationale: Optional[str] = None
	previous_rationale: Optional[str] = None

	def reset(self, task: str) -> None:
		self.task = task
		self.history.clear()
		self.notes.clear()
		self.first_step = True
		self.last_rationale = None
		self.previous_rationale = None
