"""Human-in-the-loop waits: confirmations, manual take-over, and choices."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)

CONFIRMATION = "confirmation"
TAKE_OVER = "take_over"
INTERACT = "interact"


class InteractionCancelled(Exception):
    """Raised into a pending hand-off wait when the task is cancelled."""


@dataclass
class PendingInteraction:
    kind: str
    message: str
    future: asyncio.Future

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class InteractionGate:
    """Hold at most one pending human interaction for the active task.

    The control loop awaits a request; an HTTP call resolves it. On
    cancellation every pending wait is resolved (confirmations as declined,
    hand-offs with `InteractionCancelled`) so nothing is left dangling.
    """

    def __init__(self) -> None:
        self._pending: Optional[PendingInteraction] = None

    @property
    def pending(self) -> Optional[Dict[str, Any]]:
        return self._pending.to_dict() if self._pending else None

    async def _wait(self, kind: str, message: str) -> Any:
        if self._pending is not None and not self._pending.future.done():
            raise RuntimeError(f"An interaction is already pending: {self._pending.kind}")
        future = asyncio.get_running_loop().create_future()
        self._pending = PendingInteraction(kind=kind, message=message, future=future)
        LOGGER.info("Waiting for %s: %s", kind, message)
        try:
            return await future
        finally:
            self._pending = None

    async def request_confirmation(self, message: str) -> bool:
        """Return True only when the user explicitly confirms."""
        try:
            return bool(await self._wait(CONFIRMATION, message))
        except InteractionCancelled:
            return False

    async def request_take_over(self, message: str) -> None:
        """Block until the user reports the manual step as done."""
        await self._wait(TAKE_OVER, message)

    async def request_choice(self, message: str) -> Optional[str]:
        return await self._wait(INTERACT, message)

    def _resolve(self, kind: str, value: Any) -> bool:
        pending = self._pending
        if pending is None or pending.kind != kind or pending.future.done():
            LOGGER.debug("No pending %s to resolve", kind)
            return False
        pending.future.set_result(value)
        return True

    def confirm(self, confirmed: bool) -> bool:
        return self._resolve(CONFIRMATION, confirmed)

    def complete_take_over(self) -> bool:
        return self._resolve(TAKE_OVER, None)

    def choose(self, choice: Optional[str]) -> bool:
        return self._resolve(INTERACT, choice)

    def cancel_all(self) -> None:
        pending = self._pending
        if pending is None or pending.future.done():
            return
        LOGGER.info("Cancelling pending %s", pending.kind)
        if pending.kind == CONFIRMATION:
            pending.future.set_result(False)
        else:
            pending.future.set_exception(InteractionCancelled(f"{pending.kind} cancelled"))
