"""Exclusive reservation of the device's active input method."""

import asyncio
import logging
from typing import Optional

LOGGER = logging.getLogger(__name__)


class InputMethodReservation:
    """Swap the active IME to the automation keyboard and put it back later.

    Restoration is idempotent: the device revert runs at most once per
    reservation, it is a no-op when nothing was switched, and it is still
    attempted when the switch failed or was only partially observed.
    """

    def __init__(self, device, automation_ime: str, switch_delay: float = 0.0) -> None:
        self.device = device
        self.automation_ime = automation_ime
        self.switch_delay = switch_delay
        self.original_ime: Optional[str] = None
        self.switched = False
        self._needs_restore = False

    @property
    def needs_restore(self) -> bool:
        return self._needs_restore

    async def acquire(self) -> None:
        """Make sure the automation IME is active before text injection."""
        if self.switched:
            return

        try:
            if self.original_ime is None:
                current = await self.device.get_current_ime()
                LOGGER.info("Original IME: %s", current)
                if current == self.automation_ime:
                    self.switched = True
                    return
                self.original_ime = current
                self._needs_restore = True

            if not await self.device.is_ime_enabled(self.automation_ime):
                LOGGER.warning("Automation IME %s is not enabled on the device", self.automation_ime)

            if await self.device.set_ime(self.automation_ime):
                self.switched = True
                LOGGER.info("Switched to automation IME")
                await asyncio.sleep(self.switch_delay)
            else:
                LOGGER.warning("Failed to switch to automation IME, will try to input anyway")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.error("Failed to switch IME: %s", exc)

    async def restore(self) -> bool:
        """Revert to the recorded IME. Returns True if a revert was attempted."""
        if not self._needs_restore or self.original_ime is None:
            LOGGER.debug("No IME restore needed")
            self.switched = False
            return False

        ime_to_restore = self.original_ime
        self._needs_restore = False
        self.switched = False
        self.original_ime = None

        LOGGER.info("Restoring IME to: %s", ime_to_restore)
        try:
            if await self.device.set_ime(ime_to_restore):
                LOGGER.info("Successfully restored IME")
            else:
                LOGGER.warning("Failed to restore IME")
        except Exception as exc:
            LOGGER.error("Exception while restoring IME: %s", exc)
        return True
