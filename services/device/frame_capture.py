"""Screen frame capture.

Wraps the device's screenshot call and uses Pillow to read the captured
image, record its real dimensions and re-encode it as JPEG for the
reasoning service.

Public class: `FrameGrabber`

Example:
    grabber = FrameGrabber(device)
    frame = await grabber.capture()
    if frame is not None:
        mapper.update(frame.width, frame.height)
"""
from __future__ import annotations

import asyncio
import io
import logging
import os
from dataclasses import dataclass
from typing import Optional

from PIL import Image

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """A captured screen image.

    Attributes:
        image_bytes: JPEG-encoded image.
        width: Width of the captured image in pixels.
        height: Height of the captured image in pixels.
    """

    image_bytes: bytes
    width: int
    height: int


def encode_frame(raw: bytes, quality: int = 80) -> Frame:
    """Decode image bytes of any Pillow-supported format into a JPEG `Frame`.

    Raises:
        ValueError: If the bytes cannot be opened as an image.
    """
    try:
        src = Image.open(io.BytesIO(raw))
        src.load()
    except Exception as exc:
        raise ValueError("Captured bytes are not a supported image format") from exc

    # JPEG has no alpha channel
    if src.mode != "RGB":
        src = src.convert("RGB")

    out_io = io.BytesIO()
    src.save(out_io, format="JPEG", quality=quality)
    return Frame(image_bytes=out_io.getvalue(), width=src.width, height=src.height)


def _read_and_remove(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    finally:
        try:
            os.remove(path)
        except OSError:
            LOGGER.debug("Could not remove screenshot file %s", path)


class FrameGrabber:
    """Capture frames from a device exposing `capture_screen_to_file()`."""

    def __init__(self, device, quality: int = 80) -> None:
        if device is None:
            raise ValueError("A device is required for frame capture.")
        self.device = device
        self.quality = quality

    async def capture(self) -> Optional[Frame]:
        """Return the current screen as a Frame, or None when capture fails."""
        try:
            path = await self.device.capture_screen_to_file()
        except Exception as exc:
            LOGGER.error("Screenshot failed: %s", exc)
            return None

        if not path or str(path).startswith("ERROR"):
            LOGGER.error("Screenshot failed: %s", path)
            return None
        if not os.path.exists(path):
            LOGGER.error("Screenshot file not found: %s", path)
            return None

        try:
            raw = await asyncio.to_thread(_read_and_remove, path)
            frame = await asyncio.to_thread(encode_frame, raw, self.quality)
        except (OSError, ValueError) as exc:
            LOGGER.error("Failed to decode screenshot %s: %s", path, exc)
            return None

        LOGGER.debug("Captured frame %dx%d (%d bytes)", frame.width, frame.height, len(frame.image_bytes))
        return frame
