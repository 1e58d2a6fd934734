"""Map normalized model coordinates onto the pixels of the last captured frame."""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

NORMALIZED_SCALE = 1000.0


def to_pixel(normalized: float, dimension: int) -> int:
    """Return `round(normalized / 1000 * dimension)`."""
    return int(round(normalized / NORMALIZED_SCALE * dimension))


class CoordinateMapper:
    """Convert [0, 1000] coordinates using the most recent frame's size.

    The captured frame can differ in size from the physical display, so the
    mapper must be re-primed with `update()` after every capture.
    """

    def __init__(self, width: int = 0, height: int = 0) -> None:
        self.width = width
        self.height = height

    def update(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Frame dimensions must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        LOGGER.debug("Frame size updated: %dx%d", width, height)

    def map_point(self, x: float, y: float) -> Tuple[int, int]:
        if self.width <= 0 or self.height <= 0:
            raise RuntimeError("CoordinateMapper has not been primed with a frame size.")
        return to_pixel(x, self.width), to_pixel(y, self.height)

    def map_points(self, coordinates: Sequence[float]) -> List[int]:
        """Map a flat [x1, y1, x2, y2, ...] sequence."""
        mapped: List[int] = []
        for index in range(0, len(coordinates) - 1, 2):
            mapped.extend(self.map_point(coordinates[index], coordinates[index + 1]))
        return mapped
