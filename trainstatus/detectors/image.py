"""
Camera-based darkness heuristic.

A freight train fills the camera frame with dark tank and box cars, so the
share of dark pixels in a downsampled frame is used as a proxy for a train
in the crossing.
"""

import logging
from typing import Callable

import cv2
import numpy as np

from trainstatus.config import DARK_PIXEL_LEVEL, DARKNESS_GRID, DARKNESS_THRESHOLD
from trainstatus.detectors.base import ThreadedDetector
from trainstatus.errors import ParseError
from trainstatus.status import Verdict

logger = logging.getLogger(__name__)


def dark_fraction(image, grid=DARKNESS_GRID, level=DARK_PIXEL_LEVEL):
    """
    Fraction of grid samples darker than ``level``.

    Args:
        image: PIL image (any mode)
        grid: (width, height) to downsample to before sampling
        level: Grayscale value (0-255); samples strictly below it are dark

    Returns:
        float in [0, 1]
    """
    pixels = np.array(image.convert('RGB'), dtype=np.uint8)
    if pixels.size == 0:
        raise ParseError("Camera image is empty")

    height, width = pixels.shape[:2]
    if (width, height) != tuple(grid):
        pixels = cv2.resize(pixels, tuple(grid), interpolation=cv2.INTER_AREA)

    gray = cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)
    dark_mask = (gray < level).astype(np.uint8)
    return cv2.countNonZero(dark_mask) / float(gray.size)


class DarknessDetector(ThreadedDetector):
    """Blocking when the dark fraction reaches the threshold (inclusive)."""

    name = "darkness"

    def __init__(
        self,
        fetch_image: Callable,
        threshold: float = DARKNESS_THRESHOLD,
        level: int = DARK_PIXEL_LEVEL,
        grid=DARKNESS_GRID,
    ):
        super().__init__()
        self.fetch_image = fetch_image
        self.threshold = threshold
        self.level = level
        self.grid = grid

    def classify(self, image) -> Verdict:
        fraction = dark_fraction(image, grid=self.grid, level=self.level)
        logger.debug(f"Dark fraction {fraction:.3f} (threshold {self.threshold:.3f})")
        if fraction >= self.threshold:
            return Verdict(blocking=True, reason=f"{fraction:.0%} of camera frame is dark")
        return Verdict(blocking=False, reason=f"Only {fraction:.0%} of camera frame is dark")

    def run(self) -> Verdict:
        return self.classify(self.fetch_image())
