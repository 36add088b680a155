"""
Simulated detectors used when no camera is available.

Both are deterministic given an injected clock and random.Random, which is
how the tests drive them.
"""

import asyncio
import random
from datetime import datetime
from typing import Callable, Optional

from trainstatus.config import (
    BLOCKING_PROBABILITY,
    RUSH_HOURS,
    SCHEDULED_TRAIN_CHANCE,
    TRAIN_HOURS,
    TRAIN_WINDOW_MINUTES,
    UNEXPECTED_TRAIN_CHANCE,
)
from trainstatus.detectors.base import Detector
from trainstatus.status import Verdict


def is_rush_hour(hour):
    return any(start <= hour <= end for start, end in RUSH_HOURS)


def is_train_time(hour, minute):
    return hour in TRAIN_HOURS and minute < TRAIN_WINDOW_MINUTES


class TimeOfDayDetector(Detector):
    """
    Guess from typical freight schedules.

    Freight trains tend to cross during the first half hour of the 10:00,
    14:00 and 20:00 hours; outside rush hour there is also a smaller chance
    of an unscheduled crossing. A random factor decides within each window.
    """

    name = "heuristic"

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        rng: Optional[random.Random] = None,
        latency: float = 0.0,
    ):
        self.clock = clock
        self.rng = rng or random.Random()
        self.latency = latency

    def evaluate(self, now: datetime, factor: float) -> Verdict:
        """Verdict for a given local time and random factor in [0, 1)."""
        if is_train_time(now.hour, now.minute) and factor > SCHEDULED_TRAIN_CHANCE:
            return Verdict(blocking=True, reason="Scheduled freight train")
        if not is_rush_hour(now.hour) and factor > UNEXPECTED_TRAIN_CHANCE:
            return Verdict(blocking=True, reason="Unexpected train delay")
        return Verdict(blocking=False, reason="No train currently blocking")

    async def detect(self) -> Verdict:
        if self.latency:
            await asyncio.sleep(self.latency)
        return self.evaluate(self.clock(), self.rng.random())


class RandomDetector(Detector):
    """Report a blocking train with a fixed probability."""

    name = "random"

    def __init__(
        self,
        probability: float = BLOCKING_PROBABILITY,
        rng: Optional[random.Random] = None,
        latency: float = 0.0,
    ):
        self.probability = probability
        self.rng = rng or random.Random()
        self.latency = latency

    async def detect(self) -> Verdict:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.rng.random() < self.probability:
            return Verdict(blocking=True, reason="Simulated train crossing")
        return Verdict(blocking=False, reason="No train currently blocking")
