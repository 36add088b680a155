"""
Detector interface and fallback composition.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from trainstatus.errors import DetectionError
from trainstatus.status import Verdict

logger = logging.getLogger(__name__)


class Detector(ABC):
    """
    Produces a blocking verdict for the intersection.

    Implementations raise DetectionError (or a subclass) when their data
    source is unavailable; they never return a verdict they couldn't back.
    """

    name = "detector"

    @abstractmethod
    async def detect(self) -> Verdict:
        ...

    async def prepare(self) -> None:
        """Load anything slow ahead of the first check. No-op by default."""

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class ThreadedDetector(Detector):
    """
    Detector whose work (camera fetch, inference) blocks, so it runs on a
    worker thread.

    A cancelled check can't stop its thread. The worker holds a lock until
    it really finishes, and a check that finds it still held fails fast
    instead of starting a second fetch.
    """

    def __init__(self):
        self._busy = threading.Lock()

    @abstractmethod
    def run(self) -> Verdict:
        """Blocking detection, called on a worker thread."""

    def _run_exclusive(self) -> Verdict:
        if not self._busy.acquire(blocking=False):
            raise DetectionError(f"Previous {self.name} check is still running")
        try:
            return self.run()
        finally:
            self._busy.release()

    async def detect(self) -> Verdict:
        return await asyncio.to_thread(self._run_exclusive)


class FallbackDetector(Detector):
    """
    Run the primary detector and fall back to a second one on DetectionError.

    With ``primary_timeout`` set, a primary that takes longer than that
    (a cold model load, say) is abandoned in favor of the fallback, so the
    check still finishes inside the controller's own time bound.
    """

    def __init__(self, primary: Detector, fallback: Detector, primary_timeout: Optional[float] = None):
        self.primary = primary
        self.fallback = fallback
        self.primary_timeout = primary_timeout
        self.name = f"{primary.name}+{fallback.name}"

    async def prepare(self) -> None:
        await self.primary.prepare()
        await self.fallback.prepare()

    async def _primary(self) -> Verdict:
        if self.primary_timeout is None:
            return await self.primary.detect()
        try:
            return await asyncio.wait_for(self.primary.detect(), timeout=self.primary_timeout)
        except asyncio.TimeoutError:
            raise DetectionError(f"{self.primary.name} took longer than {self.primary_timeout:g}s")

    async def detect(self) -> Verdict:
        try:
            return await self._primary()
        except DetectionError as e:
            logger.warning(
                f"{self.primary.name} detector failed ({e}), falling back to {self.fallback.name}"
            )

        verdict = await self.fallback.detect()
        reason = verdict.reason or ("Blocked" if verdict.blocking else "Clear")
        return Verdict(blocking=verdict.blocking, reason=f"{reason} ({self.fallback.name} fallback)")
