"""
Status polling state machine.

States:
    Idle -> Checking -> {Clear | Blocked | Error} -> Idle

A repeating timer launches a check every ``interval`` seconds; a manual
trigger launches one immediately. Both paths go through the same single
in-flight slot, so at most one detector call runs at a time. A tick or
trigger that arrives while a check is in flight is ignored, not queued.

Every state change is pushed to the registered views as a StatusSnapshot.
Detector failures end that cycle with Error status; the timer keeps
running.

Usage:
    controller = StatusController(detector, interval=30, timeout=10)
    controller.subscribe(print)
    controller.start()          # inside a running event loop
    controller.trigger()        # manual refresh, never blocks
    await controller.stop()
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from trainstatus.config import DEFAULT_CHECK_INTERVAL, DEFAULT_CHECK_TIMEOUT
from trainstatus.detectors import Detector
from trainstatus.errors import DetectionError, DetectionTimeout
from trainstatus.status import Status, StatusSnapshot

logger = logging.getLogger(__name__)

View = Callable[[StatusSnapshot], None]


class StatusController:
    """Owns the current status and drives the detector."""

    def __init__(
        self,
        detector: Detector,
        interval: float = DEFAULT_CHECK_INTERVAL,
        timeout: float = DEFAULT_CHECK_TIMEOUT,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.detector = detector
        self.interval = interval
        self.timeout = timeout
        self._clock = clock

        self._snapshot = StatusSnapshot()
        # Last non-Checking snapshot, restored if a check is cancelled
        self._settled = self._snapshot
        self._views: List[View] = []
        self._inflight: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None

        self.checks_started = 0
        self.checks_skipped = 0
        self.checks_failed = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> StatusSnapshot:
        return self._snapshot

    @property
    def checking(self) -> bool:
        """True while a detector call is in flight."""
        return self._inflight is not None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def subscribe(self, view: View) -> None:
        """Register a callable that receives every new snapshot."""
        self._views.append(view)

    def unsubscribe(self, view: View) -> None:
        if view in self._views:
            self._views.remove(view)

    def _publish(self, snapshot: StatusSnapshot) -> None:
        self._snapshot = snapshot
        for view in list(self._views):
            try:
                view(snapshot)
            except Exception:
                logger.exception(f"View {view!r} failed to render {snapshot.status.value}")

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def _launch(self, source: str) -> Optional[asyncio.Task]:
        if self._inflight is not None:
            self.checks_skipped += 1
            logger.debug(f"Ignoring {source} check, one is already in flight")
            return None

        self.checks_started += 1
        self._settled = self._snapshot
        # Slot is taken before the first await so no second launch can slip in
        self._inflight = asyncio.get_running_loop().create_task(self._check(source))
        self._publish(StatusSnapshot(
            status=Status.CHECKING,
            last_checked_at=self._snapshot.last_checked_at,
            reason=self._snapshot.reason,
        ))
        return self._inflight

    async def _check(self, source: str) -> StatusSnapshot:
        previous = self._snapshot
        try:
            try:
                verdict = await asyncio.wait_for(self.detector.detect(), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise DetectionTimeout(f"Check timed out after {self.timeout:g}s")
        except DetectionError as e:
            self.checks_failed += 1
            logger.warning(f"{source.capitalize()} check failed: {type(e).__name__}: {e}")
            snapshot = StatusSnapshot(Status.ERROR, previous.last_checked_at, str(e))
        except Exception as e:
            self.checks_failed += 1
            logger.exception(f"Unexpected error during {source} check")
            snapshot = StatusSnapshot(Status.ERROR, previous.last_checked_at, f"{type(e).__name__}: {e}")
        else:
            snapshot = StatusSnapshot(verdict.status, self._clock(), verdict.reason)
            logger.info(f"{source.capitalize()} check: {snapshot.status.value} ({verdict.reason})")
        finally:
            self._inflight = None

        self._publish(snapshot)
        return snapshot

    def trigger(self) -> Optional[asyncio.Task]:
        """
        Manual refresh.

        Returns:
            The started check task, or None if a check was already in flight
        """
        return self._launch('manual')

    async def check_now(self) -> Optional[StatusSnapshot]:
        """
        Manual refresh that waits for the result.

        Returns:
            The resulting snapshot, or None if a check was already in flight
        """
        task = self._launch('manual')
        if task is None:
            return None
        return await task

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    async def _tick_forever(self) -> None:
        while True:
            self._launch('timer')
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        """Start the repeating timer; the first check runs immediately."""
        if self.running:
            return
        logger.info(
            f"Polling {self.detector.name} detector every {self.interval:g}s "
            f"(timeout {self.timeout:g}s)"
        )
        self._timer = asyncio.get_running_loop().create_task(self._tick_forever())

    async def stop(self) -> None:
        """Cancel the timer and any in-flight check, restoring the last settled status."""
        tasks = [task for task in (self._timer, self._inflight) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timer = None
        self._inflight = None
        if self._snapshot.status == Status.CHECKING:
            self._publish(self._settled)

    def get_stats(self) -> dict:
        return {
            'detector': self.detector.name,
            'running': self.running,
            'checking': self.checking,
            'interval': self.interval,
            'timeout': self.timeout,
            'checks_started': self.checks_started,
            'checks_skipped': self.checks_skipped,
            'checks_failed': self.checks_failed,
        }
