"""
Tests for the status polling state machine.

Tests cover:
- Snapshot publishing (Checking -> Clear/Blocked/Error)
- Mutual exclusion between timer ticks and manual triggers
- Error, timeout and recovery behavior of the polling loop
- Start/stop lifecycle
"""

import asyncio
import sys
import threading
import time
from datetime import datetime
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent))

from trainstatus.controller import StatusController
from trainstatus.detectors import DarknessDetector, Detector
from trainstatus.errors import NetworkError
from trainstatus.status import Status, StatusSnapshot, Verdict

FIXED_NOW = datetime(2026, 10, 19, 10, 5, 0)


def fixed_clock():
    return FIXED_NOW


class GatedDetector(Detector):
    """Blocks inside detect() until released; tracks concurrent calls."""

    name = "gated"

    def __init__(self, verdict=Verdict(blocking=False, reason="No train")):
        # Must be created inside the running loop
        self.release = asyncio.Event()
        self.verdict = verdict
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def detect(self):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.release.wait()
            return self.verdict
        finally:
            self.active -= 1


class ScriptedDetector(Detector):
    """Returns or raises scripted outcomes in order; the last one repeats."""

    name = "scripted"

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def detect(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SlowDetector(Detector):
    name = "slow"

    async def detect(self):
        await asyncio.sleep(5)
        return Verdict(blocking=False)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class TestInitialState:
    """Controller state before any check."""

    def test_starts_unknown(self):
        """A new controller reports Unknown with no timestamp."""
        controller = StatusController(ScriptedDetector(Verdict(False)))
        assert controller.snapshot == StatusSnapshot()
        assert controller.snapshot.status == Status.UNKNOWN
        assert controller.snapshot.last_checked_at is None
        assert controller.checking is False
        assert controller.running is False

    def test_stats_before_start(self):
        """Stats expose the detector and zeroed counters."""
        controller = StatusController(ScriptedDetector(Verdict(False)), interval=30, timeout=10)
        stats = controller.get_stats()
        assert stats['detector'] == 'scripted'
        assert stats['interval'] == 30
        assert stats['timeout'] == 10
        assert stats['checks_started'] == 0
        assert stats['checks_skipped'] == 0


class TestManualTrigger:
    """Tests for manual refresh."""

    def test_views_receive_checking_then_result(self):
        """A check publishes Checking, then the verdict with a timestamp."""
        async def scenario():
            controller = StatusController(
                ScriptedDetector(Verdict(blocking=False, reason="No train currently blocking")),
                clock=fixed_clock,
            )
            seen = []
            controller.subscribe(seen.append)
            snapshot = await controller.check_now()
            return seen, snapshot

        seen, snapshot = asyncio.run(scenario())

        assert [s.status for s in seen] == [Status.CHECKING, Status.CLEAR]
        assert snapshot.status == Status.CLEAR
        assert snapshot.reason == "No train currently blocking"
        assert snapshot.last_checked_at == FIXED_NOW

    def test_blocking_verdict_becomes_blocked(self):
        """A blocking verdict maps to Blocked status."""
        async def scenario():
            controller = StatusController(
                ScriptedDetector(Verdict(blocking=True, reason="Scheduled freight train")),
            )
            return await controller.check_now()

        snapshot = asyncio.run(scenario())
        assert snapshot.status == Status.BLOCKED
        assert snapshot.reason == "Scheduled freight train"

    def test_trigger_returns_immediately(self):
        """trigger() doesn't wait for the detector."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector)
            task = controller.trigger()
            state = (controller.checking, controller.snapshot.status)
            detector.release.set()
            await task
            return task, state, controller.checking

        task, state_during, checking_after = asyncio.run(scenario())
        assert task is not None
        assert state_during == (True, Status.CHECKING)
        assert checking_after is False

    def test_trigger_while_checking_is_ignored(self):
        """A second manual trigger during a check is dropped, not queued."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector)
            first = controller.trigger()
            second = controller.trigger()
            detector.release.set()
            await first
            # Give a queued check (if there were one) a chance to run
            await asyncio.sleep(0.02)
            return detector, controller, first, second

        detector, controller, first, second = asyncio.run(scenario())
        assert first is not None
        assert second is None
        assert detector.calls == 1
        assert detector.max_active == 1
        assert controller.checks_skipped == 1

    def test_check_now_while_checking_returns_none(self):
        """check_now() reports an ignored refresh with None."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector)
            first = controller.trigger()
            result = await controller.check_now()
            detector.release.set()
            await first
            return result, detector.calls

        result, calls = asyncio.run(scenario())
        assert result is None
        assert calls == 1


class TestTimer:
    """Tests for timer-driven polling."""

    def test_first_tick_runs_immediately(self):
        """Starting the controller checks right away."""
        async def scenario():
            detector = ScriptedDetector(Verdict(False))
            controller = StatusController(detector, interval=3600)
            controller.start()
            await wait_until(lambda: controller.snapshot.status == Status.CLEAR)
            running = controller.running
            await controller.stop()
            return detector.calls, running

        calls, running = asyncio.run(scenario())
        assert calls == 1
        assert running is True

    def test_tick_during_check_does_not_start_second_call(self):
        """Timer ticks that land on an in-flight check are skipped."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector, interval=0.01)
            controller.start()
            await asyncio.sleep(0.1)
            calls_while_gated = detector.calls
            skipped = controller.checks_skipped
            detector.release.set()
            await wait_until(lambda: detector.calls >= 3)
            await controller.stop()
            return calls_while_gated, skipped, detector.max_active

        calls_while_gated, skipped, max_active = asyncio.run(scenario())
        assert calls_while_gated == 1
        assert skipped >= 1
        assert max_active == 1

    def test_manual_trigger_during_timer_check_is_ignored(self):
        """Timer and manual paths share the same in-flight slot."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector, interval=3600)
            controller.start()
            await wait_until(lambda: detector.calls == 1)
            manual = controller.trigger()
            detector.release.set()
            await controller.stop()
            return manual, detector.max_active

        manual, max_active = asyncio.run(scenario())
        assert manual is None
        assert max_active == 1

    def test_start_twice_keeps_one_timer(self):
        """start() on a running controller is a no-op."""
        async def scenario():
            detector = ScriptedDetector(Verdict(False))
            controller = StatusController(detector, interval=3600)
            controller.start()
            timer = controller._timer
            controller.start()
            same = controller._timer is timer
            await controller.stop()
            return same

        assert asyncio.run(scenario()) is True


class TestErrorHandling:
    """Detector failures end the cycle with Error and never stop polling."""

    def test_network_error_then_recovery(self):
        """NetworkError shows Error, and the next tick polls normally."""
        async def scenario():
            detector = ScriptedDetector(
                NetworkError("Camera fetch failed: connection refused"),
                Verdict(blocking=False, reason="No train"),
            )
            controller = StatusController(detector, interval=0.02)
            seen = []
            controller.subscribe(seen.append)
            controller.start()
            await wait_until(lambda: controller.snapshot.status == Status.CLEAR)
            running = controller.running
            await controller.stop()
            return seen, controller, running

        seen, controller, running = asyncio.run(scenario())
        statuses = [s.status for s in seen]
        assert Status.ERROR in statuses
        assert statuses.index(Status.ERROR) < statuses.index(Status.CLEAR)
        error = next(s for s in seen if s.status == Status.ERROR)
        assert "connection refused" in error.reason
        assert controller.checks_failed == 1
        assert running is True

    def test_timeout_becomes_error(self):
        """A check that runs past the timeout ends with Error."""
        async def scenario():
            controller = StatusController(SlowDetector(), timeout=0.05)
            snapshot = await controller.check_now()
            return snapshot, controller.checking

        snapshot, checking = asyncio.run(scenario())
        assert snapshot.status == Status.ERROR
        assert "timed out" in snapshot.reason
        assert checking is False

    def test_timed_out_fetch_holds_the_camera(self):
        """A check after a timeout doesn't start a second camera fetch while the first is still running."""
        lock = threading.Lock()
        active = [0]
        peak = [0]

        def slow_fetch():
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            try:
                time.sleep(0.5)
                return Image.new('RGB', (100, 75), 'white')
            finally:
                with lock:
                    active[0] -= 1

        async def scenario():
            controller = StatusController(DarknessDetector(slow_fetch), timeout=0.05)
            first = await controller.check_now()
            second = await controller.check_now()
            return first, second

        first, second = asyncio.run(scenario())
        assert first.status == Status.ERROR
        assert "timed out" in first.reason
        assert second.status == Status.ERROR
        assert "still running" in second.reason
        assert peak[0] == 1

    def test_unexpected_exception_becomes_error(self):
        """Bugs in a detector are surfaced as Error, not raised."""
        async def scenario():
            controller = StatusController(ScriptedDetector(RuntimeError("boom")))
            return await controller.check_now()

        snapshot = asyncio.run(scenario())
        assert snapshot.status == Status.ERROR
        assert "RuntimeError" in snapshot.reason

    def test_error_keeps_last_successful_timestamp(self):
        """Error snapshots carry the time of the last successful check."""
        async def scenario():
            detector = ScriptedDetector(Verdict(False), NetworkError("down"))
            controller = StatusController(detector, clock=fixed_clock)
            first = await controller.check_now()
            second = await controller.check_now()
            return first, second

        first, second = asyncio.run(scenario())
        assert first.status == Status.CLEAR
        assert second.status == Status.ERROR
        assert second.last_checked_at == FIXED_NOW

    def test_failing_view_does_not_break_other_views(self):
        """A view that raises is logged and skipped."""
        async def scenario():
            controller = StatusController(ScriptedDetector(Verdict(True)))
            seen = []

            def broken(snapshot):
                raise ValueError("render failed")

            controller.subscribe(broken)
            controller.subscribe(seen.append)
            snapshot = await controller.check_now()
            return snapshot, seen

        snapshot, seen = asyncio.run(scenario())
        assert snapshot.status == Status.BLOCKED
        assert [s.status for s in seen] == [Status.CHECKING, Status.BLOCKED]

    def test_unsubscribed_view_stops_receiving(self):
        """unsubscribe() removes a view."""
        async def scenario():
            controller = StatusController(ScriptedDetector(Verdict(False)))
            seen = []
            controller.subscribe(seen.append)
            controller.unsubscribe(seen.append)
            await controller.check_now()
            return seen

        assert asyncio.run(scenario()) == []


class TestStop:
    """Tests for the stop lifecycle."""

    def test_stop_cancels_in_flight_check(self):
        """stop() cancels the timer and a running check."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector, interval=3600)
            controller.start()
            await wait_until(lambda: detector.calls == 1)
            await controller.stop()
            return controller

        controller = asyncio.run(scenario())
        assert controller.running is False
        assert controller.checking is False

    def test_stop_without_start(self):
        """stop() on an idle controller does nothing."""
        async def scenario():
            controller = StatusController(ScriptedDetector(Verdict(False)))
            await controller.stop()
            return controller.running

        assert asyncio.run(scenario()) is False

    @pytest.mark.parametrize("interval", [0.01, 0.05])
    def test_restart_after_stop(self, interval):
        """A stopped controller can be started again."""
        async def scenario():
            detector = ScriptedDetector(Verdict(False))
            controller = StatusController(detector, interval=interval)
            controller.start()
            await wait_until(lambda: detector.calls >= 1)
            await controller.stop()
            calls = detector.calls
            controller.start()
            await wait_until(lambda: detector.calls > calls)
            await controller.stop()
            return detector.calls > calls

        assert asyncio.run(scenario()) is True

    def test_stop_mid_check_restores_last_result(self):
        """Cancelling a check puts back the last settled status, not Checking."""
        async def scenario():
            detector = GatedDetector(Verdict(blocking=False, reason="No train"))
            controller = StatusController(detector, interval=3600, clock=fixed_clock)
            detector.release.set()
            await controller.check_now()
            detector.release.clear()
            controller.trigger()
            await wait_until(lambda: detector.calls == 2)
            await controller.stop()
            return controller.snapshot

        snapshot = asyncio.run(scenario())
        assert snapshot == StatusSnapshot(Status.CLEAR, FIXED_NOW, "No train")

    def test_stop_during_first_check_is_unknown(self):
        """With no finished check yet, stopping leaves Unknown."""
        async def scenario():
            detector = GatedDetector()
            controller = StatusController(detector, interval=3600)
            seen = []
            controller.subscribe(seen.append)
            controller.start()
            await wait_until(lambda: detector.calls == 1)
            await controller.stop()
            return controller.snapshot, seen

        snapshot, seen = asyncio.run(scenario())
        assert snapshot.status == Status.UNKNOWN
        assert [s.status for s in seen] == [Status.CHECKING, Status.UNKNOWN]
