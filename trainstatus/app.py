"""
Application instance.

One TrainStatusApp is built by the process entry point (web server or
checker CLI) and handed to whatever needs it. It owns the settings, the
detector, the status controller, the TriMet client and the registered
views, and has an explicit start/stop lifecycle.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from trainstatus import __version__
from trainstatus.circuit_breaker import camera_breaker, transit_breaker
from trainstatus.config import Settings
from trainstatus.controller import StatusController
from trainstatus.detectors import Detector, build_detector
from trainstatus.marker import marker_for
from trainstatus.notifiers import StatusChangeNotifier
from trainstatus.transit import TransitClient, VehicleFeed

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)


class TrainStatusApp:
    """Wires the status controller and the transit client together."""

    def __init__(
        self,
        settings: Settings,
        detector: Optional[Detector] = None,
        transit: Optional[TransitClient] = None,
    ):
        self.settings = settings
        self.detector = detector or build_detector(settings)
        self.controller = StatusController(
            self.detector,
            interval=settings.check_interval,
            timeout=settings.check_timeout,
        )
        self.transit = transit or TransitClient(settings)
        self.started_at: Optional[datetime] = None
        self._warmup: Optional[asyncio.Task] = None

        if settings.webhook_urls:
            self.controller.subscribe(StatusChangeNotifier(settings.webhook_urls))

    @classmethod
    def from_env(cls) -> 'TrainStatusApp':
        return cls(Settings.from_env())

    async def start(self) -> None:
        """Begin polling. Must be awaited inside the serving event loop."""
        self.started_at = datetime.now()
        # Model loading can take minutes; checks fall back until it finishes
        self._warmup = asyncio.get_running_loop().create_task(self.detector.prepare())
        self.controller.start()
        logger.info(f"Train status service started with {self.detector.name} detector")

    async def stop(self) -> None:
        if self._warmup is not None and not self._warmup.done():
            self._warmup.cancel()
        self._warmup = None
        await self.controller.stop()
        logger.info("Train status service stopped")

    def status(self) -> dict:
        """Current snapshot plus what the map needs to draw it."""
        snapshot = self.controller.snapshot
        data = snapshot.to_dict()
        data['checking'] = self.controller.checking
        data['marker'] = marker_for(snapshot)
        return data

    async def vehicles(self) -> VehicleFeed:
        return await asyncio.to_thread(self.transit.vehicle_feed)

    async def arrivals(self) -> VehicleFeed:
        return await asyncio.to_thread(self.transit.arrival_feed)

    def health(self) -> dict:
        return {
            'status': 'ok',
            'service': 'naito-train-status',
            'version': __version__,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'controller': self.controller.get_stats(),
            'breakers': [camera_breaker.get_status(), transit_breaker.get_status()],
            'timestamp': datetime.now().isoformat(),
        }
