"""
Detectors for the intersection status.

All variants share the Detector interface and are selected by
configuration:

    heuristic  time-of-day freight schedule guess
    random     fixed-probability simulation
    darkness   dark-pixel share of the camera snapshot
    model      COCO object detector on the camera snapshot, optionally
               falling back to the darkness heuristic

Usage:
    from trainstatus.detectors import build_detector

    detector = build_detector(settings)
    verdict = await detector.detect()
"""

from functools import partial

from trainstatus.camera import fetch_camera_image
from trainstatus.config import PRIMARY_TIMEOUT_SHARE, Settings
from trainstatus.errors import ConfigError

from .base import Detector, FallbackDetector, ThreadedDetector
from .image import DarknessDetector, dark_fraction
from .model import ObjectDetector, load_detection_pipeline
from .simulated import RandomDetector, TimeOfDayDetector

__all__ = [
    'Detector',
    'FallbackDetector',
    'ThreadedDetector',
    'TimeOfDayDetector',
    'RandomDetector',
    'DarknessDetector',
    'ObjectDetector',
    'dark_fraction',
    'load_detection_pipeline',
    'build_detector',
]


def build_detector(settings: Settings, fetch_image=None) -> Detector:
    """
    Build the detector named by ``settings.detector``.

    Args:
        settings: Runtime settings
        fetch_image: Callable returning a PIL image (defaults to the camera)

    Returns:
        Detector

    Raises:
        ConfigError: If the detector name is unknown
    """
    if fetch_image is None:
        fetch_image = partial(fetch_camera_image, settings.camera_url, timeout=settings.http_timeout)

    if settings.detector == 'heuristic':
        return TimeOfDayDetector(latency=settings.simulated_latency)

    if settings.detector == 'random':
        return RandomDetector(
            probability=settings.blocking_probability,
            latency=settings.simulated_latency,
        )

    darkness = DarknessDetector(
        fetch_image,
        threshold=settings.darkness_threshold,
        level=settings.dark_pixel_level,
    )
    if settings.detector == 'darkness':
        return darkness

    if settings.detector == 'model':
        model = ObjectDetector(fetch_image, model_name=settings.detection_model)
        if settings.detector_fallback:
            # Leave the darkness check room to finish inside the check timeout
            return FallbackDetector(
                model, darkness, primary_timeout=settings.check_timeout * PRIMARY_TIMEOUT_SHARE
            )
        return model

    raise ConfigError(f"unknown detector {settings.detector!r}")
