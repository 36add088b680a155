"""
Centralized configuration for the train status service.

Module constants hold the defaults, grouped by concern. The running service
reads them through a single immutable ``Settings`` object that is built once
from the environment at startup (see ``Settings.from_env``).
"""

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from trainstatus.errors import ConfigError

# =============================================================================
# MAP
# =============================================================================

# NW 9th & Naito intersection
MAP_CENTER = (45.532533, -122.680120)
MAP_ZOOM = 16
VEHICLE_UPDATE_INTERVAL = 30  # seconds between vehicle refreshes on the map


# =============================================================================
# TRIMET API
# =============================================================================

TRIMET_BASE_URL = "https://developer.trimet.org/ws/v2"
TRIMET_ENDPOINTS = {
    'vehicles': 'vehicles',
    'arrivals': 'arrivals',
}

# MAX light rail route numbers -> (short label, line name, color)
MAX_ROUTES = {
    90: ('Red', 'MAX Red Line', '#D81526'),
    100: ('Blue', 'MAX Blue Line', '#084C8D'),
    190: ('Yellow', 'MAX Yellow Line', '#FFC52F'),
    200: ('Green', 'MAX Green Line', '#008852'),
    290: ('Orange', 'MAX Orange Line', '#D15F27'),
}


# =============================================================================
# STATUS CHECKS
# =============================================================================

DEFAULT_CHECK_INTERVAL = 30  # seconds
DEFAULT_CHECK_TIMEOUT = 10   # seconds, bound on a single detector call

DETECTOR_NAMES = ('heuristic', 'random', 'darkness', 'model')
DEFAULT_DETECTOR = 'heuristic'

# Simulated detectors
SIMULATED_LATENCY = 1.5       # seconds
BLOCKING_PROBABILITY = 0.3

# Time-of-day heuristic windows (local hours, inclusive)
RUSH_HOURS = ((7, 9), (16, 18))
TRAIN_HOURS = (10, 14, 20)
TRAIN_WINDOW_MINUTES = 30
SCHEDULED_TRAIN_CHANCE = 0.3  # random factor must exceed this during train time
UNEXPECTED_TRAIN_CHANCE = 0.7  # random factor must exceed this outside rush hour


# =============================================================================
# CAMERA / IMAGE DETECTION
# =============================================================================

# Intersection camera snapshot; unset by default since the source varies
CAMERA_URL = ""

# Darkness heuristic: fraction of dark pixels at or above which the
# intersection is considered blocked
DARKNESS_THRESHOLD = 0.15
DARK_PIXEL_LEVEL = 60          # grayscale 0-255, strictly below counts as dark
DARKNESS_GRID = (100, 75)      # (width, height) sampling grid

# Object detection model (COCO labels)
DETECTION_MODEL = "facebook/detr-resnet-50"
PROXY_CLASSES = frozenset({'train', 'truck', 'bus', 'car'})
MODEL_RETRY_INTERVAL = 300     # seconds before retrying a failed model load

# Share of the check timeout the model gets before the fallback takes over
PRIMARY_TIMEOUT_SHARE = 0.5


# =============================================================================
# HTTP / NETWORK
# =============================================================================

HTTP_TIMEOUT = 10  # seconds

# Circuit breaker for the camera and TriMet upstreams
BREAKER_FAILURE_THRESHOLD = 5
BREAKER_RESET_TIMEOUT = 60.0  # seconds


def _parse_float(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _parse_int(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return int(default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _parse_bool(environ, name, default):
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_list(environ, name):
    raw = environ.get(name, '').strip()
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(',') if item.strip())


def _parse_center(environ):
    items = _parse_list(environ, 'MAP_CENTER')
    if not items:
        return MAP_CENTER
    if len(items) != 2:
        raise ConfigError(f"MAP_CENTER must be 'lat,lng', got {environ['MAP_CENTER']!r}")
    try:
        return float(items[0]), float(items[1])
    except ValueError:
        raise ConfigError(f"MAP_CENTER must be 'lat,lng', got {environ['MAP_CENTER']!r}")


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings, loaded once at startup."""
    trimet_app_id: str = ""
    trimet_base_url: str = TRIMET_BASE_URL
    trimet_endpoints: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(TRIMET_ENDPOINTS))
    )
    trimet_stop_ids: Tuple[str, ...] = ()

    map_center: Tuple[float, float] = MAP_CENTER
    map_zoom: int = MAP_ZOOM
    vehicle_update_interval: float = VEHICLE_UPDATE_INTERVAL

    check_interval: float = DEFAULT_CHECK_INTERVAL
    check_timeout: float = DEFAULT_CHECK_TIMEOUT
    detector: str = DEFAULT_DETECTOR
    detector_fallback: bool = True
    simulated_latency: float = SIMULATED_LATENCY
    blocking_probability: float = BLOCKING_PROBABILITY

    camera_url: str = CAMERA_URL
    darkness_threshold: float = DARKNESS_THRESHOLD
    dark_pixel_level: int = DARK_PIXEL_LEVEL
    detection_model: str = DETECTION_MODEL

    http_timeout: float = HTTP_TIMEOUT
    webhook_urls: Tuple[str, ...] = ()
    log_level: str = "INFO"

    def __post_init__(self):
        # Read-only copy so settings can't change after startup
        object.__setattr__(self, 'trimet_endpoints', MappingProxyType(dict(self.trimet_endpoints)))

        if self.check_interval <= 0:
            raise ConfigError(f"check interval must be positive, got {self.check_interval}")
        if self.check_timeout <= 0:
            raise ConfigError(f"check timeout must be positive, got {self.check_timeout}")
        if self.vehicle_update_interval <= 0:
            raise ConfigError(
                f"vehicle update interval must be positive, got {self.vehicle_update_interval}"
            )
        if self.detector not in DETECTOR_NAMES:
            raise ConfigError(
                f"unknown detector {self.detector!r}, expected one of {', '.join(DETECTOR_NAMES)}"
            )
        if not 0 < self.darkness_threshold <= 1:
            raise ConfigError(f"darkness threshold must be in (0, 1], got {self.darkness_threshold}")
        if not 0 <= self.blocking_probability <= 1:
            raise ConfigError(
                f"blocking probability must be in [0, 1], got {self.blocking_probability}"
            )
        if not 0 < self.dark_pixel_level <= 255:
            raise ConfigError(f"dark pixel level must be in (0, 255], got {self.dark_pixel_level}")
        if self.simulated_latency < 0:
            raise ConfigError(f"simulated latency can't be negative, got {self.simulated_latency}")
        if self.http_timeout <= 0:
            raise ConfigError(f"HTTP timeout must be positive, got {self.http_timeout}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings

        Raises:
            ConfigError: If a value can't be parsed or is out of range
        """
        if environ is None:
            environ = os.environ

        return cls(
            trimet_app_id=environ.get('TRIMET_APP_ID', '').strip(),
            trimet_base_url=environ.get('TRIMET_BASE_URL', TRIMET_BASE_URL).rstrip('/'),
            trimet_stop_ids=_parse_list(environ, 'TRIMET_STOP_IDS'),
            map_center=_parse_center(environ),
            map_zoom=_parse_int(environ, 'MAP_ZOOM', MAP_ZOOM),
            vehicle_update_interval=_parse_float(environ, 'VEHICLE_UPDATE_INTERVAL', VEHICLE_UPDATE_INTERVAL),
            check_interval=_parse_float(environ, 'CHECK_INTERVAL', DEFAULT_CHECK_INTERVAL),
            check_timeout=_parse_float(environ, 'CHECK_TIMEOUT', DEFAULT_CHECK_TIMEOUT),
            detector=environ.get('DETECTOR', DEFAULT_DETECTOR).strip().lower(),
            detector_fallback=_parse_bool(environ, 'DETECTOR_FALLBACK', True),
            simulated_latency=_parse_float(environ, 'SIMULATED_LATENCY', SIMULATED_LATENCY),
            blocking_probability=_parse_float(environ, 'BLOCKING_PROBABILITY', BLOCKING_PROBABILITY),
            camera_url=environ.get('CAMERA_URL', CAMERA_URL).strip(),
            darkness_threshold=_parse_float(environ, 'DARKNESS_THRESHOLD', DARKNESS_THRESHOLD),
            dark_pixel_level=_parse_int(environ, 'DARK_PIXEL_LEVEL', DARK_PIXEL_LEVEL),
            detection_model=environ.get('DETECTION_MODEL', DETECTION_MODEL).strip(),
            http_timeout=_parse_float(environ, 'HTTP_TIMEOUT', HTTP_TIMEOUT),
            webhook_urls=_parse_list(environ, 'WEBHOOK_URLS'),
            log_level=environ.get('LOG_LEVEL', 'INFO').strip().upper(),
        )

    def public_map_config(self) -> dict:
        """Map settings safe to hand to the browser (no API key)."""
        return {
            'center': list(self.map_center),
            'zoom': self.map_zoom,
            'updateInterval': int(self.vehicle_update_interval * 1000),
            'checkInterval': int(self.check_interval * 1000),
        }
