"""
Intersection camera snapshot download.

The camera serves a single JPEG that is refreshed in place, so every
request carries a random cache-busting parameter.
"""

import logging
import random
from io import BytesIO

import requests
from PIL import Image, UnidentifiedImageError

from trainstatus.circuit_breaker import CircuitBreaker, camera_breaker
from trainstatus.config import HTTP_TIMEOUT
from trainstatus.errors import NetworkError, ParseError

logger = logging.getLogger(__name__)


def fetch_camera_image(url, timeout=HTTP_TIMEOUT, breaker: CircuitBreaker = camera_breaker):
    """
    Download the current camera snapshot.

    Blocking; detectors call this through asyncio.to_thread.

    Args:
        url: Snapshot URL
        timeout: Request timeout in seconds
        breaker: Circuit breaker guarding the camera host

    Returns:
        PIL.Image.Image in RGB mode

    Raises:
        NetworkError: If no URL is configured, the request fails, or the
            breaker is open
        ParseError: If the response isn't a decodable image
    """
    if not url:
        raise NetworkError("Camera URL not configured (set CAMERA_URL)")

    params = {'nocache': random.randint(0, 999)}

    with breaker.guard():
        try:
            response = requests.get(url, params=params, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Camera fetch failed: {e}") from e

    try:
        image = Image.open(BytesIO(response.content))
        image = image.convert('RGB')
    except (UnidentifiedImageError, OSError) as e:
        raise ParseError(f"Camera returned an unreadable image: {e}") from e

    logger.debug(f"Fetched camera snapshot: {image.width}x{image.height}")
    return image
