"""
Exception types for the train status service.

Detection and transit failures are recovered at the controller and transit
client boundaries; only ConfigError is allowed to stop the process.
"""


class TrainStatusError(Exception):
    """Base class for all service errors."""


class ConfigError(TrainStatusError):
    """Raised when settings are missing or out of range."""


class DetectionError(TrainStatusError):
    """Raised when a detector can't produce a verdict."""


class NetworkError(DetectionError):
    """Raised when an upstream fetch (camera, TriMet) fails."""


class ParseError(DetectionError):
    """Raised when an upstream response has an unexpected shape."""


class ModelUnavailable(DetectionError):
    """Raised when the object detection model can't be loaded."""


class DetectionTimeout(DetectionError):
    """Raised when a single check runs past its time bound."""


class CircuitOpenError(NetworkError):
    """Raised when a circuit breaker is open and rejecting requests."""
    def __init__(self, message: str, time_until_retry: float = 0):
        super().__init__(message)
        self.time_until_retry = time_until_retry
