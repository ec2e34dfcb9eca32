"""Session error types."""

from typing import Optional


class SessionError(Exception):
    """Base class for errors raised by the session controller."""


class InvalidConfig(SessionError, ValueError):
    """Session settings or start bounds are invalid (min > max, non-positive, ...)."""


class InputUnavailable(SessionError):
    """
    The signal source could not be opened or stopped producing samples.

    Attributes:
        failure_type: Optional camera failure classification
            (see camera.capture.CameraFailureType).
    """

    def __init__(self, message: str, failure_type: Optional[object] = None):
        super().__init__(message)
        self.failure_type = failure_type
