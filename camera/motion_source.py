"""Pixel-difference motion signal."""

import logging
from typing import Optional

import cv2
import numpy as np

from camera.base_source import CameraSignalSource
from camera.capture import CameraCapture
from camera.compliance import PresenceSignal, Zone, frame_delta

logger = logging.getLogger(__name__)


class MotionSignalSource(CameraSignalSource):
    """
    Measures how much the zone changed since the previous frame.

    Frames are mirrored before measuring so the zone matches the self-view
    the subject sees. The first frame after open() has nothing to compare
    against and yields magnitude None.
    """

    def __init__(self, zone: Zone, camera: Optional[CameraCapture] = None):
        super().__init__(camera)
        self.zone = zone
        self._previous: Optional[np.ndarray] = None

    def open(self) -> None:
        self._previous = None
        super().open()

    def close(self) -> None:
        super().close()
        self._previous = None

    def _measure(self, frame: np.ndarray) -> PresenceSignal:
        mirrored = cv2.flip(frame, 1)
        previous, self._previous = self._previous, mirrored

        if previous is None or previous.shape != mirrored.shape:
            return PresenceSignal(magnitude=None)

        magnitude = frame_delta(previous, mirrored, self.zone)
        logger.debug(f"Motion magnitude: {magnitude:.2f}")
        return PresenceSignal(magnitude=magnitude)
