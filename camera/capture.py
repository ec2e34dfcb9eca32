"""Webcam handle shared by the frame-based signal sources."""

import logging
import sys
import threading
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

import config

logger = logging.getLogger(__name__)

PROBE_INDICES = range(4)


class CameraFailureType(Enum):
    """Why a camera could not be opened, for user-facing messages."""
    NONE = "none"
    NO_HARDWARE = "no_hardware"
    IN_USE = "in_use"
    UNKNOWN = "unknown"


class CameraCapture:
    """
    One OpenCV capture device.

    open() reports failure through its return value plus failure_type and
    error_message; the signal sources turn that into InputUnavailable.
    Frames are read on an executor thread while close() runs on the event
    loop, so both go through a lock.
    """

    def __init__(self, camera_index: int = None, width: int = None, height: int = None):
        # 0 is a valid index, so compare against None
        self.camera_index = camera_index if camera_index is not None else config.CAMERA_INDEX
        self.width = width if width is not None else config.FRAME_WIDTH
        self.height = height if height is not None else config.FRAME_HEIGHT
        self.cap: Optional[cv2.VideoCapture] = None
        self.is_opened = False
        self.error_message: Optional[str] = None
        self.failure_type = CameraFailureType.NONE
        self._lock = threading.Lock()

    def open(self) -> bool:
        """
        Open the device and confirm it produces a frame.

        Returns:
            True on success. On failure, failure_type and error_message are set.
        """
        try:
            cap = self._create_capture()
        except Exception as e:
            logger.error(f"Error opening camera {self.camera_index}: {e}")
            return self._fail(CameraFailureType.UNKNOWN, f"Unexpected camera error: {e}")

        if not cap.isOpened():
            cap.release()
            logger.error(f"Camera {self.camera_index} did not open")
            if self._count_available_cameras() == 0:
                return self._fail(CameraFailureType.NO_HARDWARE,
                                  "No camera detected. Connect a webcam and try again.")
            return self._fail(CameraFailureType.UNKNOWN,
                              f"Camera {self.camera_index} could not be opened. "
                              f"Check camera permissions.")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

        # Some drivers report isOpened() for a device another app holds
        ok, frame = cap.read()
        if not ok or frame is None:
            cap.release()
            logger.error(f"Camera {self.camera_index} opened but returned no frame")
            return self._fail(CameraFailureType.IN_USE,
                              "Camera returned no frames. Close other apps using it.")

        with self._lock:
            self.cap = cap
            self.is_opened = True
        self.failure_type = CameraFailureType.NONE
        self.error_message = None
        logger.info(
            f"Camera {self.camera_index} opened at "
            f"{int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x{int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))}"
        )
        return True

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """
        Grab one BGR frame.

        Returns:
            (success, frame); frame is None when success is False.
        """
        with self._lock:
            if not self.is_opened or self.cap is None:
                logger.warning("Read from a closed camera")
                return False, None
            try:
                ok, frame = self.cap.read()
            except cv2.error as e:
                logger.error(f"Camera read error: {e}")
                return False, None

        if not ok:
            logger.warning("Camera returned no frame")
            return False, None
        return True, frame

    def close(self) -> None:
        """Release the device. Repeated calls are harmless."""
        with self._lock:
            if self.cap is None:
                return
            self.cap.release()
            self.cap = None
            self.is_opened = False
        logger.info(f"Camera {self.camera_index} released")

    def _create_capture(self) -> cv2.VideoCapture:
        if sys.platform == "win32":
            # DirectShow starts faster on Windows but not every camera supports it
            cap = cv2.VideoCapture(self.camera_index, cv2.CAP_DSHOW)
            if cap.isOpened():
                return cap
            cap.release()
            logger.info("DirectShow backend failed, using the default backend")
        return cv2.VideoCapture(self.camera_index)

    def _fail(self, failure_type: CameraFailureType, message: str) -> bool:
        self.failure_type = failure_type
        self.error_message = message
        return False

    @staticmethod
    def _count_available_cameras() -> int:
        """Probe the first few device indices; OpenCV cannot enumerate cameras."""
        found = 0
        for index in PROBE_INDICES:
            probe = cv2.VideoCapture(index)
            if probe.isOpened():
                found += 1
            probe.release()
        return found
