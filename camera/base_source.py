"""Base protocol and shared plumbing for signal sources."""

import asyncio
import logging
from typing import Callable, Optional, Protocol, TypeVar

import numpy as np

from camera.capture import CameraCapture
from camera.compliance import PresenceSignal
from core.errors import InputUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SignalSourceProtocol(Protocol):
    """
    Protocol defining the interface for signal sources.

    Both the motion and keypoint sources implement these methods so the
    session engine never needs to know which backend is wired in.
    """

    def open(self) -> None:
        """
        Acquire the underlying device.

        Raises:
            InputUnavailable: If the device cannot be opened.
        """
        ...

    async def sample(self) -> PresenceSignal:
        """
        Produce one signal. Callers await it before asking for the next.

        Raises:
            InputUnavailable: If the device stopped delivering frames.
        """
        ...

    def close(self) -> None:
        """Release the device. Safe to call on a never-opened source."""
        ...


class CameraSignalSource:
    """
    Shared camera handling for the frame-based sources.

    Subclasses implement _measure(frame) -> PresenceSignal, which runs on
    the event loop's default executor together with the frame read.
    """

    def __init__(self, camera: Optional[CameraCapture] = None):
        self.camera = camera

    def open(self) -> None:
        if self.camera is None:
            self.camera = CameraCapture()
        if not self.camera.open():
            raise InputUnavailable(
                self.camera.error_message or "Camera could not be opened",
                failure_type=self.camera.failure_type,
            )

    async def sample(self) -> PresenceSignal:
        return await self._in_executor(self._read_and_measure)

    def close(self) -> None:
        if self.camera is not None:
            self.camera.close()

    def _read_and_measure(self) -> PresenceSignal:
        success, frame = self.camera.read_frame()
        if not success or frame is None:
            raise InputUnavailable("Camera stopped delivering frames")
        try:
            return self._measure(frame)
        except Exception as e:
            raise InputUnavailable(f"Signal measurement failed: {e}") from e

    def _measure(self, frame: np.ndarray) -> PresenceSignal:
        raise NotImplementedError

    @staticmethod
    async def _in_executor(func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)
