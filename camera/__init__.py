"""
Camera signal sources with backend selection.

Supports two interchangeable backends via factory pattern: pixel-difference
motion and MediaPipe keypoint tracking.
"""

import logging
from typing import TYPE_CHECKING, Optional

import config
from camera.compliance import MODE_KEYPOINT, MODE_MOTION, Zone, parse_zone

if TYPE_CHECKING:
    from camera.base_source import SignalSourceProtocol

logger = logging.getLogger(__name__)


def create_signal_source(backend: Optional[str] = None,
                         zone: Optional[Zone] = None) -> "SignalSourceProtocol":
    """
    Create a signal source based on the configured backend.

    Uses SIGNAL_BACKEND from config unless backend is given.
    Supported backends: "motion" (default), "keypoint"

    Args:
        backend: Override for config.SIGNAL_BACKEND
        zone: Zone the motion backend measures (defaults to config.ZONE)

    Returns:
        SignalSourceProtocol: The appropriate signal source instance
    """
    backend = (backend or config.SIGNAL_BACKEND).lower()

    if backend == MODE_KEYPOINT:
        from camera.pose_source import KeypointSignalSource
        logger.info("Using keypoint signal source")
        return KeypointSignalSource()

    from camera.motion_source import MotionSignalSource
    if backend != MODE_MOTION:
        # Unknown backend - log warning and fallback to motion
        logger.warning(f"Unknown signal backend '{backend}', defaulting to motion. "
                       f"Supported backends: 'motion', 'keypoint'")
    else:
        logger.info("Using motion signal source")
    return MotionSignalSource(zone=zone or parse_zone(config.ZONE))
