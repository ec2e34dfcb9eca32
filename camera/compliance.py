"""Zone geometry and compliance evaluation for presence signals."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

MODE_MOTION = "motion"
MODE_KEYPOINT = "keypoint"


@dataclass(frozen=True)
class RectZone:
    """Axis-aligned rectangle in canvas-relative [0,1] coordinates."""
    left: float
    top: float
    right: float
    bottom: float

    def __post_init__(self):
        for value in (self.left, self.top, self.right, self.bottom):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Zone coordinates must be within [0, 1]: {self}")
        if self.left >= self.right or self.top >= self.bottom:
            raise ValueError(f"Zone has no area: {self}")

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def bounds(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom


@dataclass(frozen=True)
class CircleZone:
    """Point plus radius in canvas-relative [0,1] coordinates."""
    x: float
    y: float
    radius: float

    def __post_init__(self):
        if not (0.0 <= self.x <= 1.0 and 0.0 <= self.y <= 1.0):
            raise ValueError(f"Zone centre must be within [0, 1]: {self}")
        if self.radius <= 0:
            raise ValueError(f"Zone radius must be positive: {self}")

    def contains(self, x: float, y: float) -> bool:
        return (x - self.x) ** 2 + (y - self.y) ** 2 <= self.radius ** 2

    def bounds(self) -> Tuple[float, float, float, float]:
        return (
            max(0.0, self.x - self.radius),
            max(0.0, self.y - self.radius),
            min(1.0, self.x + self.radius),
            min(1.0, self.y + self.radius),
        )


Zone = Union[RectZone, CircleZone]


def parse_zone(text: str) -> Zone:
    """
    Parse a zone from its config string.

    Examples:
        >>> parse_zone("rect:0.2,0.1,0.8,0.9")
        RectZone(left=0.2, top=0.1, right=0.8, bottom=0.9)
        >>> parse_zone("circle:0.5,0.4,0.1")
        CircleZone(x=0.5, y=0.4, radius=0.1)

    Raises:
        ValueError: If the string is malformed.
    """
    kind, _, values = text.strip().partition(":")
    try:
        numbers = [float(part) for part in values.split(",")]
    except ValueError:
        raise ValueError(f"Zone values must be numbers: {text!r}")

    kind = kind.lower()
    if kind == "rect" and len(numbers) == 4:
        return RectZone(*numbers)
    if kind == "circle" and len(numbers) == 3:
        return CircleZone(*numbers)
    raise ValueError(f"Unrecognised zone {text!r}; use 'rect:l,t,r,b' or 'circle:x,y,r'")


@dataclass
class PresenceSignal:
    """
    One sample from a signal source.

    A source either reports compliance directly (compliant), or hands over
    raw measurements: a motion magnitude (None until a second frame exists)
    or a tracked point with its confidence (position None when nothing was
    tracked).
    """
    compliant: Optional[bool] = None
    magnitude: Optional[float] = None
    position: Optional[Tuple[float, float]] = None
    confidence: float = 0.0


def frame_delta(previous: np.ndarray, current: np.ndarray, zone: Zone) -> float:
    """
    Mean absolute per-channel pixel difference inside the zone.

    Args:
        previous: Earlier frame (H x W x C or H x W).
        current: Later frame with the same shape.
        zone: Region of interest; its bounding box is used.

    Returns:
        Average delta in pixel units (0-255 for 8-bit frames).
    """
    if previous.shape != current.shape:
        raise ValueError(f"Frame shapes differ: {previous.shape} vs {current.shape}")

    height, width = current.shape[:2]
    left, top, right, bottom = zone.bounds()
    x0, y0 = int(left * width), int(top * height)
    x1 = max(x0 + 1, int(round(right * width)))
    y1 = max(y0 + 1, int(round(bottom * height)))

    before = previous[y0:y1, x0:x1].astype(np.int16)
    after = current[y0:y1, x0:x1].astype(np.int16)
    return float(np.abs(after - before).mean())


class ComplianceEvaluator:
    """
    Turns a PresenceSignal plus zone into a compliant / non-compliant flag.

    Motion mode thresholds the magnitude; whether motion or stillness is the
    compliant outcome is a flag. Keypoint mode checks the mirror-corrected
    point against the zone and treats low confidence as having left it.
    """

    def __init__(self, mode: str = MODE_MOTION, motion_threshold: float = 6.0,
                 compliant_when_still: bool = True, min_confidence: float = 0.5,
                 mirrored: bool = True):
        if mode not in (MODE_MOTION, MODE_KEYPOINT):
            raise ValueError(f"Unknown compliance mode: {mode}")
        self.mode = mode
        self.motion_threshold = motion_threshold
        self.compliant_when_still = compliant_when_still
        self.min_confidence = min_confidence
        self.mirrored = mirrored

    @property
    def supports_targets(self) -> bool:
        """Whether the evaluator can judge a point target (attention checks)."""
        return self.mode == MODE_KEYPOINT

    def evaluate(self, signal: PresenceSignal, zone: Zone) -> bool:
        if signal.compliant is not None:
            return signal.compliant
        if self.mode == MODE_KEYPOINT:
            return self._evaluate_point(signal, zone)
        return self._evaluate_motion(signal)

    def _evaluate_point(self, signal: PresenceSignal, zone: Zone) -> bool:
        if signal.position is None or signal.confidence < self.min_confidence:
            return False
        x, y = signal.position
        if self.mirrored:
            x = 1.0 - x
        return zone.contains(x, y)

    def _evaluate_motion(self, signal: PresenceSignal) -> bool:
        # No previous frame to compare against yet
        if signal.magnitude is None:
            return True
        moving = signal.magnitude > self.motion_threshold
        return not moving if self.compliant_when_still else moving
