"""Per-session settings snapshot."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import config
from camera.compliance import MODE_KEYPOINT, MODE_MOTION, Zone, parse_zone
from core.errors import InvalidConfig
from core.penalty import PenaltyBand, make_bands


@dataclass
class SessionSettings:
    """
    Everything a session needs, captured once at construction.

    Defaults mirror config.py; use from_config() to pick up environment
    overrides. Durations are in duration_unit, delays in seconds.
    """
    min_duration: int = 1
    max_duration: int = 10
    duration_unit: str = "minutes"
    bounded: bool = True
    bound_seconds: Optional[int] = None  # None with bounded=True means max_duration
    grace_seconds: int = 10
    settle_seconds: int = 8
    penalty_bands: List[PenaltyBand] = field(default_factory=lambda: [PenaltyBand(15, 60)])
    backend: str = MODE_MOTION
    zone: Zone = field(default_factory=lambda: parse_zone("rect:0,0,1,1"))
    motion_threshold: float = 6.0
    compliant_when_still: bool = True
    min_confidence: float = 0.5
    praise_delay_range: Tuple[float, float] = (45.0, 90.0)
    attention_checks_enabled: bool = False
    attention_delay_range: Tuple[float, float] = (60.0, 180.0)
    attention_timeout_seconds: int = 10
    attention_tolerance: float = 0.12
    attention_margin: float = 0.15
    praise_phrases: List[str] = field(default_factory=lambda: list(config.PRAISE_PHRASES))
    negative_phrases: List[str] = field(default_factory=lambda: list(config.NEGATIVE_PHRASES))
    reminder_phrase: str = config.REMINDER_PHRASE
    prepare_phrase: str = config.PREPARE_PHRASE
    completion_phrase: str = config.COMPLETION_PHRASE
    attention_challenge_phrases: List[str] = field(
        default_factory=lambda: list(config.ATTENTION_CHALLENGE_PHRASES))
    attention_success_phrases: List[str] = field(
        default_factory=lambda: list(config.ATTENTION_SUCCESS_PHRASES))

    @classmethod
    def from_config(cls) -> "SessionSettings":
        """Build settings from the config module (and its .env overrides)."""
        if config.PENALTY_MODE == "escalating":
            bands = config.PENALTY_BANDS_ESCALATING
        else:
            bands = config.PENALTY_BANDS_FIXED

        try:
            zone = parse_zone(config.ZONE)
        except ValueError as e:
            raise InvalidConfig(str(e)) from e

        return cls(
            min_duration=config.MIN_DURATION,
            max_duration=config.MAX_DURATION,
            duration_unit=config.DURATION_UNIT,
            bounded=config.BOUNDED_SESSION,
            grace_seconds=config.GRACE_SECONDS,
            settle_seconds=config.SETTLE_SECONDS,
            penalty_bands=make_bands(bands),
            backend=config.SIGNAL_BACKEND,
            zone=zone,
            motion_threshold=config.MOTION_THRESHOLD,
            compliant_when_still=config.COMPLIANT_WHEN_STILL,
            min_confidence=config.KEYPOINT_MIN_CONFIDENCE,
            praise_delay_range=config.PRAISE_DELAY_RANGE,
            attention_checks_enabled=config.ATTENTION_CHECKS_ENABLED,
            attention_delay_range=config.ATTENTION_CHECK_DELAY_RANGE,
            attention_timeout_seconds=config.ATTENTION_CHECK_TIMEOUT_SECONDS,
            attention_tolerance=config.ATTENTION_CHECK_TOLERANCE,
            attention_margin=config.ATTENTION_CHECK_MARGIN,
        )

    @property
    def unit_seconds(self) -> int:
        return config.UNIT_SECONDS[self.duration_unit]

    def validate(self) -> None:
        """
        Check settings that do not depend on the start request.

        Raises:
            InvalidConfig: Describing the first problem found.
        """
        if self.duration_unit not in config.UNIT_SECONDS:
            raise InvalidConfig(f"Unknown duration unit: {self.duration_unit!r}")
        if self.backend not in (MODE_MOTION, MODE_KEYPOINT):
            raise InvalidConfig(f"Unknown signal backend: {self.backend!r}")
        if not self.penalty_bands:
            raise InvalidConfig("At least one penalty band is required")
        for band in self.penalty_bands:
            if band.min_seconds < 0 or band.min_seconds > band.max_seconds:
                raise InvalidConfig(f"Invalid penalty band {band}")
        if self.grace_seconds < 0 or self.settle_seconds < 0:
            raise InvalidConfig("Grace and settle delays must be >= 0")
        for name in ("praise_delay_range", "attention_delay_range"):
            low, high = getattr(self, name)
            if low <= 0 or low > high:
                raise InvalidConfig(f"{name} must satisfy 0 < low <= high, got {(low, high)}")
        if self.attention_checks_enabled:
            if self.backend != MODE_KEYPOINT:
                raise InvalidConfig("Attention checks need the keypoint backend")
            if self.attention_timeout_seconds <= 0:
                raise InvalidConfig("attention_timeout_seconds must be positive")
        if self.bound_seconds is not None and self.bound_seconds <= 0:
            raise InvalidConfig("bound_seconds must be positive")
        if not self.negative_phrases or not self.praise_phrases:
            raise InvalidConfig("Praise and negative phrase sets must not be empty")
