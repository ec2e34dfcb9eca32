"""Configuration settings for Stillwatch."""

import logging
import os
from pathlib import Path
from typing import List, Tuple
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Explicitly load from the project root (where config.py lives)
# This ensures .env is found regardless of current working directory
_env_path = Path(__file__).parent / ".env"
load_dotenv(_env_path)

BASE_DIR = Path(__file__).parent


def _get_bool(env_var: str, default: bool) -> bool:
    """
    Read a boolean flag from the environment.

    Args:
        env_var: Environment variable name.
        default: Value used when the variable is unset or empty.

    Returns:
        True for "true", "1", "yes", "on" (case-insensitive), False otherwise.
    """
    value = os.getenv(env_var, "")
    if not value:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _get_int(env_var: str, default: int) -> int:
    """Read an integer from the environment, falling back on bad input."""
    value = os.getenv(env_var, "")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{env_var}={value!r} is not an integer, using {default}")
        return default


def _get_float(env_var: str, default: float) -> float:
    """Read a float from the environment, falling back on bad input."""
    value = os.getenv(env_var, "")
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{env_var}={value!r} is not a number, using {default}")
        return default


def _get_range(env_var: str, default: Tuple[float, float]) -> Tuple[float, float]:
    """
    Read a "low-high" range from the environment.

    Args:
        env_var: Environment variable name.
        default: (low, high) used when unset or malformed.

    Returns:
        Tuple of (low, high) floats.
    """
    value = os.getenv(env_var, "")
    if not value:
        return default
    try:
        low, high = (float(part) for part in value.split("-", 1))
        return low, high
    except ValueError:
        logger.warning(f"{env_var}={value!r} is not a 'low-high' range, using {default}")
        return default


def _get_bands(env_var: str, default: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    """
    Read penalty bands written as "15-30,30-60,60-120".

    Returns:
        List of (min_seconds, max_seconds) tuples, or the default.
    """
    value = os.getenv(env_var, "")
    if not value:
        return default
    try:
        bands = []
        for chunk in value.split(","):
            low, high = chunk.strip().split("-", 1)
            bands.append((int(low), int(high)))
        return bands
    except ValueError:
        logger.warning(f"{env_var}={value!r} is not a list of 'min-max' bands, using default")
        return default


# Session duration
# The session length is drawn uniformly from [MIN_DURATION, MAX_DURATION]
# in DURATION_UNIT ("minutes" or "seconds").
DURATION_UNIT = os.getenv("DURATION_UNIT", "minutes")
MIN_DURATION = _get_int("MIN_DURATION", 1)
MAX_DURATION = _get_int("MAX_DURATION", 10)
UNIT_SECONDS = {"minutes": 60, "seconds": 1}

# Bounded sessions never grow past the maximum duration, however many
# penalties are added.
BOUNDED_SESSION = _get_bool("BOUNDED_SESSION", True)

# Countdown before monitoring starts, giving the subject time to settle
GRACE_SECONDS = _get_int("GRACE_SECONDS", 10)

# After a penalty, further violations are ignored for this long
SETTLE_SECONDS = _get_int("SETTLE_SECONDS", 8)

# Penalty bands: (min_seconds, max_seconds) picked by violation count.
# "fixed" always uses the single band; "escalating" steps through the list
# and stays on the last band from then on.
PENALTY_MODE = os.getenv("PENALTY_MODE", "fixed")
PENALTY_BANDS_FIXED = _get_bands("PENALTY_BANDS_FIXED", [(15, 60)])
PENALTY_BANDS_ESCALATING = _get_bands("PENALTY_BANDS_ESCALATING", [(15, 30), (30, 60), (60, 120)])

# Signal backend: "motion" (pixel difference) or "keypoint" (MediaPipe Pose)
SIGNAL_BACKEND = os.getenv("SIGNAL_BACKEND", "motion")

# Zone in mirrored, canvas-relative [0,1] coordinates.
# "rect:left,top,right,bottom" or "circle:x,y,radius"
ZONE = os.getenv("ZONE", "rect:0.0,0.0,1.0,1.0")

# Motion backend: mean absolute per-channel pixel delta (0-255) over the zone
MOTION_THRESHOLD = _get_float("MOTION_THRESHOLD", 6.0)
# True: stillness sessions (motion is a violation). False: presence sessions.
COMPLIANT_WHEN_STILL = _get_bool("COMPLIANT_WHEN_STILL", True)

# Keypoint backend
KEYPOINT_MIN_CONFIDENCE = _get_float("KEYPOINT_MIN_CONFIDENCE", 0.5)
KEYPOINT_LANDMARK = _get_int("KEYPOINT_LANDMARK", 0)  # MediaPipe Pose nose

# Attention checks (keypoint backend only)
ATTENTION_CHECKS_ENABLED = _get_bool("ATTENTION_CHECKS_ENABLED", False)
ATTENTION_CHECK_DELAY_RANGE = _get_range("ATTENTION_CHECK_DELAY_RANGE", (60.0, 180.0))
ATTENTION_CHECK_TIMEOUT_SECONDS = _get_int("ATTENTION_CHECK_TIMEOUT_SECONDS", 10)
ATTENTION_CHECK_TOLERANCE = _get_float("ATTENTION_CHECK_TOLERANCE", 0.12)
ATTENTION_CHECK_MARGIN = 0.15  # Keep targets away from the frame edges

# Random praise
PRAISE_DELAY_RANGE = _get_range("PRAISE_DELAY_RANGE", (45.0, 90.0))

# Phrases. Selection is uniform; repeats are allowed.
PRAISE_PHRASES = [
    "Good. Stay exactly like that.",
    "Perfect stillness.",
    "I hope you're enjoying this as much as I am.",
]
NEGATIVE_PHRASES = [
    "Stillness lost. {seconds} seconds added.",
    "Movement detected. Adding {seconds} seconds.",
]
REMINDER_PHRASE = "Return to stillness."
PREPARE_PHRASE = "Get into position. Monitoring begins shortly."
COMPLETION_PHRASE = "Session complete. Well done."
ATTENTION_CHALLENGE_PHRASES = [
    "Attention check. Move to the marked point now.",
    "Show me you are listening. Reach the target.",
]
ATTENTION_SUCCESS_PHRASES = [
    "Good. Back to your position.",
    "Well caught.",
]

# Narrator
VOICE_ENABLED = _get_bool("VOICE_ENABLED", True)
VOICE_RATE = _get_int("VOICE_RATE", 180)  # Words per minute, slightly slow

# Camera Configuration
CAMERA_INDEX = _get_int("CAMERA_INDEX", 0)
FRAME_WIDTH = 640
FRAME_HEIGHT = 480
SAMPLE_INTERVAL = 0.03  # Seconds between sampling attempts (display cadence)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
