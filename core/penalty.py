"""Penalty policy: how much time a violation adds."""

import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from core.errors import InvalidConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PenaltyBand:
    """Inclusive [min_seconds, max_seconds] range a penalty is drawn from."""
    min_seconds: int
    max_seconds: int


def make_bands(pairs: Iterable[Tuple[int, int]]) -> List[PenaltyBand]:
    """
    Build and validate penalty bands from (min, max) pairs.

    Raises:
        InvalidConfig: If there are no bands, or a band is negative or inverted.
    """
    bands = [PenaltyBand(int(low), int(high)) for low, high in pairs]
    if not bands:
        raise InvalidConfig("At least one penalty band is required")
    for band in bands:
        if band.min_seconds < 0 or band.min_seconds > band.max_seconds:
            raise InvalidConfig(
                f"Invalid penalty band [{band.min_seconds}, {band.max_seconds}]"
            )
    return bands


def band_for(violation_count: int, bands: Sequence[PenaltyBand]) -> PenaltyBand:
    """
    Pick the band for the n-th violation.

    The first violation uses bands[0], the second bands[1], and so on; once
    the table runs out the last band applies. A single-band table is
    therefore the fixed (non-escalating) policy.
    """
    index = min(max(violation_count, 1), len(bands)) - 1
    return bands[index]


def compute_penalty(violation_count: int, bands: Sequence[PenaltyBand],
                    rng: random.Random) -> int:
    """
    Draw the penalty for a violation.

    Args:
        violation_count: Count including the violation being penalised (>= 1).
        bands: Penalty table, see band_for().
        rng: Session random source.

    Returns:
        Uniform random integer seconds within the selected band.
    """
    band = band_for(violation_count, bands)
    return rng.randint(band.min_seconds, band.max_seconds)


def clamp_penalty(penalty: int, remaining_seconds: int,
                  bound_seconds: Optional[int]) -> int:
    """
    Limit a penalty so remaining + penalty never exceeds the session bound.

    Returns:
        The seconds that may actually be added (0 when already at the bound).
    """
    if bound_seconds is None:
        return penalty
    allowed = max(0, min(penalty, bound_seconds - remaining_seconds))
    if allowed < penalty:
        logger.debug(f"Penalty clamped from {penalty}s to {allowed}s (bound {bound_seconds}s)")
    return allowed
