"""
Wait-time estimation.

A heuristic: patients ahead times the provider's average consultation time,
discounted for emergencies and scaled by the hour's peak/lull bucket. The
estimate is advisory and never blocks a booking.
"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..config import get_settings
from ..models.queue import WaitEstimate
from .clock import TimeBucket, time_bucket

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def estimate(
    queue_position_ahead: int,
    avg_consult_minutes: float,
    is_emergency: bool,
    hour_of_day: int
) -> int:
    """
    Estimated minutes until a token is called.

    `queue_position_ahead` counts the waiting tokens that arrived before the
    subject, ignoring emergency re-ranking. An empty queue ahead is still
    priced as one consultation, the one that may be in progress. The result is
    rounded to the nearest minute and never below the configured minimum
    (5 by default).
    """
    if queue_position_ahead < 0:
        raise ValueError("queue_position_ahead must be non-negative")
    if avg_consult_minutes is None or avg_consult_minutes <= 0:
        raise ValueError("avg_consult_minutes must be positive")
    if not math.isfinite(avg_consult_minutes):
        raise ValueError("avg_consult_minutes must be finite")

    settings = get_settings()
    minutes = max(queue_position_ahead, 1) * avg_consult_minutes

    if is_emergency:
        minutes *= settings.EMERGENCY_FACTOR

    bucket = time_bucket(hour_of_day)
    if bucket == TimeBucket.PEAK:
        minutes *= settings.PEAK_FACTOR
    elif bucket == TimeBucket.LULL:
        minutes *= settings.LULL_FACTOR

    if not math.isfinite(minutes):
        raise ValueError("estimate out of range")
    return max(settings.MIN_WAIT_MINUTES, _round_half_up(minutes))


def estimate_or_default(
    queue_position_ahead: Optional[int],
    avg_consult_minutes: Optional[float],
    is_emergency: bool,
    hour_of_day: Optional[int]
) -> WaitEstimate:
    """Like `estimate`, but falls back to the default with a degraded flag instead of raising."""
    try:
        if queue_position_ahead is None or hour_of_day is None:
            raise ValueError("missing estimator input")
        minutes = estimate(queue_position_ahead, avg_consult_minutes, is_emergency, hour_of_day)
    except (TypeError, ValueError, ArithmeticError) as e:
        settings = get_settings()
        logger.warning("Wait estimate degraded to default: %s", e)
        return WaitEstimate(minutes=int(settings.DEFAULT_CONSULT_MINUTES), degraded=True)
    return WaitEstimate(minutes=minutes)
