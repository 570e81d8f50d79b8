"""
Execution time resolution.
"""

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any


def utcnow() -> datetime:
    """Current time as naive UTC, the format stored in the labours table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_seconds(value: Any) -> float | None:
    """
    Interpret a value as a number of seconds.

    Accepts ints, floats, Decimals, numeric strings and timedeltas.
    Booleans are not numbers here.

    Returns:
        The number of seconds, or None if the value is not numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (int, float, Decimal)):
        seconds = float(value)
    elif isinstance(value, str):
        try:
            seconds = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(seconds):
        return None
    return seconds


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_execute_at(
    default_delay: Any,
    delay: Any = None,
    now: datetime | None = None,
) -> datetime:
    """
    Resolve when a labour becomes eligible for reservation.

    Precedence:
    1. No override (None or False): now + default_delay.
    2. Numeric override: now + delay seconds.
    3. datetime override: that exact instant.
    4. Unusable override: now + default_delay.

    A non-numeric default_delay counts as zero seconds, so the result may
    be `now` itself.

    Args:
        default_delay: The worker's configured delay in seconds.
        delay: Optional override, seconds or an absolute datetime.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        The execution time as naive UTC.
    """
    now = now or utcnow()
    base = now + timedelta(seconds=_as_seconds(default_delay) or 0)

    if delay is None or delay is False:
        return base

    seconds = _as_seconds(delay)
    if seconds is not None:
        return now + timedelta(seconds=seconds)

    if isinstance(delay, datetime):
        return _as_naive_utc(delay)

    return base
