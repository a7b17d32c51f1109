"""Cadence engine.

Pure functions mapping a pay cadence to its period length and deciding
whether a period id lies on a period boundary. Period ids are unix
timestamps aligned to the cadence duration.

Period 0 is reserved: it is never aligned, so no schedule can mark it
processed or paid.
"""

from __future__ import annotations

from enum import Enum


class Cadence(str, Enum):
    """How often an employee is paid."""

    MINUTE = "minute"
    HOURLY = "hourly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


CADENCE_SECONDS: dict[Cadence, int] = {
    Cadence.MINUTE: 60,
    Cadence.HOURLY: 60 * 60,
    Cadence.BIWEEKLY: 14 * 24 * 60 * 60,
    Cadence.MONTHLY: 30 * 24 * 60 * 60,
}

# Integer codes used by the deployed contracts
_LEGACY_CODES: dict[int, Cadence] = {
    0: Cadence.HOURLY,
    1: Cadence.BIWEEKLY,
    2: Cadence.MONTHLY,
    3: Cadence.MINUTE,
}


def parse_cadence(value: Cadence | str | int) -> Cadence:
    """Coerce an enum member, a name ("Monthly", "monthly") or a contract code.

    Raises:
        ValueError: If the value names no known cadence
    """
    if isinstance(value, Cadence):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Unknown cadence: {value!r}")
    if isinstance(value, int):
        try:
            return _LEGACY_CODES[value]
        except KeyError:
            raise ValueError(f"Unknown cadence code: {value}") from None
    try:
        return Cadence(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown cadence: {value!r}") from None


def duration_seconds(cadence: Cadence) -> int:
    """Length of one period in seconds."""
    return CADENCE_SECONDS[Cadence(cadence)]


def is_aligned(cadence: Cadence, period_id: int) -> bool:
    """True if period_id is a positive multiple of the cadence duration."""
    if period_id <= 0:
        return False
    return period_id % duration_seconds(cadence) == 0


def next_aligned_period(cadence: Cadence, last_paid: int, now: int) -> int:
    """Next period boundary an employee should be paid for.

    Never-paid employees (last_paid == 0) get the boundary at or before
    ``now``; otherwise the first boundary strictly after ``last_paid``.
    """
    duration = duration_seconds(cadence)
    if last_paid == 0:
        return (now // duration) * duration
    return ((last_paid + duration) // duration) * duration
