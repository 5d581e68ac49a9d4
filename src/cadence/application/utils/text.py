"""Human-readable renderings of intervals, due deltas and elapsed time."""

import math
from datetime import datetime

from cadence.domain.constants import MINUTES_PER_DAY, MINUTES_PER_HOUR


def format_interval(minutes: int) -> str:
    """
    Render an interval as minutes (<1h), hours (<1d) or days.

    >>> format_interval(45)
    '45 minutes'
    >>> format_interval(90)
    '1 hours'
    >>> format_interval(4320)
    '3 days'
    """
    if minutes < MINUTES_PER_HOUR:
        return f"{minutes} minutes"
    if minutes < MINUTES_PER_DAY:
        return f"{minutes // MINUTES_PER_HOUR} hours"
    return f"{minutes // MINUTES_PER_DAY} days"


def minutes_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 60


def describe_due_delta(now: datetime, next_review_date: datetime | None) -> str:
    """
    Describe how far a card's due time is from `now`, in whole minutes.

    Overdue cards read "Overdue by N minutes"; cards due now or later read
    "Due in N minutes". Cards that were never scheduled read "Not scheduled".
    """
    if next_review_date is None:
        return "Not scheduled"
    delta = minutes_between(now, next_review_date)
    if delta > 0:
        return f"Overdue by {math.floor(delta)} minutes"
    return f"Due in {math.floor(-delta)} minutes"


def format_elapsed(seconds: float) -> str:
    """Render elapsed seconds as m:ss."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"


def format_preview(minutes: int) -> str:
    """Short estimate shown next to an answer button, e.g. "~12 min"."""
    return f"~{minutes} min"
