"""
Compressor short-cycle protection.

The relay may only be energized once the equipment has rested for the
minimum off time since it was last switched off. The last-off instant comes
from the persisted state, so the guard keeps holding across restarts.
"""

from datetime import datetime, timedelta

DEFAULT_MIN_OFF_TIME = timedelta(minutes=4)


def may_activate(last_off: datetime, now: datetime, min_off_time: timedelta = DEFAULT_MIN_OFF_TIME) -> bool:
    """True iff at least ``min_off_time`` has passed since ``last_off`` (inclusive)."""
    return now - last_off >= min_off_time


class CompressorGuard:
    """Minimum-off-time check bound to one policy value."""

    def __init__(self, min_off_time: timedelta = DEFAULT_MIN_OFF_TIME):
        self.min_off_time = min_off_time

    def may_activate(self, last_off: datetime, now: datetime) -> bool:
        return may_activate(last_off, now, self.min_off_time)

    def remaining(self, last_off: datetime, now: datetime) -> timedelta:
        """Time left before activation is allowed (zero when already allowed)."""
        return max(timedelta(0), self.min_off_time - (now - last_off))

    def __repr__(self) -> str:
        return f"CompressorGuard(min_off_time={self.min_off_time})"
