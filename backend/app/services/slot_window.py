"""
Slot time predicates.

The single place where a reservation window is compared with the clock.
`now` is always passed in so state machines stay testable without real time.
"""
from datetime import datetime


def slot_has_started(start_at: datetime, now: datetime) -> bool:
    return start_at <= now


def slot_is_active(start_at: datetime, end_at: datetime, now: datetime) -> bool:
    """True while `now` lies inside the inclusive window [start_at, end_at]."""
    return start_at <= now <= end_at


def slot_has_ended(end_at: datetime, now: datetime) -> bool:
    """True once `now` is strictly past the end of the window."""
    return now > end_at
