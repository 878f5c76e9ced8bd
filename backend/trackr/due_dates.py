"""Due-date classification.

Urgency classes, given a due timestamp and the current time:
- overdue:  due_at < now
- due_soon: now <= due_at <= now + window
- normal:   no due date, or due beyond the window
"""

import math
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

DEFAULT_DUE_SOON_WINDOW = timedelta(hours=24)

DueValue = Union[datetime, date, str, None]


class Urgency(Enum):
    """Urgency class of a task relative to its due date."""

    NORMAL = "normal"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"


class InvalidTimestamp(ValueError):
    """Raised when a due date cannot be interpreted as a point in time."""


def to_utc(value: DueValue) -> Optional[datetime]:
    """Normalize a stored due value to an aware UTC datetime.

    Naive datetimes are taken to be UTC, bare dates mean midnight UTC and
    strings must be ISO-8601.

    Raises:
        InvalidTimestamp: If the value is not a usable timestamp
    """
    if value is None:
        return None

    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidTimestamp(f"Unparsable due date {value!r}") from e

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    raise InvalidTimestamp(f"Unsupported due date type {type(value).__name__}")


def classify_due_date(
    due_at: DueValue,
    now: datetime,
    window: timedelta = DEFAULT_DUE_SOON_WINDOW,
) -> Urgency:
    """Classify a due date relative to now.

    Args:
        due_at: The task's due date (may be None)
        now: Current time supplied by the caller
        window: Lookahead for the due_soon class

    Returns:
        Urgency class

    Raises:
        InvalidTimestamp: If due_at or now is malformed
    """
    due = to_utc(due_at)
    if due is None:
        return Urgency.NORMAL

    current = to_utc(now)
    if due < current:
        return Urgency.OVERDUE
    if due - current <= window:
        return Urgency.DUE_SOON
    return Urgency.NORMAL


def days_until_due(due_at: DueValue, now: datetime) -> int:
    """Whole days until the due date, rounded up (0 if already due)."""
    due = to_utc(due_at)
    if due is None:
        return 0
    seconds = (due - to_utc(now)).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def days_overdue(due_at: DueValue, now: datetime) -> int:
    """Whole days past the due date, rounded up (0 if not overdue)."""
    due = to_utc(due_at)
    if due is None:
        return 0
    seconds = (to_utc(now) - due).total_seconds()
    return max(0, math.ceil(seconds / 86400))


class DueDateClassifier:
    """Classifier bound to a configured due_soon window."""

    def __init__(self, window: timedelta = DEFAULT_DUE_SOON_WINDOW):
        self.window = window

    def classify(self, due_at: DueValue, now: datetime) -> Urgency:
        return classify_due_date(due_at, now, self.window)
