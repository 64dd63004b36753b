from __future__ import annotations

import datetime as _dt
import random
from typing import Protocol

MINUTE_CHOICES: tuple[int, ...] = (0, 15, 30, 45)

_rng = random.Random()


class DueDateBounds(Protocol):
    min_days_ahead: int
    max_days_ahead: int
    earliest_hour: int
    latest_hour: int


def _pick(rng: random.Random, low: int, high: int) -> int:
    # Inverted bounds collapse to the lower one
    return rng.randint(low, max(low, high))


def generate_due_date(
    settings: DueDateBounds,
    *,
    now: _dt.datetime | None = None,
    rng: random.Random | None = None,
) -> _dt.datetime:
    """Return a random future due date within the configured bounds.

    Days ahead and hour are drawn uniformly from their inclusive ranges, the
    minute from quarter hours. The date is `now` shifted by the chosen number
    of calendar days with the time of day replaced; seconds are always zero.

    Arithmetic happens on the wall-clock value, so the chosen hour holds
    across a DST change. A missing or naive `now` is local time and the
    result is localised with the offset in force on the due day.
    """
    r = rng or _rng
    base = now or _dt.datetime.now()
    days_ahead = _pick(r, settings.min_days_ahead, settings.max_days_ahead)
    hour = _pick(r, settings.earliest_hour, settings.latest_hour)
    minute = r.choice(MINUTE_CHOICES)
    wall = base.replace(tzinfo=None) + _dt.timedelta(days=days_ahead)
    due = wall.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if base.tzinfo is None:
        return due.astimezone()
    return due.replace(tzinfo=base.tzinfo)


__all__ = ["DueDateBounds", "MINUTE_CHOICES", "generate_due_date"]
