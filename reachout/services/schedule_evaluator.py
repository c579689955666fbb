"""Scheduled availability of a donor.

A donor's schedule combines recurring weekly slots with date-range overrides
("custom ranges"). Evaluation happens in the donor's own time zone:

* a disabled (or missing) schedule never restricts the donor;
* custom ranges covering the local date and time are consulted first, and an
  ``is_available=False`` range beats any ``is_available=True`` one;
* otherwise the donor is available inside any active weekly slot of that
  day of the week (0 = Sunday);
* otherwise the donor is unavailable.

Slot and range bounds are half-open, ``[start, end)``.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_LOOKAHEAD_DAYS = 90
DEFAULT_STEP_MINUTES = 1


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: Optional[datetime] = None  # None: open-ended

    def to_dict(self):
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat() if self.end else None,
        }


def _as_utc(instant):
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _restore_form(instant, like):
    # Hand back naive UTC when the caller passed naive UTC
    if like.tzinfo is None:
        return instant.astimezone(timezone.utc).replace(tzinfo=None)
    return instant


def day_of_week(local_date):
    """0 = Sunday ... 6 = Saturday"""
    return (local_date.weekday() + 1) % 7


def _range_applies(custom, local_date, local_time):
    if not (custom.start_date <= local_date <= custom.end_date):
        return False
    start = custom.start_time or time.min
    if local_time < start:
        return False
    return custom.end_time is None or local_time < custom.end_time


def _slot_applies(slot, dow, local_time):
    return (slot.is_active
            and slot.day_of_week == dow
            and slot.start_time <= local_time < slot.end_time)


def _evaluate(schedule, zone, instant_utc):
    local = instant_utc.astimezone(zone)
    local_date, local_time = local.date(), local.time().replace(tzinfo=None)

    matching = [c for c in schedule.custom_ranges if _range_applies(c, local_date, local_time)]
    if matching:
        return all(c.is_available for c in matching)

    dow = day_of_week(local_date)
    return any(_slot_applies(slot, dow, local_time) for slot in schedule.weekly_slots)


def is_available(schedule, donor_timezone, instant) -> bool:
    if schedule is None or not schedule.enabled:
        return True
    return _evaluate(schedule, ZoneInfo(donor_timezone), _as_utc(instant))


def _walk(start, horizon, step):
    yield start
    cursor = start.replace(second=0, microsecond=0) + step
    while cursor < horizon:
        yield cursor
        cursor += step


def next_available_window(schedule, donor_timezone, after_instant,
                          lookahead_days=DEFAULT_LOOKAHEAD_DAYS,
                          step_minutes=DEFAULT_STEP_MINUTES) -> Optional[TimeRange]:
    """First contiguous available interval at or after ``after_instant``.

    The search steps forward ``step_minutes`` at a time and gives up after
    ``lookahead_days``. A window still open at the horizon is cut there.
    """
    if schedule is None or not schedule.enabled:
        return TimeRange(start=after_instant)

    zone = ZoneInfo(donor_timezone)
    origin = _as_utc(after_instant)
    horizon = origin + timedelta(days=lookahead_days)
    step = timedelta(minutes=step_minutes)

    start = None
    for cursor in _walk(origin, horizon, step):
        available = _evaluate(schedule, zone, cursor)
        if start is None and available:
            start = cursor
        elif start is not None and not available:
            return TimeRange(_restore_form(start, after_instant), _restore_form(cursor, after_instant))

    if start is None:
        return None
    return TimeRange(_restore_form(start, after_instant), _restore_form(horizon, after_instant))
