"""Reads and writes of donor availability schedules.

All input is validated before the session is touched, so a rejected write
leaves the stored schedule exactly as it was.
"""
import logging
import re
from datetime import date, datetime, time

from reachout.errors import NotFoundError, PolicyViolation, ValidationError
from reachout.extensions import db
from reachout.models.availability_model import AvailabilitySchedule, CustomRange, WeeklySlot
from reachout.services.donor_store import get_donor

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def parse_time(value, field):
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationError(f'{field} must be in HH:MM format (24-hour)')
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


def parse_date(value, field):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def _parse_day(value):
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
        raise ValidationError('day_of_week must be between 0 (Sunday) and 6 (Saturday)')
    return value


def _parse_bool(value, field):
    if not isinstance(value, bool):
        raise ValidationError(f'{field} must be a boolean')
    return value


def get_schedule(donor_id):
    """The donor's schedule; an unsaved, disabled one if they never set it up."""
    donor = get_donor(donor_id)
    if donor.schedule is None:
        return AvailabilitySchedule(donor_id=donor.id, enabled=False)
    return donor.schedule


def _persist(schedule):
    if schedule.id is None:
        db.session.add(schedule)


def set_schedule_enabled(donor_id, enabled):
    enabled = _parse_bool(enabled, 'enabled')
    schedule = get_schedule(donor_id)
    schedule.enabled = enabled
    _persist(schedule)
    db.session.commit()
    logger.info('Scheduled availability %s for donor %s', 'enabled' if enabled else 'disabled', donor_id)
    return schedule


def _find_slot(schedule, slot_id):
    for slot in schedule.weekly_slots:
        if slot.id == slot_id:
            return slot
    raise NotFoundError('Weekly slot not found')


def upsert_weekly_slot(donor_id, data, slot_id=None):
    """Create a weekly slot, or update ``slot_id`` with the fields given in ``data``.

    Rejects ``end_time <= start_time`` (so no slot crosses midnight) and any
    active slot overlapping another active slot on the same day.
    """
    schedule = get_schedule(donor_id)
    existing = _find_slot(schedule, slot_id) if slot_id is not None else None

    if existing is None:
        for field in ('day_of_week', 'start_time', 'end_time'):
            if data.get(field) is None:
                raise ValidationError('day_of_week, start_time, and end_time are required')

    def pick(field, parse, default=None):
        if data.get(field) is not None:
            return parse(data[field])
        return getattr(existing, field) if existing is not None else default

    candidate = WeeklySlot(
        day_of_week=pick('day_of_week', _parse_day),
        start_time=pick('start_time', lambda v: parse_time(v, 'start_time')),
        end_time=pick('end_time', lambda v: parse_time(v, 'end_time')),
        is_active=pick('is_active', lambda v: _parse_bool(v, 'is_active'), default=True),
    )
    if candidate.end_time <= candidate.start_time:
        raise ValidationError('end_time must be later than start_time')

    if candidate.is_active:
        for other in schedule.weekly_slots:
            if other is existing or not other.is_active:
                continue
            if candidate.overlaps(other):
                raise PolicyViolation(
                    f'Slot {candidate.start_time:%H:%M}-{candidate.end_time:%H:%M} overlaps existing slot '
                    f'{other.start_time:%H:%M}-{other.end_time:%H:%M} on day {other.day_of_week}')

    if existing is None:
        schedule.weekly_slots.append(candidate)
        _persist(schedule)
        slot = candidate
    else:
        existing.day_of_week = candidate.day_of_week
        existing.start_time = candidate.start_time
        existing.end_time = candidate.end_time
        existing.is_active = candidate.is_active
        slot = existing

    db.session.commit()
    return slot


def delete_weekly_slot(donor_id, slot_id):
    schedule = get_schedule(donor_id)
    slot = _find_slot(schedule, slot_id)
    schedule.weekly_slots.remove(slot)
    db.session.commit()


def _find_range(schedule, range_id):
    for custom in schedule.custom_ranges:
        if custom.id == range_id:
            return custom
    raise NotFoundError('Custom availability not found')


def upsert_custom_range(donor_id, data, range_id=None):
    """Create a date-range override, or update ``range_id`` with the fields in ``data``.

    ``start_time``/``end_time`` are optional; passing ``None`` for either on
    update clears it. Both empty makes the range cover whole days.
    """
    schedule = get_schedule(donor_id)
    existing = _find_range(schedule, range_id) if range_id is not None else None

    if existing is None:
        if not data.get('start_date') or not data.get('end_date'):
            raise ValidationError('start_date and end_date are required')
        if 'is_available' not in data:
            raise ValidationError('is_available must be a boolean')

    def pick(field, parse):
        if field in data:
            return parse(data[field]) if data[field] not in (None, '') else None
        return getattr(existing, field) if existing is not None else None

    start_date = pick('start_date', lambda v: parse_date(v, 'start_date'))
    end_date = pick('end_date', lambda v: parse_date(v, 'end_date'))
    start_time = pick('start_time', lambda v: parse_time(v, 'start_time'))
    end_time = pick('end_time', lambda v: parse_time(v, 'end_time'))
    is_available = pick('is_available', lambda v: _parse_bool(v, 'is_available'))
    reason = pick('reason', str)

    if start_date is None or end_date is None:
        raise ValidationError('start_date and end_date are required')
    if is_available is None:
        raise ValidationError('is_available must be a boolean')
    if end_date < start_date:
        raise ValidationError('end_date must not be before start_date')
    if start_time is not None and end_time is not None and end_time <= start_time:
        raise ValidationError('end_time must be later than start_time')

    custom = existing or CustomRange()
    custom.start_date = start_date
    custom.end_date = end_date
    custom.start_time = start_time
    custom.end_time = end_time
    custom.is_available = is_available
    custom.reason = reason
    if existing is None:
        schedule.custom_ranges.append(custom)
        _persist(schedule)

    db.session.commit()
    return custom


def delete_custom_range(donor_id, range_id):
    schedule = get_schedule(donor_id)
    custom = _find_range(schedule, range_id)
    schedule.custom_ranges.remove(custom)
    db.session.commit()
