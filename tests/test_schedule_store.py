from datetime import date, time

import pytest

from reachout.errors import NotFoundError, PolicyViolation, ValidationError
from reachout.models.availability_model import WeeklySlot
from reachout.services import schedule_store


def test_schedule_defaults_to_disabled(make_donor):
    donor = make_donor()
    schedule = schedule_store.get_schedule(donor.id)
    assert schedule.enabled is False
    assert schedule.weekly_slots == []


def test_toggle_persists(make_donor):
    donor = make_donor()
    schedule_store.set_schedule_enabled(donor.id, True)
    assert schedule_store.get_schedule(donor.id).enabled is True
    schedule_store.set_schedule_enabled(donor.id, False)
    assert schedule_store.get_schedule(donor.id).enabled is False


def test_toggle_requires_boolean(make_donor):
    donor = make_donor()
    with pytest.raises(ValidationError):
        schedule_store.set_schedule_enabled(donor.id, 'yes')


def test_overlapping_slot_rejected(make_donor):
    donor = make_donor()
    schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '16:00', 'end_time': '20:00'})

    with pytest.raises(PolicyViolation) as excinfo:
        schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '09:00', 'end_time': '17:00'})

    assert excinfo.value.status_code == 422
    assert WeeklySlot.query.count() == 1


def test_touching_slots_do_not_overlap(make_donor):
    donor = make_donor()
    schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '16:00', 'end_time': '20:00'})
    schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '09:00', 'end_time': '16:00'})
    schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 3, 'start_time': '09:00', 'end_time': '17:00'})
    assert len(schedule_store.get_schedule(donor.id).weekly_slots) == 3


def test_inactive_slot_does_not_block(make_donor):
    donor = make_donor()
    first = schedule_store.upsert_weekly_slot(
        donor.id, {'day_of_week': 2, 'start_time': '16:00', 'end_time': '20:00', 'is_active': False})
    schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '09:00', 'end_time': '17:00'})

    # Reactivating it would now overlap
    with pytest.raises(PolicyViolation):
        schedule_store.upsert_weekly_slot(donor.id, {'is_active': True}, slot_id=first.id)


@pytest.mark.parametrize('data', [
    {'day_of_week': 1, 'start_time': '17:00', 'end_time': '09:00'},
    {'day_of_week': 1, 'start_time': '09:00', 'end_time': '09:00'},
    {'day_of_week': 1, 'start_time': '9am', 'end_time': '17:00'},
    {'day_of_week': 1, 'start_time': '24:00', 'end_time': '23:00'},
    {'day_of_week': 7, 'start_time': '09:00', 'end_time': '17:00'},
    {'day_of_week': 1, 'start_time': '09:00'},
])
def test_invalid_slot_rejected(make_donor, data):
    donor = make_donor()
    with pytest.raises(ValidationError):
        schedule_store.upsert_weekly_slot(donor.id, data)
    assert WeeklySlot.query.count() == 0


def test_update_slot_does_not_collide_with_itself(make_donor):
    donor = make_donor()
    slot = schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '09:00', 'end_time': '12:00'})
    updated = schedule_store.upsert_weekly_slot(donor.id, {'end_time': '13:00'}, slot_id=slot.id)
    assert updated.start_time == time(9, 0)
    assert updated.end_time == time(13, 0)


def test_delete_slot(make_donor):
    donor = make_donor()
    slot = schedule_store.upsert_weekly_slot(donor.id, {'day_of_week': 2, 'start_time': '09:00', 'end_time': '12:00'})
    schedule_store.delete_weekly_slot(donor.id, slot.id)
    assert WeeklySlot.query.count() == 0

    with pytest.raises(NotFoundError):
        schedule_store.delete_weekly_slot(donor.id, slot.id)


def test_slot_of_another_donor_not_found(make_donor):
    owner, other = make_donor(), make_donor()
    slot = schedule_store.upsert_weekly_slot(owner.id, {'day_of_week': 2, 'start_time': '09:00', 'end_time': '12:00'})
    with pytest.raises(NotFoundError):
        schedule_store.upsert_weekly_slot(other.id, {'end_time': '13:00'}, slot_id=slot.id)


def test_unknown_donor(app):
    with pytest.raises(NotFoundError):
        schedule_store.get_schedule(999)


def test_custom_range_create_and_update(make_donor):
    donor = make_donor()
    custom = schedule_store.upsert_custom_range(donor.id, {
        'start_date': '2026-03-09', 'end_date': '2026-03-13', 'is_available': False, 'reason': 'Travel'})
    assert custom.start_date == date(2026, 3, 9)
    assert custom.start_time is None

    updated = schedule_store.upsert_custom_range(
        donor.id, {'start_time': '08:00', 'end_time': '12:00'}, range_id=custom.id)
    assert updated.start_time == time(8, 0)
    assert updated.reason == 'Travel'
    assert updated.to_dict()['end_time'] == '12:00'

    cleared = schedule_store.upsert_custom_range(
        donor.id, {'start_time': None, 'end_time': None}, range_id=custom.id)
    assert cleared.start_time is None and cleared.end_time is None


@pytest.mark.parametrize('data', [
    {'start_date': '2026-03-13', 'end_date': '2026-03-09', 'is_available': False},
    {'start_date': '2026-03-09', 'end_date': '2026-03-13'},
    {'start_date': '2026-03-09', 'end_date': '2026-03-13', 'is_available': 'no'},
    {'start_date': 'soon', 'end_date': '2026-03-13', 'is_available': True},
    {'start_date': '2026-03-09', 'end_date': '2026-03-13', 'is_available': True,
     'start_time': '18:00', 'end_time': '08:00'},
])
def test_invalid_custom_range_rejected(make_donor, data):
    donor = make_donor()
    with pytest.raises(ValidationError):
        schedule_store.upsert_custom_range(donor.id, data)
    assert schedule_store.get_schedule(donor.id).custom_ranges == []


def test_delete_custom_range(make_donor):
    donor = make_donor()
    custom = schedule_store.upsert_custom_range(donor.id, {
        'start_date': '2026-03-09', 'end_date': '2026-03-13', 'is_available': False})
    schedule_store.delete_custom_range(donor.id, custom.id)
    assert schedule_store.get_schedule(donor.id).custom_ranges == []

    with pytest.raises(NotFoundError, match='Custom availability not found'):
        schedule_store.delete_custom_range(donor.id, custom.id)
