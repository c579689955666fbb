"""Donor and donation-record access.

``Donor.last_donation_date`` and ``Donor.total_donations`` are derived from
verified donation records only, and are recomputed whenever a record's
verification changes.
"""
import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app

from reachout.constants import (BLOOD_TYPES, DONATION_PENDING, DONATION_REJECTED,
                                DONATION_VERIFIED, MAX_RADIUS_KM, MIN_RADIUS_KM)
from reachout.errors import ConflictError, NotFoundError, ValidationError
from reachout.extensions import db
from reachout.models.donation_record_model import DonationRecord
from reachout.models.donor_model import Donor
from reachout.services.compatibility import get_compatible_blood_types
from reachout.services.eligibility_evaluator import check_eligibility, get_last_verified_donation
from reachout.services.geo import distance_km

logger = logging.getLogger(__name__)


def get_donor(donor_id):
    donor = db.session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError('Donor not found')
    return donor


def list_donors_near(latitude, longitude, radius_km, blood_type):
    """Donors able to give to ``blood_type`` within ``radius_km`` of the point.

    Each result carries its distance as ``donor.distance``, nearest first.
    """
    compatible_types = get_compatible_blood_types(blood_type)
    if not compatible_types:
        raise ValidationError(f'Unknown blood type: {blood_type}')

    donors = Donor.query.filter(
        Donor.blood_type.in_(compatible_types),
        Donor.latitude.isnot(None),
        Donor.longitude.isnot(None),
    ).all()

    nearby_donors = []
    for donor in donors:
        distance = distance_km(latitude, longitude, donor.latitude, donor.longitude)
        if distance is not None and distance <= radius_km:
            donor.distance = distance
            nearby_donors.append(donor)

    nearby_donors.sort(key=lambda d: (d.distance, d.id))
    return nearby_donors


PROFILE_FIELDS = ('name', 'phone', 'blood_type', 'latitude', 'longitude', 'timezone',
                  'is_available', 'availability_radius_km')


def _check_number(data, field, low, high):
    value = data.get(field)
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not low <= value <= high:
        raise ValidationError(f'{field} must be a number between {low} and {high}')


def _validate_profile(data):
    """Reject profile fields the matching rules could not work with later."""
    if 'name' in data and not data['name']:
        raise ValidationError('Missing required field: name')
    if 'blood_type' in data and data['blood_type'] not in BLOOD_TYPES:
        raise ValidationError(f'blood_type must be one of {", ".join(BLOOD_TYPES)}')
    _check_number(data, 'latitude', -90, 90)
    _check_number(data, 'longitude', -180, 180)
    _check_number(data, 'availability_radius_km', MIN_RADIUS_KM, MAX_RADIUS_KM)
    if data.get('is_available') is not None and not isinstance(data['is_available'], bool):
        raise ValidationError('is_available must be a boolean')

    if 'timezone' in data:
        value = data['timezone']
        if not isinstance(value, str) or not value:
            raise ValidationError('timezone must be an IANA time zone name')
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f'Unknown timezone: {value}')


def create_donor(data):
    for field in ('name', 'blood_type'):
        if not data.get(field):
            raise ValidationError(f'Missing required field: {field}')
    _validate_profile(data)

    donor = Donor(**{k: v for k, v in data.items() if k in PROFILE_FIELDS})
    db.session.add(donor)
    db.session.commit()
    return donor


def update_donor(donor_id, data):
    """Change profile fields, e.g. the manual availability flag or the radius."""
    donor = get_donor(donor_id)
    changes = {k: v for k, v in data.items() if k in PROFILE_FIELDS}
    for field in ('blood_type', 'timezone', 'is_available', 'availability_radius_km'):
        if field in changes and changes[field] is None:
            raise ValidationError(f'{field} cannot be empty')
    _validate_profile(changes)

    for field, value in changes.items():
        setattr(donor, field, value)
    db.session.commit()
    logger.info('Donor %s updated: %s', donor.id, ', '.join(sorted(changes)) or 'no changes')
    return donor


def _refresh_donation_stats(donor_id):
    donor = get_donor(donor_id)
    donor.last_donation_date = get_last_verified_donation(donor_id)
    donor.total_donations = DonationRecord.query.filter_by(
        donor_id=donor_id, verification_status=DONATION_VERIFIED).count()
    return donor


def get_donation(record_id):
    record = db.session.get(DonationRecord, record_id)
    if not record:
        raise NotFoundError('Donation record not found')
    return record


def record_donation(donor_id, data, now):
    """Store a donation submission awaiting verification.

    A donor still inside the cooldown of their last verified donation is
    turned away with the reason.
    """
    donor = get_donor(donor_id)
    donation_date = _parse_donation_date(data.get('donation_date'), now)
    units = data.get('units_provided', 1)
    if isinstance(units, bool) or not isinstance(units, int) or units < 1:
        raise ValidationError('units_provided must be a positive integer')

    eligibility = check_eligibility(get_last_verified_donation(donor.id), now,
                                    current_app.config['DONATION_COOLDOWN_DAYS'])
    if not eligibility.eligible:
        raise ValidationError(eligibility.reason)

    record = DonationRecord(
        donor_id=donor.id,
        blood_type=data.get('blood_type') or donor.blood_type,
        donation_date=donation_date,
        units_provided=units,
        verification_status=DONATION_PENDING,
    )
    db.session.add(record)
    db.session.commit()
    return record


def _parse_donation_date(value, now):
    if value is None:
        return now
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            raise ValidationError('donation_date must be an ISO 8601 date or datetime')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if parsed > now:
        raise ValidationError('Donation date cannot be in the future')
    return parsed


def verify_donation(record_id, now):
    """Mark a donation verified and lock it.

    Verifying is what moves the donor's cooldown clock, and it ends any
    booking the donor held on a fulfilled match.
    """
    record = get_donation(record_id)
    if record.verification_status == DONATION_VERIFIED:
        return record
    if record.is_locked:
        raise ConflictError('Donation record is locked')

    record.verification_status = DONATION_VERIFIED
    record.verified_at = now
    record.rejection_reason = None
    record.is_locked = True
    record.lock_reason = 'verified'
    donor = _refresh_donation_stats(record.donor_id)
    if donor.active_match_id is not None:
        logger.info('Releasing donor %s from match %s after verified donation',
                    donor.id, donor.active_match_id)
        donor.active_match_id = None
    db.session.commit()
    logger.info('Donation %s verified for donor %s', record.id, record.donor_id)
    return record


def reject_donation(record_id, reason=None):
    record = get_donation(record_id)
    if record.is_locked:
        raise ConflictError('Donation record is locked')
    record.verification_status = DONATION_REJECTED
    record.rejection_reason = reason
    record.verified_at = None
    _refresh_donation_stats(record.donor_id)
    db.session.commit()
    logger.info('Donation %s rejected', record.id)
    return record


def update_donation(record_id, data, now):
    """Edit an unlocked record; verified records must be unlocked first."""
    record = get_donation(record_id)
    if record.is_locked:
        raise ConflictError('Donation record is locked')
    donation_date = record.donation_date
    if 'donation_date' in data:
        donation_date = _parse_donation_date(data['donation_date'], now)
    units = data.get('units_provided', record.units_provided)
    if isinstance(units, bool) or not isinstance(units, int) or units < 1:
        raise ValidationError('units_provided must be a positive integer')

    record.donation_date = donation_date
    record.units_provided = units
    _refresh_donation_stats(record.donor_id)
    db.session.commit()
    return record


def unlock_donation(record_id, reason, actor=None):
    """Admin override reopening a locked record. Always audited."""
    if not reason:
        raise ValidationError('A reason is required to unlock a donation record')
    record = get_donation(record_id)
    if not record.is_locked:
        return record
    record.is_locked = False
    record.lock_reason = reason
    db.session.commit()
    logger.warning('AUDIT donation %s unlocked by %s: %s', record.id, actor or 'unknown', reason)
    return record


def lock_donation(record_id, reason=None, actor=None):
    record = get_donation(record_id)
    if record.is_locked:
        return record
    record.is_locked = True
    record.lock_reason = reason or 'locked'
    db.session.commit()
    logger.warning('AUDIT donation %s locked by %s: %s', record.id, actor or 'unknown', record.lock_reason)
    return record


def release_booking(donor_id):
    donor = get_donor(donor_id)
    donor.active_match_id = None
    db.session.commit()
    return donor
