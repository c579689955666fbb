"""Donation cooldown rules.

A donor may give blood again once ``DONATION_COOLDOWN_DAYS`` calendar days have
passed since their most recent *verified* donation. Days are counted on
calendar dates so the time of day of either instant never shifts the result.
"""
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func

from reachout.clock import get_clock
from reachout.constants import DONATION_COOLDOWN_DAYS, DONATION_VERIFIED
from reachout.errors import NotFoundError
from reachout.extensions import db
from reachout.models.donation_record_model import DonationRecord
from reachout.models.donor_model import Donor


@dataclass
class Eligibility:
    eligible: bool
    is_first_time: bool
    days_since_last_donation: Optional[int] = None
    days_remaining: Optional[int] = None
    next_eligible_date: Optional[date] = None
    reason: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        if self.next_eligible_date is not None:
            data['next_eligible_date'] = self.next_eligible_date.isoformat()
        return data


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def check_eligibility(last_donation_date, now, cooldown_days=DONATION_COOLDOWN_DAYS) -> Eligibility:
    if last_donation_date is None:
        return Eligibility(eligible=True, is_first_time=True)

    last = _as_date(last_donation_date)
    days_since = (_as_date(now) - last).days
    days_remaining = max(0, cooldown_days - days_since)
    next_eligible = last + timedelta(days=cooldown_days)

    if days_since >= cooldown_days:
        return Eligibility(
            eligible=True,
            is_first_time=False,
            days_since_last_donation=days_since,
            days_remaining=0,
            next_eligible_date=next_eligible,
        )

    return Eligibility(
        eligible=False,
        is_first_time=False,
        days_since_last_donation=days_since,
        days_remaining=days_remaining,
        next_eligible_date=next_eligible,
        reason=(f'Must wait {cooldown_days} days between donations; '
                f'{days_remaining} day{"s" if days_remaining != 1 else ""} remaining'),
    )


def get_last_verified_donation(donor_id):
    """Date of the donor's most recent verified donation, or None."""
    return db.session.query(func.max(DonationRecord.donation_date)).filter(
        DonationRecord.donor_id == donor_id,
        DonationRecord.verification_status == DONATION_VERIFIED,
    ).scalar()


def _get_donor(donor_id):
    donor = db.session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError('Donor not found')
    return donor


def check_donor_eligibility(donor_id):
    """Eligibility of a stored donor, using their latest verified donation."""
    _get_donor(donor_id)
    return check_eligibility(get_last_verified_donation(donor_id), get_clock().now(),
                             current_app.config['DONATION_COOLDOWN_DAYS'])


def get_donor_statistics(donor_id):
    """Totals over the donor's verified donations, newest first."""
    _get_donor(donor_id)
    donations = DonationRecord.query.filter_by(
        donor_id=donor_id, verification_status=DONATION_VERIFIED
    ).order_by(DonationRecord.donation_date.desc()).all()

    average_days_between = None
    if len(donations) > 1:
        intervals = [(newer.donation_date - older.donation_date).days
                     for newer, older in zip(donations, donations[1:])]
        average_days_between = round(sum(intervals) / len(intervals))

    return {
        'total_donations': len(donations),
        'total_units': sum(d.units_provided for d in donations),
        'first_donation': donations[-1].donation_date.isoformat() if donations else None,
        'last_donation': donations[0].donation_date.isoformat() if donations else None,
        'average_days_between': average_days_between,
        'donations': [d.to_dict() for d in donations],
    }
