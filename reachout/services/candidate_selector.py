"""Resolve a blood request into an ordered list of candidate donor ids."""
import logging
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from reachout.clock import get_clock
from reachout.constants import MATCH_OPEN, RESPONSE_PENDING, URGENCY_CRITICAL
from reachout.errors import NotFoundError
from reachout.extensions import db
from reachout.models.blood_request_model import BloodRequest
from reachout.models.donor_match_model import BloodRequestMatch, MatchCandidate
from reachout.services import donor_store
from reachout.services.compatibility import can_donate_to
from reachout.services.eligibility_evaluator import check_eligibility
from reachout.services.geo import distance_km
from reachout.services.schedule_evaluator import is_available

logger = logging.getLogger(__name__)


@dataclass
class DonorExposure:
    pending: int = 0  # Pending candidacies on other open matches
    recent: int = 0   # Candidacies received inside the fairness window


NO_EXPOSURE = DonorExposure()


def is_currently_available(donor, now):
    schedule = donor.schedule
    if schedule is not None and schedule.enabled:
        return is_available(schedule, donor.timezone, now)
    return bool(donor.is_available)


def select_candidates(blood_request, donor_pool, now, exposure=None,
                      max_pending=3, cooldown_days=90):
    """Filter ``donor_pool`` for ``blood_request`` and order the survivors.

    Filters, in order: blood-type compatibility, donation cooldown,
    availability, the donor's own travel radius, then booking and the
    pending-candidacy cap. Critical requests go nearest-first; otherwise donors
    with fewer recent candidacies come first, ties broken by distance then id.
    """
    exposure = exposure or {}
    selected = []

    for donor in donor_pool:
        if not can_donate_to(donor.blood_type, blood_request.blood_type):
            continue
        if not check_eligibility(donor.last_donation_date, now, cooldown_days).eligible:
            continue
        if not is_currently_available(donor, now):
            continue
        distance = distance_km(blood_request.latitude, blood_request.longitude,
                               donor.latitude, donor.longitude)
        if distance is None or distance > donor.availability_radius_km:
            continue
        if donor.active_match_id is not None:
            continue
        load = exposure.get(donor.id, NO_EXPOSURE)
        if load.pending >= max_pending:
            continue
        selected.append((donor, distance, load))

    if blood_request.urgency == URGENCY_CRITICAL:
        selected.sort(key=lambda item: (item[1], item[0].id))
    else:
        selected.sort(key=lambda item: (item[2].recent, item[1], item[0].id))

    return [donor.id for donor, _, _ in selected]


def load_exposure(donor_ids, now, fairness_window_days, exclude_request_id=None):
    """Pending and recent candidacy counts for ``donor_ids``."""
    if not donor_ids:
        return {}
    exposure = {donor_id: DonorExposure() for donor_id in donor_ids}

    pending_query = db.session.query(MatchCandidate.donor_id, func.count(MatchCandidate.id)).join(
        BloodRequestMatch, MatchCandidate.match_id == BloodRequestMatch.id
    ).filter(
        MatchCandidate.donor_id.in_(donor_ids),
        MatchCandidate.response == RESPONSE_PENDING,
        BloodRequestMatch.status == MATCH_OPEN,
    )
    if exclude_request_id is not None:
        pending_query = pending_query.filter(BloodRequestMatch.request_id != exclude_request_id)
    for donor_id, count in pending_query.group_by(MatchCandidate.donor_id):
        exposure[donor_id].pending = count

    since = now - timedelta(days=fairness_window_days)
    recent_query = db.session.query(MatchCandidate.donor_id, func.count(MatchCandidate.id)).filter(
        MatchCandidate.donor_id.in_(donor_ids),
        MatchCandidate.notified_at >= since,
    ).group_by(MatchCandidate.donor_id)
    for donor_id, count in recent_query:
        exposure[donor_id].recent = count

    return exposure


def find_candidates_for_request(request_id):
    blood_request = db.session.get(BloodRequest, request_id)
    if not blood_request:
        raise NotFoundError('Blood request not found')

    config = current_app.config
    now = get_clock().now()
    pool = donor_store.list_donors_near(blood_request.latitude, blood_request.longitude,
                                        config['MAX_SEARCH_RADIUS_KM'], blood_request.blood_type)
    exposure = load_exposure([d.id for d in pool], now, config['FAIRNESS_WINDOW_DAYS'],
                             exclude_request_id=blood_request.id)
    candidates = select_candidates(blood_request, pool, now, exposure,
                                   max_pending=config['MAX_PENDING_CANDIDACIES'],
                                   cooldown_days=config['DONATION_COOLDOWN_DAYS'])
    logger.info('Request %s: %d of %d nearby donors selected as candidates',
                blood_request.id, len(candidates), len(pool))
    return candidates
