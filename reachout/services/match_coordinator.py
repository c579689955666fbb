"""Lifecycle of a blood request's candidate set.

A match starts ``open`` with every candidate ``pending`` and ends in exactly
one terminal state:

    open --accept--------------------------> fulfilled
    open --last pending declines/expires----> expired
    open --cancel--------------------------> cancelled

Every transition is one short transaction. The match row is claimed with a
conditional update on ``(id, version, status='open')``; if another writer got
there first the update touches no row, the transaction is rolled back and the
caller gets a ``ConflictError``. Accepting also claims the donor row with
``active_match_id IS NULL``, so a donor can never be booked on two requests.
Inside one process the same invariants are serialised with per-donor and
per-match locks (donor lock always taken first).

Notifications are sent only after commit.
"""
import logging
import threading
import weakref
from contextlib import ExitStack, contextmanager

from sqlalchemy import update

from reachout.constants import (EVENT_CANDIDATE_DECLINED, EVENT_CANDIDATE_EXPIRED,
                                EVENT_MATCH_CANCELLED, EVENT_MATCH_EXPIRED,
                                EVENT_MATCH_FULFILLED, MATCH_CANCELLED, MATCH_EXPIRED,
                                MATCH_FULFILLED, MATCH_OPEN, RESPONSE_ACCEPTED,
                                RESPONSE_DECLINED, RESPONSE_EXPIRED, RESPONSE_PENDING)
from reachout.errors import ConflictError, NotFoundError, ValidationError
from reachout.extensions import db
from reachout.models.blood_request_model import BloodRequest
from reachout.models.donor_match_model import BloodRequestMatch, MatchCandidate
from reachout.models.donor_model import Donor

logger = logging.getLogger(__name__)

RESPONSE_ALIASES = {
    'accept': RESPONSE_ACCEPTED,
    'accepted': RESPONSE_ACCEPTED,
    'decline': RESPONSE_DECLINED,
    'declined': RESPONSE_DECLINED,
}


class LockRegistry:
    """Named re-usable locks, dropped once nobody holds a reference."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def _get(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys):
        with ExitStack() as stack:
            for key in keys:
                lock = self._get(key)
                lock.acquire()
                stack.callback(lock.release)
            yield


class _StaleMatch(Exception):
    pass


def terminal_conflict(match):
    if match.status == MATCH_FULFILLED:
        return ConflictError('Request already fulfilled')
    if match.status == MATCH_CANCELLED:
        return ConflictError('Request cancelled')
    return ConflictError('Match already resolved')


class MatchCoordinator:

    def __init__(self, clock, notifier, locks=None):
        self.clock = clock
        self.notifier = notifier
        self.locks = locks or LockRegistry()

    # Reads

    def _load(self, match_id):
        match = db.session.get(BloodRequestMatch, match_id, populate_existing=True)
        if not match:
            raise NotFoundError('Donor match not found')
        # Candidates may have been changed by another session since they were loaded
        MatchCandidate.query.filter_by(match_id=match_id).populate_existing().all()
        return match

    def get_match(self, match_id):
        return self._load(match_id)

    # Commit path

    def _claim(self, match, seen_version, status, now):
        values = {'version': seen_version + 1}
        if status != MATCH_OPEN:
            values.update(status=status, resolved_at=now)
        result = db.session.execute(
            update(BloodRequestMatch)
            .where(BloodRequestMatch.id == match.id,
                   BloodRequestMatch.version == seen_version,
                   BloodRequestMatch.status == MATCH_OPEN)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _StaleMatch()

    def _book_donor(self, donor_id, match_id):
        result = db.session.execute(
            update(Donor)
            .where(Donor.id == donor_id, Donor.active_match_id.is_(None))
            .values(active_match_id=match_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError('Donor has already accepted another request')

    @contextmanager
    def _transaction(self, match_id):
        try:
            yield
            db.session.commit()
        except _StaleMatch:
            db.session.rollback()
            current = self._load(match_id)
            logger.warning('Lost transition race on match %s (now %s, version %s)',
                           match_id, current.status, current.version)
            if current.is_terminal:
                raise terminal_conflict(current)
            raise ConflictError('Match was modified concurrently; re-fetch and retry')
        except Exception:
            db.session.rollback()
            raise

    def _dispatch(self, events):
        for event, payload in events:
            self.notifier.notify(event, **payload)

    # Transitions

    def create_match(self, request_id, candidate_ids):
        blood_request = db.session.get(BloodRequest, request_id)
        if not blood_request:
            raise NotFoundError('Blood request not found')

        ordered = list(dict.fromkeys(candidate_ids or []))
        if not ordered:
            raise ValidationError('A match needs at least one candidate donor')
        if BloodRequestMatch.query.filter_by(request_id=blood_request.id, status=MATCH_OPEN).first():
            raise ConflictError('Request already has an open match')
        known = {d.id for d in Donor.query.filter(Donor.id.in_(ordered))}
        missing = [donor_id for donor_id in ordered if donor_id not in known]
        if missing:
            raise NotFoundError(f'Donor not found: {", ".join(map(str, missing))}')

        now = self.clock.now()
        match = BloodRequestMatch(request_id=blood_request.id, created_at=now)
        for position, donor_id in enumerate(ordered):
            match.candidates.append(MatchCandidate(donor_id=donor_id, position=position, notified_at=now))
        db.session.add(match)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info('Match %s opened for request %s with %d candidates',
                    match.id, blood_request.id, len(ordered))
        return match

    def respond(self, match_id, donor_id, response, reason=None):
        response = RESPONSE_ALIASES.get(response)
        if response is None:
            raise ValidationError("response must be 'accepted' or 'declined'")

        keys = [('donor', donor_id)] if response == RESPONSE_ACCEPTED else []
        with self.locks.hold(*keys, ('match', match_id)):
            match = self._load(match_id)
            candidate = match.candidate_for(donor_id)
            if candidate is None:
                raise NotFoundError('Donor is not a candidate on this match')

            # Repeat of a response that already took effect
            if candidate.response == response:
                return match
            if match.is_terminal:
                raise terminal_conflict(match)
            if candidate.response != RESPONSE_PENDING:
                raise ConflictError(f'Candidate already {candidate.response}')

            if response == RESPONSE_ACCEPTED:
                events = self._accept(match, candidate)
            else:
                events = self._decline(match, candidate, reason)

        self._dispatch(events)
        return self._load(match_id)

    def _accept(self, match, candidate):
        now = self.clock.now()
        seen = match.version
        donor = db.session.get(Donor, candidate.donor_id, populate_existing=True)
        if donor.active_match_id is not None and donor.active_match_id != match.id:
            raise ConflictError('Donor has already accepted another request')

        with self._transaction(match.id):
            self._claim(match, seen, MATCH_FULFILLED, now)
            self._book_donor(candidate.donor_id, match.id)
            candidate.response = RESPONSE_ACCEPTED
            candidate.responded_at = now
            fenced = []
            for other in match.pending_candidates():
                other.response = RESPONSE_EXPIRED
                other.responded_at = now
                fenced.append(other.donor_id)

        logger.info('Match %s fulfilled by donor %s; %d pending candidates expired',
                    match.id, candidate.donor_id, len(fenced))
        base = {'match_id': match.id, 'request_id': match.request_id}
        events = [(EVENT_MATCH_FULFILLED, dict(base, donor_id=candidate.donor_id))]
        events += [(EVENT_CANDIDATE_EXPIRED, dict(base, donor_id=d)) for d in fenced]
        return events

    def _decline(self, match, candidate, reason):
        now = self.clock.now()
        seen = match.version
        remaining = [c for c in match.pending_candidates() if c is not candidate]
        status = MATCH_OPEN if remaining else MATCH_EXPIRED

        with self._transaction(match.id):
            self._claim(match, seen, status, now)
            candidate.response = RESPONSE_DECLINED
            candidate.responded_at = now
            candidate.decline_reason = reason

        logger.info('Donor %s declined match %s', candidate.donor_id, match.id)
        base = {'match_id': match.id, 'request_id': match.request_id}
        events = [(EVENT_CANDIDATE_DECLINED, dict(base, donor_id=candidate.donor_id, reason=reason))]
        if status == MATCH_EXPIRED:
            logger.info('Match %s expired: no pending candidates left', match.id)
            events.append((EVENT_MATCH_EXPIRED, dict(base, donor_id=None)))
        return events

    def expire(self, candidate_id):
        """Time out one candidate. Called by the external response timer."""
        candidate = db.session.get(MatchCandidate, candidate_id)
        if not candidate:
            raise NotFoundError('Match candidate not found')
        match_id = candidate.match_id

        with self.locks.hold(('match', match_id)):
            match = self._load(match_id)
            if candidate.response == RESPONSE_EXPIRED:
                return match
            if match.is_terminal:
                raise terminal_conflict(match)
            if candidate.response != RESPONSE_PENDING:
                raise ConflictError(f'Candidate already {candidate.response}')

            now = self.clock.now()
            seen = match.version
            remaining = [c for c in match.pending_candidates() if c is not candidate]
            status = MATCH_OPEN if remaining else MATCH_EXPIRED
            with self._transaction(match_id):
                self._claim(match, seen, status, now)
                candidate.response = RESPONSE_EXPIRED
                candidate.responded_at = now

            base = {'match_id': match_id, 'request_id': match.request_id}
            events = [(EVENT_CANDIDATE_EXPIRED, dict(base, donor_id=candidate.donor_id))]
            if status == MATCH_EXPIRED:
                logger.info('Match %s expired: no pending candidates left', match_id)
                events.append((EVENT_MATCH_EXPIRED, dict(base, donor_id=None)))

        self._dispatch(events)
        return self._load(match_id)

    def cancel(self, match_id, reason=None):
        """Cancel an open match. A match that already resolved is returned as is."""
        with self.locks.hold(('match', match_id)):
            match = self._load(match_id)
            if match.is_terminal:
                return match

            now = self.clock.now()
            seen = match.version
            with self._transaction(match_id):
                self._claim(match, seen, MATCH_CANCELLED, now)
                match.cancel_reason = reason or 'Cancelled by requester'
                fenced = []
                for candidate in match.pending_candidates():
                    candidate.response = RESPONSE_EXPIRED
                    candidate.responded_at = now
                    fenced.append(candidate.donor_id)

            logger.info('Match %s cancelled', match_id)
            base = {'match_id': match_id, 'request_id': match.request_id}
            events = [(EVENT_MATCH_CANCELLED, dict(base, donor_id=d)) for d in fenced]

        self._dispatch(events)
        return self._load(match_id)
