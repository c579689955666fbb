import threading

import pytest
from sqlalchemy import update

from reachout.errors import ConflictError, NotFoundError, ValidationError
from reachout.extensions import db
from reachout.models.donor_match_model import BloodRequestMatch
from reachout.models.donor_model import Donor
from reachout.services import donor_store


@pytest.fixture
def open_match(coordinator, make_donor, make_request):
    donors = [make_donor() for _ in range(3)]
    blood_request = make_request()
    match = coordinator.create_match(blood_request.id, [d.id for d in donors])
    return match.id, [d.id for d in donors]


def responses(coordinator, match_id):
    return [c.response for c in coordinator.get_match(match_id).candidates]


def test_create_match_orders_candidates(coordinator, make_donor, make_request):
    first, second = make_donor(), make_donor()
    match = coordinator.create_match(make_request().id, [second.id, first.id, second.id])
    assert match.status == 'open'
    assert [c.donor_id for c in match.candidates] == [second.id, first.id]
    assert [c.response for c in match.candidates] == ['pending', 'pending']


def test_create_match_validation(coordinator, make_donor, make_request):
    blood_request = make_request()
    with pytest.raises(ValidationError):
        coordinator.create_match(blood_request.id, [])
    with pytest.raises(NotFoundError):
        coordinator.create_match(blood_request.id, [12345])
    with pytest.raises(NotFoundError):
        coordinator.create_match(999, [make_donor().id])


def test_only_one_open_match_per_request(coordinator, make_donor, make_request):
    blood_request = make_request()
    coordinator.create_match(blood_request.id, [make_donor().id])
    with pytest.raises(ConflictError):
        coordinator.create_match(blood_request.id, [make_donor().id])


def test_accept_fulfils_and_expires_siblings(coordinator, open_match, notifier):
    match_id, donor_ids = open_match
    match = coordinator.respond(match_id, donor_ids[1], 'accepted')

    assert match.status == 'fulfilled'
    assert match.resolved_at is not None
    assert [c.response for c in match.candidates] == ['expired', 'accepted', 'expired']
    assert db.session.get(Donor, donor_ids[1]).active_match_id == match_id

    assert [p['donor_id'] for p in notifier.of('match_fulfilled')] == [donor_ids[1]]
    assert sorted(p['donor_id'] for p in notifier.of('candidate_expired')) == [donor_ids[0], donor_ids[2]]


def test_repeated_accept_is_idempotent(coordinator, open_match, notifier):
    match_id, donor_ids = open_match
    first = coordinator.respond(match_id, donor_ids[0], 'accept')
    version = first.version
    events = len(notifier.events)

    again = coordinator.respond(match_id, donor_ids[0], 'accepted')
    assert again.status == 'fulfilled'
    assert again.version == version
    assert len(notifier.events) == events


def test_second_accept_loses(coordinator, open_match):
    match_id, donor_ids = open_match
    coordinator.respond(match_id, donor_ids[0], 'accepted')

    with pytest.raises(ConflictError, match='Request already fulfilled'):
        coordinator.respond(match_id, donor_ids[1], 'accepted')
    assert db.session.get(Donor, donor_ids[1]).active_match_id is None


def test_concurrent_accepts_have_single_winner(app, coordinator, open_match):
    match_id, donor_ids = open_match
    barrier = threading.Barrier(len(donor_ids))
    outcomes = {}

    def attempt(donor_id):
        with app.app_context():
            barrier.wait()
            try:
                coordinator.respond(match_id, donor_id, 'accepted')
                outcomes[donor_id] = 'won'
            except Exception as e:
                outcomes[donor_id] = e
            finally:
                db.session.remove()

    threads = [threading.Thread(target=attempt, args=(donor_id,)) for donor_id in donor_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [d for d, outcome in outcomes.items() if outcome == 'won']
    losers = [outcome for outcome in outcomes.values() if outcome != 'won']
    assert len(winners) == 1
    assert len(losers) == 2
    assert all(isinstance(e, ConflictError) for e in losers)

    db.session.expire_all()
    match = coordinator.get_match(match_id)
    assert match.status == 'fulfilled'
    for candidate in match.candidates:
        expected = 'accepted' if candidate.donor_id == winners[0] else 'expired'
        assert candidate.response == expected
    booked = Donor.query.filter(Donor.active_match_id.isnot(None)).all()
    assert [d.id for d in booked] == winners


def test_stale_claim_rolls_back(coordinator, open_match, monkeypatch):
    """Another writer cancels the match between our read and our write."""
    match_id, donor_ids = open_match
    load = coordinator._load
    raced = []

    def load_then_race(match_id):
        match = load(match_id)
        if not raced:
            raced.append(match_id)
            with db.engine.begin() as conn:
                conn.execute(update(BloodRequestMatch)
                             .where(BloodRequestMatch.id == match_id)
                             .values(status='cancelled', version=BloodRequestMatch.version + 1))
        return match

    monkeypatch.setattr(coordinator, '_load', load_then_race)

    with pytest.raises(ConflictError, match='Request cancelled'):
        coordinator.respond(match_id, donor_ids[0], 'accepted')

    monkeypatch.undo()
    assert responses(coordinator, match_id) == ['pending', 'pending', 'pending']
    assert db.session.get(Donor, donor_ids[0], populate_existing=True).active_match_id is None


def test_declines_then_expiry(coordinator, open_match, notifier):
    match_id, donor_ids = open_match
    coordinator.respond(match_id, donor_ids[0], 'declined', reason='Travelling')
    match = coordinator.respond(match_id, donor_ids[1], 'decline')
    assert match.status == 'open'
    assert match.candidates[0].decline_reason == 'Travelling'

    match = coordinator.respond(match_id, donor_ids[2], 'declined')
    assert match.status == 'expired'
    assert len(notifier.of('candidate_declined')) == 3
    assert len(notifier.of('match_expired')) == 1


def test_accept_after_decline_conflicts(coordinator, open_match):
    match_id, donor_ids = open_match
    coordinator.respond(match_id, donor_ids[0], 'declined')
    with pytest.raises(ConflictError, match='Candidate already declined'):
        coordinator.respond(match_id, donor_ids[0], 'accepted')


def test_response_validation(coordinator, open_match, make_donor):
    match_id, donor_ids = open_match
    with pytest.raises(ValidationError):
        coordinator.respond(match_id, donor_ids[0], 'maybe')
    with pytest.raises(NotFoundError):
        coordinator.respond(match_id, make_donor().id, 'accepted')
    with pytest.raises(NotFoundError):
        coordinator.respond(404, donor_ids[0], 'accepted')


def test_expire_last_pending_expires_match(coordinator, open_match):
    match_id, donor_ids = open_match
    candidates = coordinator.get_match(match_id).candidates
    candidate_ids = [c.id for c in candidates]

    coordinator.respond(match_id, donor_ids[0], 'declined')
    coordinator.expire(candidate_ids[1])
    match = coordinator.expire(candidate_ids[2])
    assert match.status == 'expired'
    assert [c.response for c in match.candidates] == ['declined', 'expired', 'expired']

    # Repeating the timeout is harmless
    assert coordinator.expire(candidate_ids[2]).status == 'expired'


def test_expire_racing_completed_accept(coordinator, open_match):
    match_id, donor_ids = open_match
    accepted = coordinator.get_match(match_id).candidates[0].id
    coordinator.respond(match_id, donor_ids[0], 'accepted')

    with pytest.raises(ConflictError, match='Request already fulfilled'):
        coordinator.expire(accepted)
    assert responses(coordinator, match_id)[0] == 'accepted'


def test_cancel_open_match(coordinator, open_match, notifier):
    match_id, donor_ids = open_match
    match = coordinator.cancel(match_id, reason='Patient transferred')
    assert match.status == 'cancelled'
    assert match.cancel_reason == 'Patient transferred'
    assert responses(coordinator, match_id) == ['expired'] * 3
    assert sorted(p['donor_id'] for p in notifier.of('match_cancelled')) == sorted(donor_ids)

    with pytest.raises(ConflictError, match='Request cancelled'):
        coordinator.respond(match_id, donor_ids[0], 'accepted')


def test_cancel_fulfilled_match_is_noop(coordinator, open_match, notifier):
    match_id, donor_ids = open_match
    coordinator.respond(match_id, donor_ids[0], 'accepted')
    events = len(notifier.events)

    match = coordinator.cancel(match_id)
    assert match.status == 'fulfilled'
    assert len(notifier.events) == events


def test_donor_cannot_be_booked_twice(coordinator, make_donor, make_request, clock):
    shared, other = make_donor(), make_donor()
    first = coordinator.create_match(make_request().id, [shared.id])
    second = coordinator.create_match(make_request().id, [shared.id, other.id])
    second_id = second.id

    coordinator.respond(first.id, shared.id, 'accepted')
    with pytest.raises(ConflictError, match='already accepted another request'):
        coordinator.respond(second_id, shared.id, 'accepted')
    assert coordinator.get_match(second_id).status == 'open'

    # A verified donation ends the booking
    record = donor_store.record_donation(shared.id, {}, clock.now())
    donor_store.verify_donation(record.id, clock.now())
    assert db.session.get(Donor, shared.id).active_match_id is None

    match = coordinator.respond(second_id, other.id, 'accepted')
    assert match.status == 'fulfilled'
