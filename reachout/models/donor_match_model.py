from datetime import datetime
from reachout.extensions import db
from reachout.constants import (CANDIDATE_RESPONSES, MATCH_OPEN, MATCH_STATUSES, RESPONSE_PENDING,
                                TERMINAL_MATCH_STATUSES)


class BloodRequestMatch(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('blood_request.id'), nullable=False, index=True)
    status = db.Column(db.Enum(*MATCH_STATUSES, name='match_status'),
                       nullable=False, default=MATCH_OPEN)
    # Bumped by every committed transition; writers update only the version they read
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    resolved_at = db.Column(db.DateTime)
    cancel_reason = db.Column(db.String(255))

    request = db.relationship('BloodRequest', backref='matches')
    candidates = db.relationship('MatchCandidate', backref='match', lazy=True,
                                 order_by='MatchCandidate.position',
                                 cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        kwargs.setdefault('status', MATCH_OPEN)
        kwargs.setdefault('version', 0)
        super().__init__(**kwargs)

    @property
    def is_terminal(self):
        return self.status in TERMINAL_MATCH_STATUSES

    def candidate_for(self, donor_id):
        for candidate in self.candidates:
            if candidate.donor_id == donor_id:
                return candidate
        return None

    def pending_candidates(self):
        return [c for c in self.candidates if c.response == RESPONSE_PENDING]

    def to_dict(self):
        return {
            'id': self.id,
            'request_id': self.request_id,
            'status': self.status,
            'version': self.version,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'cancel_reason': self.cancel_reason,
            'candidates': [c.to_dict() for c in self.candidates],
        }


class MatchCandidate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('blood_request_match.id'), nullable=False, index=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    response = db.Column(db.Enum(*CANDIDATE_RESPONSES, name='candidate_response'),
                         nullable=False, default=RESPONSE_PENDING)
    notified_at = db.Column(db.DateTime, default=datetime.utcnow)
    responded_at = db.Column(db.DateTime)
    decline_reason = db.Column(db.String(255))

    donor = db.relationship('Donor', backref='candidacies')

    __table_args__ = (db.UniqueConstraint('match_id', 'donor_id', name='uq_match_candidate_donor'),)

    def __init__(self, **kwargs):
        kwargs.setdefault('response', RESPONSE_PENDING)
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            'id': self.id,
            'donor_id': self.donor_id,
            'position': self.position,
            'response': self.response,
            'notified_at': self.notified_at.isoformat() if self.notified_at else None,
            'responded_at': self.responded_at.isoformat() if self.responded_at else None,
            'decline_reason': self.decline_reason,
        }
