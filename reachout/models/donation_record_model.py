from datetime import datetime
from reachout.extensions import db
from reachout.constants import DONATION_PENDING, VERIFICATION_STATUSES


class DonationRecord(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False, index=True)
    blood_type = db.Column(db.String(5), nullable=False)
    donation_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    units_provided = db.Column(db.Integer, nullable=False, default=1)
    verification_status = db.Column(
        db.Enum(*VERIFICATION_STATUSES, name='verification_status'),
        nullable=False, default=DONATION_PENDING)
    verified_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.String(255))

    # Verified records are locked; only an audited admin unlock reopens them
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    lock_reason = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('verification_status', DONATION_PENDING)
        kwargs.setdefault('units_provided', 1)
        kwargs.setdefault('is_locked', False)
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            'id': self.id,
            'donor_id': self.donor_id,
            'blood_type': self.blood_type,
            'donation_date': self.donation_date.isoformat() if self.donation_date else None,
            'units_provided': self.units_provided,
            'verification_status': self.verification_status,
            'verified_at': self.verified_at.isoformat() if self.verified_at else None,
            'rejection_reason': self.rejection_reason,
            'is_locked': self.is_locked,
            'lock_reason': self.lock_reason,
        }
