from datetime import datetime
from reachout.extensions import db
from reachout.constants import DEFAULT_RADIUS_KM, DEFAULT_TIMEZONE


class Donor(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), unique=True)
    blood_type = db.Column(db.String(5), nullable=False)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    timezone = db.Column(db.String(64), nullable=False, default=DEFAULT_TIMEZONE)
    is_available = db.Column(db.Boolean, nullable=False, default=True)  # Manual flag, used when no schedule is enabled
    availability_radius_km = db.Column(db.Float, nullable=False, default=DEFAULT_RADIUS_KM)
    last_donation_date = db.Column(db.DateTime)  # Only ever set from a verified DonationRecord
    total_donations = db.Column(db.Integer, nullable=False, default=0)

    # Fulfilled match this donor accepted; cleared when their donation is verified
    active_match_id = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    donations = db.relationship('DonationRecord', backref='donor', lazy=True,
                                order_by='DonationRecord.donation_date.desc()')
    schedule = db.relationship('AvailabilitySchedule', backref='donor', uselist=False,
                               cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        kwargs.setdefault('timezone', DEFAULT_TIMEZONE)
        kwargs.setdefault('is_available', True)
        kwargs.setdefault('availability_radius_km', DEFAULT_RADIUS_KM)
        kwargs.setdefault('total_donations', 0)
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'blood_type': self.blood_type,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'timezone': self.timezone,
            'is_available': self.is_available,
            'availability_radius_km': self.availability_radius_km,
            'last_donation_date': self.last_donation_date.isoformat() if self.last_donation_date else None,
            'total_donations': self.total_donations,
            'active_match_id': self.active_match_id,
        }

    def __repr__(self):
        return f'<Donor {self.name}>'
