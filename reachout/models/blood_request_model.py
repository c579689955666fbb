from datetime import datetime
from reachout.extensions import db
from reachout.constants import URGENCY_NORMAL


class BloodRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    patient_name = db.Column(db.String(100), nullable=False)
    blood_type = db.Column(db.String(5), nullable=False)
    urgency = db.Column(db.String(10), nullable=False, default=URGENCY_NORMAL)
    units_required = db.Column(db.Integer, nullable=False, default=1)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault('urgency', URGENCY_NORMAL)
        kwargs.setdefault('units_required', 1)
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            'id': self.id,
            'patient_name': self.patient_name,
            'blood_type': self.blood_type,
            'urgency': self.urgency,
            'units_required': self.units_required,
            'latitude': self.latitude,
            'longitude': self.longitude,
        }

    def __repr__(self):
        return f'<BloodRequest {self.patient_name}>'
