from reachout.extensions import db


def _hhmm(value):
    return value.strftime('%H:%M') if value is not None else None


class AvailabilitySchedule(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    donor_id = db.Column(db.Integer, db.ForeignKey('donor.id'), nullable=False, unique=True)
    enabled = db.Column(db.Boolean, nullable=False, default=False)

    weekly_slots = db.relationship('WeeklySlot', backref='schedule', lazy=True,
                                   order_by=lambda: [WeeklySlot.day_of_week, WeeklySlot.start_time],
                                   cascade='all, delete-orphan')
    custom_ranges = db.relationship('CustomRange', backref='schedule', lazy=True,
                                    order_by='CustomRange.start_date',
                                    cascade='all, delete-orphan')

    def __init__(self, **kwargs):
        kwargs.setdefault('enabled', False)
        super().__init__(**kwargs)

    def to_dict(self):
        return {
            'donor_id': self.donor_id,
            'enabled': bool(self.enabled),
            'weekly_slots': [slot.to_dict() for slot in self.weekly_slots],
            'custom_ranges': [custom.to_dict() for custom in self.custom_ranges],
        }


class WeeklySlot(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('availability_schedule.id'), nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __init__(self, **kwargs):
        kwargs.setdefault('is_active', True)
        super().__init__(**kwargs)

    def overlaps(self, other):
        return (self.day_of_week == other.day_of_week
                and self.start_time < other.end_time
                and other.start_time < self.end_time)

    def to_dict(self):
        return {
            'id': self.id,
            'day_of_week': self.day_of_week,
            'start_time': _hhmm(self.start_time),
            'end_time': _hhmm(self.end_time),
            'is_active': self.is_active,
        }


class CustomRange(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('availability_schedule.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time)  # Both empty means the whole day
    end_time = db.Column(db.Time)
    is_available = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.String(255))

    def to_dict(self):
        return {
            'id': self.id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'start_time': _hhmm(self.start_time),
            'end_time': _hhmm(self.end_time),
            'is_available': self.is_available,
            'reason': self.reason,
        }
