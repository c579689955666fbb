from datetime import datetime

import pytest

from reachout import create_app
from reachout.clock import FixedClock
from reachout.extensions import db
from reachout.models.blood_request_model import BloodRequest
from reachout.models.donor_model import Donor

# Wednesday, 10:00 UTC
NOW = datetime(2026, 3, 4, 10, 0)

DHAKA = (23.8103, 90.4125)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event, **payload):
        self.events.append((event, payload))

    def of(self, event):
        return [payload for name, payload in self.events if name == event]


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(tmp_path, clock, notifier):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'reachout.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 15}},
    }, clock=clock, notifier=notifier)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def coordinator(app):
    return app.extensions['match_coordinator']


@pytest.fixture
def make_donor(app):
    counter = {'n': 0}

    def _make(**kwargs):
        counter['n'] += 1
        kwargs.setdefault('name', f"Donor {counter['n']}")
        kwargs.setdefault('phone', f"+88017000000{counter['n']:02d}")
        kwargs.setdefault('blood_type', 'O+')
        kwargs.setdefault('latitude', DHAKA[0] + 0.01 * counter['n'])
        kwargs.setdefault('longitude', DHAKA[1])
        kwargs.setdefault('timezone', 'UTC')
        donor = Donor(**kwargs)
        db.session.add(donor)
        db.session.commit()
        return donor

    return _make


@pytest.fixture
def make_request(app):
    def _make(**kwargs):
        kwargs.setdefault('patient_name', 'Patient')
        kwargs.setdefault('blood_type', 'O+')
        kwargs.setdefault('latitude', DHAKA[0])
        kwargs.setdefault('longitude', DHAKA[1])
        blood_request = BloodRequest(**kwargs)
        db.session.add(blood_request)
        db.session.commit()
        return blood_request

    return _make
