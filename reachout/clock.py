from datetime import datetime, timedelta, timezone

from flask import current_app


class SystemClock:
    """Wall clock. Returns naive UTC datetimes, the form stored in the database."""

    def now(self):
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Clock frozen at a given instant; tests move it with ``advance``."""

    def __init__(self, instant):
        self.instant = instant

    def now(self):
        return self.instant

    def advance(self, **kwargs):
        self.instant = self.instant + timedelta(**kwargs)
        return self.instant


def get_clock():
    return current_app.extensions['reachout_clock']
