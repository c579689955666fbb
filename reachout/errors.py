"""Error kinds raised by the matching engine.

Every error carries the HTTP status the controllers answer with, so a
blueprint only has to catch ``EngineError`` to report any of them.
"""


class EngineError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class ValidationError(EngineError):
    """Malformed slot, range or response input. Nothing was written."""
    status_code = 400


class NotFoundError(EngineError):
    status_code = 404


class ConflictError(EngineError):
    """Lost race, terminal match or double-booked donor.

    Callers may retry only after re-fetching the current state.
    """
    status_code = 409


class PolicyViolation(EngineError):
    """Input is well formed but breaks a schedule rule (e.g. overlapping slots)."""
    status_code = 422
