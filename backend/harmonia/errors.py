"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; the error handlers registered in ``create_app``
serialize them as ``{"error": ..., "code": ...}`` with ``status_code``.
Messages must stay safe to show to any player: never include a correct
answer or somebody else's score.
"""


class HarmoniaError(Exception):
    status_code = 500
    code = 'error'

    def __init__(self, message, status_code=None, **details):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        payload.update(self.details)
        return payload


class ValidationError(HarmoniaError):
    """Malformed or missing input."""
    status_code = 400
    code = 'validation_error'


class AuthorizationError(HarmoniaError):
    status_code = 403
    code = 'forbidden'


class AuthenticationError(AuthorizationError):
    status_code = 401
    code = 'unauthenticated'


class NotFoundError(HarmoniaError):
    status_code = 404
    code = 'not_found'


class StateGuardError(HarmoniaError):
    """A lifecycle guard rejected the operation (closed run, started run...)."""
    status_code = 409
    code = 'state_guard'


class EligibilityError(StateGuardError):
    status_code = 403
    code = 'not_eligible'


class InsufficientBalanceError(StateGuardError):
    status_code = 402
    code = 'insufficient_balance'


class ConflictError(HarmoniaError):
    status_code = 409
    code = 'conflict'


class DependencyError(HarmoniaError):
    """The backing store failed; never retried automatically."""
    status_code = 503
    code = 'dependency_error'
