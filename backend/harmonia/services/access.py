"""Access control gate: resolved identity + role -> allow or reject."""

from functools import wraps
from typing import Dict, FrozenSet

from flask_login import current_user

from harmonia.errors import AuthenticationError, AuthorizationError
from harmonia.models import Role

ALL_ROLES: FrozenSet[Role] = frozenset(Role)
ELEVATED_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.ADMINPRO, Role.SUPREME})

OPERATION_ROLES: Dict[str, FrozenSet[Role]] = {
    # player-facing
    'listSessions': ALL_ROLES,
    'listAvailableSessions': ALL_ROLES,
    'listMySessions': ALL_ROLES,
    'listPartiesForSession': ALL_ROLES,
    'joinSession': ALL_ROLES,
    'listVisibleRuns': ALL_ROLES,
    'getQuestions': ALL_ROLES,
    'getUnansweredQuestions': ALL_ROLES,
    'getMyAnswers': ALL_ROLES,
    'submitAnswer': ALL_ROLES,
    'getMyResults': ALL_ROLES,
    'getPartyHistory': ALL_ROLES,
    'getLeaderboard': ALL_ROLES,
    # administration
    'listGames': ELEVATED_ROLES,
    'createGame': ELEVATED_ROLES,
    'adminListSessions': ELEVATED_ROLES,
    'createSession': ELEVATED_ROLES,
    'deleteSession': ELEVATED_ROLES,
    'listParties': ELEVATED_ROLES,
    'createParty': ELEVATED_ROLES,
    'deleteParty': ELEVATED_ROLES,
    'getPartyPlayers': ELEVATED_ROLES,
    'listRuns': ELEVATED_ROLES,
    'createRun': ELEVATED_ROLES,
    'deleteRun': ELEVATED_ROLES,
    'listRunQuestions': ELEVATED_ROLES,
    'addQuestions': ELEVATED_ROLES,
    'deleteQuestion': ELEVATED_ROLES,
    'setStarted': ELEVATED_ROLES,
    'setVisibility': ELEVATED_ROLES,
    'closeRun': ELEVATED_ROLES,
    'getStatistics': ELEVATED_ROLES,
}


def authorize(profile, operation: str) -> None:
    """Raise AuthorizationError unless ``profile`` may call ``operation``.

    Operations missing from the table are denied to everyone.
    """
    if profile is None or not getattr(profile, 'is_authenticated', False):
        raise AuthenticationError('Authentication required')
    allowed = OPERATION_ROLES.get(operation, frozenset())
    if profile.role not in allowed:
        required = sorted(role.value for role in allowed)
        raise AuthorizationError(
            f'Operation {operation} requires one of the roles: {", ".join(required) or "none"}',
            required_roles=required,
        )


def requires(operation: str):
    """Route decorator running :func:`authorize` against ``current_user``."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            authorize(current_user, operation)
            return view(*args, **kwargs)
        return wrapped
    return decorator
