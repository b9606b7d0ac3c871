"""Session and party catalog: discovery, enrollment and paid entry."""

from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from harmonia import db
from harmonia.errors import (
    ConflictError,
    EligibilityError,
    InsufficientBalanceError,
    NotFoundError,
    StateGuardError,
    ValidationError,
)
from harmonia.models import GameSession, GameType, Party, PartyPlayer, Profile, Run, SessionEntry
from harmonia.services.projector import has_revealed_run, revealed_score_for_user, revealed_standings


def _get_session(session_id: int) -> GameSession:
    session = db.session.get(GameSession, session_id)
    if session is None:
        raise NotFoundError(f'Session {session_id} not found')
    return session


def _get_party(party_id: int) -> Party:
    party = db.session.get(Party, party_id)
    if party is None:
        raise NotFoundError(f'Party {party_id} not found')
    return party


def _resolve_game(game_key: Optional[str]) -> Optional[GameType]:
    if not game_key:
        return None
    game = GameType.query.filter_by(key_name=game_key).first()
    if game is None:
        raise NotFoundError(f'Game {game_key} not found')
    return game


def _optional_int(value, name: str, minimum: int = 0) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValidationError(f'{name} must be an integer >= {minimum}')
    return value


def list_games() -> List[dict]:
    return [g.to_dict() for g in GameType.query.order_by(GameType.id).all()]


def create_game(key_name, name) -> GameType:
    if not isinstance(key_name, str) or not key_name.strip():
        raise ValidationError('key_name is required')
    if not isinstance(name, str) or not name.strip():
        raise ValidationError('name is required')
    game = GameType(key_name=key_name.strip(), name=name.strip())
    db.session.add(game)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f'Game {key_name} already exists') from None
    current_app.logger.info(f"[create_game] game={game.id} key={game.key_name}")
    return game


def _session_query(game_key: Optional[str]):
    query = GameSession.query
    game = _resolve_game(game_key)
    if game is not None:
        query = query.filter_by(game_id=game.id)
    return query.order_by(GameSession.created_at.desc(), GameSession.id.desc())


def list_sessions(game_key: Optional[str] = None) -> List[dict]:
    return [s.to_dict() for s in _session_query(game_key).all()]


def _joined_session_ids(user_id: int):
    rows = (
        db.session.query(Party.session_id)
        .join(PartyPlayer, PartyPlayer.party_id == Party.id)
        .filter(PartyPlayer.user_id == user_id)
        .distinct()
        .all()
    )
    return {session_id for (session_id,) in rows}


def list_available_sessions(user_id: int, game_key: Optional[str] = None) -> List[dict]:
    joined = _joined_session_ids(user_id)
    return [s.to_dict() for s in _session_query(game_key).all() if s.id not in joined]


def list_my_sessions(user_id: int) -> List[dict]:
    """Sessions the user plays in; ``my_score`` only counts revealed runs."""
    joined = _joined_session_ids(user_id)
    if not joined:
        return []
    sessions = (
        GameSession.query.filter(GameSession.id.in_(joined))
        .order_by(GameSession.created_at.desc(), GameSession.id.desc())
        .all()
    )
    result = []
    for session in sessions:
        party_ids = [
            party_id for (party_id,) in db.session.query(PartyPlayer.party_id)
            .join(Party, Party.id == PartyPlayer.party_id)
            .filter(Party.session_id == session.id, PartyPlayer.user_id == user_id)
            .all()
        ]
        payload = session.to_dict()
        payload['party_ids'] = sorted(party_ids)
        payload['my_score'] = revealed_score_for_user(user_id, party_ids)
        result.append(payload)
    return result


def list_parties_for_session(session_id: int, user_id: Optional[int] = None) -> List[dict]:
    session = _get_session(session_id)
    member_of = set()
    if user_id is not None:
        member_of = {
            party_id for (party_id,) in db.session.query(PartyPlayer.party_id)
            .filter(PartyPlayer.user_id == user_id)
            .all()
        }
    parties = []
    for party in session.parties:
        payload = party.to_dict()
        payload['player_count'] = PartyPlayer.query.filter_by(party_id=party.id).count()
        if user_id is not None:
            payload['is_member'] = party.id in member_of
        parties.append(payload)
    return parties


def create_session(game_id=None, game_key=None, title=None, description=None,
                   is_paid=False, price_cfa=0, category=None) -> GameSession:
    """Create a session together with its initial party."""
    if game_key:
        game = _resolve_game(game_key)
    elif game_id is not None:
        game = db.session.get(GameType, game_id)
        if game is None:
            raise NotFoundError(f'Game {game_id} not found')
    else:
        raise ValidationError('game_id or game_key is required')
    if not isinstance(title, str) or not title.strip():
        raise ValidationError('title is required')
    if not isinstance(is_paid, bool):
        raise ValidationError('is_paid must be a boolean')
    price_cfa = _optional_int(price_cfa, 'price_cfa') or 0
    if is_paid and price_cfa <= 0:
        raise ValidationError('A paid session needs a positive price_cfa')
    if not is_paid:
        price_cfa = 0

    session = GameSession(
        game_id=game.id,
        title=title.strip(),
        description=description,
        is_paid=is_paid,
        price_cfa=price_cfa,
        category=category,
    )
    session.parties.append(Party(name=current_app.config.get('INITIAL_PARTY_NAME', 'Principale'), is_initial=True))
    db.session.add(session)
    db.session.commit()
    current_app.logger.info(f"[create_session] session={session.id} game={game.id} paid={is_paid} price={price_cfa}")
    return session


def _has_mid_play_run(party_ids) -> bool:
    if not party_ids:
        return False
    return Run.query.filter(
        Run.party_id.in_(list(party_ids)),
        Run.is_started.is_(True),
        Run.is_closed.is_(False),
    ).first() is not None


def delete_session(session_id: int) -> None:
    session = _get_session(session_id)
    if _has_mid_play_run([p.id for p in session.parties]):
        raise StateGuardError('A session cannot be deleted while one of its runs is being played')
    db.session.delete(session)
    db.session.commit()
    current_app.logger.info(f"[delete_session] session={session_id}")


def create_party(session_id: int, name=None, min_score=None, min_rank=None) -> Party:
    session = _get_session(session_id)
    if not isinstance(name, str) or not name.strip():
        raise ValidationError('name is required')
    party = Party(
        session_id=session.id,
        name=name.strip(),
        is_initial=False,
        min_score=_optional_int(min_score, 'min_score'),
        min_rank=_optional_int(min_rank, 'min_rank', minimum=1),
    )
    db.session.add(party)
    db.session.commit()
    current_app.logger.info(f"[create_party] party={party.id} session={session.id}")
    return party


def delete_party(party_id: int) -> None:
    party = _get_party(party_id)
    if party.is_initial:
        raise StateGuardError('The initial party of a session cannot be deleted')
    if _has_mid_play_run([party.id]):
        raise StateGuardError('A party cannot be deleted while one of its runs is being played')
    db.session.delete(party)
    db.session.commit()
    current_app.logger.info(f"[delete_party] party={party_id}")


def get_party_players(party_id: int) -> List[dict]:
    """Admin view, raw cumulative scores included."""
    party = _get_party(party_id)
    players = PartyPlayer.query.filter_by(party_id=party.id).order_by(PartyPlayer.score.desc(), PartyPlayer.id).all()
    return [p.to_dict() for p in players]


def _resolve_target_party(session: GameSession, party_id) -> Party:
    if party_id is None:
        party = session.initial_party
        if party is None:
            raise NotFoundError(f'Session {session.id} has no initial party')
        return party
    party_id = _optional_int(party_id, 'party_id', minimum=1)
    party = db.session.get(Party, party_id)
    if party is None or party.session_id != session.id:
        raise NotFoundError(f'Party {party_id} not found in session {session.id}')
    return party


def check_eligibility(session: GameSession, party: Party, user_id: int) -> None:
    """Gate a non-initial party on the caller's revealed standing in the initial party."""
    if party.is_initial or (party.min_score is None and party.min_rank is None):
        return
    initial = session.initial_party
    if initial is None or not has_revealed_run(initial.id):
        raise EligibilityError('No results of the initial party have been revealed yet')
    mine = next((e for e in revealed_standings(initial.id) if e['user_id'] == user_id), None)
    score = mine['score'] if mine else 0
    # a shared zero is not a ranking
    rank = mine['rank'] if mine and mine['score'] > 0 else None
    if party.min_score is not None and score < party.min_score:
        raise EligibilityError(
            f'A score of at least {party.min_score} in the initial party is required',
            min_score=party.min_score,
        )
    if party.min_rank is not None and (rank is None or rank > party.min_rank):
        raise EligibilityError(
            f'A rank of {party.min_rank} or better in the initial party is required',
            min_rank=party.min_rank,
        )


def _is_member(party_id: int, user_id: int) -> bool:
    return PartyPlayer.query.filter_by(party_id=party_id, user_id=user_id).first() is not None


def _has_entered(session: GameSession, user_id: int) -> bool:
    if SessionEntry.query.filter_by(session_id=session.id, user_id=user_id).first() is not None:
        return True
    return (
        PartyPlayer.query.join(Party, Party.id == PartyPlayer.party_id)
        .filter(Party.session_id == session.id, PartyPlayer.user_id == user_id)
        .first()
    ) is not None


def _enter_party(session: GameSession, party: Party, user_id: int) -> int:
    """Debit (when due) and insert membership in one transaction. Returns the amount debited."""
    debit = 0
    if session.is_paid and session.price_cfa > 0 and not _has_entered(session, user_id):
        debit = session.price_cfa
        updated = Profile.query.filter(Profile.id == user_id, Profile.solde_cfa >= debit).update(
            {Profile.solde_cfa: Profile.solde_cfa - debit},
            synchronize_session=False,
        )
        if updated != 1:
            db.session.rollback()
            raise InsufficientBalanceError('Insufficient balance', price_cfa=debit)
        db.session.add(SessionEntry(session_id=session.id, user_id=user_id, amount_cfa=debit))
    db.session.add(PartyPlayer(party_id=party.id, user_id=user_id, score=0))
    db.session.commit()
    return debit


def join_session(user_id: int, session_id: int, party_id=None) -> dict:
    session = _get_session(session_id)
    party = _resolve_target_party(session, party_id)
    if _is_member(party.id, user_id):
        return {'party_id': party.id, 'session_id': session.id, 'already_member': True, 'debited_cfa': 0}
    check_eligibility(session, party, user_id)

    # A unique-key failure means a concurrent join won: either the same
    # membership (idempotent) or the session entry, then retry once without debit.
    for attempt in range(2):
        try:
            debited = _enter_party(session, party, user_id)
            break
        except IntegrityError:
            db.session.rollback()
            if _is_member(party.id, user_id):
                return {'party_id': party.id, 'session_id': session.id, 'already_member': True, 'debited_cfa': 0}
            if attempt or not _has_entered(session, user_id):
                current_app.logger.error(f"[join] session={session.id} party={party.id} user={user_id} insert failed")
                raise ConflictError('Join could not be completed') from None

    current_app.logger.info(f"[join] session={session.id} party={party.id} user={user_id} debited={debited}")
    return {'party_id': party.id, 'session_id': session.id, 'already_member': False, 'debited_cfa': debited}
