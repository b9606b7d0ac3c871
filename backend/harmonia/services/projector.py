"""Player-facing projections of runs, answers and standings.

Everything here honors the reveal gate: ``correct_answer`` and
``score_awarded`` only leave the server for runs that are closed with
``reveal_answers`` set. Standings are computed from revealed answers, never
from the raw ``PartyPlayer.score`` which may hold unrevealed points.
"""

from typing import Dict, List, Optional

from sqlalchemy import func

from harmonia import db
from harmonia.errors import AuthorizationError, NotFoundError, StateGuardError
from harmonia.models import Party, PartyPlayer, Profile, Run, RunQuestion, UserRunAnswer
from harmonia.services.lifecycle import derive_state, get_run


def _get_party(party_id: int) -> Party:
    party = db.session.get(Party, party_id)
    if party is None:
        raise NotFoundError(f'Party {party_id} not found')
    return party


def require_member(party_id: int, user_id: int) -> PartyPlayer:
    membership = PartyPlayer.query.filter_by(party_id=party_id, user_id=user_id).first()
    if membership is None:
        raise AuthorizationError('Join the session first')
    return membership


def _answers_by_question(user_id: int, run_ids) -> Dict[int, UserRunAnswer]:
    if not run_ids:
        return {}
    rows = UserRunAnswer.query.filter(
        UserRunAnswer.user_id == user_id,
        UserRunAnswer.run_id.in_(list(run_ids)),
    ).all()
    return {row.run_question_id: row for row in rows}


def project_question(question: RunQuestion, answer: Optional[UserRunAnswer], revealed: bool) -> dict:
    payload = {
        'id': question.id,
        'run_id': question.run_id,
        'question_text': question.question_text,
        'score': question.score,
        'answered': answer is not None,
        'my_answer': answer.answer if answer is not None else None,
        'correct_answer': None,
    }
    if revealed:
        payload['correct_answer'] = question.correct_answer
        payload['score_awarded'] = answer.score_awarded if answer is not None else 0
    return payload


def assign_ranks(entries: List[dict], key: str = 'score') -> List[dict]:
    """Competition ranking on an already sorted list: ties share a rank (1, 1, 3)."""
    previous = None
    rank = 0
    for position, entry in enumerate(entries, start=1):
        if entry[key] != previous:
            rank = position
            previous = entry[key]
        entry['rank'] = rank
    return entries


def has_revealed_run(party_id: int) -> bool:
    return Run.query.filter_by(party_id=party_id, is_closed=True, reveal_answers=True).first() is not None


def revealed_scores(party_id: int) -> Dict[int, int]:
    rows = (
        db.session.query(UserRunAnswer.user_id, func.coalesce(func.sum(UserRunAnswer.score_awarded), 0))
        .join(Run, Run.id == UserRunAnswer.run_id)
        .filter(Run.party_id == party_id, Run.is_closed.is_(True), Run.reveal_answers.is_(True))
        .group_by(UserRunAnswer.user_id)
        .all()
    )
    return {user_id: int(total) for user_id, total in rows}


def revealed_standings(party_id: int) -> List[dict]:
    scores = revealed_scores(party_id)
    members = (
        db.session.query(PartyPlayer.user_id, Profile.username)
        .join(Profile, Profile.id == PartyPlayer.user_id)
        .filter(PartyPlayer.party_id == party_id)
        .all()
    )
    entries = [
        {'user_id': user_id, 'username': username, 'score': scores.get(user_id, 0)}
        for user_id, username in members
    ]
    entries.sort(key=lambda e: (-e['score'], e['username']))
    return assign_ranks(entries)


def revealed_score_for_user(user_id: int, party_ids) -> int:
    if not party_ids:
        return 0
    total = (
        db.session.query(func.coalesce(func.sum(UserRunAnswer.score_awarded), 0))
        .join(Run, Run.id == UserRunAnswer.run_id)
        .filter(
            UserRunAnswer.user_id == user_id,
            Run.party_id.in_(list(party_ids)),
            Run.is_closed.is_(True),
            Run.reveal_answers.is_(True),
        )
        .scalar()
    )
    return int(total or 0)


def list_visible_runs(party_id: int, user_id: int) -> List[dict]:
    _get_party(party_id)
    require_member(party_id, user_id)
    runs = Run.query.filter_by(party_id=party_id, is_visible=True).order_by(Run.id).all()
    answered = dict(
        db.session.query(UserRunAnswer.run_id, func.count(UserRunAnswer.id))
        .filter(UserRunAnswer.user_id == user_id, UserRunAnswer.run_id.in_([r.id for r in runs]))
        .group_by(UserRunAnswer.run_id)
        .all()
    )
    return [
        {
            'id': run.id,
            'party_id': run.party_id,
            'title': run.title,
            'state': derive_state(run).value,
            'is_closed': run.is_closed,
            'reveal_answers': run.reveal_answers,
            'question_count': len(run.questions),
            'answered_count': answered.get(run.id, 0),
        }
        for run in runs
    ]


def get_questions(run_id: int, user_id: int) -> List[dict]:
    """Questions of an open run with the caller's ``answered`` flag only."""
    run = get_run(run_id)
    if not run.is_visible:
        raise StateGuardError('Run is not available yet')
    if run.is_closed:
        raise StateGuardError('Run is closed')
    require_member(run.party_id, user_id)
    answered = _answers_by_question(user_id, [run.id])
    return [
        {
            'id': q.id,
            'question_text': q.question_text,
            'score': q.score,
            'answered': q.id in answered,
        }
        for q in run.questions
    ]


def get_unanswered_questions(party_id: int, user_id: int) -> List[dict]:
    _get_party(party_id)
    require_member(party_id, user_id)
    runs = Run.query.filter_by(party_id=party_id, is_visible=True, is_closed=False).order_by(Run.id).all()
    answered = _answers_by_question(user_id, [r.id for r in runs])
    return [
        project_question(q, None, revealed=False)
        for run in runs
        for q in run.questions
        if q.id not in answered
    ]


def get_my_answers(party_id: int, user_id: int) -> List[dict]:
    _get_party(party_id)
    require_member(party_id, user_id)
    runs = {r.id: r for r in Run.query.filter_by(party_id=party_id).all()}
    answers = (
        UserRunAnswer.query.filter(UserRunAnswer.user_id == user_id, UserRunAnswer.run_id.in_(list(runs)))
        .order_by(UserRunAnswer.id)
        .all()
    )
    return [project_question(a.question, a, revealed=runs[a.run_id].is_revealed) for a in answers]


def get_my_results(party_id: int, user_id: int) -> dict:
    _get_party(party_id)
    require_member(party_id, user_id)
    runs = Run.query.filter_by(party_id=party_id, is_visible=True).order_by(Run.id).all()
    answered = _answers_by_question(user_id, [r.id for r in runs])
    results = []
    total = 0
    for run in runs:
        mine = [q for q in run.questions if q.id in answered]
        if not mine:
            continue
        if run.is_revealed:
            run_score = sum(answered[q.id].score_awarded for q in mine)
            total += run_score
            results.append({
                'run_id': run.id,
                'title': run.title,
                'pending': False,
                'run_score': run_score,
                'questions': [project_question(q, answered[q.id], revealed=True) for q in mine],
            })
        else:
            results.append({
                'run_id': run.id,
                'title': run.title,
                'pending': True,
                'run_score': 0,
                'questions': [project_question(q, answered[q.id], revealed=False) for q in mine],
            })
    return {'party_id': party_id, 'total_score': total, 'runs': results}


def get_party_history(party_id: int, user_id: int) -> List[dict]:
    _get_party(party_id)
    require_member(party_id, user_id)
    runs = Run.query.filter_by(party_id=party_id, is_visible=True).order_by(Run.id).all()
    answered = _answers_by_question(user_id, [r.id for r in runs])
    participants = dict(
        db.session.query(UserRunAnswer.run_id, func.count(func.distinct(UserRunAnswer.user_id)))
        .filter(UserRunAnswer.run_id.in_([r.id for r in runs]))
        .group_by(UserRunAnswer.run_id)
        .all()
    )
    history = []
    for run in runs:
        entry = {
            'run_id': run.id,
            'title': run.title,
            'state': derive_state(run).value,
            'pending': not run.is_revealed,
            'question_count': len(run.questions),
            'participant_count': participants.get(run.id, 0),
        }
        if run.is_revealed:
            entry['my_score'] = sum(
                answered[q.id].score_awarded for q in run.questions if q.id in answered
            )
            entry['questions'] = [project_question(q, answered.get(q.id), revealed=True) for q in run.questions]
        history.append(entry)
    return history


def get_leaderboard(run_id: int, user_id: int) -> dict:
    """Rank the party by this run's score; scores stay hidden until reveal."""
    run = get_run(run_id)
    require_member(run.party_id, user_id)
    members = (
        db.session.query(PartyPlayer.user_id, Profile)
        .join(Profile, Profile.id == PartyPlayer.user_id)
        .filter(PartyPlayer.party_id == run.party_id)
        .all()
    )

    def _entry(uid, profile):
        return {
            'user_id': uid,
            'username': profile.username,
            'nom': profile.nom or '',
            'prenom': profile.prenom or '',
            'avatar_url': profile.avatar_url,
            'is_current_user': uid == user_id,
        }

    if not run.is_revealed:
        entries = sorted((_entry(uid, profile) for uid, profile in members), key=lambda e: e['username'])
        for entry in entries:
            entry['score'] = None
            entry['rank'] = None
        return {'run_id': run.id, 'revealed': False, 'leaderboard': entries}

    run_scores = dict(
        db.session.query(UserRunAnswer.user_id, func.coalesce(func.sum(UserRunAnswer.score_awarded), 0))
        .filter(UserRunAnswer.run_id == run.id)
        .group_by(UserRunAnswer.user_id)
        .all()
    )
    entries = []
    for uid, profile in members:
        entry = _entry(uid, profile)
        entry['score'] = int(run_scores.get(uid, 0))
        entries.append(entry)
    entries.sort(key=lambda e: (-e['score'], e['username']))
    return {'run_id': run.id, 'revealed': True, 'leaderboard': assign_ranks(entries)}
