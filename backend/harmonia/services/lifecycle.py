"""Run lifecycle engine.

A run is stored as four independent booleans (``is_started``,
``is_visible``, ``is_closed``, ``reveal_answers``). Every transition goes
through :data:`VALID_TRANSITIONS` on the derived :class:`RunState` and is
written as a compare-and-swap over all four flags, so a concurrent flip by
another administrator turns into a guard error instead of a silent
overwrite.

    DRAFT --setStarted(true), >=1 question--> STARTED
    STARTED --setStarted(false)--> DRAFT
    STARTED --setVisibility(true)--> VISIBLE
    VISIBLE --closeRun(true)--> CLOSED     (reveal_answers := true)
    CLOSED --closeRun(false)--> VISIBLE    (reveal_answers := false)
"""

import enum
from datetime import datetime, timezone
from typing import Dict, Tuple

from flask import current_app
from sqlalchemy import exists, func

from harmonia import db
from harmonia.errors import NotFoundError, StateGuardError, ValidationError
from harmonia.models import Party, PartyPlayer, Run, RunQuestion, UserRunAnswer
from harmonia.socketio_events import emit_run_update


class RunState(enum.Enum):
    DRAFT = 'draft'
    STARTED = 'started'
    VISIBLE = 'visible'
    CLOSED = 'closed'


FLAG_NAMES = ('is_started', 'is_visible', 'is_closed', 'reveal_answers')

STATE_FLAGS: Dict[RunState, Tuple[bool, bool, bool, bool]] = {
    RunState.DRAFT: (False, False, False, False),
    RunState.STARTED: (True, False, False, False),
    RunState.VISIBLE: (True, True, False, False),
    RunState.CLOSED: (True, True, True, True),
}
_STATES_BY_FLAGS = {flags: state for state, flags in STATE_FLAGS.items()}

SET_STARTED = 'setStarted'
SET_VISIBILITY = 'setVisibility'
CLOSE_RUN = 'closeRun'

VALID_TRANSITIONS: Dict[Tuple[RunState, str, bool], RunState] = {
    (RunState.DRAFT, SET_STARTED, True): RunState.STARTED,
    (RunState.STARTED, SET_STARTED, False): RunState.DRAFT,
    (RunState.STARTED, SET_VISIBILITY, True): RunState.VISIBLE,
    (RunState.VISIBLE, CLOSE_RUN, True): RunState.CLOSED,
    (RunState.CLOSED, CLOSE_RUN, False): RunState.VISIBLE,
}

# Re-asserting the state a run is already in succeeds without a write.
IDEMPOTENT_REQUESTS = frozenset({
    (RunState.DRAFT, SET_STARTED, False),
    (RunState.STARTED, SET_STARTED, True),
    (RunState.VISIBLE, SET_VISIBILITY, True),
    (RunState.VISIBLE, CLOSE_RUN, False),
    (RunState.CLOSED, CLOSE_RUN, True),
})

_GUARD_MESSAGES = {
    (SET_STARTED, True): 'Only a draft run can be started',
    (SET_STARTED, False): 'A run can only be reset to draft while it is started and not visible',
    (SET_VISIBILITY, True): 'A run must be started and not closed before it can be made visible',
    (SET_VISIBILITY, False): 'A published run cannot be hidden again',
    (CLOSE_RUN, True): 'Only a visible run can be closed',
    (CLOSE_RUN, False): 'Only a closed run can be reopened',
}


def derive_state(run: Run) -> RunState:
    flags = tuple(bool(getattr(run, name)) for name in FLAG_NAMES)
    state = _STATES_BY_FLAGS.get(flags)
    if state is None:
        raise StateGuardError(f'Run {run.id} has an inconsistent state {dict(zip(FLAG_NAMES, flags))}')
    return state


def next_state(state: RunState, action: str, value: bool) -> RunState:
    """Return the state reached by ``action(value)`` or raise StateGuardError."""
    if (state, action, value) in IDEMPOTENT_REQUESTS:
        return state
    target = VALID_TRANSITIONS.get((state, action, value))
    if target is None:
        message = _GUARD_MESSAGES.get((action, value), f'Unknown run action {action}')
        raise StateGuardError(message, state=state.value)
    return target


def get_run(run_id: int) -> Run:
    run = db.session.get(Run, run_id)
    if run is None:
        raise NotFoundError(f'Run {run_id} not found')
    return run


def _lock_run(run_id: int) -> Run:
    """Re-read the run inside the current transaction, row-locked where supported."""
    run = Run.query.filter_by(id=run_id).populate_existing().with_for_update().first()
    if run is None:
        raise NotFoundError(f'Run {run_id} not found')
    return run


def question_count(run_id: int) -> int:
    return RunQuestion.query.filter_by(run_id=run_id).count()


def run_summary(run: Run) -> dict:
    payload = run.to_dict()
    payload['state'] = derive_state(run).value
    payload['question_count'] = question_count(run.id)
    return payload


def transition(run_id: int, action: str, value: bool) -> Run:
    if not isinstance(value, bool):
        raise ValidationError('value must be a boolean')
    run = get_run(run_id)
    current = derive_state(run)
    target = next_state(current, action, value)
    if target is current:
        return run
    if target is RunState.STARTED and current is RunState.DRAFT and question_count(run.id) == 0:
        raise StateGuardError('Add at least one question before starting the run', state=current.value)

    expected = dict(zip(FLAG_NAMES, STATE_FLAGS[current]))
    values = dict(zip(FLAG_NAMES, STATE_FLAGS[target]))
    if target is RunState.CLOSED:
        values['closed_at'] = datetime.now(timezone.utc)
    elif current is RunState.CLOSED:
        values['closed_at'] = None

    query = Run.query.filter_by(id=run.id, **expected)
    if target is RunState.STARTED:
        query = query.filter(exists().where(RunQuestion.run_id == Run.id))
    updated = query.update(values, synchronize_session=False)
    if updated != 1:
        db.session.rollback()
        current_app.logger.info(f"[{action}] run={run.id} lost compare-and-swap from {current.value}")
        raise StateGuardError('Run state changed concurrently, reload and retry')
    db.session.commit()
    db.session.refresh(run)

    current_app.logger.info(f"[{action}] run={run.id} party={run.party_id} {current.value} -> {target.value}")
    emit_run_update(run, target.value)
    return run


def set_started(run_id: int, value: bool) -> Run:
    return transition(run_id, SET_STARTED, value)


def set_visibility(run_id: int, value: bool) -> Run:
    return transition(run_id, SET_VISIBILITY, value)


def close_run(run_id: int, value: bool) -> Run:
    return transition(run_id, CLOSE_RUN, value)


def _validate_questions(questions):
    if not isinstance(questions, list) or not questions:
        raise ValidationError('questions must be a non-empty list')
    limit = int(current_app.config.get('MAX_QUESTIONS_PER_BATCH', 100))
    if len(questions) > limit:
        raise ValidationError(f'At most {limit} questions per request')
    default_score = int(current_app.config.get('DEFAULT_QUESTION_SCORE', 10))
    cleaned = []
    for index, item in enumerate(questions):
        if not isinstance(item, dict):
            raise ValidationError(f'questions[{index}] must be an object')
        text = item.get('question_text')
        if not isinstance(text, str) or not text.strip():
            raise ValidationError(f'questions[{index}].question_text is required')
        correct = item.get('correct_answer')
        if not isinstance(correct, bool):
            raise ValidationError(f'questions[{index}].correct_answer must be a boolean')
        score = item.get('score', default_score)
        if isinstance(score, bool) or not isinstance(score, int) or score <= 0:
            raise ValidationError(f'questions[{index}].score must be a positive integer')
        cleaned.append((text.strip(), correct, score))
    return cleaned


def _insert_questions(run: Run, cleaned) -> list:
    created = [
        RunQuestion(run_id=run.id, question_text=text, correct_answer=correct, score=score)
        for text, correct, score in cleaned
    ]
    db.session.add_all(created)
    return created


def create_run(party_id: int, title=None, questions=None) -> Run:
    party = db.session.get(Party, party_id)
    if party is None:
        raise NotFoundError(f'Party {party_id} not found')
    if title is not None and (not isinstance(title, str) or not title.strip()):
        raise ValidationError('title must be a non-empty string')
    cleaned = _validate_questions(questions) if questions else []
    if not title:
        title = f'Run {Run.query.filter_by(party_id=party.id).count() + 1}'

    run = Run(party_id=party.id, title=title.strip())
    db.session.add(run)
    db.session.flush()
    if cleaned:
        _insert_questions(run, cleaned)
    db.session.commit()
    current_app.logger.info(f"[create_run] run={run.id} party={party.id} questions={len(cleaned)}")
    return run


def add_questions(run_id: int, questions) -> list:
    cleaned = _validate_questions(questions)
    run = _lock_run(run_id)
    if run.is_started or run.is_visible:
        db.session.rollback()
        raise StateGuardError('Questions can only be added while the run is a draft', state=derive_state(run).value)
    created = _insert_questions(run, cleaned)
    db.session.commit()
    current_app.logger.info(f"[add_questions] run={run.id} added={len(created)}")
    return created


def delete_run(run_id: int) -> None:
    run = _lock_run(run_id)
    if run.is_mid_play:
        db.session.rollback()
        raise StateGuardError('A run cannot be deleted while it is being played', state=derive_state(run).value)
    # points awarded by this run leave the cumulative party score with it
    awarded = (
        db.session.query(UserRunAnswer.user_id, func.sum(UserRunAnswer.score_awarded))
        .filter(UserRunAnswer.run_id == run.id)
        .group_by(UserRunAnswer.user_id)
        .all()
    )
    for user_id, points in awarded:
        if points:
            PartyPlayer.query.filter_by(party_id=run.party_id, user_id=user_id).update(
                {PartyPlayer.score: PartyPlayer.score - points},
                synchronize_session=False,
            )
    db.session.delete(run)
    db.session.commit()
    current_app.logger.info(f"[delete_run] run={run_id} players_adjusted={len(awarded)}")


def delete_question(question_id: int) -> None:
    question = db.session.get(RunQuestion, question_id)
    if question is None:
        raise NotFoundError(f'Question {question_id} not found')
    run = _lock_run(question.run_id)
    state = derive_state(run)
    if state is not RunState.DRAFT:
        db.session.rollback()
        raise StateGuardError('Questions can only be deleted while the run is a draft', state=state.value)
    db.session.delete(question)
    db.session.commit()
    current_app.logger.info(f"[delete_question] question={question_id} run={run.id}")


def list_runs(party_id: int) -> list:
    if db.session.get(Party, party_id) is None:
        raise NotFoundError(f'Party {party_id} not found')
    return [run_summary(run) for run in Run.query.filter_by(party_id=party_id).order_by(Run.id).all()]


def list_run_questions(run_id: int) -> list:
    """Admin view, includes correct answers."""
    run = get_run(run_id)
    return [q.to_admin_dict() for q in run.questions]


def get_statistics(run_id: int) -> dict:
    run = get_run(run_id)
    answers = UserRunAnswer.query.filter_by(run_id=run.id)
    return {
        'run_id': run.id,
        'state': derive_state(run).value,
        'question_count': question_count(run.id),
        'answer_count': answers.count(),
        'correct_count': answers.filter(UserRunAnswer.score_awarded > 0).count(),
        'participant_count': db.session.query(func.count(func.distinct(UserRunAnswer.user_id)))
                                       .filter(UserRunAnswer.run_id == run.id).scalar(),
        'player_count': PartyPlayer.query.filter_by(party_id=run.party_id).count(),
    }
