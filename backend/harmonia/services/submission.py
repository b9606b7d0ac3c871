"""Answer submission pipeline.

Correctness is computed here, against the stored answer, and never sent
back: the caller only learns whether the submission was accepted. The
``(user_id, run_question_id)`` unique constraint backs up the existence
check so two concurrent submissions can never both score.
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError

from harmonia import db
from harmonia.errors import ConflictError, HarmoniaError, NotFoundError, StateGuardError, ValidationError
from harmonia.models import PartyPlayer, Run, RunQuestion, UserRunAnswer
from harmonia.services.projector import require_member


def already_answered(user_id: int, run_question_id: int) -> bool:
    return UserRunAnswer.query.filter_by(user_id=user_id, run_question_id=run_question_id).first() is not None


def submit_answer(user_id: int, run_question_id, answer) -> dict:
    if isinstance(run_question_id, bool) or not isinstance(run_question_id, int):
        raise ValidationError('run_question_id must be an integer')
    if not isinstance(answer, bool):
        raise ValidationError('answer must be a boolean')

    question = db.session.get(RunQuestion, run_question_id)
    if question is None:
        raise NotFoundError(f'Question {run_question_id} not found')

    try:
        run = Run.query.filter_by(id=question.run_id).populate_existing().with_for_update().first()
        if run.is_closed:
            raise StateGuardError('Run is closed')
        if not run.is_visible:
            raise StateGuardError('Run is not open for answers yet')
        membership = require_member(run.party_id, user_id)
        if already_answered(user_id, question.id):
            raise ConflictError('Question already answered')
    except HarmoniaError:
        db.session.rollback()
        raise

    score_awarded = question.score if answer == question.correct_answer else 0
    try:
        db.session.add(UserRunAnswer(
            user_id=user_id,
            run_question_id=question.id,
            run_id=run.id,
            answer=answer,
            score_awarded=score_awarded,
        ))
        PartyPlayer.query.filter_by(id=membership.id).update(
            {PartyPlayer.score: PartyPlayer.score + score_awarded},
            synchronize_session=False,
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(f"[submit] duplicate run={run.id} question={question.id} user={user_id}")
        raise ConflictError('Question already answered') from None

    current_app.logger.info(f"[submit] run={run.id} question={question.id} user={user_id}")
    return {'success': True}
