"""Answer/guess aggregation.

One row per (session, question, user). "Both players responded" is always
derived from a count over persisted rows, never from process memory, since
the two submissions can land on different workers.
"""

from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from onlyyours import db
from onlyyours.models import GameAnswer


def find_record(session_id, question_id, user_id) -> Optional[GameAnswer]:
    return GameAnswer.query.filter_by(
        session_id=session_id, question_id=question_id, user_id=user_id
    ).first()


def record_answer(session_id, question_id, user_id, answer: str) -> bool:
    """Insert the Round 1 answer. Returns False when a row already existed."""
    db.session.add(GameAnswer(
        session_id=session_id,
        question_id=question_id,
        user_id=user_id,
        round1_answer=answer,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a duplicate submission of the same key
        db.session.rollback()
        current_app.logger.warning(
            f"[answer-dup] session={session_id} user={user_id} question={question_id} concurrent duplicate"
        )
        return False
    return True


def record_guess(record: GameAnswer, guess: str) -> bool:
    """Set round2_guess only if still unset. Returns False on a replay."""
    updated = GameAnswer.query.filter(
        GameAnswer.id == record.id,
        GameAnswer.round2_guess.is_(None),
    ).update({GameAnswer.round2_guess: guess}, synchronize_session=False)
    db.session.commit()
    db.session.refresh(record)
    return updated == 1


def count_answers(session_id, question_id) -> int:
    return GameAnswer.query.filter_by(session_id=session_id, question_id=question_id).count()


def count_guesses(session_id, question_id) -> int:
    return GameAnswer.query.filter(
        GameAnswer.session_id == session_id,
        GameAnswer.question_id == question_id,
        GameAnswer.round2_guess.isnot(None),
    ).count()


def has_any_guess(session_id) -> bool:
    return GameAnswer.query.filter(
        GameAnswer.session_id == session_id,
        GameAnswer.round2_guess.isnot(None),
    ).first() is not None


def answers_for_session(session_id) -> List[GameAnswer]:
    return GameAnswer.query.filter_by(session_id=session_id).order_by(GameAnswer.question_id).all()


def guessed_records(session_id, user_id) -> List[GameAnswer]:
    return GameAnswer.query.filter(
        GameAnswer.session_id == session_id,
        GameAnswer.user_id == user_id,
        GameAnswer.round2_guess.isnot(None),
    ).all()
