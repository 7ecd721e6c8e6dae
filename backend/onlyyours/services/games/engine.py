"""Game session state machine.

INVITED --accept--> ROUND1 --(all answered)--> ROUND2 --(all guessed)--> COMPLETED
INVITED --decline--> DECLINED
INVITED/ROUND1/ROUND2 --TTL elapsed--> EXPIRED

No state is held between calls. Every transition is a single conditional
UPDATE filtered on the state it expects (status and, where the cursor moves,
current_question_index); a zero rowcount means a concurrent caller already
made the move.
"""

import random
from datetime import timedelta
from typing import List, NamedTuple, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from onlyyours import db
from onlyyours.models import (
    ACTIVE_STATUSES,
    GameSession,
    SessionStatus,
    User,
    to_epoch_millis,
    utcnow,
)
from onlyyours.services import couples, question_bank
from . import answers, scoring
from .errors import (
    ActiveSessionExists,
    InvalidAnswer,
    NotFoundError,
    SessionExpired,
    StateConflictError,
)
from .payloads import GameResultsPayload, GuessResultPayload, InvitationPayload, QuestionPayload

QUESTIONS_PER_GAME = 8
CHOICES = ('A', 'B', 'C', 'D')
ROUND1 = 'ROUND1'
ROUND2 = 'ROUND2'


def validate_choice(value, label: str = 'Answer') -> str:
    if not isinstance(value, str) or value not in CHOICES:
        raise InvalidAnswer(f"{label} must be A, B, C, or D. Received: {value}")
    return value


def _session_ttl() -> timedelta:
    return timedelta(days=int(current_app.config.get('SESSION_TTL_DAYS', 7)))


def _load_session(session_id) -> GameSession:
    session = db.session.get(GameSession, str(session_id)) if session_id is not None else None
    if session is None:
        raise NotFoundError(f"Game session not found: {session_id}")
    return session


def _cas(session: GameSession, values: dict, **expected) -> bool:
    """Apply ``values`` only if the row still matches ``expected``."""
    query = GameSession.query.filter(GameSession.id == session.id)
    for column, value in expected.items():
        attr = getattr(GameSession, column)
        if isinstance(value, (set, frozenset, list, tuple)):
            query = query.filter(attr.in_(list(value)))
        else:
            query = query.filter(attr == value)
    updated = query.update(values, synchronize_session=False)
    db.session.commit()
    db.session.refresh(session)
    return updated == 1


def _touch(session: GameSession) -> None:
    _cas(session, {GameSession.last_activity_at: utcnow()})


# ---- Expiry ----

def expire_if_needed(session: GameSession, now=None) -> bool:
    """Lazily move a stale non-terminal session to EXPIRED.

    Returns True when this call performed the transition.
    """
    if session.status not in ACTIVE_STATUSES:
        return False
    now = now or utcnow()
    if session.expires_at > now:
        return False
    expired = _cas(
        session,
        {
            GameSession.status: SessionStatus.EXPIRED,
            GameSession.completed_at: db.func.coalesce(GameSession.completed_at, now),
            GameSession.last_activity_at: now,
            GameSession.active_couple_id: None,
        },
        status=ACTIVE_STATUSES,
    )
    if expired:
        current_app.logger.info(f"[expire] session={session.id} auto-expired")
    return expired


def _assert_not_expired(session: GameSession) -> None:
    expire_if_needed(session)
    if session.status is SessionStatus.EXPIRED:
        raise SessionExpired(session.id)


def expire_stale_sessions(now=None) -> int:
    """Expire every non-terminal session past its deadline. Cleanup only."""
    now = now or utcnow()
    stale = find_by_status_in_and_expires_at_before(ACTIVE_STATUSES, now)
    return sum(1 for session in stale if expire_if_needed(session, now))


def find_by_status_in_and_expires_at_before(statuses, before) -> List[GameSession]:
    return GameSession.query.filter(
        GameSession.status.in_(list(statuses)),
        GameSession.expires_at <= before,
    ).all()


# ---- Lookups ----

def get_game_session(session_id) -> GameSession:
    """Load a session for a mutating caller; raises SessionExpired."""
    session = _load_session(session_id)
    _assert_not_expired(session)
    return session


def read_game_session(session_id) -> GameSession:
    """Load a session for a reader; a stale session comes back as EXPIRED."""
    session = _load_session(session_id)
    expire_if_needed(session)
    return session


def find_latest_active_session_for_couple(couple_id) -> Optional[GameSession]:
    candidates = GameSession.query.filter(
        GameSession.couple_id == couple_id,
        GameSession.status.in_(list(ACTIVE_STATUSES)),
    ).all()
    now = utcnow()
    active = [s for s in candidates if not expire_if_needed(s, now)]
    return max(active, key=lambda s: s.created_at, default=None)


def get_latest_active_session_for_user(user_id) -> Optional[GameSession]:
    couple = couples.find_couple_for_user(user_id)
    if couple is None:
        return None
    return find_latest_active_session_for_couple(couple.id)


def _ensure_member(session: GameSession, user_id) -> None:
    if not session.couple.has_member(user_id):
        raise StateConflictError("User is not part of this game session")


def _require_status(session: GameSession, status: SessionStatus) -> None:
    if session.status is not status:
        raise StateConflictError(f"Game is not in {status.value} state: {session.status.value}")


def _question_position(session: GameSession, question_id) -> int:
    order = list(session.question_order or [])
    try:
        return order.index(question_id)
    except ValueError:
        raise NotFoundError(f"Question {question_id} is not part of session {session.id}") from None


def _question_payload(session: GameSession, index: int, round_label: str) -> QuestionPayload:
    question_id = session.question_order[index]
    question = question_bank.get_question(question_id)
    if question is None:
        raise StateConflictError(f"Question not found: {question_id}")
    return QuestionPayload(
        session_id=session.id,
        question_id=question.id,
        question_number=index + 1,
        total_questions=QUESTIONS_PER_GAME,
        question_text=question.text,
        option_a=question.option_a,
        option_b=question.option_b,
        option_c=question.option_c,
        option_d=question.option_d,
        round=round_label,
    )


# ---- Invitation ----

def create_invitation(inviter_id, category_id) -> InvitationPayload:
    current_app.logger.info(f"[invite] inviter={inviter_id} category={category_id}")
    inviter = db.session.get(User, inviter_id)
    if inviter is None:
        raise NotFoundError(f"User not found: {inviter_id}")
    couple = couples.find_couple_for_user(inviter_id)
    if couple is None:
        raise StateConflictError("User must be in a couple to play")
    category = question_bank.get_category(category_id)
    if category is None:
        raise NotFoundError(f"Category not found: {category_id}")
    available = question_bank.count_questions(category_id)
    if available < QUESTIONS_PER_GAME:
        raise StateConflictError(
            f"Not enough questions in category. Required: {QUESTIONS_PER_GAME}, Available: {available}"
        )

    existing = find_latest_active_session_for_couple(couple.id)
    if existing is not None:
        raise ActiveSessionExists(existing.id)

    now = utcnow()
    session = GameSession(
        couple_id=couple.id,
        active_couple_id=couple.id,
        status=SessionStatus.INVITED,
        category_id=category.id,
        current_question_index=0,
        created_at=now,
        expires_at=now + _session_ttl(),
        last_activity_at=now,
    )
    db.session.add(session)
    try:
        db.session.commit()
    except IntegrityError:
        # The partner's invite won the insert; surface the winning session
        db.session.rollback()
        winner = find_latest_active_session_for_couple(couple.id)
        if winner is not None:
            raise ActiveSessionExists(winner.id) from None
        raise

    current_app.logger.info(f"[invite] session={session.id} status=INVITED")
    return InvitationPayload(
        session_id=session.id,
        category_id=category.id,
        category_name=category.name,
        category_description=category.description,
        is_sensitive=bool(category.is_sensitive),
        inviter_id=inviter.id,
        inviter_name=inviter.name,
        timestamp=to_epoch_millis(now),
    )


def accept_invitation(session_id, accepter_id) -> QuestionPayload:
    current_app.logger.info(f"[accept] session={session_id} accepter={accepter_id}")
    session = get_game_session(session_id)
    _require_status(session, SessionStatus.INVITED)
    if not session.couple.has_member(accepter_id):
        raise StateConflictError("Accepter is not part of this couple")

    pool = question_bank.questions_for_category(session.category_id)
    if len(pool) < QUESTIONS_PER_GAME:
        raise StateConflictError(
            f"Not enough questions in category. Required: {QUESTIONS_PER_GAME}, Available: {len(pool)}"
        )
    random.shuffle(pool)
    order = [q.id for q in pool[:QUESTIONS_PER_GAME]]

    now = utcnow()
    started = _cas(
        session,
        {
            GameSession.status: SessionStatus.ROUND1,
            GameSession.question_order: order,
            GameSession.current_question_index: 0,
            GameSession.started_at: now,
            GameSession.last_activity_at: now,
        },
        status=SessionStatus.INVITED,
    )
    if not started:
        raise StateConflictError(f"Game is not in INVITED state: {session.status.value}")

    current_app.logger.info(f"[accept] session={session.id} started questions={order}")
    return _question_payload(session, 0, ROUND1)


def decline_invitation(session_id, decliner_id) -> None:
    current_app.logger.info(f"[decline] session={session_id} decliner={decliner_id}")
    session = get_game_session(session_id)
    if not session.couple.has_member(decliner_id):
        raise StateConflictError("Decliner is not part of this couple")
    _require_status(session, SessionStatus.INVITED)

    now = utcnow()
    declined = _cas(
        session,
        {
            GameSession.status: SessionStatus.DECLINED,
            GameSession.completed_at: now,
            GameSession.last_activity_at: now,
            GameSession.active_couple_id: None,
        },
        status=SessionStatus.INVITED,
    )
    if not declined:
        raise StateConflictError(f"Game is not in INVITED state: {session.status.value}")
    current_app.logger.info(f"[decline] session={session.id} declined")


# ---- Round 1 ----

class AnswerOutcome(NamedTuple):
    """What one Round 1 submission did to the session."""
    next_question: Optional[QuestionPayload] = None
    # True only for the single caller whose update moved ROUND1 -> ROUND2
    round1_completed: bool = False


def submit_answer(session_id, user_id, question_id, answer) -> Optional[QuestionPayload]:
    """Record a Round 1 answer.

    Returns the next question when this submission completed the pair for
    the current question, otherwise None (waiting on the partner, a
    duplicate, or the end of Round 1; the latter is visible through the
    session status).
    """
    return record_round1_answer(session_id, user_id, question_id, answer).next_question


def record_round1_answer(session_id, user_id, question_id, answer) -> AnswerOutcome:
    validate_choice(answer, 'Answer')
    current_app.logger.info(
        f"[answer] session={session_id} user={user_id} question={question_id} answer={answer}"
    )
    session = get_game_session(session_id)
    _ensure_member(session, user_id)

    if answers.find_record(session.id, question_id, user_id) is not None:
        current_app.logger.warning(
            f"[answer-dup] session={session.id} user={user_id} question={question_id} ignoring duplicate"
        )
        return AnswerOutcome()

    _require_status(session, SessionStatus.ROUND1)
    position = _question_position(session, question_id)
    if position != session.current_question_index:
        raise StateConflictError(
            f"Question {question_id} is not the current question (expected #{session.current_question_index + 1})"
        )

    if not answers.record_answer(session.id, question_id, user_id, answer):
        return AnswerOutcome()

    if answers.count_answers(session.id, question_id) < 2:
        current_app.logger.info(f"[answer] session={session.id} question={question_id} waiting for partner")
        _touch(session)
        return AnswerOutcome()

    return _advance_round1(session, position)


def _advance_round1(session: GameSession, position: int) -> AnswerOutcome:
    next_index = position + 1
    now = utcnow()
    if next_index >= len(session.question_order):
        moved = _cas(
            session,
            {
                GameSession.status: SessionStatus.ROUND2,
                GameSession.current_question_index: 0,
                GameSession.last_activity_at: now,
            },
            status=SessionStatus.ROUND1,
            current_question_index=position,
        )
        if moved:
            current_app.logger.info(f"[round1-complete] session={session.id}")
        return AnswerOutcome(round1_completed=moved)

    moved = _cas(
        session,
        {GameSession.current_question_index: next_index, GameSession.last_activity_at: now},
        status=SessionStatus.ROUND1,
        current_question_index=position,
    )
    if moved:
        current_app.logger.info(f"[advance] session={session.id} question {next_index + 1} of {QUESTIONS_PER_GAME}")
    else:
        current_app.logger.info(f"[advance-lost] session={session.id} from={position} already advanced")
    return AnswerOutcome(next_question=_question_payload(session, next_index, ROUND1))


def are_both_players_answered(session_id, question_id) -> bool:
    return answers.count_answers(str(session_id), question_id) >= 2


# ---- Round 2 ----

def get_first_round2_question(session_id) -> QuestionPayload:
    current_app.logger.info(f"[round2-start] session={session_id}")
    session = get_game_session(session_id)
    _require_status(session, SessionStatus.ROUND2)
    values = {GameSession.last_activity_at: utcnow()}
    # Re-assert the cursor only before any guess has moved it
    if not answers.has_any_guess(session.id):
        values[GameSession.current_question_index] = 0
    _cas(session, values, status=SessionStatus.ROUND2)
    return _question_payload(session, 0, ROUND2)


def submit_guess(session_id, user_id, question_id, guess) -> GuessResultPayload:
    validate_choice(guess, 'Guess')
    current_app.logger.info(
        f"[guess] session={session_id} user={user_id} question={question_id} guess={guess}"
    )
    session = get_game_session(session_id)
    _ensure_member(session, user_id)
    _require_status(session, SessionStatus.ROUND2)

    record = answers.find_record(session.id, question_id, user_id)
    if record is None:
        raise StateConflictError("No Round 1 answer found for this user and question")

    if record.round2_guess is not None:
        current_app.logger.warning(
            f"[guess-dup] session={session.id} user={user_id} question={question_id} ignoring duplicate"
        )
        return _guess_result(session, record, user_id)

    position = _question_position(session, question_id)
    if position != session.current_question_index:
        raise StateConflictError(
            f"Question {question_id} is not the current question (expected #{session.current_question_index + 1})"
        )
    if answers.record_guess(record, guess):
        _touch(session)
    return _guess_result(session, record, user_id)


def _guess_result(session: GameSession, record, user_id) -> GuessResultPayload:
    partner_id = session.couple.partner_id_of(user_id)
    partner_record = answers.find_record(session.id, record.question_id, partner_id)
    if partner_record is None:
        raise StateConflictError("Partner's Round 1 answer not found")

    order = list(session.question_order or [])
    number = order.index(record.question_id) + 1 if record.question_id in order else 0
    return GuessResultPayload(
        session_id=session.id,
        question_id=record.question_id,
        question_number=number,
        question_text=record.question.text,
        your_guess=record.round2_guess,
        partner_answer=partner_record.round1_answer,
        correct=record.round2_guess == partner_record.round1_answer,
        correct_count=scoring.correct_guess_count(session.id, user_id, partner_id),
    )


def are_both_players_guessed(session_id, question_id) -> bool:
    return answers.count_guesses(str(session_id), question_id) >= 2


def get_next_round2_question(session_id, from_question_id=None) -> Optional[QuestionPayload]:
    """Advance the Round 2 cursor past ``from_question_id`` (default: current).

    Returns None only once the cursor sits on the last question (or the game
    already completed from it); the caller then scores the game. Keyed on the
    question just guessed so a stale caller cannot skip one.
    """
    session = get_game_session(session_id)
    last_index = len(session.question_order or []) - 1
    if session.status is SessionStatus.COMPLETED and from_question_id is not None:
        # Racing completer: the partner's handler already scored the game
        if _question_position(session, from_question_id) == last_index:
            return None
    _require_status(session, SessionStatus.ROUND2)

    current = session.current_question_index
    position = current if from_question_id is None else _question_position(session, from_question_id)
    if position > current:
        raise StateConflictError(
            f"Question {from_question_id} is not the current question (expected #{current + 1})"
        )
    next_index = position + 1
    if position < current:
        current_app.logger.info(f"[advance-lost] session={session.id} round2 from={position} already advanced")
        return _question_payload(session, next_index, ROUND2)

    if position == last_index:
        current_app.logger.info(f"[round2-complete] session={session.id}")
        return None

    moved = _cas(
        session,
        {GameSession.current_question_index: next_index, GameSession.last_activity_at: utcnow()},
        status=SessionStatus.ROUND2,
        current_question_index=position,
    )
    if moved:
        current_app.logger.info(f"[advance] session={session.id} round2 question {next_index + 1} of {QUESTIONS_PER_GAME}")
    return _question_payload(session, next_index, ROUND2)


def calculate_and_complete_game(session_id) -> GameResultsPayload:
    current_app.logger.info(f"[score] session={session_id}")
    session = get_game_session(session_id)
    if session.status is not SessionStatus.COMPLETED:
        _require_status(session, SessionStatus.ROUND2)
        couple = session.couple
        player1_score, player2_score = scoring.score_answers(
            answers.answers_for_session(session.id), couple.user1_id, couple.user2_id
        )
        now = utcnow()
        completed = _cas(
            session,
            {
                GameSession.player1_score: player1_score,
                GameSession.player2_score: player2_score,
                GameSession.status: SessionStatus.COMPLETED,
                GameSession.completed_at: now,
                GameSession.last_activity_at: now,
                GameSession.active_couple_id: None,
            },
            status=SessionStatus.ROUND2,
        )
        if completed:
            current_app.logger.info(
                f"[complete] session={session.id} p1={player1_score} p2={player2_score}"
            )
        elif session.status is not SessionStatus.COMPLETED:
            raise StateConflictError(f"Game is not in ROUND2 state: {session.status.value}")
    return _results(session)


def _results(session: GameSession) -> GameResultsPayload:
    couple = session.couple
    player1_score = session.player1_score or 0
    player2_score = session.player2_score or 0
    return GameResultsPayload(
        session_id=session.id,
        player1_name=couple.user1.name,
        player1_score=player1_score,
        player2_name=couple.user2.name,
        player2_score=player2_score,
        total_questions=QUESTIONS_PER_GAME,
        message=scoring.result_message(player1_score + player2_score),
    )


# ---- Current question ----

def get_current_question_for_user(session_id, user_id) -> Optional[QuestionPayload]:
    session = get_game_session(session_id)
    _ensure_member(session, user_id)
    if session.status not in (SessionStatus.ROUND1, SessionStatus.ROUND2):
        return None
    order = list(session.question_order or [])
    if not order:
        return None
    index = min(max(session.current_question_index or 0, 0), len(order) - 1)
    _touch(session)
    round_label = ROUND2 if session.status is SessionStatus.ROUND2 else ROUND1
    return _question_payload(session, index, round_label)
