from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from flask import current_app, request
from functools import wraps
from typing import Dict, Optional, Tuple
import threading
import time

from onlyyours import socketio, db
from onlyyours.channels import (
    NAMESPACE,
    GAME_EVENTS,
    GAME_STATUS,
    ERRORS,
    GAME_BROADCAST,
    user_room,
    game_room,
)
from onlyyours.models import User, to_epoch_millis, utcnow
from onlyyours.services import couples, notifications
from onlyyours.services.games import engine
from onlyyours.services.games.errors import GameError, ValidationError
from onlyyours.services.games.payloads import ErrorPayload, Payload, StatusPayload


class ActionThrottle:
    """Drops repeats of the same socket action inside a short window."""

    def __init__(self, window_ms: int = 0):
        self.window_ms = window_ms
        self._last: Dict[Tuple, float] = {}
        self._lock = threading.Lock()

    def allow(self, key: Tuple) -> bool:
        if self.window_ms <= 0:
            return True
        now = time.monotonic() * 1000.0
        with self._lock:
            stale = [k for k, seen in self._last.items() if now - seen >= self.window_ms]
            for k in stale:
                del self._last[k]
            last = self._last.get(key)
            if last is not None and now - last < self.window_ms:
                return False
            self._last[key] = now
            return True


class PresenceTracker:
    """Counts live sockets per user so presence flips only on the first/last one."""

    def __init__(self):
        self._sid_to_user: Dict[str, int] = {}
        self._counts: Dict[int, int] = {}
        self._lock = threading.Lock()

    def connect(self, sid: str, user_id: int) -> bool:
        with self._lock:
            self._sid_to_user[sid] = user_id
            self._counts[user_id] = self._counts.get(user_id, 0) + 1
            return self._counts[user_id] == 1

    def disconnect(self, sid: str) -> Optional[int]:
        """Return the user id when their last socket just closed."""
        with self._lock:
            user_id = self._sid_to_user.pop(sid, None)
            if user_id is None:
                return None
            remaining = max(0, self._counts.get(user_id, 0) - 1)
            if remaining:
                self._counts[user_id] = remaining
                return None
            self._counts.pop(user_id, None)
            return user_id

    def user_for(self, sid: str) -> Optional[int]:
        return self._sid_to_user.get(sid)


_throttle = ActionThrottle()
_presence = PresenceTracker()


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _now_millis() -> int:
    return to_epoch_millis(utcnow())


def _to_user(user_id, event: str, payload: Payload) -> None:
    socketio.emit(event, payload.to_dict(), to=user_room(user_id), namespace=NAMESPACE)


def _broadcast(session_id, payload: Payload) -> None:
    socketio.emit(GAME_BROADCAST, payload.to_dict(), to=game_room(session_id), namespace=NAMESPACE)


def _send_error(user_id, message: str, exc: Optional[GameError] = None) -> None:
    payload = ErrorPayload(
        message=message,
        timestamp=_now_millis(),
        kind=exc.kind if exc else 'error',
        session_id=getattr(exc, 'session_id', None),
    )
    _to_user(user_id, ERRORS, payload)


def _require(data, key):
    value = data.get(key)
    if value is None or value == '':
        raise ValidationError(f"{key} is required")
    return value


def _int_field(data, key) -> int:
    value = _require(data, key)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer") from None


def _user_name(user_id) -> str:
    user = db.session.get(User, user_id)
    return user.name if user else 'Your partner'


def game_action(tag: str, verb: str):
    """Error boundary for inbound game actions.

    Nothing raised by the engine reaches the transport: game errors and
    unexpected failures alike become an ERROR event on the actor's private
    error channel.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(data=None):
            if not current_user.is_authenticated:
                return
            user_id = current_user.id
            data = data if isinstance(data, dict) else {}
            if not _throttle.allow((user_id, tag, data.get('sessionId'), data.get('questionId'))):
                current_app.logger.info(f"[{tag}-debounced] user={user_id}")
                return
            try:
                fn(user_id, data)
            except GameError as exc:
                current_app.logger.warning(f"[{tag}-rejected] user={user_id} kind={exc.kind} error={exc.message}")
                _send_error(user_id, f"Failed to {verb}: {exc.message}", exc)
            except Exception:
                db.session.rollback()
                current_app.logger.exception(f"[{tag}-error] user={user_id}")
                _send_error(user_id, f"Failed to {verb}: unexpected server error")
        return wrapper
    return decorator


@game_action('invite', 'send invitation')
def handle_invite(user_id, data):
    category_id = _int_field(data, 'categoryId')
    invitation = engine.create_invitation(user_id, category_id)
    partner_id = couples.partner_id_for(user_id)
    join_room(game_room(invitation.session_id))

    _to_user(user_id, GAME_EVENTS, StatusPayload(
        session_id=invitation.session_id,
        status='INVITATION_SENT',
        message=f"Invitation sent to {_user_name(partner_id)}",
    ))
    _to_user(partner_id, GAME_EVENTS, invitation)
    notifications.notify(
        partner_id,
        'Game Invitation',
        f"{invitation.inviter_name} wants to play with you!",
        {'type': 'INVITATION', 'sessionId': invitation.session_id},
    )
    current_app.logger.info(
        f"[invite-sent] session={invitation.session_id} inviter={user_id} invitee={partner_id}"
    )


@game_action('accept', 'accept game')
def handle_accept(user_id, data):
    session_id = str(_require(data, 'sessionId'))
    first_question = engine.accept_invitation(session_id, user_id)
    partner_id = couples.partner_id_for(user_id)
    join_room(game_room(session_id))

    _to_user(partner_id, GAME_EVENTS, StatusPayload(
        session_id=session_id,
        status='INVITATION_ACCEPTED',
        message=f"{_user_name(user_id)} accepted your invitation",
    ))
    # Private copies cover a client that subscribes to the game room late
    _to_user(partner_id, GAME_EVENTS, first_question)
    _to_user(user_id, GAME_EVENTS, first_question)
    _broadcast(session_id, first_question)
    current_app.logger.info(f"[game-started] session={session_id} accepter={user_id}")


@game_action('decline', 'decline')
def handle_decline(user_id, data):
    session_id = str(_require(data, 'sessionId'))
    engine.decline_invitation(session_id, user_id)
    partner_id = couples.partner_id_for(user_id)
    decliner_name = _user_name(user_id)

    _to_user(partner_id, GAME_EVENTS, StatusPayload(
        session_id=session_id,
        status='INVITATION_DECLINED',
        message=f"{decliner_name} declined the invitation",
    ))
    notifications.notify(partner_id, 'Invitation Declined', f"{decliner_name} declined the game invitation")
    current_app.logger.info(f"[game-declined] session={session_id} decliner={user_id}")


@game_action('answer', 'submit answer')
def handle_answer(user_id, data):
    session_id = str(_require(data, 'sessionId'))
    question_id = _int_field(data, 'questionId')
    outcome = engine.record_round1_answer(session_id, user_id, question_id, _require(data, 'answer'))

    _to_user(user_id, GAME_STATUS, StatusPayload(
        session_id=session_id,
        status='ANSWER_RECORDED',
        message='Waiting for partner...',
    ))

    if outcome.next_question is not None:
        _broadcast(session_id, outcome.next_question)
        current_app.logger.info(
            f"[question-broadcast] session={session_id} number={outcome.next_question.question_number}"
        )
        return

    if outcome.round1_completed:
        _broadcast(session_id, StatusPayload(
            session_id=session_id,
            status='ROUND1_COMPLETE',
            message="Round 1 complete! Now guess your partner's answers...",
        ))
        _broadcast(session_id, engine.get_first_round2_question(session_id))
        current_app.logger.info(f"[round2-broadcast] session={session_id}")


@game_action('guess', 'submit guess')
def handle_guess(user_id, data):
    session_id = str(_require(data, 'sessionId'))
    question_id = _int_field(data, 'questionId')
    result = engine.submit_guess(session_id, user_id, question_id, _require(data, 'guess'))
    _to_user(user_id, GAME_EVENTS, result)

    if not engine.are_both_players_guessed(session_id, question_id):
        return

    next_question = engine.get_next_round2_question(session_id, from_question_id=question_id)
    if next_question is not None:
        _broadcast(session_id, next_question)
        current_app.logger.info(f"[question-broadcast] session={session_id} round2 number={next_question.question_number}")
        return

    results = engine.calculate_and_complete_game(session_id)
    _broadcast(session_id, results)
    current_app.logger.info(
        f"[results-broadcast] session={session_id} p1={results.player1_score} p2={results.player2_score}"
    )


@game_action('join', 'join game')
def handle_join_game(user_id, data):
    session_id = str(_require(data, 'sessionId'))
    session = engine.read_game_session(session_id)
    if not session.couple.has_member(user_id):
        raise ValidationError("User is not part of this game session")
    room = game_room(session.id)
    join_room(room)
    emit('joined', {'room': room, 'sessionId': session.id, 'status': session.status.value})


def handle_leave_game(data):
    session_id = (data or {}).get('sessionId')
    if not session_id:
        emit('error', {'message': 'sessionId is required'})
        return
    room = game_room(session_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


# ---- Presence ----

def _emit_partner_presence(user_id, partner_left: bool) -> None:
    """Tell the partner about a (dis)connect while a session is active. Never mutates the session."""
    try:
        session = engine.get_latest_active_session_for_user(user_id)
        if session is None:
            return
        partner_id = session.couple.partner_id_of(user_id)
        name = _user_name(user_id)
        status = 'PARTNER_LEFT' if partner_left else 'PARTNER_RETURNED'
        message = (
            f"{name} left the game. You can continue when they return."
            if partner_left else f"{name} returned to the game."
        )
        _to_user(partner_id, GAME_EVENTS, StatusPayload(
            session_id=session.id,
            status=status,
            message=message,
            event_name=status,
            timestamp=_now_millis(),
        ))
        current_app.logger.info(f"[presence] status={status} session={session.id} to={partner_id}")
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f"[presence-error] user={user_id}")


def handle_connect(auth=None):
    if not current_user.is_authenticated:
        return False
    user_id = current_user.id
    join_room(user_room(user_id))
    emit('connected', {'message': 'Connected to /ws', 'userId': user_id})
    if _presence.connect(_get_sid(), user_id):
        _emit_partner_presence(user_id, partner_left=False)


def handle_disconnect(reason=None):
    user_id = _presence.disconnect(_get_sid())
    if user_id is not None:
        _emit_partner_presence(user_id, partner_left=True)


def register_socketio_handlers(app) -> None:
    """Register Socket.IO event handlers on namespace '/ws'.

    Throttle and presence state belong to the router and are reset whenever
    handlers are registered for a new app.
    """
    global _throttle, _presence
    _throttle = ActionThrottle(int(app.config.get('ACTION_DEBOUNCE_MS', 0)))
    _presence = PresenceTracker()

    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('invite', handle_invite, namespace=NAMESPACE)
    socketio.on_event('accept', handle_accept, namespace=NAMESPACE)
    socketio.on_event('decline', handle_decline, namespace=NAMESPACE)
    socketio.on_event('answer', handle_answer, namespace=NAMESPACE)
    socketio.on_event('guess', handle_guess, namespace=NAMESPACE)
    socketio.on_event('join_game', handle_join_game, namespace=NAMESPACE)
    socketio.on_event('leave_game', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
