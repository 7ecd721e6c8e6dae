"""Read-only projections over completed and active sessions."""

import math
from datetime import timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from onlyyours import db
from onlyyours.models import (
    Couple,
    GameSession,
    SessionStatus,
    User,
    to_epoch_millis,
)
from . import engine
from .errors import NotFoundError
from .payloads import ActiveSessionSummary, Badge, DashboardStats, HistoryItem, HistoryPage

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


def _require_user(user_id) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")
    return user


def _sessions_for_user(user_id, status: Optional[SessionStatus] = None) -> List[GameSession]:
    query = GameSession.query.join(Couple, GameSession.couple_id == Couple.id).filter(
        (Couple.user1_id == user_id) | (Couple.user2_id == user_id)
    )
    if status is not None:
        query = query.filter(GameSession.status == status)
    return query.order_by(GameSession.created_at.desc()).all()


def _round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def _local_date(value):
    return value.replace(tzinfo=timezone.utc).astimezone().date()


def _partner_name(session: GameSession, user_id) -> str:
    couple = session.couple
    partner = couple.user2 if couple.user1_id == user_id else couple.user1
    return partner.name


def get_active_session_summary(user_id) -> Optional[ActiveSessionSummary]:
    _require_user(user_id)
    session = engine.get_latest_active_session_for_user(user_id)
    if session is None:
        return None

    order = list(session.question_order or [])
    total = len(order) or engine.QUESTIONS_PER_GAME
    index = min(max(session.current_question_index or 0, 0), total - 1)
    current_number = None if session.status is SessionStatus.INVITED else index + 1
    return ActiveSessionSummary(
        session_id=session.id,
        status=session.status.value,
        round=session.status.value,
        category_id=session.category_id,
        current_question_number=current_number,
        total_questions=total,
        partner_name=_partner_name(session, user_id),
        created_at=to_epoch_millis(session.created_at),
        started_at=to_epoch_millis(session.started_at),
        completed_at=to_epoch_millis(session.completed_at),
        expires_at=to_epoch_millis(session.expires_at),
        last_activity_at=to_epoch_millis(session.last_activity_at),
        can_continue=True,
    )


def _matches_winner(session: GameSession, user_id, winner: str) -> bool:
    mine = session.score_of(user_id)
    theirs = session.partner_score_of(user_id)
    if winner == 'self':
        return mine > theirs
    if winner == 'partner':
        return mine < theirs
    return True


def _outcome(session: GameSession, user_id) -> str:
    mine = session.score_of(user_id)
    theirs = session.partner_score_of(user_id)
    if mine > theirs:
        return 'WIN'
    if mine < theirs:
        return 'LOSS'
    return 'DRAW'


def get_game_history(user_id, page=0, size=DEFAULT_PAGE_SIZE, sort='recent', winner='all') -> HistoryPage:
    _require_user(user_id)
    safe_page = page if page is not None and page >= 0 else 0
    safe_size = DEFAULT_PAGE_SIZE if size is None else min(max(size, 1), MAX_PAGE_SIZE)
    winner = (winner or 'all').strip().lower()

    sessions = _sessions_for_user(user_id, SessionStatus.COMPLETED)
    sessions.sort(
        key=lambda s: (s.reference_time, s.created_at),
        reverse=(sort or 'recent').strip().lower() != 'oldest',
    )
    filtered = [s for s in sessions if _matches_winner(s, user_id, winner)]

    total = len(filtered)
    start = min(safe_page * safe_size, total)
    end = min(start + safe_size, total)
    items = [
        HistoryItem(
            session_id=s.id,
            completed_at=to_epoch_millis(s.reference_time),
            my_score=s.score_of(user_id),
            partner_score=s.partner_score_of(user_id),
            partner_name=_partner_name(s, user_id),
            category_id=s.category_id,
            result=_outcome(s, user_id),
        )
        for s in filtered[start:end]
    ]
    return HistoryPage(
        items=items,
        page=safe_page,
        size=safe_size,
        total_elements=total,
        total_pages=math.ceil(total / safe_size) if total else 0,
        has_next=end < total,
    )


def streak_days(completed: List[GameSession]) -> int:
    """Consecutive local calendar days ending at the most recent completion."""
    days = sorted({_local_date(s.reference_time) for s in completed if s.reference_time}, reverse=True)
    if not days:
        return 0
    streak = 1
    expected = days[0] - timedelta(days=1)
    for day in days[1:]:
        if day != expected:
            break
        streak += 1
        expected -= timedelta(days=1)
    return streak


def get_dashboard_stats(user_id) -> DashboardStats:
    _require_user(user_id)
    completed = _sessions_for_user(user_id, SessionStatus.COMPLETED)
    everything = _sessions_for_user(user_id)

    scores = [s.score_of(user_id) for s in completed]
    responded = [s for s in everything if s.status is not SessionStatus.INVITED]
    # Accepted means the session reached ROUND1 at some point
    accepted = [s for s in responded if s.started_at is not None]
    acceptance_rate = (len(accepted) / len(responded) * 100.0) if responded else 0.0

    latencies = [
        (s.started_at - s.created_at).total_seconds()
        for s in accepted
        if s.created_at is not None and s.started_at is not None and s.started_at >= s.created_at
    ]
    return DashboardStats(
        games_played=len(completed),
        average_score=_round2(sum(scores) / len(scores)) if scores else 0.0,
        best_score=max(scores, default=0),
        streak_days=streak_days(completed),
        invitation_acceptance_rate=_round2(acceptance_rate),
        avg_invitation_response_seconds=_round2(sum(latencies) / len(latencies)) if latencies else 0.0,
    )


def get_badges(user_id) -> List[Badge]:
    stats = get_dashboard_stats(user_id)
    completed = _sessions_for_user(user_id, SessionStatus.COMPLETED)
    ascending = sorted((s for s in completed if s.reference_time), key=lambda s: s.reference_time)
    latest = to_epoch_millis(ascending[-1].reference_time) if ascending else None

    def nth(n):
        return to_epoch_millis(ascending[n - 1].reference_time) if len(ascending) >= n else None

    def first_scoring(threshold):
        for s in ascending:
            if s.score_of(user_id) >= threshold:
                return to_epoch_millis(s.reference_time)
        return None

    badges = []
    if stats.games_played >= 1:
        badges.append(Badge('FIRST_GAME', 'First Spark', 'Complete your first game together.', nth(1)))
    if stats.games_played >= 5:
        badges.append(Badge('FIVE_GAMES', 'Rhythm Builders', 'Complete 5 games as a couple.', nth(5)))
    if stats.games_played >= 10:
        badges.append(Badge('TEN_GAMES', 'Deeply In Sync', 'Complete 10 games as a couple.', nth(10)))
    if stats.best_score >= 7:
        badges.append(Badge('SHARP_GUESSER', 'Sharp Guesser', 'Score at least 7 in a single game.', first_scoring(7)))
    if stats.streak_days >= 3:
        badges.append(Badge('STREAK_3', 'Hot Streak', 'Play on 3 consecutive days.', latest))
    if stats.invitation_acceptance_rate >= 70.0 and stats.games_played >= 3:
        badges.append(Badge(
            'RESPONSIVE_COUPLE',
            'Responsive Couple',
            'Keep your invitation acceptance rate above 70%.',
            latest,
        ))
    return badges

