from datetime import timedelta
from types import SimpleNamespace

import pytest

from onlyyours import db
from onlyyours.models import GameSession, utcnow
from onlyyours.services.games import engine, queries
from onlyyours.services.games.errors import NotFoundError


def _backdate(session_id, days_ago, response_seconds=30):
    completed = utcnow().replace(hour=12, minute=0, second=0, microsecond=0) - timedelta(days=days_ago)
    session = db.session.get(GameSession, session_id)
    session.created_at = completed - timedelta(hours=1)
    session.started_at = session.created_at + timedelta(seconds=response_seconds)
    session.completed_at = completed
    db.session.commit()


@pytest.fixture()
def three_games(players, play_game):
    win = play_game(alex_correct=7, sam_correct=4)
    loss = play_game(alex_correct=3, sam_correct=6)
    draw = play_game(alex_correct=5, sam_correct=5)
    _backdate(win, 2)
    _backdate(loss, 1)
    _backdate(draw, 0)
    return SimpleNamespace(win=win, loss=loss, draw=draw)


def test_history_winner_filter(players, three_games):
    mine = queries.get_game_history(players.alex, winner='self')
    assert [i.session_id for i in mine.items] == [three_games.win]
    assert mine.items[0].result == 'WIN'
    assert (mine.items[0].my_score, mine.items[0].partner_score) == (7, 4)

    theirs = queries.get_game_history(players.alex, winner='partner')
    assert [i.session_id for i in theirs.items] == [three_games.loss]
    assert theirs.items[0].result == 'LOSS'

    everything = queries.get_game_history(players.alex, winner='all')
    assert everything.total_elements == 3
    assert {i.result for i in everything.items} == {'WIN', 'LOSS', 'DRAW'}


def test_history_is_relative_to_the_caller(players, three_games):
    sams = queries.get_game_history(players.sam, winner='self')
    assert [i.session_id for i in sams.items] == [three_games.loss]
    assert sams.items[0].partner_name == 'Alex'


def test_history_sort_and_paging(players, three_games):
    recent = queries.get_game_history(players.alex, page=0, size=2)
    assert [i.session_id for i in recent.items] == [three_games.draw, three_games.loss]
    assert recent.has_next is True
    assert recent.total_pages == 2

    tail = queries.get_game_history(players.alex, page=1, size=2)
    assert [i.session_id for i in tail.items] == [three_games.win]
    assert tail.has_next is False

    oldest = queries.get_game_history(players.alex, sort='oldest')
    assert oldest.items[0].session_id == three_games.win

    data = recent.to_dict()
    assert data['totalElements'] == 3
    assert data['items'][0]['sessionId'] == three_games.draw


def test_history_page_size_is_clamped(players, three_games):
    assert queries.get_game_history(players.alex, size=0).size == 1
    assert queries.get_game_history(players.alex, size=500).size == 50
    assert queries.get_game_history(players.alex, page=-3).page == 0


def test_history_ignores_unfinished_sessions(players):
    engine.create_invitation(players.alex, players.category)
    page = queries.get_game_history(players.alex)
    assert page.items == []
    assert page.total_pages == 0


def test_dashboard_stats(players, three_games):
    invitation = engine.create_invitation(players.sam, players.category)
    engine.decline_invitation(invitation.session_id, players.alex)

    stats = queries.get_dashboard_stats(players.alex)
    assert stats.games_played == 3
    assert stats.average_score == 5.0
    assert stats.best_score == 7
    assert stats.streak_days == 3
    assert stats.invitation_acceptance_rate == 75.0
    assert stats.avg_invitation_response_seconds == 30.0


def test_dashboard_stats_for_a_new_user(players):
    stats = queries.get_dashboard_stats(players.alex)
    assert stats.games_played == 0
    assert stats.average_score == 0.0
    assert stats.streak_days == 0
    assert stats.invitation_acceptance_rate == 0.0


def test_stats_for_unknown_user(flask_app):
    with pytest.raises(NotFoundError):
        queries.get_dashboard_stats(424242)


def test_streak_stops_at_first_gap():
    base = utcnow().replace(hour=12, minute=0, second=0, microsecond=0)

    def done(days_ago):
        return SimpleNamespace(reference_time=base - timedelta(days=days_ago))

    assert queries.streak_days([]) == 0
    assert queries.streak_days([done(0), done(0), done(1)]) == 2
    assert queries.streak_days([done(5), done(6), done(7), done(9)]) == 3


def test_two_decimal_rounding_is_half_up():
    assert queries._round2(66.665) == 66.67
    assert queries._round2(2 / 3 * 100) == 66.67
    assert queries._round2(0.125) == 0.13


def test_badges(players, three_games):
    codes = {b.code for b in queries.get_badges(players.alex)}
    assert codes == {'FIRST_GAME', 'SHARP_GUESSER', 'STREAK_3', 'RESPONSIVE_COUPLE'}

    sam_codes = {b.code for b in queries.get_badges(players.sam)}
    assert 'SHARP_GUESSER' not in sam_codes


def test_first_game_badge_carries_earned_time(players, play_game):
    play_game()
    badges = queries.get_badges(players.alex)
    first = next(b for b in badges if b.code == 'FIRST_GAME')
    assert first.earned_at is not None
    assert first.to_dict()['earnedAt'] == first.earned_at


def test_active_session_summary(players):
    assert queries.get_active_session_summary(players.alex) is None

    invitation = engine.create_invitation(players.alex, players.category)
    invited = queries.get_active_session_summary(players.sam)
    assert invited.session_id == invitation.session_id
    assert invited.status == 'INVITED'
    assert invited.current_question_number is None
    assert invited.partner_name == 'Alex'

    engine.accept_invitation(invitation.session_id, players.sam)
    started = queries.get_active_session_summary(players.alex).to_dict()
    assert started['status'] == 'ROUND1'
    assert started['currentQuestionNumber'] == 1
    assert started['totalQuestions'] == 8
    assert started['canContinue'] is True


def test_active_session_summary_skips_expired(players):
    invitation = engine.create_invitation(players.alex, players.category)
    session = db.session.get(GameSession, invitation.session_id)
    session.expires_at = utcnow() - timedelta(minutes=5)
    db.session.commit()
    assert queries.get_active_session_summary(players.alex) is None
