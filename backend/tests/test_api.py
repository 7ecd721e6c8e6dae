from datetime import timedelta

from onlyyours import db
from onlyyours.models import GameSession, utcnow
from onlyyours.services.games import engine


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_register_login_and_me(client):
    res = client.post('/users/add', json={'username': 'riley', 'password': 'secret', 'name': 'Riley'})
    assert res.status_code == 201
    assert res.get_json()['user']['name'] == 'Riley'

    dup = client.post('/users/add', json={'username': 'riley', 'password': 'other'})
    assert dup.status_code == 400

    bad = client.post('/login', json={'username': 'riley', 'password': 'wrong'})
    assert bad.status_code == 401

    res = client.post('/login', json={'username': 'riley', 'password': 'secret'})
    assert res.status_code == 200
    assert client.get('/me').get_json()['username'] == 'riley'


def test_game_routes_require_login(client, players):
    res = client.get('/api/game/active')
    assert res.status_code == 401
    assert res.get_json()['error'] == 'Authentication required'


def test_active_session_lifecycle(players, login):
    alex = login('alex')
    res = alex.get('/api/game/active')
    assert res.status_code == 404

    invitation = engine.create_invitation(players.alex, players.category)
    res = alex.get('/api/game/active')
    assert res.status_code == 200
    body = res.get_json()
    assert body['sessionId'] == invitation.session_id
    assert body['status'] == 'INVITED'
    assert body['partnerName'] == 'Sam'


def test_current_question_resume(players, login):
    sam = login('sam')
    invitation = engine.create_invitation(players.alex, players.category)

    res = sam.get(f'/api/game/{invitation.session_id}/current-question')
    assert res.status_code == 409

    first = engine.accept_invitation(invitation.session_id, players.sam)
    res = sam.get(f'/api/game/{invitation.session_id}/current-question')
    assert res.status_code == 200
    body = res.get_json()
    assert body['type'] == 'QUESTION'
    assert body['questionId'] == first.question_id
    assert body['round'] == 'ROUND1'


def test_current_question_error_mapping(players, login):
    alex = login('alex')
    res = alex.get('/api/game/nope/current-question')
    assert res.status_code == 404
    assert res.get_json()['kind'] == 'not_found'

    invitation = engine.create_invitation(players.alex, players.category)
    engine.accept_invitation(invitation.session_id, players.sam)
    session = db.session.get(GameSession, invitation.session_id)
    session.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    res = alex.get(f'/api/game/{invitation.session_id}/current-question')
    assert res.status_code == 410
    body = res.get_json()
    assert body['kind'] == 'expired'
    assert body['sessionId'] == invitation.session_id


def test_history_stats_and_badges(players, login, play_game):
    play_game(alex_correct=7, sam_correct=4)
    alex = login('alex')

    history = alex.get('/api/game/history?winner=self&size=5').get_json()
    assert history['totalElements'] == 1
    assert history['size'] == 5
    assert history['items'][0]['result'] == 'WIN'
    assert history['items'][0]['myScore'] == 7

    assert alex.get('/api/game/history?winner=partner').get_json()['items'] == []

    stats = alex.get('/api/game/stats').get_json()
    assert stats['gamesPlayed'] == 1
    assert stats['bestScore'] == 7

    badges = alex.get('/api/game/badges').get_json()['badges']
    assert {b['code'] for b in badges} == {'FIRST_GAME', 'SHARP_GUESSER'}


def test_history_tolerates_bad_paging_args(players, login):
    alex = login('alex')
    res = alex.get('/api/game/history?page=abc&size=-4')
    assert res.status_code == 200
    body = res.get_json()
    assert body['page'] == 0
    assert body['size'] == 1
