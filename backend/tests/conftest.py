import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `onlyyours` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from onlyyours import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_TTL_DAYS = 7
    EXPIRY_SWEEP_INTERVAL_SEC = 0
    ACTION_DEBOUNCE_MS = 0
    LOG_LEVEL = 'DEBUG'
    CORS_ORIGINS = []
    BCRYPT_LOG_ROUNDS = 4


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import onlyyours.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def players(flask_app):
    """Alex and Sam linked as a couple, plus a ten-question category."""
    from onlyyours.models import QuestionCategory, User
    from onlyyours.seed import seed_demo_data

    seed_demo_data()
    alex = User.query.filter_by(username='alex').first()
    sam = User.query.filter_by(username='sam').first()
    category = QuestionCategory.query.first()
    return SimpleNamespace(alex=alex.id, sam=sam.id, category=category.id)


@pytest.fixture()
def login(flask_app):
    def _login(username, password='password'):
        http = flask_app.test_client()
        res = http.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200
        return http
    return _login


@pytest.fixture()
def socket_for(flask_app, login):
    opened = []

    def _fresh_context(method):
        # Run each socket call in its own app context so Flask-Login's
        # per-context user cache (g._login_user) is not shared between
        # clients through the app context held open by ``flask_app``.
        def _call(*args, **kwargs):
            with flask_app.app_context():
                return method(*args, **kwargs)
        return _call

    def _connect(username):
        http = login(username)
        with flask_app.app_context():
            test_client = socketio.test_client(
                flask_app,
                flask_test_client=http,
                namespace='/ws'
            )
        for name in ('emit', 'send', 'connect', 'disconnect'):
            setattr(test_client, name, _fresh_context(getattr(test_client, name)))
        opened.append(test_client)
        return test_client

    yield _connect
    for test_client in opened:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def play_game(players):
    """Drive a whole game through the engine and return the session id.

    Alex always answers A and Sam always answers B. Each player guesses right
    on the first ``*_correct`` questions and wrong (C) on the rest.
    """
    from onlyyours.services.games import engine

    def _play(alex_correct=8, sam_correct=8):
        invitation = engine.create_invitation(players.alex, players.category)
        session_id = invitation.session_id
        question = engine.accept_invitation(session_id, players.sam)
        while question is not None:
            engine.submit_answer(session_id, players.alex, question.question_id, 'A')
            question = engine.submit_answer(session_id, players.sam, question.question_id, 'B')

        question = engine.get_first_round2_question(session_id)
        while question is not None:
            number = question.question_number
            engine.submit_guess(session_id, players.alex, question.question_id, 'B' if number <= alex_correct else 'C')
            engine.submit_guess(session_id, players.sam, question.question_id, 'A' if number <= sam_correct else 'C')
            question = engine.get_next_round2_question(session_id, from_question_id=question.question_id)

        engine.calculate_and_complete_game(session_id)
        return session_id

    return _play
