from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user

from onlyyours import db
from onlyyours.services.games import engine, queries
from onlyyours.services.games.errors import GameError


games = Blueprint('games', __name__)

_STATUS_BY_KIND = {
    'validation': 400,
    'not_found': 404,
    'conflict': 409,
    'active_session_exists': 409,
    'expired': 410,
}


@games.errorhandler(GameError)
def handle_game_error(exc: GameError):
    db.session.rollback()
    status = _STATUS_BY_KIND.get(exc.kind, 400)
    current_app.logger.info(f"[api-error] path={request.path} kind={exc.kind} status={status} error={exc.message}")
    body = exc.to_dict()
    body['error'] = exc.message
    return jsonify(body), status


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


@games.route('/active', methods=['GET'])
@login_required
def active_session():
    summary = queries.get_active_session_summary(current_user.id)
    if summary is None:
        return jsonify({'error': 'No active game session'}), 404
    return jsonify(summary.to_dict())


@games.route('/history', methods=['GET'])
@login_required
def game_history():
    page = queries.get_game_history(
        current_user.id,
        page=_int_arg('page', 0),
        size=_int_arg('size', queries.DEFAULT_PAGE_SIZE),
        sort=request.args.get('sort', 'recent'),
        winner=request.args.get('winner', 'all'),
    )
    return jsonify(page.to_dict())


@games.route('/stats', methods=['GET'])
@login_required
def dashboard_stats():
    return jsonify(queries.get_dashboard_stats(current_user.id).to_dict())


@games.route('/badges', methods=['GET'])
@login_required
def badges():
    return jsonify({'badges': [b.to_dict() for b in queries.get_badges(current_user.id)]})


@games.route('/<session_id>/current-question', methods=['GET'])
@login_required
def current_question(session_id):
    """Resume helper: the question the caller should be looking at right now."""
    question = engine.get_current_question_for_user(session_id, current_user.id)
    if question is None:
        return jsonify({'error': 'No question available in the current game state'}), 409
    return jsonify(question.to_dict())
