from flask import Blueprint, jsonify, request
from flask_login import current_user

from harmonia.api import json_body
from harmonia.services import catalog, projector, submission
from harmonia.services.access import requires


game = Blueprint('game', __name__)


@game.route('/sessions', methods=['GET'])
@requires('listSessions')
def list_sessions():
    sessions = catalog.list_sessions(request.args.get('game_key'))
    return jsonify({'success': True, 'sessions': sessions})


@game.route('/sessions/available', methods=['GET'])
@requires('listAvailableSessions')
def list_available_sessions():
    sessions = catalog.list_available_sessions(current_user.id, request.args.get('game_key'))
    return jsonify({'success': True, 'sessions': sessions})


@game.route('/sessions/mine', methods=['GET'])
@requires('listMySessions')
def list_my_sessions():
    return jsonify({'success': True, 'sessions': catalog.list_my_sessions(current_user.id)})


@game.route('/sessions/<int:session_id>/parties', methods=['GET'])
@requires('listPartiesForSession')
def list_parties_for_session(session_id):
    parties = catalog.list_parties_for_session(session_id, current_user.id)
    return jsonify({'success': True, 'parties': parties})


@game.route('/sessions/<int:session_id>/join', methods=['POST'])
@requires('joinSession')
def join_session(session_id):
    data = json_body()
    result = catalog.join_session(current_user.id, session_id, data.get('party_id'))
    return jsonify({'success': True, **result}), (200 if result['already_member'] else 201)


@game.route('/parties/<int:party_id>/runs', methods=['GET'])
@requires('listVisibleRuns')
def list_visible_runs(party_id):
    return jsonify({'success': True, 'runs': projector.list_visible_runs(party_id, current_user.id)})


@game.route('/parties/<int:party_id>/questions', methods=['GET'])
@requires('getUnansweredQuestions')
def get_unanswered_questions(party_id):
    questions = projector.get_unanswered_questions(party_id, current_user.id)
    return jsonify({'success': True, 'questions': questions})


@game.route('/runs/<int:run_id>/questions', methods=['GET'])
@requires('getQuestions')
def get_questions(run_id):
    return jsonify({'success': True, 'questions': projector.get_questions(run_id, current_user.id)})


@game.route('/parties/<int:party_id>/answers', methods=['GET'])
@requires('getMyAnswers')
def get_my_answers(party_id):
    return jsonify({'success': True, 'answers': projector.get_my_answers(party_id, current_user.id)})


@game.route('/answers', methods=['POST'])
@requires('submitAnswer')
def submit_answer():
    data = json_body()
    result = submission.submit_answer(current_user.id, data.get('run_question_id'), data.get('answer'))
    return jsonify(result), 201


@game.route('/parties/<int:party_id>/results', methods=['GET'])
@requires('getMyResults')
def get_my_results(party_id):
    return jsonify({'success': True, **projector.get_my_results(party_id, current_user.id)})


@game.route('/parties/<int:party_id>/history', methods=['GET'])
@requires('getPartyHistory')
def get_party_history(party_id):
    return jsonify({'success': True, 'runs': projector.get_party_history(party_id, current_user.id)})


@game.route('/runs/<int:run_id>/leaderboard', methods=['GET'])
@requires('getLeaderboard')
def get_leaderboard(run_id):
    return jsonify({'success': True, **projector.get_leaderboard(run_id, current_user.id)})
