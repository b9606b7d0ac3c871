from flask import Blueprint, jsonify, request

from harmonia.api import json_body, required_bool
from harmonia.services import catalog, lifecycle
from harmonia.services.access import requires


admin = Blueprint('admin', __name__)


@admin.route('/games', methods=['GET'])
@requires('listGames')
def list_games():
    return jsonify({'success': True, 'games': catalog.list_games()})


@admin.route('/games', methods=['POST'])
@requires('createGame')
def create_game():
    data = json_body()
    new_game = catalog.create_game(data.get('key_name'), data.get('name'))
    return jsonify({'success': True, 'game': new_game.to_dict()}), 201


@admin.route('/sessions', methods=['GET'])
@requires('adminListSessions')
def list_sessions():
    return jsonify({'success': True, 'sessions': catalog.list_sessions(request.args.get('game_key'))})


@admin.route('/sessions', methods=['POST'])
@requires('createSession')
def create_session():
    data = json_body()
    session = catalog.create_session(
        game_id=data.get('game_id'),
        game_key=data.get('game_key'),
        title=data.get('title'),
        description=data.get('description'),
        is_paid=data.get('is_paid', False),
        price_cfa=data.get('price_cfa', 0),
        category=data.get('category'),
    )
    payload = session.to_dict()
    payload['initial_party_id'] = session.initial_party.id
    return jsonify({'success': True, 'session': payload}), 201


@admin.route('/sessions/<int:session_id>', methods=['DELETE'])
@requires('deleteSession')
def delete_session(session_id):
    catalog.delete_session(session_id)
    return jsonify({'success': True})


@admin.route('/sessions/<int:session_id>/parties', methods=['GET'])
@requires('listParties')
def list_parties(session_id):
    return jsonify({'success': True, 'parties': catalog.list_parties_for_session(session_id)})


@admin.route('/sessions/<int:session_id>/parties', methods=['POST'])
@requires('createParty')
def create_party(session_id):
    data = json_body()
    party = catalog.create_party(
        session_id,
        name=data.get('name'),
        min_score=data.get('min_score'),
        min_rank=data.get('min_rank'),
    )
    return jsonify({'success': True, 'party': party.to_dict()}), 201


@admin.route('/parties/<int:party_id>', methods=['DELETE'])
@requires('deleteParty')
def delete_party(party_id):
    catalog.delete_party(party_id)
    return jsonify({'success': True})


@admin.route('/parties/<int:party_id>/players', methods=['GET'])
@requires('getPartyPlayers')
def get_party_players(party_id):
    return jsonify({'success': True, 'players': catalog.get_party_players(party_id)})


@admin.route('/parties/<int:party_id>/runs', methods=['GET'])
@requires('listRuns')
def list_runs(party_id):
    return jsonify({'success': True, 'runs': lifecycle.list_runs(party_id)})


@admin.route('/parties/<int:party_id>/runs', methods=['POST'])
@requires('createRun')
def create_run(party_id):
    data = json_body()
    run = lifecycle.create_run(party_id, title=data.get('title'), questions=data.get('questions'))
    return jsonify({'success': True, 'run': lifecycle.run_summary(run)}), 201


@admin.route('/runs/<int:run_id>', methods=['DELETE'])
@requires('deleteRun')
def delete_run(run_id):
    lifecycle.delete_run(run_id)
    return jsonify({'success': True})


@admin.route('/runs/<int:run_id>/questions', methods=['GET'])
@requires('listRunQuestions')
def list_run_questions(run_id):
    return jsonify({'success': True, 'questions': lifecycle.list_run_questions(run_id)})


@admin.route('/runs/<int:run_id>/questions', methods=['POST'])
@requires('addQuestions')
def add_questions(run_id):
    data = json_body()
    created = lifecycle.add_questions(run_id, data.get('questions'))
    return jsonify({'success': True, 'question_ids': [q.id for q in created]}), 201


@admin.route('/questions/<int:question_id>', methods=['DELETE'])
@requires('deleteQuestion')
def delete_question(question_id):
    lifecycle.delete_question(question_id)
    return jsonify({'success': True})


@admin.route('/runs/<int:run_id>/started', methods=['POST'])
@requires('setStarted')
def set_started(run_id):
    run = lifecycle.set_started(run_id, required_bool(json_body()))
    return jsonify({'success': True, 'run': lifecycle.run_summary(run)})


@admin.route('/runs/<int:run_id>/visibility', methods=['POST'])
@requires('setVisibility')
def set_visibility(run_id):
    run = lifecycle.set_visibility(run_id, required_bool(json_body()))
    return jsonify({'success': True, 'run': lifecycle.run_summary(run)})


@admin.route('/runs/<int:run_id>/closed', methods=['POST'])
@requires('closeRun')
def close_run(run_id):
    run = lifecycle.close_run(run_id, required_bool(json_body()))
    return jsonify({'success': True, 'run': lifecycle.run_summary(run)})


@admin.route('/runs/<int:run_id>/statistics', methods=['GET'])
@requires('getStatistics')
def get_statistics(run_id):
    return jsonify({'success': True, 'statistics': lifecycle.get_statistics(run_id)})
