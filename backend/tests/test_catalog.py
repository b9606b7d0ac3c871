from harmonia.models import PartyPlayer, Profile, SessionEntry
from harmonia.services import catalog


def _create_party(admin_client, session_id, name='Finale', **gates):
    res = admin_client.post(f'/api/admin/sessions/{session_id}/parties', json={'name': name, **gates})
    assert res.status_code == 201, res.get_json()
    return res.get_json()['party']


def test_create_session_creates_initial_party(admin_client, make_session):
    session = make_session()
    parties = admin_client.get(f"/api/admin/sessions/{session['id']}/parties").get_json()['parties']
    assert len(parties) == 1
    assert parties[0]['is_initial'] is True
    assert parties[0]['name'] == 'Principale'
    assert parties[0]['id'] == session['initial_party_id']


def test_create_session_validation(admin_client):
    assert admin_client.post('/api/admin/sessions', json={'title': 'x'}).status_code == 400
    assert admin_client.post('/api/admin/sessions', json={'game_key': 'nope', 'title': 'x'}).status_code == 404
    res = admin_client.post('/api/admin/sessions', json={'game_key': 'vrai-faux', 'title': 'x', 'is_paid': True})
    assert res.status_code == 400


def test_initial_party_cannot_be_deleted(admin_client, make_session):
    session = make_session()
    res = admin_client.delete(f"/api/admin/parties/{session['initial_party_id']}")
    assert res.status_code == 409
    extra = _create_party(admin_client, session['id'])
    assert admin_client.delete(f"/api/admin/parties/{extra['id']}").status_code == 200


def test_join_is_idempotent(login, make_session):
    session = make_session()
    alice = login('alice')
    res = alice.post(f"/api/game/sessions/{session['id']}/join")
    assert res.status_code == 201
    body = res.get_json()
    assert body['party_id'] == session['initial_party_id']
    assert body['already_member'] is False

    res = alice.post(f"/api/game/sessions/{session['id']}/join")
    assert res.status_code == 200
    assert res.get_json()['already_member'] is True


def test_paid_join_with_no_balance_is_rejected(flask_app, login, make_session, balance_of):
    session = make_session(is_paid=True, price_cfa=500)
    bob = login('bob', solde_cfa=0)
    res = bob.post(f"/api/game/sessions/{session['id']}/join")
    assert res.status_code == 402
    assert res.get_json()['code'] == 'insufficient_balance'
    assert balance_of('bob') == 0
    with flask_app.app_context():
        assert PartyPlayer.query.count() == 0
        assert SessionEntry.query.count() == 0


def test_paid_session_debits_once_across_parties(flask_app, admin_client, login, make_session, balance_of):
    session = make_session(is_paid=True, price_cfa=300)
    second = _create_party(admin_client, session['id'], name='Salle B')
    carol = login('carol', solde_cfa=1000)

    res = carol.post(f"/api/game/sessions/{session['id']}/join")
    assert res.get_json()['debited_cfa'] == 300
    assert balance_of('carol') == 700

    res = carol.post(f"/api/game/sessions/{session['id']}/join", json={'party_id': second['id']})
    assert res.status_code == 201
    assert res.get_json()['debited_cfa'] == 0
    assert balance_of('carol') == 700

    carol.post(f"/api/game/sessions/{session['id']}/join", json={'party_id': second['id']})
    assert balance_of('carol') == 700
    with flask_app.app_context():
        assert SessionEntry.query.count() == 1
        assert PartyPlayer.query.count() == 2


def test_concurrent_entry_is_debited_once(flask_app, admin_client, login, make_session, balance_of, monkeypatch):
    session = make_session(is_paid=True, price_cfa=300)
    second = _create_party(admin_client, session['id'], name='Salle B')
    carol = login('carol', solde_cfa=1000)
    assert carol.post(f"/api/game/sessions/{session['id']}/join").status_code == 201

    # The first check misses the entry made by a concurrent join
    real_has_entered = catalog._has_entered
    calls = []

    def racing_has_entered(session_obj, user_id):
        calls.append(user_id)
        if len(calls) == 1:
            return False
        return real_has_entered(session_obj, user_id)

    monkeypatch.setattr(catalog, '_has_entered', racing_has_entered)
    with flask_app.app_context():
        user_id = Profile.query.filter_by(username='carol').one().id
        result = catalog.join_session(user_id, session['id'], second['id'])
    assert result['already_member'] is False
    assert result['debited_cfa'] == 0
    assert balance_of('carol') == 700


def test_join_party_from_other_session_is_404(admin_client, login, make_session):
    first = make_session(title='A')
    second = make_session(title='B')
    alice = login('alice')
    res = alice.post(f"/api/game/sessions/{first['id']}/join", json={'party_id': second['initial_party_id']})
    assert res.status_code == 404


def _score_in_initial_party(admin_client, open_run, session, players_answers):
    run_id, (question_id,) = open_run(session['initial_party_id'])
    for player, answer in players_answers:
        player.post('/api/game/answers', json={'run_question_id': question_id, 'answer': answer})
    return run_id, question_id


def test_min_score_gate_uses_revealed_initial_standing(admin_client, login, make_session, open_run):
    session = make_session()
    finale = _create_party(admin_client, session['id'], min_score=10)
    alice = login('alice')
    alice.post(f"/api/game/sessions/{session['id']}/join")

    res = alice.post(f"/api/game/sessions/{session['id']}/join", json={'party_id': finale['id']})
    assert res.status_code == 403
    assert res.get_json()['code'] == 'not_eligible'

    run_id, _ = _score_in_initial_party(admin_client, open_run, session, [(alice, True)])
    # points not revealed yet do not count
    res = alice.post(f"/api/game/sessions/{session['id']}/join", json={'party_id': finale['id']})
    assert res.status_code == 403

    admin_client.post(f'/api/admin/runs/{run_id}/closed', json={'value': True})
    res = alice.post(f"/api/game/sessions/{session['id']}/join", json={'party_id': finale['id']})
    assert res.status_code == 201


def test_min_rank_gate(admin_client, login, make_session, open_run):
    session = make_session()
    finale = _create_party(admin_client, session['id'], min_rank=1)
    alice = login('alice')
    bob = login('bob')
    outsider = login('zoe')
    for player in (alice, bob):
        player.post(f"/api/game/sessions/{session['id']}/join")

    run_id, _ = _score_in_initial_party(admin_client, open_run, session, [(alice, True), (bob, False)])
    admin_client.post(f'/api/admin/runs/{run_id}/closed', json={'value': True})

    url = f"/api/game/sessions/{session['id']}/join"
    assert alice.post(url, json={'party_id': finale['id']}).status_code == 201
    assert bob.post(url, json={'party_id': finale['id']}).status_code == 403
    assert outsider.post(url, json={'party_id': finale['id']}).status_code == 403


def test_rank_gate_closed_until_results_revealed(admin_client, login, make_session, open_run):
    session = make_session()
    finale = _create_party(admin_client, session['id'], min_rank=1)
    players = [login(name) for name in ('alice', 'bob', 'carol')]
    for player in players:
        player.post(f"/api/game/sessions/{session['id']}/join")

    url = f"/api/game/sessions/{session['id']}/join"
    codes = [p.post(url, json={'party_id': finale['id']}).status_code for p in players]
    assert codes == [403, 403, 403]

    # everybody tied at zero after a reveal is still no ranking
    run_id, _ = _score_in_initial_party(admin_client, open_run, session, [(p, False) for p in players])
    admin_client.post(f'/api/admin/runs/{run_id}/closed', json={'value': True})
    codes = [p.post(url, json={'party_id': finale['id']}).status_code for p in players]
    assert codes == [403, 403, 403]


def test_available_and_my_sessions(admin_client, login, make_session, open_run):
    first = make_session(title='Premier')
    second = make_session(title='Second')
    alice = login('alice')
    alice.post(f"/api/game/sessions/{first['id']}/join")

    available = alice.get('/api/game/sessions/available').get_json()['sessions']
    assert [s['id'] for s in available] == [second['id']]

    run_id, (question_id,) = open_run(first['initial_party_id'])
    alice.post('/api/game/answers', json={'run_question_id': question_id, 'answer': True})

    mine = alice.get('/api/game/sessions/mine').get_json()['sessions']
    assert [s['id'] for s in mine] == [first['id']]
    assert mine[0]['my_score'] == 0

    admin_client.post(f'/api/admin/runs/{run_id}/closed', json={'value': True})
    mine = alice.get('/api/game/sessions/mine').get_json()['sessions']
    assert mine[0]['my_score'] == 10


def test_list_sessions_by_game_key(admin_client, login, make_session):
    make_session(title='Quiz')
    alice = login('alice')
    sessions = alice.get('/api/game/sessions?game_key=vrai-faux').get_json()['sessions']
    assert [s['title'] for s in sessions] == ['Quiz']
    assert alice.get('/api/game/sessions?game_key=unknown').status_code == 404


def test_parties_for_session_marks_membership(admin_client, login, make_session):
    session = make_session()
    _create_party(admin_client, session['id'])
    alice = login('alice')
    alice.post(f"/api/game/sessions/{session['id']}/join")
    parties = alice.get(f"/api/game/sessions/{session['id']}/parties").get_json()['parties']
    assert [p['is_member'] for p in parties] == [True, False]
    assert parties[0]['player_count'] == 1


def test_party_players_admin_view(admin_client, login, make_session):
    session = make_session()
    alice = login('alice')
    alice.post(f"/api/game/sessions/{session['id']}/join")
    players = admin_client.get(f"/api/admin/parties/{session['initial_party_id']}/players").get_json()['players']
    assert [(p['username'], p['score']) for p in players] == [('alice', 0)]
