def _names(events):
    return [e['name'] for e in events]


def test_socket_connect_and_join_party(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')

    sio_client.emit('join_party', {'party_id': 7}, namespace='/ws')
    received = sio_client.get_received('/ws')
    joined = [e for e in received if e['name'] == 'joined']
    assert joined and joined[0]['args'][0] == {'room': 'party:7'}


def test_join_party_requires_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_party', {}, namespace='/ws')
    assert 'error' in _names(sio_client.get_received('/ws'))


def test_run_update_carries_flags_only(sio_client, admin_client, login, make_session):
    session = make_session()
    party_id = session['initial_party_id']
    run = admin_client.post(f'/api/admin/parties/{party_id}/runs', json={
        'questions': [{'question_text': 'Q', 'correct_answer': True}],
    }).get_json()['run']

    sio_client.emit('join_party', {'party_id': party_id}, namespace='/ws')
    sio_client.get_received('/ws')

    admin_client.post(f"/api/admin/runs/{run['id']}/started", json={'value': True})
    admin_client.post(f"/api/admin/runs/{run['id']}/visibility", json={'value': True})
    admin_client.post(f"/api/admin/runs/{run['id']}/closed", json={'value': True})

    updates = [e['args'][0] for e in sio_client.get_received('/ws') if e['name'] == 'run_update']
    assert [u['state'] for u in updates] == ['started', 'visible', 'closed']
    assert updates[-1]['reveal_answers'] is True
    for update in updates:
        assert 'correct_answer' not in update
        assert 'questions' not in update


def test_other_party_room_gets_nothing(sio_client, admin_client, make_session, open_run):
    session = make_session()
    sio_client.emit('join_party', {'party_id': session['initial_party_id'] + 100}, namespace='/ws')
    sio_client.get_received('/ws')
    open_run(session['initial_party_id'])
    assert 'run_update' not in _names(sio_client.get_received('/ws'))
