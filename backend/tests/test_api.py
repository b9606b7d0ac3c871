from harmonia.models import Role


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    data = res.get_json()
    assert data['status'] == 'ok'
    assert 'timestamp' in data


def test_register_login_logout(client):
    res = client.post('/users/add', json={'username': 'awa', 'password': 'secret', 'prenom': 'Awa'})
    assert res.status_code == 201
    user = res.get_json()['user']
    assert user['role'] == 'player'
    assert user['solde_cfa'] == 0
    assert 'password_hash' not in user

    assert client.post('/users/add', json={'username': 'awa', 'password': 'other'}).status_code == 409
    assert client.post('/users/add', json={'username': 'awa'}).status_code == 400

    res = client.post('/login', json={'username': 'awa', 'password': 'wrong'})
    assert res.status_code == 401
    assert client.post('/login', json={'username': 'awa', 'password': 'secret'}).status_code == 200

    assert client.get('/api/game/sessions').status_code == 200
    assert client.get('/logout').status_code == 200
    assert client.get('/api/game/sessions').status_code == 401


def test_anonymous_gets_json_401(client):
    res = client.get('/api/game/sessions/mine')
    assert res.status_code == 401
    assert res.get_json()['code'] == 'unauthenticated'


def test_player_cannot_use_admin_routes(login):
    alice = login('alice')
    res = alice.post('/api/admin/sessions', json={'game_key': 'vrai-faux', 'title': 'x'})
    assert res.status_code == 403
    body = res.get_json()
    assert body['code'] == 'forbidden'
    assert 'supreme' in body['required_roles']
    assert alice.post('/api/admin/runs/1/closed', json={'value': True}).status_code == 403


def test_every_elevated_role_can_administer(login):
    for username, role in (('ad', Role.ADMIN), ('pro', Role.ADMINPRO), ('sup', Role.SUPREME)):
        res = login(username, role=role).get('/api/admin/games')
        assert res.status_code == 200, role
        assert [g['key_name'] for g in res.get_json()['games']] == ['vrai-faux']


def test_create_game(admin_client):
    res = admin_client.post('/api/admin/games', json={'key_name': 'qcm', 'name': 'Choix multiple'})
    assert res.status_code == 201
    assert res.get_json()['game']['key_name'] == 'qcm'
    assert admin_client.post('/api/admin/games', json={'key_name': 'qcm', 'name': 'Encore'}).status_code == 409


def test_unknown_route_is_json_404(admin_client):
    res = admin_client.get('/api/admin/nothing-here')
    assert res.status_code == 404
    assert 'error' in res.get_json()


def test_non_object_body_is_rejected(admin_client):
    res = admin_client.post('/api/admin/sessions', json=['vrai-faux'])
    assert res.status_code == 400
    assert res.get_json()['code'] == 'validation_error'
