import os
import sys
import pytest

# Ensure the backend root (containing the `harmonia` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from harmonia import create_app, db, socketio
from harmonia.models import GameType, Profile, Role


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    ALLOWED_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'INFO'
    DEFAULT_QUESTION_SCORE = 10
    INITIAL_PARTY_NAME = 'Principale'
    MAX_QUESTIONS_PER_BATCH = 100


PASSWORD = 'password'


@pytest.fixture()
def flask_app():
    # No app context stays pushed while requests run, so each request
    # resolves its own logged-in user.
    application = create_app(TestConfig)
    with application.app_context():
        import harmonia.models  # noqa: F401
        db.create_all()
        db.session.add(GameType(key_name='vrai-faux', name='Vrai ou Faux'))
        db.session.commit()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_user(flask_app):
    def _make_user(username, role=Role.PLAYER, solde_cfa=0):
        with flask_app.app_context():
            user = Profile(username=username, role=role, solde_cfa=solde_cfa)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make_user


@pytest.fixture()
def login(flask_app, make_user):
    """Create a user and return a test client logged in as that user."""
    def _login(username, role=Role.PLAYER, solde_cfa=0):
        make_user(username, role=role, solde_cfa=solde_cfa)
        test_client = flask_app.test_client()
        res = test_client.post('/login', json={'username': username, 'password': PASSWORD})
        assert res.status_code == 200
        return test_client
    return _login


@pytest.fixture()
def admin_client(login):
    return login('admin', role=Role.SUPREME)


@pytest.fixture()
def balance_of(flask_app):
    def _balance_of(username):
        with flask_app.app_context():
            return Profile.query.filter_by(username=username).first().solde_cfa
    return _balance_of


@pytest.fixture()
def make_session(admin_client):
    def _make_session(title='Soirée quiz', is_paid=False, price_cfa=0):
        res = admin_client.post('/api/admin/sessions', json={
            'game_key': 'vrai-faux',
            'title': title,
            'is_paid': is_paid,
            'price_cfa': price_cfa,
        })
        assert res.status_code == 201, res.get_json()
        return res.get_json()['session']
    return _make_session


@pytest.fixture()
def open_run(admin_client):
    """Create a run on a party, add questions, start it and make it visible."""
    def _open_run(party_id, questions=None):
        questions = questions or [{'question_text': 'Le ciel est bleu', 'correct_answer': True, 'score': 10}]
        res = admin_client.post(f'/api/admin/parties/{party_id}/runs', json={'title': 'Manche', 'questions': questions})
        assert res.status_code == 201, res.get_json()
        run_id = res.get_json()['run']['id']
        assert admin_client.post(f'/api/admin/runs/{run_id}/started', json={'value': True}).status_code == 200
        assert admin_client.post(f'/api/admin/runs/{run_id}/visibility', json={'value': True}).status_code == 200
        question_ids = [q['id'] for q in admin_client.get(f'/api/admin/runs/{run_id}/questions').get_json()['questions']]
        return run_id, question_ids
    return _open_run


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
