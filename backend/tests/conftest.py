import os
import sys
import pytest

# Ensure the backend root (containing the `tuna_adventure` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from tuna_adventure import create_app, db, socketio, SOCKET_NAMESPACE


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CACHE_SNAPSHOT_PATH = ''
    ANSWER_TIME_LIMIT_SEC = 900
    ADMIN_USERNAME = 'admin'
    ADMIN_PASSWORD = 'admin-pass'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import tuna_adventure.models  # noqa: F401
        from tuna_adventure.seed import seed_all
        db.create_all()
        seed_all(application.config)
    runtime = application.extensions['tuna_adventure']
    runtime.start()
    # Requests push their own app context so each client gets its own login state
    yield application
    runtime.shutdown(reason='test-teardown')
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context for tests that call services or query models directly."""
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def runtime(flask_app):
    return flask_app.extensions['tuna_adventure']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def register_team(client, name='Blue Fins', password='secret123', players=('Alice', 'Bob')):
    res = client.post('/api/auth/register', json={
        'teamName': name,
        'password': password,
        'players': [{'name': p} for p in players],
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()['team']['id']


@pytest.fixture()
def team_client(flask_app):
    """A test client logged in as a freshly registered team; exposes `team_id`."""
    test_client = flask_app.test_client()
    test_client.team_id = register_team(test_client)
    return test_client


@pytest.fixture()
def admin_client(flask_app):
    test_client = flask_app.test_client()
    res = test_client.post('/api/auth/admin/login', json={'username': 'admin', 'password': 'admin-pass'})
    assert res.status_code == 200
    return test_client


@pytest.fixture()
def running_game(admin_client):
    res = admin_client.post('/api/admin/start')
    assert res.status_code == 200
    return admin_client


@pytest.fixture()
def sio_client(flask_app, team_client):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=team_client,
        namespace=SOCKET_NAMESPACE
    )
    test_client.team_id = team_client.team_id
    yield test_client
    if test_client.is_connected(SOCKET_NAMESPACE):
        test_client.disconnect(namespace=SOCKET_NAMESPACE)


@pytest.fixture()
def admin_sio(flask_app, admin_client):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=admin_client,
        namespace=SOCKET_NAMESPACE
    )
    yield test_client
    if test_client.is_connected(SOCKET_NAMESPACE):
        test_client.disconnect(namespace=SOCKET_NAMESPACE)
