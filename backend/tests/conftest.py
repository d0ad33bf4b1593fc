import os
import sys
import pytest

# Ensure the backend root (containing the `guessgame` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from guessgame import create_app, db, socketio


ENTRY_FEE = 1000


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ENTRY_FEE = ENTRY_FEE
    INITIAL_BALANCE = 10 * ENTRY_FEE
    INSTANCE_ID = 'guessgame-test'
    FHE_KEY_SEED = 'test-fhe-seed'
    TIE_BREAK = 'first_joined'
    ORACLE_AUTO_DELIVER = True
    ORACLE_DELIVERY_DELAY_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import guessgame.models  # noqa: F401
        db.create_all()
    # Requests push their own app context so each gets a fresh session and login state
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file database, so each app context gets its own connection and session."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'guessgame.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import guessgame.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def register(flask_app):
    """Return a factory producing (logged-in test client, account dict)."""
    def _register(username):
        c = flask_app.test_client()
        res = c.post('/register', json={'username': username, 'password': 'password'})
        assert res.status_code == 201
        return c, res.get_json()['user']
    return _register


@pytest.fixture()
def app_ctx(flask_app):
    with flask_app.app_context():
        yield flask_app


@pytest.fixture()
def accounts(app_ctx):
    from guessgame.models import Account
    created = {}
    for name in ('alice', 'bob', 'carol'):
        account = Account(username=name, balance=10 * ENTRY_FEE)
        account.set_password('password')
        db.session.add(account)
        created[name] = account
    db.session.commit()
    return created


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
