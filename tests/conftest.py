"""Shared fixtures: a fresh SQLite-backed app per test, users and clients."""
import pytest
from app import create_app
from config import TestingConfig
from database import db
from models import Role, Ship, User
from services import bootstrap, report_cache

PASSWORD = 'correct-horse-9'


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'change_control.db'}"

    bootstrap.reset()
    report_cache.invalidate_prefix('')
    application = create_app(Config)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
    bootstrap.reset()


@pytest.fixture
def ctx(app):
    """App context with default roles and administrator seeded."""
    with app.app_context():
        bootstrap.ensure_default_admin()
        yield app


def _create_user(username: str, role_name: str, full_name: str = None) -> User:
    role = Role.query.filter_by(name=role_name).one()
    user = User(username=username, full_name=full_name or username.title(), email='', role_id=role.id)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def make_user(ctx):
    return _create_user


@pytest.fixture
def admin(ctx):
    return User.query.filter_by(username='admin').one()


@pytest.fixture
def engineer(make_user):
    return make_user('eng', Role.ENGINEER, 'Erin Engineer')


@pytest.fixture
def manager(make_user):
    return make_user('mgr', Role.MANAGER, 'Morgan Manager')


@pytest.fixture
def reviewer(make_user):
    return make_user('rev', Role.REVIEWER, 'Riley Reviewer')


@pytest.fixture
def ship(ctx):
    vessel = Ship(ship_name='MV Northern Star', imo_number='9321483')
    db.session.add(vessel)
    db.session.commit()
    return vessel


@pytest.fixture
def seeded_users(app):
    """Engineer and manager accounts created outside any request context."""
    with app.app_context():
        bootstrap.ensure_default_admin()
        _create_user('eng', Role.ENGINEER, 'Erin Engineer')
        _create_user('mgr', Role.MANAGER, 'Morgan Manager')
    return {'admin': 'admin123', 'eng': PASSWORD, 'mgr': PASSWORD}


def _login(app, username, password):
    client = app.test_client()
    response = client.post('/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def login(app, seeded_users):
    """Return a logged-in test client for one of the seeded usernames."""
    def _client(username):
        return _login(app, username, seeded_users[username])
    return _client
