import bcrypt
import mongomock
import pytest
from config import Config
from sowtracker import create_app, reset_connections
from sowtracker.models.user import User
from sowtracker.models.organization import Organization, OrganizationMember

_gensalt = bcrypt.gensalt


@pytest.fixture(autouse=True)
def mongo_client():
    """Fresh in-memory MongoDB for every test"""
    client = mongomock.MongoClient()
    reset_connections(client)
    yield client
    reset_connections()


@pytest.fixture(autouse=True)
def _test_config(monkeypatch):
    monkeypatch.setattr(Config, 'CRON_SECRET', None)
    monkeypatch.setattr(Config, 'APP_URL', 'https://farm.example.com')
    monkeypatch.setattr(Config, 'VAPID_PRIVATE_KEY', 'test-private-key')
    # Low bcrypt cost keeps user creation fast
    monkeypatch.setattr(bcrypt, 'gensalt', lambda *args, **kwargs: _gensalt(rounds=4))
    yield


@pytest.fixture
def app():
    app = create_app()
    app.config.update(TESTING=True, SECRET_KEY='test-secret')
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user_factory():
    def _create(email, password='password123', full_name=None, is_admin=False):
        user_id = User.create_user(email, password, full_name=full_name, is_admin=is_admin)
        return User.find_by_id(user_id)
    return _create


@pytest.fixture
def organization_factory():
    def _create(name, owner):
        organization_id = Organization.create_organization(name, owner['_id'])
        return Organization.find_by_id(organization_id)
    return _create


@pytest.fixture
def member_factory(user_factory):
    def _create(organization, role, email=None):
        user = user_factory(email or f'{role}@example.com')
        OrganizationMember.add_member(organization['_id'], user['_id'], role)
        return user
    return _create


@pytest.fixture
def owner(user_factory):
    return user_factory('owner@example.com', full_name='Farm Owner')


@pytest.fixture
def organization(organization_factory, owner):
    return organization_factory('Green Acres', owner)


@pytest.fixture
def org_code(organization):
    return organization['slug']


@pytest.fixture
def login(client):
    def _login(user, password='password123'):
        response = client.post('/api/auth/login', json={'email': user['email'], 'password': password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login
