import pytest
from fastapi.testclient import TestClient

from userapi.api import create_app
from userapi.config import Settings
from userapi.database import Database


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        rate_limit_enabled=False,
    )


@pytest.fixture
def database(settings):
    """Provide an isolated in-memory database for each test."""
    db = Database(settings.sqlalchemy_url)
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def app(settings, database):
    return create_app(settings, database=database)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    def _register(email="a@b.com", password="secret1", name="A"):
        return client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": password, "name": name},
        )

    return _register


@pytest.fixture
def auth_headers(client, register):
    """Register a user and return bearer headers for it."""
    register(email="caller@example.com", password="secret1", name="Caller")
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": "caller@example.com", "password": "secret1"},
    )
    return {"Authorization": f"Bearer {resp.json()['token']}"}
