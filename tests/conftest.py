import pytest
from fastapi.testclient import TestClient

from notscared.config import Settings
from notscared.database import Database
from notscared.main import create_app
from notscared.users import create_user

PASSWORD = "correct horse battery"


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.init_db()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(username=None, is_admin=False, password=PASSWORD):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        return create_user(db, f"{username}@example.com", username, password, is_admin=is_admin)

    return _make_user


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", debug=False, seed_config_values=True)


@pytest.fixture
def client(settings, database):
    app = create_app(settings, database)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def login_as(client):
    """Log the test client in as the given user; the session cookie sticks to the client."""
    def _login_as(user, password=PASSWORD):
        response = client.post("/auth/login", json={"email": user.email, "password": password})
        assert response.status_code == 200, response.text
        return response

    return _login_as
