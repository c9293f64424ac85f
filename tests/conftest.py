import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="mongodb://localhost:27017",
        jwt_secret="test-secret",
        database_name="shop_test",
        public_dir=str(tmp_path / "public"),
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["shop_test"]


@pytest.fixture
def app(settings, db):
    return create_app(settings, db=db)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def context(app):
    return app.state.context


@pytest.fixture
def register(client):
    def _register(username="alice", email="a@x.com", password="pw1", files=None):
        return client.post(
            "/api/users/register",
            data={"username": username, "email": email, "password": password},
            files=files,
        )
    return _register


@pytest.fixture
def login(client, register):
    """Register (if needed) and return an Authorization header for the user."""
    def _login(username="alice", email="a@x.com", password="pw1"):
        register(username, email, password)
        res = client.post("/api/users/login", json={"email": email, "password": password})
        assert res.status_code == 200
        return {"Authorization": f"Bearer {res.json()['token']}"}
    return _login


@pytest.fixture
def product(client):
    res = client.post(
        "/api/products",
        data={"name": "Widget Pro", "price": "29.99", "category": "gadgets", "description": "A premium widget"},
    )
    assert res.status_code == 201
    return res.json()
