import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import config
import database
from main import app


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    test_db = client["marketplace_test"]
    database.ensure_indexes(test_db)
    return test_db


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def client(db):
    app.dependency_overrides[database.get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="customer", name=None, password="secret-pass"):
        counter["n"] += 1
        n = counter["n"]
        return auth.register_user(db, {
            "name": name or f"User {n}",
            "email": f"user{n}@craftmail.in",
            "password": password,
            "role": role,
        })
    return _make


@pytest.fixture
def artisan_user(make_user):
    user, artisan = make_user(role="artisan", name="Meera Pillai")
    return user, artisan


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = auth.create_access_token({"sub": str(user["_id"])})
        return {"Authorization": f"Bearer {token}"}
    return _headers
