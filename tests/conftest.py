import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

import mongomock
import pytest
from fastapi.testclient import TestClient

from gatehouse.app import create_app
from gatehouse.auth.passwords import hash_password
from gatehouse.auth.session import SessionStore
from gatehouse.auth.users import UserRecord, UserStore
from gatehouse.config import Settings

ALICE = {"username": "alice123", "password": "secret1", "email": "alice@x.com"}


@pytest.fixture()
def db():
    return mongomock.MongoClient()["gatehouse_test"]


@pytest.fixture()
def settings() -> Settings:
    return Settings(secret_key="test-secret", database="gatehouse_test")


@pytest.fixture()
def users(db) -> UserStore:
    store = UserStore(db["users"])
    store.ensure_indexes()
    return store


@pytest.fixture()
def sessions(db, settings) -> SessionStore:
    store = SessionStore(db["sessions"], max_age=settings.session_max_age)
    store.ensure_indexes()
    return store


@pytest.fixture()
def client(settings, users, sessions):
    app = create_app(settings, users=users, sessions=sessions)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def alice(users) -> UserRecord:
    """alice123 stored directly, bypassing the sign-up route."""
    record = UserRecord(
        username=ALICE["username"],
        password=hash_password(ALICE["password"]),
        email=ALICE["email"],
    )
    return users.create(record)


@pytest.fixture()
def logged_in(client, alice):
    r = client.post("/login", data={"email": ALICE["email"], "password": ALICE["password"]}, follow_redirects=False)
    assert r.status_code == 303
    return client
