from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from conftest import ALICE
from gatehouse.app import MEMBER_IMAGES, create_app
from gatehouse.auth.passwords import DUMMY_HASH, verify_password
from gatehouse.auth.session import SessionStore, SessionStoreError
from gatehouse.auth.users import UserStore

MEMBERS_ONLY = {"error": "You must log in to view this page."}


def test_public_pages_render(client):
    for path in ("/", "/signUp", "/login"):
        r = client.get(path)
        assert r.status_code == 200, path
        assert r.headers["content-type"].startswith("text/html")


def test_signup_persists_hashed_password(client, users):
    r = client.post("/signUp", data=ALICE)
    assert r.status_code == 200
    assert "User created successfully" in r.text
    assert 'href="/login"' in r.text

    doc = users.collection.find_one({"username": "alice123"})
    assert doc["email"] == "alice@x.com"
    assert doc["password"] != "secret1"
    assert verify_password(doc["password"], "secret1")


def test_signup_accepts_json(client, users):
    r = client.post("/signUp", json=ALICE)
    assert r.status_code == 200
    assert users.find_one(username="alice123") is not None


def test_signup_validation_errors(client, users):
    r = client.post("/signUp", data={"username": "al", "password": "12345", "email": "not-an-email"})
    assert r.status_code == 400
    assert "Username must be between 3 to 15 characters long. <br>" in r.text
    assert "Password must be between 6 to 30 characters long. <br>" in r.text
    assert "Please provide a valid email address" in r.text
    assert 'href="/signUp"' in r.text
    assert users.collection.count_documents({}) == 0


def test_signup_duplicate_is_rejected(client, alice):
    r = client.post("/signUp", data={**ALICE, "email": "alice2@x.com"})
    assert r.status_code == 400
    assert "already registered" in r.text


def test_login_success_redirects_and_greets(client, alice):
    r = client.post("/login", data={"email": ALICE["email"], "password": ALICE["password"]}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/loggedIn"
    assert "gatehouse_session" in r.headers["set-cookie"]
    assert "HttpOnly" in r.headers["set-cookie"]

    r = client.get("/loggedIn")
    assert r.status_code == 200
    assert "alice123" in r.text


def test_login_session_does_not_hold_the_password(client, alice, sessions):
    client.post("/login", data={"email": ALICE["email"], "password": ALICE["password"]}, follow_redirects=False)
    doc = sessions.collection.find_one({})
    assert doc["session"] == {"authenticated": True, "username": "alice123", "email": "alice@x.com"}


def test_login_wrong_password_is_generic(client, alice):
    r = client.post("/login", data={"email": ALICE["email"], "password": "wrong12"})
    assert r.status_code == 200
    assert "Invalid email or password" in r.text
    assert client.get("/members").status_code == 401


def test_login_unknown_email_is_generic(client, alice):
    r = client.post("/login", data={"email": "nobody@x.com", "password": ALICE["password"]})
    assert r.status_code == 200
    assert "Invalid email or password" in r.text
    assert client.get("/members").json() == MEMBERS_ONLY


def test_login_unknown_email_still_checks_a_digest(client, alice, monkeypatch):
    import gatehouse.app as app_module

    calls = []

    def _recording_verify(hash_value, plain):
        calls.append(hash_value)
        return verify_password(hash_value, plain)

    monkeypatch.setattr(app_module, "verify_password", _recording_verify)
    r = client.post("/login", data={"email": "nobody@x.com", "password": ALICE["password"]})
    assert "Invalid email or password" in r.text
    assert calls == [DUMMY_HASH]


def test_login_validation_reports_first_error(client):
    r = client.post("/login", data={"email": "", "password": ""})
    assert r.status_code == 400
    assert "One or more fields are empty" in r.text
    assert "Incorrect email or password format" not in r.text
    assert 'href="/login"' in r.text


def test_login_rejects_signup_valid_password_outside_login_pattern(client):
    creds = {"username": "carol1", "password": "pass-word!", "email": "carol@x.com"}
    assert client.post("/signUp", data=creds).status_code == 200
    r = client.post("/login", data={"email": creds["email"], "password": creds["password"]})
    assert r.status_code == 400
    assert "Incorrect email or password format" in r.text


def test_members_requires_login(client):
    r = client.get("/members")
    assert r.status_code == 401
    assert r.json() == MEMBERS_ONLY


def test_members_after_login(logged_in):
    r = logged_in.get("/members")
    assert r.status_code == 200
    assert "alice123" in r.text
    assert any(img in r.text for img in MEMBER_IMAGES)


def test_members_image_is_picked_at_random(logged_in, monkeypatch):
    import gatehouse.app as app_module

    monkeypatch.setattr(app_module.random, "choice", lambda seq: seq[-1])
    assert "003.avif" in logged_in.get("/members").text


def test_logout_closes_members_area(logged_in, sessions):
    r = logged_in.get("/logout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert sessions.collection.count_documents({}) == 0
    assert logged_in.get("/members").status_code == 401


def test_stale_cookie_after_logout_is_anonymous(client, alice):
    r = client.post("/login", data={"email": ALICE["email"], "password": ALICE["password"]}, follow_redirects=False)
    cookie = r.cookies["gatehouse_session"]
    client.get("/logout", follow_redirects=False)

    client.cookies.set("gatehouse_session", cookie)
    assert client.get("/members").status_code == 401


def test_deleted_user_loses_access(logged_in, users):
    assert logged_in.get("/members").status_code == 200
    users.collection.delete_one({"username": "alice123"})
    r = logged_in.get("/members")
    assert r.status_code == 401
    assert r.json() == MEMBERS_ONLY


def test_expired_session_is_rejected_by_the_gate(logged_in, sessions):
    assert logged_in.get("/members").status_code == 200
    past = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=1)
    sessions.collection.update_many({}, {"$set": {"expires": past}})
    r = logged_in.get("/members")
    assert r.status_code == 401
    assert r.json() == MEMBERS_ONLY


def test_forged_cookie_is_ignored(client, alice):
    client.cookies.set("gatehouse_session", "forged.value")
    assert client.get("/members").status_code == 401


def test_full_scenario(client):
    r = client.post("/signUp", data=ALICE)
    assert r.status_code == 200

    r = client.post("/login", data={"email": "alice@x.com", "password": "secret1"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/loggedIn"

    r = client.get("/members")
    assert r.status_code == 200
    assert "alice123" in r.text
    assert sum(img in r.text for img in MEMBER_IMAGES) == 1

    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"

    r = client.get("/members")
    assert r.status_code == 401
    assert r.json() == {"error": "You must log in to view this page."}


def test_unknown_route_is_404(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.headers["content-type"].startswith("text/html")
    assert "Page not found" in r.text


def test_unsupported_method_is_404(client):
    assert client.post("/").status_code == 404
    assert client.delete("/members").status_code == 404


class _DownUserStore(UserStore):
    def find_one(self, **criteria):
        raise ServerSelectionTimeoutError("db unreachable")


def test_storage_failure_is_a_bare_500(settings, db, sessions):
    app = create_app(settings, users=_DownUserStore(db["users"]), sessions=sessions)
    client = TestClient(app, raise_server_exceptions=False)
    r = client.post("/login", data={"email": ALICE["email"], "password": ALICE["password"]})
    assert r.status_code == 500
    assert r.text == "Internal Server Error"
    assert "unreachable" not in r.text


class _StuckSessionStore(SessionStore):
    def destroy(self, sid):
        raise SessionStoreError("Could not destroy session: db unreachable")


def test_logout_storage_failure_is_a_bare_500(settings, db, users, alice):
    stuck = _StuckSessionStore(db["sessions"], max_age=settings.session_max_age)
    client = TestClient(create_app(settings, users=users, sessions=stuck), raise_server_exceptions=False)
    r = client.post("/login", data={"email": ALICE["email"], "password": ALICE["password"]}, follow_redirects=False)
    assert r.status_code == 303

    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 500
    assert r.text == "Internal Server Error"


def test_signup_hashing_failure_is_a_bare_500(settings, users, sessions, monkeypatch):
    import gatehouse.app as app_module

    def _broken_hash(plain):
        raise ValueError("invalid cost factor")

    monkeypatch.setattr(app_module, "hash_password", _broken_hash)
    client = TestClient(create_app(settings, users=users, sessions=sessions), raise_server_exceptions=False)
    r = client.post("/signUp", data=ALICE)
    assert r.status_code == 500
    assert r.text == "Internal Server Error"
    assert users.collection.count_documents({}) == 0
