from app.knockbase.db import session_scope
from app.knockbase.models import User


def test_health_ok(app):
    client = app.test_client()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_anonymous_is_401(app, org):
    client = app.test_client()
    for path in ("/api/auth/me", "/api/leads", "/api/users", "/api/admin/team-stats"):
        r = client.get(path)
        assert r.status_code == 401
        assert r.json["error"] == "not_authenticated"


def test_login_by_username_or_email(app, org, password):
    client = app.test_client()
    r = client.post("/api/auth/login", json={"username": "ann", "password": password})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "rep"
    assert "passwordHash" not in r.json["user"] and "password_hash" not in r.json["user"]

    client = app.test_client()
    r = client.post("/api/auth/login", json={"email": "ANN@example.com", "password": password})
    assert r.status_code == 200

    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["username"] == "ann"
    assert r.json["user"]["lastLoginAt"] is not None


def test_bad_password(app, org):
    r = app.test_client().post("/api/auth/login", json={"username": "ann", "password": "nope"})
    assert r.status_code == 401
    assert r.json["error"] == "invalid_credentials"


def test_inactive_account_rejected(app, org, password):
    with session_scope(app) as s:
        s.get(User, org.bob).is_active = False
    r = app.test_client().post("/api/auth/login", json={"username": "bob", "password": password})
    assert r.status_code == 403


def test_deactivated_session_is_dropped(app, org, login):
    client = login("bob")
    with session_scope(app) as s:
        s.get(User, org.bob).is_active = False
    assert client.get("/api/auth/me").status_code == 401


def test_rate_limit(app, org, password):
    client = app.test_client()
    for _ in range(5):
        client.post("/api/auth/login", json={"username": "ann", "password": "wrong"})
    r = client.post("/api/auth/login", json={"username": "ann", "password": password})
    assert r.status_code == 429


def test_logout(login):
    client = login("ann")
    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_audit_is_owner_only(login):
    owner = login("owner")
    r = owner.get("/api/admin/audit?action=auth.login")
    assert r.status_code == 200
    assert r.json["events"]
    assert all("auth.login" in ev["action"] for ev in r.json["events"])

    assert login("mia").get("/api/admin/audit").status_code == 403
