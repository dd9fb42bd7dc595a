from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from app.knockbase import auth, create_app
from app.knockbase.constants import ActorRole
from app.knockbase.db import session_scope
from app.knockbase.models import Base, User
from app.knockbase.modules.org_units.models import OrgUnit

PASSWORD = "correct-horse"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("TERRITORY_TIE_BREAK", raising=False)
    monkeypatch.delenv("LOGIN_RATE_LIMIT", raising=False)
    auth._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def org(app):
    """
    West (region) > Bay (area) > Alpha (team); East (region).
    owner; manager Mia (Bay) supervises reps Ann (Alpha) and Bob (Bay);
    manager Ned (East) supervises rep Cal (East).
    """
    with session_scope(app) as s:
        west = OrgUnit(name="West", level="region")
        east = OrgUnit(name="East", level="region")
        s.add_all([west, east])
        s.flush()
        bay = OrgUnit(name="Bay", level="area", parent_id=west.id)
        s.add(bay)
        s.flush()
        alpha = OrgUnit(name="Alpha", level="team", parent_id=bay.id)
        s.add(alpha)
        s.flush()

        def _user(username, role, **kw):
            u = User(
                username=username,
                email=f"{username}@example.com",
                password_hash=generate_password_hash(PASSWORD),
                full_name=username.capitalize(),
                role=role,
                is_active=True,
                **kw,
            )
            s.add(u)
            s.flush()
            return u

        owner = _user("owner", ActorRole.OWNER)
        mia = _user("mia", ActorRole.MANAGER, org_unit_id=bay.id)
        ned = _user("ned", ActorRole.MANAGER, org_unit_id=east.id)
        ann = _user("ann", ActorRole.REP, manager_id=mia.id, org_unit_id=alpha.id)
        bob = _user("bob", ActorRole.REP, manager_id=mia.id, org_unit_id=bay.id)
        cal = _user("cal", ActorRole.REP, manager_id=ned.id, org_unit_id=east.id)

        ids = SimpleNamespace(
            west=west.id,
            east=east.id,
            bay=bay.id,
            alpha=alpha.id,
            owner=owner.id,
            mia=mia.id,
            ned=ned.id,
            ann=ann.id,
            bob=bob.id,
            cal=cal.id,
        )
    return ids


@pytest.fixture()
def login(app, org):
    """login("mia") -> a test client signed in as that user."""

    def _login(username: str):
        client = app.test_client()
        r = client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
        assert r.status_code == 200, r.json
        return client

    return _login


@pytest.fixture()
def password():
    return PASSWORD
