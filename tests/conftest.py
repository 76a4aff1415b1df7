from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.zv import create_app
from app.zv.constants import ROLE_MASTER, ROLE_PLAYER
from app.zv.db import session_scope
from app.zv.models import Base, User
from app.zv.modules.battlepasses.models import Battlepass
from app.zv.modules.groups.models import GameSession, Group, GroupMember
from app.zv.modules.profiles.models import MasterProfile, PlayerProfile
from app.zv.modules.seasons.models import Season
from app.zv.modules.shop.models import Product

PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "0")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "FEATURE_PAYMENTS"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def make_user(app, email: str, *roles: str, name: str | None = None) -> int:
    """Create an active user with the given roles (and matching profiles); returns the user id."""
    with session_scope(app) as s:
        u = User(
            email=email,
            password_hash=generate_password_hash(PASSWORD),
            name=name or email.split("@")[0],
            is_active=True,
        )
        for role in roles or (ROLE_PLAYER,):
            u.add_role(role)
        s.add(u)
        s.flush()
        if ROLE_PLAYER in u.role_keys:
            s.add(PlayerProfile(user_id=u.id))
        if ROLE_MASTER in u.role_keys:
            s.add(MasterProfile(user_id=u.id))
        return u.id


def make_season(app, *, active: bool = True, code: str = "S1", ends_in_days: int = 90) -> int:
    now = datetime.utcnow()
    with session_scope(app) as s:
        season = Season(
            title=f"Season {code}",
            code=code,
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=ends_in_days),
            is_active=active,
        )
        s.add(season)
        s.flush()
        return season.id


def make_group(app, master_user_id: int, season_id: int, *, name: str = "Dragons", max_members: int = 6) -> int:
    with session_scope(app) as s:
        master = s.query(MasterProfile).filter(MasterProfile.user_id == master_user_id).one()
        g = Group(name=name, max_members=max_members, referral_code=f"ref-{name.lower()}", season_id=season_id, master_id=master.id)
        s.add(g)
        s.flush()
        return g.id


def add_member(app, group_id: int, player_user_id: int) -> None:
    with session_scope(app) as s:
        player = s.query(PlayerProfile).filter(PlayerProfile.user_id == player_user_id).one()
        s.add(GroupMember(group_id=group_id, player_id=player.id, status="ACTIVE"))


def make_session(app, group_id: int, *, days_from_now: int = 3) -> int:
    with session_scope(app) as s:
        gs = GameSession(group_id=group_id, starts_at=datetime.utcnow() + timedelta(days=days_from_now))
        s.add(gs)
        s.flush()
        return gs.id


def give_battlepass(app, user_id: int, *, kind: str = "SINGLE", uses: int = 1, created_at: datetime | None = None) -> int:
    with session_scope(app) as s:
        bp = Battlepass(
            user_id=user_id,
            kind=kind,
            uses_total=uses,
            uses_left=uses,
            status="ACTIVE",
            created_at=created_at or datetime.utcnow(),
        )
        s.add(bp)
        s.flush()
        return bp.id


def make_product(app, sku: str = "BP_FOUR", *, uses: int = 4, price: int = 1800, season_required: bool = False) -> int:
    with session_scope(app) as s:
        p = Product(
            sku=sku,
            title=f"Pass {sku}",
            type="BATTLEPASS",
            price_rub=price,
            bp_uses_total=uses,
            season_required=season_required,
            visible=True,
            active=True,
        )
        s.add(p)
        s.flush()
        return p.id


def login(client, email: str, password: str = PASSWORD):
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.json
    return r
