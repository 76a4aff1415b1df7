from datetime import datetime, timedelta

import pytest

from app.zv.db import session_scope
from app.zv.errors import Conflict, NotFound, ValidationFailed
from app.zv.modules.battlepasses import service
from app.zv.modules.battlepasses.models import Battlepass, Writeoff

from conftest import give_battlepass, login, make_group, make_season, make_session, make_user


def _sessions(app, n: int) -> list[int]:
    season_id = make_season(app)
    master_id = make_user(app, "m@example.com", "PLAYER", "MASTER")
    group_id = make_group(app, master_id, season_id)
    return [make_session(app, group_id) for _ in range(n)]


def test_redeem_spends_single_before_four_before_season(app):
    uid = make_user(app, "p@example.com")
    old = datetime.utcnow() - timedelta(days=10)
    season_bp = give_battlepass(app, uid, kind="SEASON", uses=10, created_at=old)
    four_bp = give_battlepass(app, uid, kind="FOUR", uses=4, created_at=old)
    single_bp = give_battlepass(app, uid, kind="SINGLE", uses=1)
    sessions = _sessions(app, 3)

    with session_scope(app) as s:
        used = [service.redeem(s, uid, session_id=sid).battlepass_id for sid in sessions]
    assert used == [single_bp, four_bp, four_bp]

    with session_scope(app) as s:
        single = s.get(Battlepass, single_bp)
        four = s.get(Battlepass, four_bp)
        assert (single.uses_left, single.status) == (0, "USED_UP")
        assert (four.uses_left, four.status) == (2, "ACTIVE")
        assert s.get(Battlepass, season_bp).uses_left == 10
        assert service.available_games(s, uid) == 12


def test_redeem_oldest_first_within_kind(app):
    uid = make_user(app, "p@example.com")
    newer = give_battlepass(app, uid, kind="FOUR", uses=4)
    older = give_battlepass(app, uid, kind="FOUR", uses=4, created_at=datetime.utcnow() - timedelta(days=3))
    (sid,) = _sessions(app, 1)
    with session_scope(app) as s:
        assert service.redeem(s, uid, session_id=sid).battlepass_id == older
        assert s.get(Battlepass, newer).uses_left == 4


def test_redeem_is_idempotent_per_session(app):
    uid = make_user(app, "p@example.com")
    bp_id = give_battlepass(app, uid, kind="FOUR", uses=4)
    (sid,) = _sessions(app, 1)

    with session_scope(app) as s:
        first = service.redeem(s, uid, session_id=sid)
    with session_scope(app) as s:
        second = service.redeem(s, uid, session_id=sid)

    assert first.ok and not first.already_redeemed
    assert second.ok and second.already_redeemed
    assert second.battlepass_id == bp_id
    with session_scope(app) as s:
        assert s.get(Battlepass, bp_id).uses_left == 3
        assert s.query(Writeoff).count() == 1


def test_redeem_without_passes_conflicts(app):
    uid = make_user(app, "p@example.com")
    (sid,) = _sessions(app, 1)
    with session_scope(app) as s:
        with pytest.raises(Conflict):
            service.redeem(s, uid, session_id=sid)
        with pytest.raises(ValidationFailed):
            service.redeem(s, uid)
        with pytest.raises(ValidationFailed):
            service.redeem(s, None, session_id=sid)


def test_used_up_and_expired_passes_are_skipped(app):
    uid = make_user(app, "p@example.com")
    bp_id = give_battlepass(app, uid, kind="SINGLE", uses=1)
    with session_scope(app) as s:
        s.get(Battlepass, bp_id).status = "EXPIRED"
    (sid,) = _sessions(app, 1)
    with session_scope(app) as s:
        assert service.available_games(s, uid) == 0
        with pytest.raises(Conflict):
            service.redeem(s, uid, session_id=sid)


def test_issue_battlepass_validation(app):
    uid = make_user(app, "p@example.com")
    with session_scope(app) as s:
        with pytest.raises(ValidationFailed):
            service.issue_battlepass(s, user_id=uid, kind="MONTH", uses_total=1)
        with pytest.raises(ValidationFailed):
            service.issue_battlepass(s, user_id=uid, kind="FOUR", uses_total=0)
        with pytest.raises(NotFound):
            service.issue_battlepass(s, user_id=9999, kind="FOUR", uses_total=4)
        bp = service.issue_battlepass(s, user_id=uid, kind="FOUR", uses_total=4)
        assert (bp.uses_left, bp.status) == (4, "ACTIVE")


def test_expire_battlepasses_for_ended_seasons(app):
    uid = make_user(app, "p@example.com")
    ended = make_season(app, code="OLD", active=False, ends_in_days=-1)
    current = make_season(app, code="NEW")
    with session_scope(app) as s:
        s.add(Battlepass(user_id=uid, kind="SEASON", season_id=ended, uses_total=10, uses_left=5, status="ACTIVE"))
        s.add(Battlepass(user_id=uid, kind="SEASON", season_id=current, uses_total=10, uses_left=5, status="ACTIVE"))
    with session_scope(app) as s:
        assert service.expire_battlepasses(s) == 1
    with session_scope(app) as s:
        statuses = sorted(b.status for b in s.query(Battlepass).all())
    assert statuses == ["ACTIVE", "EXPIRED"]


def test_player_battlepasses_endpoint(app, client):
    uid = make_user(app, "p@example.com")
    give_battlepass(app, uid, kind="FOUR", uses=4)
    give_battlepass(app, uid, kind="SINGLE", uses=1)
    login(client, "p@example.com")
    r = client.get("/api/player/battlepasses")
    assert r.status_code == 200
    assert r.json["count"] == 2
    assert r.json["total_available_games"] == 5


def test_redeem_endpoint_requires_moderator(app, client):
    uid = make_user(app, "p@example.com")
    give_battlepass(app, uid, kind="SINGLE", uses=1)
    (sid,) = _sessions(app, 1)
    make_user(app, "mod@example.com", "MODERATOR")

    login(client, "m@example.com")
    assert client.post("/api/battlepasses/redeem", json={"user_id": uid, "session_id": sid}).status_code == 403

    client.post("/auth/logout")
    login(client, "mod@example.com")
    r = client.post("/api/battlepasses/redeem", json={"user_id": uid, "session_id": sid})
    assert r.status_code == 200
    assert r.json["ok"] is True and r.json["already_redeemed"] is False
    r = client.post("/api/battlepasses/redeem", json={"user_id": uid, "session_id": sid})
    assert r.json["already_redeemed"] is True


def test_check_battlepasses_for_master(app, client):
    rich = make_user(app, "rich@example.com", name="Rich")
    poor = make_user(app, "poor@example.com", name="Poor")
    give_battlepass(app, rich, kind="FOUR", uses=4)
    make_user(app, "m@example.com", "PLAYER", "MASTER")
    login(client, "m@example.com")

    assert client.post("/api/players/check-battlepasses", json={"player_ids": []}).status_code == 400
    r = client.post("/api/players/check-battlepasses", json={"player_ids": [rich, poor, 9999]})
    assert r.status_code == 200
    by_id = {p["player_id"]: p for p in r.json["players"]}
    assert by_id[rich]["total_available_games"] == 4 and by_id[rich]["has_available_games"] is True
    assert by_id[poor]["has_available_games"] is False
    assert by_id[9999]["is_player"] is False


def test_admin_issue_and_list(app, client):
    uid = make_user(app, "p@example.com")
    make_user(app, "admin@example.com", "SUPERADMIN")
    login(client, "admin@example.com")

    r = client.post("/api/admin/battlepasses", json={"user_id": uid, "kind": "season", "uses_total": 12})
    assert r.status_code == 201
    assert r.json["battlepass"]["kind"] == "SEASON"

    assert client.get("/api/admin/battlepasses").status_code == 400
    r = client.get(f"/api/admin/battlepasses?user_id={uid}")
    assert [b["uses_left"] for b in r.json["battlepasses"]] == [12]
