from datetime import datetime, timedelta

from app.zv.db import session_scope
from app.zv.modules.dashboards import service
from app.zv.modules.reports.models import Report, ReportPlayer
from app.zv.modules.shop.models import Order

from conftest import add_member, give_battlepass, login, make_group, make_season, make_session, make_user


def _world(app):
    season_id = make_season(app)
    master = make_user(app, "m@example.com", "PLAYER", "MASTER", name="GM")
    group_id = make_group(app, master, season_id)
    player = make_user(app, "p@example.com")
    add_member(app, group_id, player)
    make_session(app, group_id, days_from_now=2)
    make_session(app, group_id, days_from_now=-2)
    give_battlepass(app, player, kind="FOUR", uses=4)
    give_battlepass(app, player, kind="SINGLE", uses=1)
    with session_scope(app) as s:
        approved = Report(
            group_id=group_id,
            master_user_id=master,
            description="A night in the catacombs",
            status="APPROVED",
            moderated_at=datetime.utcnow() - timedelta(hours=1),
        )
        approved.players.append(ReportPlayer(player_user_id=player))
        pending = Report(group_id=group_id, master_user_id=master, description="Second night out", status="PENDING")
        s.add_all([approved, pending])
        s.add(Order(user_id=player, status="PAID", total_rub=1800))
        s.add(Order(user_id=player, status="PENDING", total_rub=500))
    return {"master": master, "player": player, "group": group_id}


def test_player_dashboard(app, client):
    ctx = _world(app)
    make_user(app, "new@example.com")
    login(client, "new@example.com")
    assert client.post(f"/api/groups/{ctx['group']}/apply", json={"message": "Hi"}).status_code == 201

    r = client.get("/api/dashboard/player")
    assert r.status_code == 200
    assert r.json["groups"] == []
    assert len(r.json["pending_applications"]) == 1
    assert r.json["battlepasses"]["total_available_games"] == 0

    client.post("/auth/logout")
    login(client, "p@example.com")
    r = client.get("/api/dashboard/player")
    data = r.json
    assert data["active_season"]["code"] == "S1"
    assert data["battlepasses"]["total_available_games"] == 5
    assert data["battlepasses"]["active_count"] == 2
    assert [g["name"] for g in data["groups"]] == ["Dragons"]
    assert len(data["recent_reports"]) == 1
    assert data["recent_reports"][0]["status"] == "APPROVED"

    assert client.get("/api/dashboard/master").status_code == 403
    assert client.get("/api/dashboard/admin").status_code == 403


def test_master_dashboard(app, client):
    ctx = _world(app)
    make_user(app, "new@example.com")
    login(client, "new@example.com")
    client.post(f"/api/groups/{ctx['group']}/apply", json={})
    client.post("/auth/logout")

    login(client, "m@example.com")
    data = client.get("/api/dashboard/master").json
    assert [g["role"] for g in data["groups"]] == ["MASTER"]
    assert data["pending_applications_total"] == 1
    assert data["reports_by_status"] == {"PENDING": 1, "APPROVED": 1, "REJECTED": 0, "CANCELLED": 0}
    assert len(data["upcoming_sessions"]) == 1


def test_admin_dashboard(app):
    _world(app)
    make_user(app, "mod@example.com", "MODERATOR")
    with session_scope(app) as s:
        data = service.admin_dashboard(s)
    assert data["pending_reports_total"] == 1
    assert data["users_total"] == 3
    assert data["users_by_role"] == {"PLAYER": 2, "MASTER": 1, "MODERATOR": 1, "SUPERADMIN": 0}
    assert data["orders_by_status"] == {"PENDING": 1, "PAID": 1, "CANCELLED": 0, "REFUNDED": 0}
    assert data["paid_revenue_rub"] == 1800
    assert data["active_battlepass_games"] == 5


def test_admin_dashboard_endpoint(app, client):
    make_user(app, "root@example.com", "SUPERADMIN")
    login(client, "root@example.com")
    r = client.get("/api/dashboard/admin")
    assert r.status_code == 200
    assert r.json["pending_reports"] == []
    assert r.json["users_total"] == 1
