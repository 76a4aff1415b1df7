from app.zv.db import session_scope
from app.zv.models import User
from app.zv.modules.shop.models import Order

from conftest import login, make_user


def _relogin(client, email, password="password123"):
    client.post("/auth/logout")
    login(client, email, password)


def test_admin_endpoints_require_staff(app, client):
    make_user(app, "p@example.com")
    login(client, "p@example.com")
    assert client.get("/api/admin/users").status_code == 403
    assert client.get("/api/admin/audit").status_code == 403


def test_list_users_filters_and_paginates(app, client):
    make_user(app, "mod@example.com", "MODERATOR", name="Mod")
    for i in range(12):
        make_user(app, f"player{i:02d}@example.com", name=f"Player {i:02d}")
    make_user(app, "gm@example.com", "PLAYER", "MASTER", name="Game Master")
    login(client, "mod@example.com")

    r = client.get("/api/admin/users?page_size=10&sort_by=email&sort_dir=asc")
    assert r.status_code == 200
    assert (r.json["total"], r.json["page"], r.json["page_size"]) == (14, 1, 10)
    assert r.json["items"][0]["email"] == "gm@example.com"

    r = client.get("/api/admin/users?page_size=10&page=2&sort_by=email&sort_dir=asc")
    assert len(r.json["items"]) == 4

    r = client.get("/api/admin/users?roles=master")
    assert [u["email"] for u in r.json["items"]] == ["gm@example.com"]

    r = client.get("/api/admin/users?search=player0")
    assert r.json["total"] == 10

    assert client.get("/api/admin/users?page_size=7").status_code == 400
    assert client.get("/api/admin/users?sort_by=password_hash").status_code == 400
    assert client.get("/api/admin/users?sort_dir=up").status_code == 400
    assert client.get("/api/admin/users?roles=wizard").status_code == 400


def test_update_user(app, client):
    mod = make_user(app, "mod@example.com", "MODERATOR")
    uid = make_user(app, "p@example.com")
    make_user(app, "taken@example.com")
    login(client, "mod@example.com")

    r = client.patch(f"/api/admin/users/{uid}", json={"name": "Renamed", "tel": "+7 912 345 67 89"})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Renamed"
    assert client.patch(f"/api/admin/users/{uid}", json={"email": "taken@example.com"}).status_code == 409
    assert client.patch(f"/api/admin/users/{uid}", json={"email": "not-an-email"}).status_code == 400
    assert client.patch(f"/api/admin/users/{mod}", json={"is_active": False}).status_code == 400
    assert client.get("/api/admin/users/9999").status_code == 404

    r = client.patch(f"/api/admin/users/{uid}", json={"is_active": False})
    assert r.json["user"]["is_active"] is False
    client.post("/auth/logout")
    r = client.post("/auth/login", json={"email": "p@example.com", "password": "password123"})
    assert r.status_code == 401


def test_role_changes(app, client):
    make_user(app, "mod@example.com", "MODERATOR")
    root = make_user(app, "root@example.com", "SUPERADMIN")
    uid = make_user(app, "p@example.com")
    login(client, "mod@example.com")

    assert client.patch(f"/api/admin/users/{uid}/roles", json={}).status_code == 400
    assert client.patch(f"/api/admin/users/{uid}/roles", json={"add": ["BARD"]}).status_code == 400
    r = client.patch(f"/api/admin/users/{uid}/roles", json={"add": [1], "remove": [None]})
    assert (r.status_code, r.json["error"]) == (400, "Roles must be strings")
    r = client.patch(f"/api/admin/users/{uid}/roles", json={"add": ["master"]})
    assert r.json == {"ok": True, "roles": ["PLAYER", "MASTER"]}
    assert client.patch(f"/api/admin/users/{uid}/roles", json={"add": ["SUPERADMIN"]}).status_code == 403

    _relogin(client, "root@example.com")
    r = client.patch(f"/api/admin/users/{root}/roles", json={"remove": ["SUPERADMIN"]})
    assert r.status_code == 409
    assert r.json["error"] == "Cannot remove the last superadmin"

    r = client.patch(f"/api/admin/users/{uid}/roles", json={"add": ["SUPERADMIN"], "remove": ["MASTER"]})
    assert r.json["roles"] == ["PLAYER", "SUPERADMIN"]
    assert client.patch(f"/api/admin/users/{root}/roles", json={"remove": ["SUPERADMIN"]}).status_code == 200


def test_delete_user_rules(app, client):
    mod = make_user(app, "mod@example.com", "MODERATOR")
    make_user(app, "root@example.com", "SUPERADMIN")
    root_id = make_user(app, "root2@example.com", "SUPERADMIN")
    plain = make_user(app, "p@example.com")
    buyer = make_user(app, "buyer@example.com")
    with session_scope(app) as s:
        s.add(Order(user_id=buyer, status="PENDING", total_rub=500))
    login(client, "mod@example.com")

    assert client.delete(f"/api/admin/users/{mod}").status_code == 400
    assert client.delete(f"/api/admin/users/{root_id}").status_code == 403
    assert client.delete(f"/api/admin/users/{buyer}").status_code == 409
    assert client.delete(f"/api/admin/users/{plain}").json == {"ok": True}
    with session_scope(app) as s:
        assert s.get(User, plain) is None

    _relogin(client, "root@example.com")
    assert client.delete(f"/api/admin/users/{root_id}").status_code == 200


def test_reset_password_superadmin_only(app, client):
    make_user(app, "mod@example.com", "MODERATOR")
    make_user(app, "root@example.com", "SUPERADMIN")
    uid = make_user(app, "p@example.com")
    login(client, "mod@example.com")
    assert client.post(f"/api/admin/users/{uid}/reset-password", json={"password": "new-password"}).status_code == 403

    _relogin(client, "root@example.com")
    assert client.post(f"/api/admin/users/{uid}/reset-password", json={"password": "short"}).status_code == 400
    assert client.post(f"/api/admin/users/{uid}/reset-password", json={"password": "new-password"}).status_code == 200
    _relogin(client, "p@example.com", "new-password")


def test_audit_trail(app, client):
    make_user(app, "mod@example.com", "MODERATOR")
    uid = make_user(app, "p@example.com")
    login(client, "mod@example.com")
    client.patch(f"/api/admin/users/{uid}", json={"name": "Audited"})

    r = client.get("/api/admin/audit?action=user.update")
    (event,) = r.json["events"]
    assert event["actor_user_email"] == "mod@example.com"
    assert event["entity_id"] == str(uid)

    r = client.get("/api/admin/audit?limit=1")
    assert len(r.json["events"]) == 1
