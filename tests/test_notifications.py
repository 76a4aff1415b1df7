import pytest

from app.zv.db import session_scope
from app.zv.modules.notifications import service

from conftest import login, make_user


def _seed(app, user_id, n):
    with session_scope(app) as s:
        ids = []
        for i in range(n):
            note = service.notify(s, user_id, f"Title {i}", f"Message {i}", related_type="GROUP", related_id=i)
            s.flush()
            ids.append(note.id)
        return ids


def test_notify_rejects_unknown_types(app):
    uid = make_user(app, "p@example.com")
    with session_scope(app) as s:
        with pytest.raises(ValueError):
            service.notify(s, uid, "t", "m", type="LOUD")
        with pytest.raises(ValueError):
            service.notify(s, uid, "t", "m", related_type="PLANET")


def test_notify_many_dedupes_recipients(app):
    a = make_user(app, "a@example.com")
    b = make_user(app, "b@example.com")
    with session_scope(app) as s:
        assert len(service.notify_many(s, [a, b, a], "Hello", "World")) == 2
    with session_scope(app) as s:
        assert service.unread_count(s, a) == 1
        assert service.unread_count(s, b) == 1


def test_list_paginates_and_counts_unread(app, client):
    uid = make_user(app, "p@example.com")
    _seed(app, uid, 3)
    login(client, "p@example.com")

    r = client.get("/api/notifications?limit=2")
    assert r.status_code == 200
    assert len(r.json["notifications"]) == 2
    assert r.json["has_more"] is True
    assert r.json["unread_count"] == 3

    r = client.get("/api/notifications?limit=2&offset=2")
    assert len(r.json["notifications"]) == 1
    assert r.json["has_more"] is False


def test_mark_read_and_delete(app, client):
    uid = make_user(app, "p@example.com")
    other = make_user(app, "o@example.com")
    first, second = _seed(app, uid, 2)
    (foreign,) = _seed(app, other, 1)
    login(client, "p@example.com")

    assert client.patch(f"/api/notifications/{first}", json={"is_read": "yes"}).status_code == 400
    r = client.patch(f"/api/notifications/{first}", json={"is_read": True})
    assert r.json["notification"]["is_read"] is True
    assert client.get("/api/notifications?unread_only=1").json["unread_count"] == 1
    assert [n["id"] for n in client.get("/api/notifications?unread_only=1").json["notifications"]] == [second]

    assert client.patch(f"/api/notifications/{foreign}", json={"is_read": True}).status_code == 404
    assert client.delete(f"/api/notifications/{foreign}").status_code == 404

    r = client.post("/api/notifications/read-all")
    assert r.json == {"ok": True, "updated": 1}
    assert client.delete(f"/api/notifications/{second}").json == {"ok": True}
    assert [n["id"] for n in client.get("/api/notifications").json["notifications"]] == [first]


def test_notifications_require_login(client):
    assert client.get("/api/notifications").status_code == 401
