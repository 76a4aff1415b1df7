import re

from app.zv.db import session_scope
from app.zv.modules.characters.models import Character
from app.zv.modules.characters.service import MAX_CHARACTERS_PER_PLAYER, today_death_date
from app.zv.modules.groups.models import GroupMember

from conftest import add_member, login, make_group, make_season, make_user


def _relogin(client, email):
    client.post("/auth/logout")
    login(client, email)


def _create(client, **fields):
    payload = {"name": "Arwen", "archetype": "Ranger"}
    payload.update(fields)
    return client.post("/api/characters", json=payload)


def test_today_death_date_uses_three_digit_year():
    from datetime import datetime

    assert today_death_date(datetime(2026, 3, 7)) == "07.03.026"


def test_create_and_list_own_characters(app, client):
    make_user(app, "p@example.com")
    make_user(app, "q@example.com")
    login(client, "p@example.com")

    r = _create(client, level=3, sheet_url="https://example.com/sheet")
    assert r.status_code == 201, r.json
    ch = r.json["character"]
    assert (ch["name"], ch["archetype"], ch["level"], ch["is_alive"]) == ("Arwen", "Ranger", 3, True)

    assert _create(client, name="").status_code == 400
    assert _create(client, level=0).status_code == 400
    assert _create(client, avatar_url="not a url").status_code == 400
    assert _create(client, death_date="2026-01-01").status_code == 400
    assert _create(client, backstory="x" * 5001).status_code == 400

    assert [c["id"] for c in client.get("/api/characters").json["characters"]] == [ch["id"]]

    _relogin(client, "q@example.com")
    assert client.get("/api/characters").json["characters"] == []


def test_character_limit_per_player(app, client):
    make_user(app, "p@example.com")
    login(client, "p@example.com")
    for i in range(MAX_CHARACTERS_PER_PLAYER):
        assert _create(client, name=f"Hero {i}").status_code == 201
    r = _create(client, name="One too many")
    assert r.status_code == 400
    assert r.json["error"] == f"A player can have at most {MAX_CHARACTERS_PER_PLAYER} characters"


def test_death_fills_date_and_revival_clears_it(app, client):
    make_user(app, "p@example.com")
    login(client, "p@example.com")
    cid = _create(client).json["character"]["id"]

    r = client.patch(f"/api/characters/{cid}", json={"is_alive": False})
    assert r.status_code == 200
    assert r.json["character"]["is_alive"] is False
    assert re.match(r"^\d{2}\.\d{2}\.\d{3}$", r.json["character"]["death_date"])

    r = client.patch(f"/api/characters/{cid}", json={"death_date": "01.02.345"})
    assert r.json["character"]["death_date"] == "01.02.345"

    r = client.patch(f"/api/characters/{cid}", json={"is_alive": True})
    assert (r.json["character"]["is_alive"], r.json["character"]["death_date"]) == (True, None)

    r = _create(client, name="Boromir", is_alive=False, death_date="12.12.019")
    assert r.json["character"]["death_date"] == "12.12.019"


def test_access_rules(app, client):
    make_user(app, "p@example.com")
    make_user(app, "other@example.com")
    make_user(app, "m@example.com", "PLAYER", "MASTER")
    make_user(app, "mod@example.com", "MODERATOR")
    login(client, "p@example.com")
    cid = _create(client).json["character"]["id"]

    _relogin(client, "other@example.com")
    assert client.get(f"/api/characters/{cid}").status_code == 403
    assert client.patch(f"/api/characters/{cid}", json={"level": 9}).status_code == 403
    assert client.delete(f"/api/characters/{cid}").status_code == 403
    assert client.get("/api/characters/9999").status_code == 404

    _relogin(client, "m@example.com")
    assert client.get(f"/api/characters/{cid}").status_code == 200
    assert client.patch(f"/api/characters/{cid}", json={"level": 9}).status_code == 403

    _relogin(client, "mod@example.com")
    r = client.patch(f"/api/characters/{cid}", json={"notes": "Checked"})
    assert r.json["character"]["notes"] == "Checked"
    assert client.delete(f"/api/characters/{cid}").json == {"ok": True}

    with session_scope(app) as s:
        assert s.query(Character).count() == 0


def test_assign_to_group_and_group_listing(app, client):
    season_id = make_season(app)
    master = make_user(app, "m@example.com", "PLAYER", "MASTER")
    make_user(app, "m2@example.com", "PLAYER", "MASTER")
    group_id = make_group(app, master, season_id)
    player = make_user(app, "p@example.com", name="Pippin")
    login(client, "p@example.com")
    cid = _create(client, name="Took").json["character"]["id"]

    r = client.post(f"/api/characters/{cid}/assign-group", json={"group_id": group_id})
    assert (r.status_code, r.json["error"]) == (400, "Player is not a member of this group")
    assert client.post(f"/api/characters/{cid}/assign-group", json={"group_id": 9999}).status_code == 404

    add_member(app, group_id, player)
    r = client.post(f"/api/characters/{cid}/assign-group", json={"group_id": group_id})
    assert r.status_code == 200
    assert r.json["member"]["character_id"] == cid

    assert client.get(f"/api/groups/{group_id}/characters").status_code == 403

    _relogin(client, "m2@example.com")
    assert client.get(f"/api/groups/{group_id}/characters").status_code == 403

    _relogin(client, "m@example.com")
    assert client.post(f"/api/characters/{cid}/assign-group", json={"group_id": group_id}).status_code == 403
    rows = client.get(f"/api/groups/{group_id}/characters").json["characters"]
    assert [(c["id"], c["player_name"], c["membership_status"]) for c in rows] == [(cid, "Pippin", "ACTIVE")]
    assert client.get("/api/groups/9999/characters").status_code == 404

    _relogin(client, "p@example.com")
    client.delete(f"/api/characters/{cid}")
    with session_scope(app) as s:
        assert s.query(GroupMember).one().character_id is None


def test_admin_list_and_create(app, client):
    player = make_user(app, "p@example.com")
    make_user(app, "mod@example.com", "MODERATOR")
    login(client, "p@example.com")
    for i in range(3):
        _create(client, name=f"Hero {i}")
    assert client.get("/api/admin/characters").status_code == 403

    _relogin(client, "mod@example.com")
    r = client.get("/api/admin/characters?page_size=10")
    assert r.status_code == 200
    assert r.json["pagination"] == {"page": 1, "page_size": 10, "total": 3, "total_pages": 1}
    assert client.get("/api/admin/characters?page_size=7").status_code == 400

    r = client.post("/api/admin/characters", json={"user_id": player, "name": "Granted"})
    assert r.status_code == 201
    assert r.json["character"]["user_id"] == player
    assert client.post("/api/admin/characters", json={"user_id": 9999, "name": "Ghost"}).status_code == 404
