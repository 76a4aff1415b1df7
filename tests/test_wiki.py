from conftest import login, make_user


def _admin_client(app, client):
    make_user(app, "mod@example.com", "MODERATOR")
    login(client, "mod@example.com")
    return client


def _section(client, title="Rules", slug="rules", **extra):
    r = client.post("/api/wiki/sections", json={"title": title, "slug": slug, **extra})
    assert r.status_code == 201, r.json
    return r.json["section"]["id"]


def _article(client, section_id, slug, min_role=None, content="Roll a d20 and add your modifier."):
    payload = {"section_id": section_id, "title": slug.replace("-", " ").title(), "slug": slug, "content_md": content}
    if min_role:
        payload["min_role"] = min_role
    r = client.post("/api/wiki/articles", json=payload)
    assert r.status_code == 201, r.json
    return r.json["article"]["id"]


def _relogin(client, email):
    client.post("/auth/logout")
    login(client, email)


def test_section_tree_and_validation(app, client):
    _admin_client(app, client)
    root = _section(client)
    child = _section(client, "Combat", "combat", parent_id=root)

    assert client.post("/api/wiki/sections", json={"title": "Bad", "slug": "Not A Slug"}).status_code == 400
    assert client.post("/api/wiki/sections", json={"title": "Again", "slug": "rules"}).status_code == 409
    assert client.post("/api/wiki/sections", json={"title": "Orphan", "slug": "orphan", "parent_id": 999}).status_code == 404
    assert client.patch(f"/api/wiki/sections/{root}", json={"parent_id": child}).status_code == 400

    _article(client, child, "initiative", min_role="PLAYER")
    tree = client.get("/api/wiki/sections").json["sections"]
    assert [n["slug"] for n in tree] == ["rules"]
    assert tree[0]["children"][0]["slug"] == "combat"
    assert tree[0]["children"][0]["article_count"] == 1


def test_section_delete_conflicts(app, client):
    _admin_client(app, client)
    root = _section(client)
    child = _section(client, "Combat", "combat", parent_id=root)
    article = _article(client, child, "initiative")

    assert client.delete(f"/api/wiki/sections/{root}").status_code == 409
    assert client.delete(f"/api/wiki/sections/{child}").status_code == 409
    assert client.delete(f"/api/wiki/articles/{article}").json == {"ok": True}
    assert client.delete(f"/api/wiki/sections/{child}").status_code == 200
    assert client.delete(f"/api/wiki/sections/{root}").status_code == 200


def test_article_visibility_by_role(app, client):
    _admin_client(app, client)
    section = _section(client)
    public = _article(client, section, "basics", min_role="PLAYER")
    masters = _article(client, section, "gm-secrets")
    staff = _article(client, section, "moderation", min_role="MODERATOR")
    make_user(app, "p@example.com")
    make_user(app, "m@example.com", "PLAYER", "MASTER")

    assert client.post("/api/wiki/articles", json={"section_id": section, "title": "Dup", "slug": "basics"}).status_code == 409
    assert client.post("/api/wiki/articles", json={"section_id": section, "title": "Odd", "slug": "odd", "min_role": "GOD"}).status_code == 400

    _relogin(client, "p@example.com")
    assert [a["id"] for a in client.get(f"/api/wiki/articles?section_id={section}").json["articles"]] == [public]
    assert client.get(f"/api/wiki/articles/{masters}").status_code == 404
    assert client.get(f"/api/wiki/articles?section_id={section}&slug=basics").json["article"]["id"] == public
    assert client.get("/api/wiki/articles?slug=basics").status_code == 400
    assert client.post("/api/wiki/articles", json={"section_id": section, "title": "Mine", "slug": "mine"}).status_code == 403

    _relogin(client, "m@example.com")
    assert client.get(f"/api/wiki/articles/{masters}").status_code == 200
    assert client.get(f"/api/wiki/articles/{staff}").status_code == 404


def test_search(app, client):
    _admin_client(app, client)
    section = _section(client)
    _article(client, section, "dragons", min_role="PLAYER", content="Dragons breathe fire.")
    _article(client, section, "hidden-dragons", content="Secret dragons lair.")
    _article(client, section, "goblins", min_role="PLAYER", content="Goblins are sneaky.")
    make_user(app, "p@example.com")

    r = client.get("/api/wiki/search?q=dragon")
    assert r.json["total"] == 2

    _relogin(client, "p@example.com")
    assert client.get("/api/wiki/search").status_code == 400
    r = client.get("/api/wiki/search?q=DRAGON&limit=1")
    assert r.json["total"] == 1
    assert r.json["has_more"] is False
    assert r.json["results"][0]["slug"] == "dragons"
    assert r.json["results"][0]["section_title"] == "Rules"
    assert r.json["results"][0]["snippet"] == "Dragons breathe fire."


def test_comments(app, client):
    _admin_client(app, client)
    section = _section(client)
    article = _article(client, section, "basics", min_role="PLAYER")
    make_user(app, "p@example.com", name="Pat")
    make_user(app, "q@example.com")

    _relogin(client, "p@example.com")
    assert client.post(f"/api/wiki/articles/{article}/comments", json={"body": "   "}).status_code == 400
    r = client.post(f"/api/wiki/articles/{article}/comments", json={"body": "Great guide"})
    assert r.status_code == 201
    comment = r.json["comment"]
    assert (comment["body"], comment["user_name"]) == ("Great guide", "Pat")
    assert len(client.get(f"/api/wiki/articles/{article}/comments").json["comments"]) == 1

    _relogin(client, "q@example.com")
    assert client.delete(f"/api/wiki/comments/{comment['id']}").status_code == 403

    _relogin(client, "mod@example.com")
    assert client.delete(f"/api/wiki/comments/{comment['id']}").status_code == 200
    assert client.get(f"/api/wiki/articles/{article}").json["comments"] == []
