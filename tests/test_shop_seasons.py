from app.zv.modules.shop.service import battlepass_kind_for_uses

from conftest import login, make_product, make_season, make_user


def test_battlepass_kind_for_uses():
    assert battlepass_kind_for_uses(1) == "SINGLE"
    assert battlepass_kind_for_uses(4) == "FOUR"
    assert battlepass_kind_for_uses(12) == "SEASON"
    assert battlepass_kind_for_uses(3, {"kind": "single"}) == "SINGLE"


def test_catalog_hides_invisible_and_archived(app, client):
    make_product(app, "BP_SINGLE", uses=1, price=500)
    make_product(app, "BP_FOUR")
    hidden = make_product(app, "BP_HIDDEN")
    make_user(app, "p@example.com")
    make_user(app, "mod@example.com", "MODERATOR")

    login(client, "mod@example.com")
    assert client.patch(f"/api/admin/products/{hidden}", json={"visible": False}).status_code == 200
    client.post("/auth/logout")

    login(client, "p@example.com")
    r = client.get("/api/products")
    assert [p["sku"] for p in r.json["products"]] == ["BP_SINGLE", "BP_FOUR"]
    assert "active" not in r.json["products"][0]
    assert client.get("/api/admin/products").status_code == 403


def test_admin_product_crud(app, client):
    make_user(app, "mod@example.com", "MODERATOR")
    make_product(app, "BP_FOUR")
    login(client, "mod@example.com")

    r = client.post("/api/admin/products", json={"sku": "BP_TEN", "title": "Ten games", "price_rub": 4000, "bp_uses_total": 10})
    assert r.status_code == 201
    product = r.json["product"]
    assert (product["type"], product["visible"], product["active"]) == ("BATTLEPASS", True, True)

    assert client.post("/api/admin/products", json={"sku": "BP_FOUR", "title": "Dup", "price_rub": 1}).status_code == 409
    r = client.post("/api/admin/products", json={"sku": "X", "price_rub": -5, "type": "toy"})
    assert r.status_code == 400
    assert r.json["error"] == "Validation error"
    assert len(r.json["details"]) == 3

    assert client.patch(f"/api/admin/products/{product['id']}", json={"sku": "BP_FOUR"}).status_code == 409
    r = client.patch(f"/api/admin/products/{product['id']}", json={"price_rub": 3900})
    assert r.json["product"]["price_rub"] == 3900
    assert client.patch("/api/admin/products/9999", json={"price_rub": 1}).status_code == 404

    r = client.delete(f"/api/admin/products/{product['id']}")
    assert r.json["product"]["archived_at"] is not None
    assert r.json["product"]["active"] is False
    skus = [p["sku"] for p in client.get("/api/admin/products").json["products"]]
    assert skus == ["BP_FOUR"]
    skus = [p["sku"] for p in client.get("/api/admin/products?include_archived=1").json["products"]]
    assert sorted(skus) == ["BP_FOUR", "BP_TEN"]


def test_seasons(app, client):
    make_season(app, code="OLD", active=False)
    make_user(app, "p@example.com")
    make_user(app, "mod@example.com", "MODERATOR")

    login(client, "mod@example.com")
    payload = {
        "title": "Autumn",
        "code": "AUT",
        "starts_at": "2026-09-01T00:00:00Z",
        "ends_at": "2026-11-30T00:00:00+03:00",
        "is_active": True,
    }
    r = client.post("/api/admin/seasons", json=payload)
    assert r.status_code == 201
    season = r.json["season"]
    assert season["starts_at"] == "2026-09-01T00:00:00"
    assert season["ends_at"] == "2026-11-29T21:00:00"

    assert client.post("/api/admin/seasons", json=payload).status_code == 409
    bad = dict(payload, code="BAD", ends_at="2026-08-01T00:00:00Z")
    assert client.post("/api/admin/seasons", json=bad).json["error"] == "ends_at must be after starts_at."
    assert client.post("/api/admin/seasons", json=dict(payload, code="X", starts_at="soon")).status_code == 400

    r = client.patch(f"/api/admin/seasons/{season['id']}", json={"is_active": False, "title": "Late autumn"})
    assert (r.json["season"]["is_active"], r.json["season"]["title"]) == (False, "Late autumn")
    assert client.patch("/api/admin/seasons/9999", json={}).status_code == 404
    client.post("/auth/logout")

    login(client, "p@example.com")
    assert client.post("/api/admin/seasons", json=payload).status_code == 403
    codes = {x["code"] for x in client.get("/api/seasons").json["seasons"]}
    assert codes == {"OLD", "AUT"}
    assert client.get("/api/seasons?active=1").json["seasons"] == []
