import pytest

from app.zv.db import session_scope
from app.zv.modules.battlepasses.models import Battlepass
from app.zv.modules.notifications.models import Notification
from app.zv.modules.shop.models import Order

from conftest import login, make_product, make_season, make_user


class FakeYooKassa:
    def __init__(self):
        self.payments: dict[str, dict] = {}
        self.created: list[tuple[dict, str]] = []

    def create_payment(self, body, idempotence_key):
        self.created.append((body, idempotence_key))
        payment_id = f"pay-{len(self.created)}"
        self.payments[payment_id] = {
            "id": payment_id,
            "status": "pending",
            "amount": body["amount"],
            "metadata": body["metadata"],
            "confirmation": {"type": "redirect", "confirmation_url": f"https://pay.example/{payment_id}"},
        }
        return self.payments[payment_id]

    def get_payment(self, payment_id):
        return self.payments[payment_id]


@pytest.fixture()
def yookassa(app):
    app.config["FEATURE_PAYMENTS"] = True
    fake = FakeYooKassa()
    app.extensions["yookassa_client"] = fake
    return fake


def _checkout(client, **payload):
    payload.setdefault("product_sku", "BP_FOUR")
    return client.post("/api/payments/create-checkout", json=payload)


def test_checkout_disabled_by_default(app, client):
    make_user(app, "p@example.com")
    make_product(app)
    login(client, "p@example.com")
    r = _checkout(client)
    assert r.status_code == 404
    assert r.json["error"] == "Payments disabled"


def test_checkout_creates_pending_order(app, client, yookassa):
    uid = make_user(app, "p@example.com")
    make_product(app)
    login(client, "p@example.com")

    assert client.post("/api/payments/create-checkout", json={}).status_code == 400
    assert _checkout(client, product_sku="NOPE").status_code == 404

    r = _checkout(client)
    assert r.status_code == 200
    assert r.json["payment_id"] == "pay-1"
    assert r.json["confirmation_url"] == "https://pay.example/pay-1"

    body, key = yookassa.created[0]
    assert body["amount"] == {"value": "1800.00", "currency": "RUB"}
    assert body["metadata"]["orderId"] == str(r.json["order_id"])
    assert key

    with session_scope(app) as s:
        order = s.get(Order, r.json["order_id"])
        assert (order.user_id, order.status, order.provider_id) == (uid, "PENDING", "pay-1")
        assert order.items[0].bp_kind_at_purchase == "FOUR"


def test_season_product_needs_active_season(app, client, yookassa):
    make_user(app, "p@example.com")
    make_product(app, "BP_SEASON", uses=12, price=4500, season_required=True)
    login(client, "p@example.com")
    assert _checkout(client, product_sku="BP_SEASON").status_code == 409
    make_season(app)
    assert _checkout(client, product_sku="BP_SEASON").status_code == 200


def test_players_cannot_buy_for_others(app, client, yookassa):
    other = make_user(app, "other@example.com")
    make_user(app, "p@example.com")
    make_user(app, "m@example.com", "PLAYER", "MASTER")
    make_product(app)

    login(client, "p@example.com")
    assert _checkout(client, for_user_id=other).status_code == 403
    client.post("/auth/logout")

    login(client, "m@example.com")
    r = _checkout(client, for_user_id=other)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(Order, r.json["order_id"]).recipient_user_id == other


def test_webhook_fulfils_order_once(app, client, yookassa):
    uid = make_user(app, "p@example.com")
    make_product(app)
    login(client, "p@example.com")
    order_id = _checkout(client).json["order_id"]

    event = {"event": "payment.succeeded", "object": {"id": "pay-1"}}
    r = client.post("/api/payments/webhook", json=event)
    assert r.json == {"ok": True, "processed": False}

    yookassa.payments["pay-1"]["status"] = "succeeded"
    r = client.post("/api/payments/webhook", json=event)
    assert r.json == {"ok": True, "processed": True}
    r = client.post("/api/payments/webhook", json=event)
    assert r.json == {"ok": True, "processed": False}

    with session_scope(app) as s:
        order = s.get(Order, order_id)
        assert order.status == "PAID" and order.fulfilled_at is not None
        passes = s.query(Battlepass).filter(Battlepass.user_id == uid).all()
        assert [(b.kind, b.uses_left, b.order_id) for b in passes] == [("FOUR", 4, order_id)]
        assert s.query(Notification).filter(Notification.user_id == uid).count() == 1


def test_webhook_rejects_bad_payload_and_unknown_payment(app, client, yookassa):
    assert client.post("/api/payments/webhook", json={"event": "payment.succeeded"}).status_code == 400
    yookassa.payments["ghost"] = {"id": "ghost", "status": "succeeded", "metadata": {}}
    r = client.post("/api/payments/webhook", json={"event": "payment.succeeded", "object": {"id": "ghost"}})
    assert r.json == {"ok": True, "order_found": False}


def test_webhook_cancel_marks_order_cancelled(app, client, yookassa):
    make_user(app, "p@example.com")
    make_product(app)
    login(client, "p@example.com")
    order_id = _checkout(client).json["order_id"]

    r = client.post("/api/payments/webhook", json={"event": "payment.canceled", "object": {"id": "pay-1"}})
    assert r.json == {"ok": True}
    with session_scope(app) as s:
        assert s.get(Order, order_id).status == "CANCELLED"


def test_check_status_fulfils_paid_order(app, client, yookassa):
    uid = make_user(app, "p@example.com")
    make_user(app, "stranger@example.com")
    make_product(app)
    login(client, "p@example.com")
    order_id = _checkout(client).json["order_id"]

    assert client.post("/api/payments/check-status", json={}).status_code == 400
    r = client.post("/api/payments/check-status", json={"payment_id": "pay-1"})
    assert (r.json["status"], r.json["processed"]) == ("pending", False)

    yookassa.payments["pay-1"]["status"] = "succeeded"
    r = client.post("/api/payments/check-status", json={"payment_id": "pay-1"})
    assert r.json["order_id"] == order_id
    assert r.json["processed"] is True and r.json["already_processed"] is False
    r = client.post("/api/payments/check-status", json={"payment_id": "pay-1"})
    assert r.json["processed"] is False and r.json["already_processed"] is True

    client.post("/auth/logout")
    login(client, "stranger@example.com")
    assert client.post("/api/payments/check-status", json={"payment_id": "pay-1"}).status_code == 403

    with session_scope(app) as s:
        assert s.query(Battlepass).filter(Battlepass.user_id == uid).count() == 1


def test_orders_listing(app, client, yookassa):
    make_user(app, "p@example.com")
    make_product(app)
    login(client, "p@example.com")
    _checkout(client)
    r = client.get("/api/orders")
    assert [o["status"] for o in r.json["orders"]] == ["PENDING"]
    assert r.json["orders"][0]["items"][0]["sku"] == "BP_FOUR"
