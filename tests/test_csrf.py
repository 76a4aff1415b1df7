import pytest

from app.zv import create_app
from app.zv.models import Base

from conftest import login, make_user


@pytest.fixture()
def csrf_app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "1")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("FEATURE_PAYMENTS", raising=False)
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


def test_mutations_require_csrf_token(csrf_app):
    client = csrf_app.test_client()
    make_user(csrf_app, "p@example.com")
    token = login(client, "p@example.com").json["csrf_token"]

    r = client.patch("/api/profile", json={"name": "Renamed"})
    assert r.status_code == 400
    assert r.json["error"] == "CSRF token missing or invalid"

    r = client.patch("/api/profile", json={"name": "Renamed"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Renamed"


def test_reads_and_webhook_skip_csrf(csrf_app):
    client = csrf_app.test_client()
    make_user(csrf_app, "p@example.com")
    login(client, "p@example.com")
    assert client.get("/api/profile").status_code == 200
    # Payments are disabled, so the webhook is acknowledged without processing.
    r = client.post("/api/payments/webhook", json={"event": "payment.succeeded", "object": {"id": "x"}})
    assert r.status_code == 200
    assert r.json == {"ok": True}
