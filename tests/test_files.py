from io import BytesIO

from app.zv.db import session_scope
from app.zv.modules.files.models import StoredFile
from app.zv.modules.files.service import UPLOAD_TYPES, client_filename, validate_upload

from conftest import login, make_user

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF = b"%PDF-1.4\n" + b"0" * 64


def _upload(client, data, filename, mimetype, type_key="avatar"):
    return client.post(
        "/api/upload",
        data={"type": type_key, "file": (BytesIO(data), filename, mimetype)},
        content_type="multipart/form-data",
    )


def test_validate_upload_checks_magic_bytes():
    avatar = UPLOAD_TYPES["avatar"]
    assert validate_upload(avatar, "a.png", "image/png", PNG) == []
    assert validate_upload(avatar, "a.png", "image/png", b"GIF89a....") == ["File content does not match its type."]
    assert validate_upload(avatar, "a.jpg", "image/png", PNG) == ["File extension does not match its type."]
    assert validate_upload(avatar, "a.pdf", "application/pdf", PDF) == ["File type application/pdf is not allowed."]
    assert validate_upload(avatar, "a.png", "image/png", b"") == ["File is empty."]

    attachment = UPLOAD_TYPES["report-attachment"]
    assert validate_upload(attachment, "notes.txt", "text/plain", b"session notes") == []
    assert validate_upload(attachment, "notes.txt", "text/plain", PNG) == ["File content does not match its type."]


def test_client_filename_keeps_unicode_and_drops_paths():
    assert client_filename("аватар.png") == "аватар.png"
    assert client_filename("C:\\Users\\me\\..\\карта.jpg") == "карта.jpg"
    assert client_filename("../../etc/passwd") == "passwd"
    assert client_filename("a\x00b.png") == "ab.png"
    assert client_filename(None) == "file"


def test_avatar_upload_and_public_download(app, client):
    uid = make_user(app, "p@example.com")
    login(client, "p@example.com")

    r = _upload(client, PNG, "me.png", "image/png")
    assert r.status_code == 201, r.json
    assert r.json["area"] == "avatars"
    assert r.json["size_bytes"] == len(PNG)
    assert r.json["key"].startswith("avatars/users/") and r.json["key"].endswith(".png")

    client.post("/auth/logout")
    download = client.get(r.json["url"])
    assert download.status_code == 200
    assert download.data == PNG
    assert download.mimetype == "image/png"

    with session_scope(app) as s:
        stored = s.query(StoredFile).one()
        assert (stored.uploaded_by_user_id, stored.upload_type) == (uid, "avatar")


def test_upload_with_cyrillic_filename(app, client):
    make_user(app, "p@example.com")
    login(client, "p@example.com")

    r = _upload(client, PNG, "аватар.png", "image/png")
    assert r.status_code == 201, r.json
    assert r.json["key"].endswith(".png")
    with session_scope(app) as s:
        assert s.query(StoredFile).one().original_filename == "аватар.png"

    r = _upload(client, PNG, "аватар", "image/png")
    assert r.json["error"] == "File extension does not match its type."


def test_upload_rejections(app, client):
    make_user(app, "p@example.com")
    login(client, "p@example.com")

    assert _upload(client, b"not really a png", "me.png", "image/png").status_code == 400
    assert _upload(client, PNG, "me.png", "image/png", type_key="poster").status_code == 400
    assert _upload(client, PNG, "p.png", "image/png", type_key="product-image").status_code == 403
    assert _upload(client, PDF, "r.pdf", "application/pdf", type_key="report-attachment").status_code == 403
    r = client.post("/api/upload", data={"type": "avatar"}, content_type="multipart/form-data")
    assert r.json["error"] == "No file provided"


def test_private_area_is_not_downloadable(app, client):
    make_user(app, "m@example.com", "PLAYER", "MASTER")
    login(client, "m@example.com")
    r = _upload(client, PDF, "report.pdf", "application/pdf", type_key="report-attachment")
    assert r.status_code == 201
    assert r.json["area"] == "documents"
    assert r.json["url"] is None
    assert client.get(f"/api/files/{r.json['key']}").status_code == 403
    assert client.get("/api/files/avatars/users/missing.png").status_code == 404


def test_delete_own_upload_only(app, client):
    make_user(app, "p@example.com")
    make_user(app, "q@example.com")
    login(client, "p@example.com")
    key = _upload(client, PNG, "me.png", "image/png").json["key"]

    client.post("/auth/logout")
    login(client, "q@example.com")
    assert client.post("/api/upload/delete", json={"key": key}).status_code == 403

    client.post("/auth/logout")
    login(client, "p@example.com")
    assert client.post("/api/upload/delete", json={}).status_code == 400
    assert client.post("/api/upload/delete", json={"key": key}).json == {"ok": True}
    assert client.get(f"/api/files/{key}").status_code == 404
    with session_scope(app) as s:
        assert s.query(StoredFile).count() == 0
