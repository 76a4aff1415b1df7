from __future__ import annotations

import mimetypes

from flask import Blueprint, current_app, request, send_file, url_for

from app.zv import ratelimit
from app.zv.db import db_session
from app.zv.errors import ValidationFailed
from app.zv.modules.files import service
from app.zv.rbac import current_user, require_login
from app.zv.storage import storage_from_config
from app.zv.utils import request_payload

bp = Blueprint("files", __name__)


@bp.post("/upload")
@require_login
def upload():
    user = current_user()
    ratelimit.enforce([user.id, "upload"], ratelimit.UPLOAD, "Too many uploads. Try again later.")
    f = request.files.get("file")
    if not f or not f.filename:
        raise ValidationFailed("No file provided")
    type_key = (request.form.get("type") or "").strip()

    s = db_session()
    stored = service.upload_file(
        s,
        storage_from_config(current_app.config),
        user,
        type_key=type_key,
        filename=f.filename,
        content_type=f.mimetype or "",
        data=f.read(),
    )
    s.commit()
    url = url_for("files.download", key=stored.storage_key) if stored.area in service.PUBLIC_AREAS else None
    return {
        "ok": True,
        "key": stored.storage_key,
        "area": stored.area,
        "url": url,
        "size_bytes": stored.size_bytes,
    }, 201


@bp.post("/upload/delete")
@require_login
def upload_delete():
    s = db_session()
    service.delete_file(s, storage_from_config(current_app.config), current_user(), request_payload().get("key"))
    s.commit()
    return {"ok": True}


@bp.get("/files/<path:key>")
def download(key: str):
    s = db_session()
    storage = storage_from_config(current_app.config)
    record = service.public_file(s, storage, key)
    content_type = record.content_type if record else (mimetypes.guess_type(key)[0] or "application/octet-stream")
    return send_file(storage.open(key), mimetype=content_type, max_age=86400)
