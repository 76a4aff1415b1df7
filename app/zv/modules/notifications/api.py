from __future__ import annotations

from flask import Blueprint, request

from app.zv.db import db_session
from app.zv.modules.notifications import service
from app.zv.rbac import current_user, require_login
from app.zv.utils import parse_bool, parse_int, request_payload

bp = Blueprint("notifications", __name__)


@bp.get("/notifications")
@require_login
def notifications_list():
    s = db_session()
    user = current_user()
    return service.list_notifications(
        s,
        user.id,
        limit=parse_int(request.args.get("limit"), 20) or 20,
        offset=parse_int(request.args.get("offset"), 0) or 0,
        unread_only=parse_bool(request.args.get("unread_only")),
    )


@bp.patch("/notifications/<int:notification_id>")
@require_login
def notification_update(notification_id: int):
    s = db_session()
    user = current_user()
    n = service.set_read(s, user.id, notification_id, request_payload().get("is_read"))
    s.commit()
    return {"ok": True, "notification": service.serialize_notification(n)}


@bp.post("/notifications/read-all")
@require_login
def notifications_read_all():
    s = db_session()
    user = current_user()
    updated = service.mark_all_read(s, user.id)
    s.commit()
    return {"ok": True, "updated": updated}


@bp.delete("/notifications/<int:notification_id>")
@require_login
def notification_delete(notification_id: int):
    s = db_session()
    user = current_user()
    service.delete_notification(s, user.id, notification_id)
    s.commit()
    return {"ok": True}
