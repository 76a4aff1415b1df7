from __future__ import annotations

from flask import Blueprint, request

from app.zv import ratelimit
from app.zv.constants import ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.modules.reports import service
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_int, request_payload

bp = Blueprint("reports", __name__)


@bp.get("/reports")
@require_login
def reports_list():
    s = db_session()
    rows = service.list_reports(
        s,
        current_user(),
        status=(request.args.get("status") or "").strip() or None,
        master_id=parse_int(request.args.get("master_id")),
    )
    return {"reports": [service.serialize_report(r) for r in rows]}


@bp.post("/reports")
@require_roles(ROLE_MASTER)
def report_create():
    user = current_user()
    ratelimit.enforce(
        ["report-creation", user.id],
        ratelimit.REPORTS,
        "Rate limit exceeded. You can create maximum 10 reports per hour.",
    )
    s = db_session()
    report = service.create_report(s, user, request_payload())
    s.commit()
    return {"ok": True, "report": service.serialize_report(report)}, 201


@bp.get("/reports/<int:report_id>")
@require_login
def report_detail(report_id: int):
    s = db_session()
    return {"report": service.serialize_report(service.get_visible_report(s, current_user(), report_id))}


@bp.patch("/reports/<int:report_id>")
@require_roles(ROLE_MASTER)
def report_update(report_id: int):
    s = db_session()
    report = service.update_report(s, current_user(), report_id, request_payload())
    s.commit()
    return {"ok": True, "report": service.serialize_report(report)}


@bp.post("/reports/<int:report_id>/moderate")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def report_moderate(report_id: int):
    user = current_user()
    ratelimit.enforce(
        ["report-moderation", user.id],
        ratelimit.REPORT_MODERATION,
        "Rate limit exceeded. You can moderate maximum 100 reports per hour.",
    )
    s = db_session()
    payload = request_payload()
    result = service.moderate_report(
        s,
        user,
        report_id,
        (payload.get("action") or "").strip().lower(),
        payload.get("rejection_reason"),
    )
    s.commit()
    return result


@bp.post("/reports/<int:report_id>/cancel")
@require_roles(ROLE_SUPERADMIN)
def report_cancel(report_id: int):
    s = db_session()
    report = service.cancel_report(s, current_user(), report_id, request_payload().get("reason"))
    s.commit()
    return {"success": True, "status": report.status}
