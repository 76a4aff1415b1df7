from __future__ import annotations

from flask import Blueprint, request

from app.zv.constants import ROLE_MASTER, ROLE_PLAYER
from app.zv.db import db_session
from app.zv.modules.groups import service
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_bool, parse_int, request_payload

bp = Blueprint("groups", __name__)


@bp.get("/groups")
@require_login
def groups_list():
    s = db_session()
    return {"groups": service.list_user_groups(s, current_user())}


@bp.post("/groups")
@require_roles(ROLE_MASTER)
def group_create():
    s = db_session()
    group = service.create_group(s, current_user(), request_payload())
    s.commit()
    return {"ok": True, "group": service.serialize_group(s, group, include_referral=True)}, 201


@bp.get("/groups/search")
@require_login
def groups_search():
    s = db_session()
    groups = service.search_groups(
        s,
        search=(request.args.get("search") or "").strip() or None,
        format=(request.args.get("format") or "").strip() or None,
        season_id=parse_int(request.args.get("season_id")),
    )
    return {"groups": [service.serialize_group(s, g) for g in groups]}


@bp.get("/groups/<int:group_id>")
@require_login
def group_detail(group_id: int):
    s = db_session()
    return {"group": service.group_details(s, current_user(), group_id)}


@bp.patch("/groups/<int:group_id>")
@require_roles(ROLE_MASTER)
def group_update(group_id: int):
    s = db_session()
    group = service.update_group(s, current_user(), group_id, request_payload())
    s.commit()
    return {"ok": True, "group": service.serialize_group(s, group, include_members=True, include_referral=True)}


@bp.delete("/groups/<int:group_id>")
@require_roles(ROLE_MASTER)
def group_delete(group_id: int):
    s = db_session()
    service.delete_group(s, current_user(), group_id)
    s.commit()
    return {"ok": True}


# ---------- Membership ----------
@bp.post("/groups/join")
@require_roles(ROLE_PLAYER)
def group_join():
    s = db_session()
    payload = request_payload()
    member = service.join_group(
        s,
        current_user(),
        group_id=parse_int(payload.get("group_id")),
        referral_code=(payload.get("referral_code") or "").strip() or None,
    )
    s.commit()
    return {"ok": True, "group_id": member.group_id, "member": service.serialize_member(member)}


@bp.post("/groups/<int:group_id>/leave")
@require_login
def group_leave(group_id: int):
    s = db_session()
    service.leave_group(s, current_user(), group_id)
    s.commit()
    return {"ok": True}


@bp.delete("/groups/<int:group_id>/members/<int:member_id>")
@require_roles(ROLE_MASTER)
def group_member_remove(group_id: int, member_id: int):
    s = db_session()
    service.remove_member(s, current_user(), group_id, member_id)
    s.commit()
    return {"ok": True}


# ---------- Applications ----------
@bp.post("/groups/<int:group_id>/apply")
@require_roles(ROLE_PLAYER)
def group_apply(group_id: int):
    s = db_session()
    app_row = service.apply_to_group(s, current_user(), group_id, request_payload().get("message"))
    s.commit()
    return {"ok": True, "application": service.serialize_application(app_row)}, 201


@bp.get("/groups/<int:group_id>/applications")
@require_roles(ROLE_MASTER)
def group_applications(group_id: int):
    s = db_session()
    rows = service.list_group_applications(s, current_user(), group_id, request.args.get("status"))
    return {"applications": [service.serialize_application(a) for a in rows]}


@bp.get("/groups/applications/my")
@require_login
def my_applications():
    s = db_session()
    return {"applications": [service.serialize_application(a) for a in service.list_my_applications(s, current_user())]}


@bp.patch("/groups/applications/<int:application_id>")
@require_roles(ROLE_MASTER)
def application_decide(application_id: int):
    s = db_session()
    payload = request_payload()
    app_row = service.decide_application(
        s,
        current_user(),
        application_id,
        (payload.get("action") or "").strip().lower(),
        payload.get("master_response"),
    )
    s.commit()
    return {"ok": True, "application": service.serialize_application(app_row)}


@bp.post("/groups/applications/<int:application_id>/withdraw")
@require_login
def application_withdraw(application_id: int):
    s = db_session()
    app_row = service.withdraw_application(s, current_user(), application_id)
    s.commit()
    return {"ok": True, "application": service.serialize_application(app_row)}


# ---------- Game sessions ----------
@bp.post("/groups/<int:group_id>/sessions")
@require_roles(ROLE_MASTER)
def session_create(group_id: int):
    s = db_session()
    gs = service.create_session(s, current_user(), group_id, request_payload())
    s.commit()
    return {"ok": True, "session": service.serialize_session(gs)}, 201


@bp.get("/groups/<int:group_id>/sessions")
@require_login
def sessions_list(group_id: int):
    s = db_session()
    rows = service.list_sessions(s, current_user(), group_id, upcoming_only=parse_bool(request.args.get("upcoming")))
    return {"sessions": [service.serialize_session(x) for x in rows]}
