from __future__ import annotations

from flask import Blueprint, request

from app.zv.constants import ROLE_MASTER, ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.errors import ValidationFailed
from app.zv.modules.battlepasses import service
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_int, request_payload

bp = Blueprint("battlepasses", __name__)


@bp.get("/player/battlepasses")
@require_login
def my_battlepasses():
    s = db_session()
    user = current_user()
    rows = service.list_user_battlepasses(s, user.id)
    return {
        "battlepasses": [service.serialize_battlepass(x) for x in rows],
        "count": len(rows),
        "total_available_games": service.available_games(s, user.id),
    }


@bp.post("/battlepasses/redeem")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def battlepass_redeem():
    s = db_session()
    payload = request_payload()
    result = service.redeem(
        s,
        parse_int(payload.get("user_id")),
        session_id=parse_int(payload.get("session_id")),
        report_id=parse_int(payload.get("report_id")),
        actor=current_user(),
    )
    s.commit()
    return result.to_dict()


@bp.post("/players/check-battlepasses")
@require_roles(ROLE_MASTER)
def players_check_battlepasses():
    s = db_session()
    raw = request_payload().get("player_ids")
    if not isinstance(raw, list) or not raw:
        raise ValidationFailed("player_ids must be a non-empty list")
    ids = [parse_int(x) for x in raw]
    if any(i is None for i in ids):
        raise ValidationFailed("player_ids must be integers")
    return {"players": service.check_players(s, ids)}


@bp.get("/admin/battlepasses")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin_battlepasses_list():
    s = db_session()
    user_id = parse_int(request.args.get("user_id"))
    if not user_id:
        raise ValidationFailed("user_id is required")
    return {"battlepasses": [service.serialize_battlepass(x) for x in service.list_user_battlepasses(s, user_id)]}


@bp.post("/admin/battlepasses")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin_battlepass_issue():
    s = db_session()
    payload = request_payload()
    kind = (payload.get("kind") or "").strip().upper()
    bp_row = service.issue_battlepass(
        s,
        user_id=parse_int(payload.get("user_id")),
        kind=kind,
        uses_total=parse_int(payload.get("uses_total")),
        season_id=parse_int(payload.get("season_id")),
        actor=current_user(),
    )
    s.commit()
    return {"ok": True, "battlepass": service.serialize_battlepass(bp_row)}, 201
