from __future__ import annotations

from flask import Blueprint, request

from app.zv.constants import ROLE_MODERATOR, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.modules.seasons import service
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_bool, request_payload

bp = Blueprint("seasons", __name__)


@bp.get("/seasons")
@require_login
def seasons_list():
    s = db_session()
    raw = request.args.get("active")
    active = parse_bool(raw) if raw not in (None, "") else None
    return {"seasons": [service.serialize_season(x) for x in service.list_seasons(s, active=active)]}


@bp.post("/admin/seasons")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def season_create():
    s = db_session()
    season = service.create_season(s, request_payload(), current_user())
    s.commit()
    return {"ok": True, "season": service.serialize_season(season)}, 201


@bp.patch("/admin/seasons/<int:season_id>")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def season_update(season_id: int):
    s = db_session()
    season = service.update_season(s, season_id, request_payload(), current_user())
    s.commit()
    return {"ok": True, "season": service.serialize_season(season)}
