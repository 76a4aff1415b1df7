from __future__ import annotations

from flask import Blueprint

from app.zv.constants import ROLE_MASTER, ROLE_MODERATOR, ROLE_PLAYER, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.modules.dashboards import service
from app.zv.rbac import current_user, require_roles

bp = Blueprint("dashboards", __name__)


@bp.get("/dashboard/player")
@require_roles(ROLE_PLAYER)
def player():
    s = db_session()
    return service.player_dashboard(s, current_user())


@bp.get("/dashboard/master")
@require_roles(ROLE_MASTER)
def master():
    s = db_session()
    return service.master_dashboard(s, current_user())


@bp.get("/dashboard/admin")
@require_roles(ROLE_MODERATOR, ROLE_SUPERADMIN)
def admin():
    s = db_session()
    return service.admin_dashboard(s)
