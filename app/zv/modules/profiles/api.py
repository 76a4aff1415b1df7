from __future__ import annotations

from flask import Blueprint

from app.zv.auth import serialize_user
from app.zv.constants import ROLE_MASTER
from app.zv.db import db_session
from app.zv.modules.profiles import service
from app.zv.rbac import current_user, require_login, require_roles, user_role_keys
from app.zv.utils import request_payload

bp = Blueprint("profiles", __name__)


def _profile_response(s, user) -> dict:
    return {
        "user": serialize_user(user),
        "roles": user_role_keys(user),
        "player_profile": service.serialize_player_profile(service.get_player_profile(s, user.id)),
        "master_profile": service.serialize_master_profile(service.get_master_profile(s, user.id)),
    }


@bp.get("/profile")
@require_login
def profile_get():
    s = db_session()
    return _profile_response(s, current_user())


@bp.patch("/profile")
@require_login
def profile_update():
    s = db_session()
    user = current_user()
    service.update_user_profile(s, user, request_payload())
    s.commit()
    return _profile_response(s, user)


@bp.put("/profile/player")
@require_login
def player_profile_update():
    s = db_session()
    user = current_user()
    profile = service.update_player_profile(s, user, request_payload())
    s.commit()
    return {"ok": True, "player_profile": service.serialize_player_profile(profile)}


@bp.put("/profile/master")
@require_roles(ROLE_MASTER)
def master_profile_update():
    s = db_session()
    user = current_user()
    profile = service.upsert_master_profile(s, user, request_payload())
    s.commit()
    return {"ok": True, "master_profile": service.serialize_master_profile(profile)}
