from __future__ import annotations

from flask import Blueprint, request

from app.zv.constants import ROLE_MASTER, ROLE_MODERATOR, ROLE_PLAYER, ROLE_SUPERADMIN
from app.zv.db import db_session
from app.zv.modules.characters import service
from app.zv.modules.groups.service import serialize_member
from app.zv.rbac import current_user, require_login, require_roles
from app.zv.utils import parse_int, request_payload

bp = Blueprint("characters", __name__)

_ADMIN = (ROLE_MODERATOR, ROLE_SUPERADMIN)


@bp.get("/characters")
@require_roles(ROLE_PLAYER)
def characters_list():
    s = db_session()
    rows = service.list_player_characters(s, current_user())
    return {"characters": [service.serialize_character(c) for c in rows]}


@bp.post("/characters")
@require_roles(ROLE_PLAYER)
def character_create():
    s = db_session()
    c = service.create_character(s, current_user(), request_payload())
    s.commit()
    return {"ok": True, "character": service.serialize_character(c)}, 201


@bp.get("/characters/<int:character_id>")
@require_login
def character_get(character_id: int):
    s = db_session()
    c = service.get_visible_character(s, current_user(), character_id)
    return {"character": service.serialize_character(c)}


@bp.patch("/characters/<int:character_id>")
@require_login
def character_update(character_id: int):
    s = db_session()
    c = service.update_character(s, current_user(), character_id, request_payload())
    s.commit()
    return {"ok": True, "character": service.serialize_character(c)}


@bp.delete("/characters/<int:character_id>")
@require_login
def character_delete(character_id: int):
    s = db_session()
    service.delete_character(s, current_user(), character_id)
    s.commit()
    return {"ok": True}


@bp.post("/characters/<int:character_id>/assign-group")
@require_roles(ROLE_PLAYER)
def character_assign_group(character_id: int):
    s = db_session()
    group_id = parse_int(request_payload().get("group_id"))
    membership = service.assign_to_group(s, current_user(), character_id, group_id)
    s.commit()
    return {"ok": True, "member": serialize_member(membership)}


@bp.get("/groups/<int:group_id>/characters")
@require_roles(ROLE_MASTER, *_ADMIN)
def group_characters(group_id: int):
    s = db_session()
    return {"characters": service.group_characters(s, current_user(), group_id)}


@bp.get("/admin/characters")
@require_roles(*_ADMIN)
def admin_characters():
    s = db_session()
    return service.admin_list_characters(s, request.args)


@bp.post("/admin/characters")
@require_roles(*_ADMIN)
def admin_character_create():
    s = db_session()
    c = service.admin_create_character(s, current_user(), request_payload())
    s.commit()
    return {"ok": True, "character": service.serialize_character(c)}, 201
