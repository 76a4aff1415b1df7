from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from app.zv.audit import record_event
from app.zv.constants import ADMIN_PAGE_SIZES, ROLE_MASTER
from app.zv.errors import Forbidden, NotFound, ValidationFailed
from app.zv.models import User
from app.zv.modules.characters.models import Character
from app.zv.modules.groups.models import GroupMember
from app.zv.modules.groups.service import find_membership, get_group, is_group_master
from app.zv.modules.profiles.models import PlayerProfile
from app.zv.modules.profiles.service import ensure_player_profile, get_player_profile
from app.zv.rbac import has_any_role, is_admin
from app.zv.utils import clean_str, iso, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MAX_CHARACTERS_PER_PLAYER = 5
MAX_LONG_TEXT = 5000

_DEATH_DATE_RE = re.compile(r"^\d{2}\.\d{2}\.\d{3}$")
_TEXT_LIMITS = {"archetype": 100, "backstory": MAX_LONG_TEXT, "journal": MAX_LONG_TEXT}
_URL_FIELDS = ("avatar_url", "sheet_url")


def serialize_character(c: Character) -> dict:
    user = c.player.user if c.player else None
    return {
        "id": c.id,
        "player_id": c.player_id,
        "user_id": user.id if user else None,
        "player_name": user.name if user else None,
        "name": c.name,
        "archetype": c.archetype,
        "level": c.level,
        "avatar_url": c.avatar_url,
        "sheet_url": c.sheet_url,
        "backstory": c.backstory,
        "journal": c.journal,
        "notes": c.notes,
        "is_alive": c.is_alive,
        "death_date": c.death_date,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def today_death_date(now: datetime | None = None) -> str:
    """Death dates use a three-digit year (dd.mm.yyy)."""
    now = now or datetime.utcnow()
    return f"{now.day:02d}.{now.month:02d}.{str(now.year)[-3:]}"


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_character_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        name = (payload.get("name") or "").strip() if isinstance(payload.get("name"), str) else ""
        if not 1 <= len(name) <= 255:
            errors.append("Name must be between 1 and 255 characters.")
    for field, limit in _TEXT_LIMITS.items():
        value = payload.get(field)
        if value is not None and (not isinstance(value, str) or len(value) > limit):
            errors.append(f"{field} must be at most {limit} characters.")
    if "level" in payload:
        level = payload.get("level")
        if isinstance(level, bool) or parse_int(level) is None or parse_int(level) < 1:
            errors.append("Level must be an integer of at least 1.")
    for field in _URL_FIELDS:
        value = clean_str(payload.get(field))
        if value and (len(value) > 512 or not _is_http_url(value)):
            errors.append(f"{field} must be a valid http(s) URL.")
    death_date = clean_str(payload.get("death_date"))
    if death_date and not _DEATH_DATE_RE.match(death_date):
        errors.append("death_date must be in dd.mm.yyy format.")
    return errors


def _apply_fields(c: Character, payload: dict) -> None:
    if "name" in payload:
        c.name = payload["name"].strip()
    for field in ("archetype", "backstory", "journal", "notes", *_URL_FIELDS):
        if field in payload:
            setattr(c, field, clean_str(payload.get(field)))
    if "level" in payload:
        c.level = parse_int(payload.get("level"))
    if "death_date" in payload:
        c.death_date = clean_str(payload.get("death_date"))
    if "is_alive" in payload:
        was_alive = c.is_alive is not False
        c.is_alive = parse_bool(payload.get("is_alive"), True)
        if c.is_alive:
            c.death_date = None
        elif was_alive and not c.death_date:
            c.death_date = today_death_date()


def get_character(s: "Session", character_id: int) -> Character:
    c = s.get(Character, character_id)
    if not c:
        raise NotFound("Character not found")
    return c


def is_character_owner(c: Character, user: User) -> bool:
    return c.player is not None and c.player.user_id == user.id


def can_view_character(c: Character, user: User) -> bool:
    return is_character_owner(c, user) or is_admin(user) or has_any_role(user, (ROLE_MASTER,))


def can_edit_character(c: Character, user: User) -> bool:
    return is_character_owner(c, user) or is_admin(user)


def get_visible_character(s: "Session", user: User, character_id: int) -> Character:
    c = get_character(s, character_id)
    if not can_view_character(c, user):
        raise Forbidden("Access denied")
    return c


def list_player_characters(s: "Session", user: User) -> list[Character]:
    profile = get_player_profile(s, user.id)
    if profile is None:
        return []
    return (
        s.query(Character)
        .filter(Character.player_id == profile.id)
        .order_by(Character.created_at.asc(), Character.id.asc())
        .all()
    )


def _create_for_profile(s: "Session", actor: User, profile: PlayerProfile, payload: dict) -> Character:
    errors = validate_character_payload(payload)
    if errors:
        raise ValidationFailed(errors)
    count = s.query(Character).filter(Character.player_id == profile.id).count()
    if count >= MAX_CHARACTERS_PER_PLAYER:
        raise ValidationFailed(f"A player can have at most {MAX_CHARACTERS_PER_PLAYER} characters")

    now = datetime.utcnow()
    c = Character(player_id=profile.id, level=1, is_alive=True, created_at=now, updated_at=now)
    _apply_fields(c, payload)
    c.updated_by_user_id = actor.id
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="character.create",
        entity_type="Character",
        entity_id=str(c.id),
        metadata={"player_id": profile.id, "name": c.name},
    )
    return c


def create_character(s: "Session", user: User, payload: dict) -> Character:
    return _create_for_profile(s, user, ensure_player_profile(s, user), payload)


def admin_create_character(s: "Session", admin: User, payload: dict) -> Character:
    player_user_id = parse_int(payload.get("user_id"))
    if not player_user_id:
        raise ValidationFailed("user_id is required")
    profile = get_player_profile(s, player_user_id)
    if profile is None:
        raise NotFound("Player not found")
    return _create_for_profile(s, admin, profile, payload)


def update_character(s: "Session", user: User, character_id: int, payload: dict) -> Character:
    c = get_character(s, character_id)
    if not can_edit_character(c, user):
        raise Forbidden("Only the owner or an admin can edit this character")
    errors = validate_character_payload(payload, partial=True)
    if errors:
        raise ValidationFailed(errors)

    was_alive = c.is_alive
    _apply_fields(c, payload)
    c.updated_by_user_id = user.id
    c.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="character.update",
        entity_type="Character",
        entity_id=str(c.id),
        metadata={"fields": sorted(payload), "died": was_alive and not c.is_alive},
    )
    return c


def delete_character(s: "Session", user: User, character_id: int) -> None:
    c = get_character(s, character_id)
    if not can_edit_character(c, user):
        raise Forbidden("Only the owner or an admin can delete this character")
    record_event(
        s,
        actor=user,
        action="character.delete",
        entity_type="Character",
        entity_id=str(c.id),
        metadata={"player_id": c.player_id, "name": c.name},
    )
    # Memberships keep the row; the FK is SET NULL on delete.
    s.query(GroupMember).filter(GroupMember.character_id == c.id).update(
        {GroupMember.character_id: None}, synchronize_session=False
    )
    s.delete(c)
    logger.info("Character %s deleted by user %s", character_id, user.id)


def assign_to_group(s: "Session", user: User, character_id: int, group_id: int | None) -> GroupMember:
    c = get_character(s, character_id)
    if not is_character_owner(c, user):
        raise Forbidden("Only the owner can assign this character")
    if not group_id:
        raise ValidationFailed("group_id is required")
    group = get_group(s, group_id)
    membership = find_membership(s, group.id, c.player_id)
    if membership is None or membership.status == "LEFT":
        raise ValidationFailed("Player is not a member of this group")
    membership.character_id = c.id
    s.flush()
    record_event(
        s,
        actor=user,
        action="character.assign_group",
        entity_type="Character",
        entity_id=str(c.id),
        metadata={"group_id": group.id},
    )
    return membership


def group_characters(s: "Session", user: User, group_id: int) -> list[dict]:
    group = get_group(s, group_id)
    if not is_group_master(group, user) and not is_admin(user):
        raise Forbidden("Only the group master can view group characters")
    rows = (
        s.query(GroupMember, Character)
        .join(Character, Character.id == GroupMember.character_id)
        .filter(GroupMember.group_id == group.id, GroupMember.status != "LEFT")
        .order_by(Character.name.asc())
        .all()
    )
    return [{**serialize_character(c), "membership_status": m.status} for m, c in rows]


def admin_list_characters(s: "Session", args) -> dict:
    page = max(1, parse_int(args.get("page"), 1) or 1)
    page_size = parse_int(args.get("page_size"), 20)
    if page_size not in ADMIN_PAGE_SIZES:
        raise ValidationFailed(f"page_size must be one of: {', '.join(str(x) for x in ADMIN_PAGE_SIZES)}")
    q = s.query(Character)
    total = q.count()
    items = q.order_by(Character.created_at.desc(), Character.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return {
        "characters": [serialize_character(c) for c in items],
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size),
        },
    }
