from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.zv.audit import record_event
from app.zv.constants import GAME_FORMATS, RPG_EXPERIENCE
from app.zv.errors import Conflict, ValidationFailed
from app.zv.models import User
from app.zv.modules.profiles.models import MasterProfile, PlayerProfile
from app.zv.utils import clean_str, format_phone, validate_phone

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def get_player_profile(s: "Session", user_id: int) -> PlayerProfile | None:
    return s.query(PlayerProfile).filter(PlayerProfile.user_id == user_id).one_or_none()


def get_master_profile(s: "Session", user_id: int) -> MasterProfile | None:
    return s.query(MasterProfile).filter(MasterProfile.user_id == user_id).one_or_none()


def ensure_player_profile(s: "Session", user: User) -> PlayerProfile:
    profile = get_player_profile(s, user.id)
    if profile is None:
        profile = PlayerProfile(user_id=user.id)
        s.add(profile)
        s.flush()
    return profile


def serialize_player_profile(p: PlayerProfile | None) -> dict | None:
    if p is None:
        return None
    return {"id": p.id, "user_id": p.user_id, "nickname": p.nickname, "notes": p.notes}


def serialize_master_profile(m: MasterProfile | None) -> dict | None:
    if m is None:
        return None
    return {"id": m.id, "user_id": m.user_id, "bio": m.bio, "format": m.format, "location": m.location}


def validate_user_profile_payload(payload: dict) -> list[str]:
    """Validate a profile update payload. Returns list of errors."""
    errors = []
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if len(name) < 2:
            errors.append("Name must be at least 2 characters.")
        elif len(name) > 255:
            errors.append("Name is too long.")
    tel = clean_str(payload.get("tel"))
    if tel and not validate_phone(tel):
        errors.append("Invalid phone number.")
    tg_id = clean_str(payload.get("tg_id"))
    if tg_id and len(tg_id) > 50:
        errors.append("Telegram id is too long.")
    exp = clean_str(payload.get("rpg_experience"))
    if exp and exp not in RPG_EXPERIENCE:
        errors.append(f"Invalid rpg_experience. Must be one of: {', '.join(RPG_EXPERIENCE)}")
    return errors


def update_user_profile(s: "Session", user: User, payload: dict) -> User:
    errors = validate_user_profile_payload(payload)
    if errors:
        raise ValidationFailed(errors)

    changes: dict[str, dict] = {}

    def _set(field: str, value) -> None:
        old = getattr(user, field)
        if old != value:
            changes[field] = {"old": old, "new": value}
            setattr(user, field, value)

    if "name" in payload:
        _set("name", (payload.get("name") or "").strip())
    if "tel" in payload:
        tel = clean_str(payload.get("tel"))
        tel = format_phone(tel) if tel else None
        if tel and s.query(User).filter(User.tel == tel, User.id != user.id).first():
            raise Conflict("Phone number is already in use")
        _set("tel", tel)
    if "tg_id" in payload:
        tg_id = clean_str(payload.get("tg_id"))
        if tg_id and s.query(User).filter(User.tg_id == tg_id, User.id != user.id).first():
            raise Conflict("Telegram id is already in use")
        _set("tg_id", tg_id)
    for field in ("avatar_url", "rpg_experience", "contacts"):
        if field in payload:
            _set(field, clean_str(payload.get(field)))

    if changes:
        user.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="profile.edit",
            entity_type="User",
            entity_id=str(user.id),
            metadata={"changes": changes},
        )
    return user


def update_player_profile(s: "Session", user: User, payload: dict) -> PlayerProfile:
    nickname = clean_str(payload.get("nickname"))
    if nickname is not None and len(nickname) < 2:
        raise ValidationFailed("Nickname must be at least 2 characters.")
    profile = ensure_player_profile(s, user)
    if "nickname" in payload:
        profile.nickname = nickname
    if "notes" in payload:
        profile.notes = clean_str(payload.get("notes"))
    profile.updated_at = datetime.utcnow()
    return profile


def upsert_master_profile(s: "Session", user: User, payload: dict) -> MasterProfile:
    fmt = (payload.get("format") or "OFFLINE").strip().upper()
    if fmt not in GAME_FORMATS:
        raise ValidationFailed(f"Invalid format. Must be one of: {', '.join(GAME_FORMATS)}")
    profile = get_master_profile(s, user.id)
    created = profile is None
    if profile is None:
        profile = MasterProfile(user_id=user.id)
        s.add(profile)
    profile.format = fmt
    if "bio" in payload or created:
        profile.bio = clean_str(payload.get("bio"))
    if "location" in payload or created:
        profile.location = clean_str(payload.get("location"))
    profile.updated_at = datetime.utcnow()
    s.flush()
    record_event(
        s,
        actor=user,
        action="master_profile.create" if created else "master_profile.edit",
        entity_type="MasterProfile",
        entity_id=str(profile.id),
        metadata={"format": profile.format},
    )
    return profile
