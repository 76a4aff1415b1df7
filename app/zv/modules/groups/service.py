from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from app.zv.audit import record_event
from app.zv.constants import GAME_FORMATS
from app.zv.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.zv.models import User
from app.zv.modules.groups.models import GameSession, Group, GroupApplication, GroupMember
from app.zv.modules.notifications.service import notify
from app.zv.modules.profiles.models import MasterProfile, PlayerProfile
from app.zv.modules.profiles.service import ensure_player_profile, get_master_profile, get_player_profile
from app.zv.modules.seasons.models import Season
from app.zv.modules.seasons.service import get_active_season
from app.zv.rbac import is_admin
from app.zv.utils import clean_str, iso, parse_bool, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_MEMBERS = 6
MAX_MEMBERS_LIMIT = 50


def generate_referral_code() -> str:
    return uuid.uuid4().hex


def active_member_count(s: "Session", group_id: int) -> int:
    return (
        s.query(func.count(GroupMember.id))
        .filter(GroupMember.group_id == group_id, GroupMember.status == "ACTIVE")
        .scalar()
        or 0
    )


def pending_application_count(s: "Session", group_id: int) -> int:
    return (
        s.query(func.count(GroupApplication.id))
        .filter(GroupApplication.group_id == group_id, GroupApplication.status == "PENDING")
        .scalar()
        or 0
    )


def get_group(s: "Session", group_id: int) -> Group:
    group = s.get(Group, group_id)
    if not group:
        raise NotFound("Group not found")
    return group


def is_group_master(group: Group, user: User) -> bool:
    return group.master is not None and group.master.user_id == user.id


def _require_group_master(group: Group, user: User) -> None:
    if not is_group_master(group, user):
        raise Forbidden("Only the group master can do this")


def find_membership(s: "Session", group_id: int, player_id: int) -> GroupMember | None:
    return (
        s.query(GroupMember)
        .filter(GroupMember.group_id == group_id, GroupMember.player_id == player_id)
        .one_or_none()
    )


def is_group_member(s: "Session", group: Group, user: User) -> bool:
    profile = get_player_profile(s, user.id)
    return bool(profile and find_membership(s, group.id, profile.id))


def serialize_member(m: GroupMember) -> dict:
    user = m.player.user if m.player else None
    return {
        "id": m.id,
        "player_id": m.player_id,
        "user_id": user.id if user else None,
        "name": user.name if user else None,
        "nickname": m.player.nickname if m.player else None,
        "status": m.status,
        "character_id": m.character_id,
        "joined_at": iso(m.joined_at),
    }


def serialize_group(
    s: "Session",
    group: Group,
    *,
    include_members: bool = False,
    include_referral: bool = False,
) -> dict:
    count = active_member_count(s, group.id)
    data = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "max_members": group.max_members,
        "current_members": count,
        "free_slots": max(0, group.max_members - count),
        "is_recruiting": group.is_recruiting,
        "format": group.format,
        "place": group.place,
        "season_id": group.season_id,
        "season_title": group.season.title if group.season else None,
        "master": {
            "id": group.master_id,
            "user_id": group.master.user_id if group.master else None,
            "name": group.master.user.name if group.master and group.master.user else None,
        },
        "created_at": iso(group.created_at),
    }
    if include_members:
        data["members"] = [serialize_member(m) for m in group.members]
    if include_referral:
        data["referral_code"] = group.referral_code
    return data


def serialize_application(a: GroupApplication) -> dict:
    user = a.player.user if a.player else None
    return {
        "id": a.id,
        "group_id": a.group_id,
        "group_name": a.group.name if a.group else None,
        "player_id": a.player_id,
        "user_id": user.id if user else None,
        "player_name": user.name if user else None,
        "status": a.status,
        "message": a.message,
        "master_response": a.master_response,
        "created_at": iso(a.created_at),
        "updated_at": iso(a.updated_at),
    }


def serialize_session(gs: GameSession) -> dict:
    return {
        "id": gs.id,
        "group_id": gs.group_id,
        "starts_at": iso(gs.starts_at),
        "duration_min": gs.duration_min,
        "place": gs.place,
        "format": gs.format,
        "is_open": gs.is_open,
        "slots_total": gs.slots_total,
    }


def validate_group_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate group creation/update payload. Returns list of errors."""
    errors = []
    if not partial or "name" in payload:
        name = (payload.get("name") or "").strip()
        if len(name) < 3:
            errors.append("Name must be at least 3 characters.")
        elif len(name) > 255:
            errors.append("Name is too long.")
    if "max_members" in payload:
        mm = parse_int(payload.get("max_members"))
        if mm is None or mm < 1 or mm > MAX_MEMBERS_LIMIT:
            errors.append(f"max_members must be between 1 and {MAX_MEMBERS_LIMIT}.")
    fmt = clean_str(payload.get("format"))
    if fmt and fmt.upper() not in GAME_FORMATS:
        errors.append(f"Invalid format. Must be one of: {', '.join(GAME_FORMATS)}")
    return errors


def create_group(s: "Session", user: User, payload: dict) -> Group:
    errors = validate_group_payload(payload)
    if errors:
        raise ValidationFailed(errors)
    season = get_active_season(s)
    if not season:
        raise Conflict("No active season")
    master = get_master_profile(s, user.id)
    if not master:
        raise NotFound("Master profile not found")

    now = datetime.utcnow()
    group = Group(
        name=payload["name"].strip(),
        description=clean_str(payload.get("description")),
        max_members=parse_int(payload.get("max_members"), DEFAULT_MAX_MEMBERS) or DEFAULT_MAX_MEMBERS,
        is_recruiting=parse_bool(payload.get("is_recruiting"), True),
        referral_code=generate_referral_code(),
        format=(clean_str(payload.get("format")) or master.format or "OFFLINE").upper(),
        place=clean_str(payload.get("place")),
        season_id=season.id,
        master_id=master.id,
        created_at=now,
        updated_at=now,
    )
    s.add(group)
    s.flush()
    record_event(
        s,
        actor=user,
        action="group.create",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"name": group.name, "season_id": season.id},
    )
    return group


def update_group(s: "Session", user: User, group_id: int, payload: dict) -> Group:
    group = get_group(s, group_id)
    _require_group_master(group, user)
    errors = validate_group_payload(payload, partial=True)
    if errors:
        raise ValidationFailed(errors)

    changes = {}
    if "name" in payload:
        group.name = payload["name"].strip()
        changes["name"] = group.name
    if "description" in payload:
        group.description = clean_str(payload.get("description"))
    if "max_members" in payload:
        mm = parse_int(payload.get("max_members"))
        if mm < active_member_count(s, group.id):
            raise Conflict("max_members is below the current member count")
        group.max_members = mm
        changes["max_members"] = mm
    if "is_recruiting" in payload:
        group.is_recruiting = parse_bool(payload.get("is_recruiting"))
        changes["is_recruiting"] = group.is_recruiting
    if "format" in payload and clean_str(payload.get("format")):
        group.format = payload["format"].strip().upper()
    if "place" in payload:
        group.place = clean_str(payload.get("place"))
    if parse_bool(payload.get("regenerate_referral_code")):
        group.referral_code = generate_referral_code()
        changes["referral_code"] = "regenerated"
    group.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="group.edit",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"changes": changes},
    )
    return group


def delete_group(s: "Session", user: User, group_id: int) -> None:
    from app.zv.modules.reports.models import Report

    group = get_group(s, group_id)
    _require_group_master(group, user)
    if s.query(Report.id).filter(Report.group_id == group.id).first():
        raise Conflict("Group has reports and cannot be deleted")

    s.query(GroupApplication).filter(GroupApplication.group_id == group.id).delete(synchronize_session=False)
    s.query(GameSession).filter(GameSession.group_id == group.id).delete(synchronize_session=False)
    record_event(
        s,
        actor=user,
        action="group.delete",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"name": group.name},
    )
    s.delete(group)


def list_user_groups(s: "Session", user: User) -> list[dict]:
    out: list[dict] = []
    master = get_master_profile(s, user.id)
    if master:
        groups = s.query(Group).filter(Group.master_id == master.id).order_by(Group.created_at.desc()).all()
        for g in groups:
            data = serialize_group(s, g, include_members=True, include_referral=True)
            data["role"] = "MASTER"
            data["pending_applications"] = pending_application_count(s, g.id)
            out.append(data)
    player = get_player_profile(s, user.id)
    if player:
        groups = (
            s.query(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .filter(GroupMember.player_id == player.id)
            .order_by(GroupMember.joined_at.desc())
            .all()
        )
        for g in groups:
            data = serialize_group(s, g, include_members=True)
            data["role"] = "PLAYER"
            out.append(data)
    return out


def search_groups(
    s: "Session",
    *,
    search: str | None = None,
    format: str | None = None,
    season_id: int | None = None,
) -> list[Group]:
    """Recruiting groups in active seasons that still have free seats."""
    member_count = (
        select(func.count(GroupMember.id))
        .where(GroupMember.group_id == Group.id, GroupMember.status == "ACTIVE")
        .correlate(Group)
        .scalar_subquery()
    )
    q = (
        s.query(Group)
        .join(Season, Season.id == Group.season_id)
        .join(MasterProfile, MasterProfile.id == Group.master_id)
        .join(User, User.id == MasterProfile.user_id)
        .filter(Group.is_recruiting.is_(True), Season.is_active.is_(True))
        .filter(member_count < Group.max_members)
    )
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Group.name.ilike(like), User.name.ilike(like)))
    if format:
        q = q.filter(Group.format == format.strip().upper())
    if season_id:
        q = q.filter(Group.season_id == season_id)
    return q.order_by(Group.created_at.desc()).all()


def group_details(s: "Session", user: User, group_id: int) -> dict:
    group = get_group(s, group_id)
    is_master = is_group_master(group, user)
    can_see_members = is_master or is_admin(user) or is_group_member(s, group, user)
    data = serialize_group(
        s,
        group,
        include_members=can_see_members,
        include_referral=is_master,
    )
    data["is_master"] = is_master
    if is_master:
        data["pending_applications"] = pending_application_count(s, group.id)
    return data


def _add_member(s: "Session", group: Group, player: PlayerProfile) -> GroupMember:
    if find_membership(s, group.id, player.id):
        raise Conflict("Already a member of this group")
    if active_member_count(s, group.id) >= group.max_members:
        raise Conflict("Group is full")
    member = GroupMember(player_id=player.id, status="ACTIVE", joined_at=datetime.utcnow())
    group.members.append(member)
    s.flush()
    return member


def join_group(s: "Session", user: User, *, group_id: int | None = None, referral_code: str | None = None) -> GroupMember:
    if group_id is None and not referral_code:
        raise ValidationFailed("group_id or referral_code is required")
    if referral_code:
        group = s.query(Group).filter(Group.referral_code == referral_code.strip()).one_or_none()
        if not group:
            raise NotFound("Group not found")
    else:
        group = get_group(s, group_id)
    if not group.is_recruiting:
        raise Conflict("Group is not recruiting")

    player = ensure_player_profile(s, user)
    member = _add_member(s, group, player)
    notify(
        s,
        group.master.user_id,
        "New player in group",
        f"{user.name or user.email} joined \"{group.name}\".",
        related_type="GROUP",
        related_id=group.id,
    )
    record_event(
        s,
        actor=user,
        action="group.join",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"via": "referral_code" if referral_code else "group_id"},
    )
    return member


def apply_to_group(s: "Session", user: User, group_id: int, message: str | None) -> GroupApplication:
    group = get_group(s, group_id)
    if not group.is_recruiting:
        raise Conflict("Group is not recruiting")
    player = ensure_player_profile(s, user)
    if find_membership(s, group.id, player.id):
        raise Conflict("Already a member of this group")
    pending = (
        s.query(GroupApplication)
        .filter(
            GroupApplication.group_id == group.id,
            GroupApplication.player_id == player.id,
            GroupApplication.status == "PENDING",
        )
        .first()
    )
    if pending:
        raise Conflict("Application already pending")

    now = datetime.utcnow()
    app_row = GroupApplication(
        group_id=group.id,
        player_id=player.id,
        status="PENDING",
        message=clean_str(message),
        created_at=now,
        updated_at=now,
    )
    s.add(app_row)
    s.flush()
    notify(
        s,
        group.master.user_id,
        "New application",
        f"{user.name or user.email} applied to \"{group.name}\".",
        related_type="GROUP",
        related_id=group.id,
    )
    return app_row


def list_group_applications(s: "Session", user: User, group_id: int, status: str | None = None) -> list[GroupApplication]:
    group = get_group(s, group_id)
    _require_group_master(group, user)
    q = s.query(GroupApplication).filter(GroupApplication.group_id == group.id)
    if status:
        q = q.filter(GroupApplication.status == status.upper())
    return q.order_by(GroupApplication.created_at.desc()).all()


def list_my_applications(s: "Session", user: User) -> list[GroupApplication]:
    player = get_player_profile(s, user.id)
    if not player:
        return []
    return (
        s.query(GroupApplication)
        .filter(GroupApplication.player_id == player.id)
        .order_by(GroupApplication.created_at.desc())
        .all()
    )


def decide_application(
    s: "Session",
    user: User,
    application_id: int,
    action: str,
    master_response: str | None = None,
) -> GroupApplication:
    if action not in ("approve", "reject"):
        raise ValidationFailed("action must be 'approve' or 'reject'")
    app_row = s.get(GroupApplication, application_id)
    if not app_row:
        raise NotFound("Application not found")
    group = app_row.group
    _require_group_master(group, user)
    if app_row.status != "PENDING":
        raise Conflict("Application is not pending")

    if action == "approve":
        _add_member(s, group, app_row.player)
        app_row.status = "APPROVED"
        title, ntype = "Application approved", "SUCCESS"
        text = f"You were accepted into \"{group.name}\"."
    else:
        app_row.status = "REJECTED"
        title, ntype = "Application rejected", "WARNING"
        text = f"Your application to \"{group.name}\" was rejected."
    app_row.master_response = clean_str(master_response)
    app_row.updated_at = datetime.utcnow()
    if app_row.master_response:
        text += f" Master: {app_row.master_response}"

    notify(s, app_row.player.user_id, title, text, type=ntype, related_type="GROUP", related_id=group.id)
    record_event(
        s,
        actor=user,
        action=f"group.application_{action}",
        entity_type="GroupApplication",
        entity_id=str(app_row.id),
        metadata={"group_id": group.id, "player_id": app_row.player_id},
    )
    return app_row


def withdraw_application(s: "Session", user: User, application_id: int) -> GroupApplication:
    app_row = s.get(GroupApplication, application_id)
    player = get_player_profile(s, user.id)
    if not app_row or not player or app_row.player_id != player.id:
        raise NotFound("Application not found")
    if app_row.status != "PENDING":
        raise Conflict("Application is not pending")
    app_row.status = "WITHDRAWN"
    app_row.updated_at = datetime.utcnow()
    return app_row


def leave_group(s: "Session", user: User, group_id: int) -> None:
    group = get_group(s, group_id)
    player = get_player_profile(s, user.id)
    member = find_membership(s, group.id, player.id) if player else None
    if not member:
        raise NotFound("Not a member of this group")
    group.members.remove(member)
    record_event(s, actor=user, action="group.leave", entity_type="Group", entity_id=str(group.id))


def remove_member(s: "Session", user: User, group_id: int, member_id: int) -> None:
    group = get_group(s, group_id)
    _require_group_master(group, user)
    member = s.get(GroupMember, member_id)
    if not member or member.group_id != group.id:
        raise NotFound("Member not found")
    removed_user_id = member.player.user_id
    group.members.remove(member)
    notify(
        s,
        removed_user_id,
        "Removed from group",
        f"You were removed from \"{group.name}\".",
        type="WARNING",
        related_type="GROUP",
        related_id=group.id,
    )
    record_event(
        s,
        actor=user,
        action="group.remove_member",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"member_id": member_id, "user_id": removed_user_id},
    )


def validate_session_payload(payload: dict) -> list[str]:
    errors = []
    try:
        if not parse_datetime(payload.get("starts_at")):
            errors.append("starts_at is required.")
    except ValueError:
        errors.append("starts_at must be an ISO 8601 timestamp.")
    duration = parse_int(payload.get("duration_min"), 240)
    if duration is None or duration < 30 or duration > 480:
        errors.append("duration_min must be between 30 and 480.")
    slots = parse_int(payload.get("slots_total"), 5)
    if slots is None or slots < 1 or slots > 20:
        errors.append("slots_total must be between 1 and 20.")
    fmt = clean_str(payload.get("format"))
    if fmt and fmt.upper() not in GAME_FORMATS:
        errors.append(f"Invalid format. Must be one of: {', '.join(GAME_FORMATS)}")
    return errors


def create_session(s: "Session", user: User, group_id: int, payload: dict) -> GameSession:
    group = get_group(s, group_id)
    _require_group_master(group, user)
    errors = validate_session_payload(payload)
    if errors:
        raise ValidationFailed(errors)
    gs = GameSession(
        group_id=group.id,
        starts_at=parse_datetime(payload.get("starts_at")),
        duration_min=parse_int(payload.get("duration_min"), 240),
        place=clean_str(payload.get("place")) or group.place,
        format=(clean_str(payload.get("format")) or group.format).upper(),
        is_open=parse_bool(payload.get("is_open"), True),
        slots_total=parse_int(payload.get("slots_total"), 5),
    )
    s.add(gs)
    s.flush()
    member_user_ids = [m.player.user_id for m in group.members if m.status == "ACTIVE"]
    for uid in member_user_ids:
        notify(
            s,
            uid,
            "New game session",
            f"\"{group.name}\": session scheduled for {gs.starts_at:%Y-%m-%d %H:%M}.",
            related_type="SESSION",
            related_id=gs.id,
        )
    record_event(
        s,
        actor=user,
        action="session.create",
        entity_type="GameSession",
        entity_id=str(gs.id),
        metadata={"group_id": group.id},
    )
    logger.info("Game session %s created for group %s", gs.id, group.id)
    return gs


def list_sessions(s: "Session", user: User, group_id: int, *, upcoming_only: bool = False) -> list[GameSession]:
    group = get_group(s, group_id)
    if not (is_group_master(group, user) or is_admin(user) or is_group_member(s, group, user)):
        raise Forbidden("Not a member of this group")
    q = s.query(GameSession).filter(GameSession.group_id == group.id)
    if upcoming_only:
        q = q.filter(GameSession.starts_at >= datetime.utcnow())
    return q.order_by(GameSession.starts_at.asc()).all()
