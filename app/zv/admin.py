from __future__ import annotations

from datetime import datetime

from flask import Blueprint, request
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash

from app.zv.audit import record_event
from app.zv.auth import serialize_user
from app.zv.constants import ADMIN_PAGE_SIZES, ROLE_MODERATOR, ROLE_SUPERADMIN, ROLES
from app.zv.db import db_session
from app.zv.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.zv.models import AuditEvent, User, UserRole
from app.zv.rbac import current_user, is_superadmin, require_roles, role_rank
from app.zv.utils import clean_str, iso, parse_bool, parse_int, request_payload, validate_email

bp = Blueprint("admin", __name__)

_ADMIN = (ROLE_MODERATOR, ROLE_SUPERADMIN)
_SORT_COLUMNS = {"created_at": User.created_at, "email": User.email, "name": User.name}


def _get_user(s, user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def list_users(s, args) -> dict:
    page = max(1, parse_int(args.get("page"), 1) or 1)
    page_size = parse_int(args.get("page_size"), 20)
    if page_size not in ADMIN_PAGE_SIZES:
        raise ValidationFailed(f"page_size must be one of: {', '.join(str(x) for x in ADMIN_PAGE_SIZES)}")
    sort_by = (args.get("sort_by") or "created_at").strip()
    if sort_by not in _SORT_COLUMNS:
        raise ValidationFailed(f"sort_by must be one of: {', '.join(_SORT_COLUMNS)}")
    sort_dir = (args.get("sort_dir") or "desc").strip().lower()
    if sort_dir not in ("asc", "desc"):
        raise ValidationFailed("sort_dir must be asc or desc")

    q = s.query(User)
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like), User.tel.ilike(like), User.tg_id.ilike(like)))
    roles = [r.strip().upper() for r in (args.get("roles") or "").split(",") if r.strip()]
    if roles:
        bad = [r for r in roles if r not in ROLES]
        if bad:
            raise ValidationFailed(f"Unknown roles: {', '.join(bad)}")
        q = q.filter(User.id.in_(select(UserRole.user_id).where(UserRole.role.in_(roles))))

    total = q.count()
    col = _SORT_COLUMNS[sort_by]
    q = q.order_by(col.asc() if sort_dir == "asc" else col.desc(), User.id.asc())
    items = q.offset((page - 1) * page_size).limit(page_size).all()
    return {
        "items": [serialize_user(u) for u in items],
        "page": page,
        "page_size": page_size,
        "total": total,
    }


def update_user(s, actor: User, user: User, payload: dict) -> User:
    errors = []
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not 1 <= len(name) <= 255:
            errors.append("Name must be between 1 and 255 characters.")
    if "email" in payload:
        email = (payload.get("email") or "").strip().lower()
        if not validate_email(email):
            errors.append("Invalid email.")
        elif s.query(User.id).filter(User.email == email, User.id != user.id).first():
            raise Conflict("Email is already in use")
    for field in ("tel", "tg_id"):
        if field in payload:
            value = clean_str(payload.get(field))
            if value and len(value) > 50:
                errors.append(f"{field} is too long.")
            elif value and s.query(User.id).filter(getattr(User, field) == value, User.id != user.id).first():
                raise Conflict(f"{field} is already in use")
    if errors:
        raise ValidationFailed(errors)

    before = {"email": user.email, "name": user.name, "tel": user.tel, "tg_id": user.tg_id, "is_active": user.is_active}
    if "name" in payload:
        user.name = payload["name"].strip()
    if "email" in payload:
        user.email = payload["email"].strip().lower()
    for field in ("tel", "tg_id", "avatar_url"):
        if field in payload:
            setattr(user, field, clean_str(payload.get(field)))
    if "is_active" in payload:
        if user.id == actor.id:
            raise ValidationFailed("You cannot deactivate your own account")
        user.is_active = parse_bool(payload.get("is_active"))
    user.updated_at = datetime.utcnow()
    after = {"email": user.email, "name": user.name, "tel": user.tel, "tg_id": user.tg_id, "is_active": user.is_active}
    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": before, "after": after},
    )
    return user


def change_roles(s, actor: User, user: User, add: list[str], remove: list[str]) -> list[str]:
    if not all(isinstance(r, str) for r in add + remove):
        raise ValidationFailed("Roles must be strings")
    add = [r.strip().upper() for r in add]
    remove = [r.strip().upper() for r in remove]
    bad = [r for r in add + remove if r not in ROLES]
    if bad:
        raise ValidationFailed(f"Unknown roles: {', '.join(bad)}")
    if ROLE_SUPERADMIN in add + remove and not is_superadmin(actor):
        raise Forbidden("Only a superadmin can grant or revoke SUPERADMIN")
    if ROLE_SUPERADMIN in remove and ROLE_SUPERADMIN in user.role_keys:
        superadmins = s.query(func.count(UserRole.id)).filter(UserRole.role == ROLE_SUPERADMIN).scalar() or 0
        if superadmins <= 1:
            raise Conflict("Cannot remove the last superadmin")

    before = sorted(user.role_keys, key=role_rank)
    for r in remove:
        user.remove_role(r)
    s.flush()
    for r in add:
        user.add_role(r)
    user.updated_at = datetime.utcnow()
    s.flush()
    after = sorted(user.role_keys, key=role_rank)
    record_event(
        s,
        actor=actor,
        action="user.roles",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": before, "after": after},
    )
    return after


@bp.get("/admin/users")
@require_roles(*_ADMIN)
def users_list():
    s = db_session()
    return list_users(s, request.args)


@bp.get("/admin/users/<int:user_id>")
@require_roles(*_ADMIN)
def user_detail(user_id: int):
    s = db_session()
    return {"user": serialize_user(_get_user(s, user_id))}


@bp.patch("/admin/users/<int:user_id>")
@require_roles(*_ADMIN)
def user_update(user_id: int):
    s = db_session()
    user = update_user(s, current_user(), _get_user(s, user_id), request_payload())
    s.commit()
    return {"ok": True, "user": serialize_user(user)}


@bp.delete("/admin/users/<int:user_id>")
@require_roles(*_ADMIN)
def user_delete(user_id: int):
    s = db_session()
    actor = current_user()
    user = _get_user(s, user_id)
    if user.id == actor.id:
        raise ValidationFailed("You cannot delete your own account")
    if is_superadmin(user) and not is_superadmin(actor):
        raise Forbidden("Only a superadmin can delete a superadmin")
    email = user.email
    try:
        s.delete(user)
        s.flush()
    except IntegrityError as e:
        s.rollback()
        raise Conflict("User has related records and cannot be deleted") from e
    record_event(s, actor=actor, action="user.delete", entity_type="User", entity_id=str(user_id), metadata={"email": email})
    s.commit()
    return {"ok": True}


@bp.patch("/admin/users/<int:user_id>/roles")
@require_roles(*_ADMIN)
def user_roles(user_id: int):
    s = db_session()
    payload = request_payload()
    add = payload.get("add") or []
    remove = payload.get("remove") or []
    if not isinstance(add, list) or not isinstance(remove, list) or not (add or remove):
        raise ValidationFailed("Provide add and/or remove role lists")
    roles = change_roles(s, current_user(), _get_user(s, user_id), add, remove)
    s.commit()
    return {"ok": True, "roles": roles}


@bp.post("/admin/users/<int:user_id>/reset-password")
@require_roles(ROLE_SUPERADMIN)
def user_reset_password(user_id: int):
    s = db_session()
    actor = current_user()
    user = _get_user(s, user_id)
    password = request_payload().get("password") or ""
    if len(password) < 8:
        raise ValidationFailed("Password must be at least 8 characters.")
    user.password_hash = generate_password_hash(password)
    record_event(
        s,
        actor=actor,
        action="user.password_reset",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"target_email": user.email, "reset_by": actor.email},
    )
    s.commit()
    return {"ok": True}


@bp.get("/admin/audit")
@require_roles(*_ADMIN)
def audit_list():
    s = db_session()
    limit = max(1, min(parse_int(request.args.get("limit"), 50) or 50, 200))
    q = s.query(AuditEvent)
    action = (request.args.get("action") or "").strip()
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()
    return {
        "events": [
            {
                "id": e.id,
                "created_at": iso(e.created_at),
                "request_id": e.request_id,
                "actor_user_id": e.actor_user_id,
                "actor_user_email": e.actor_user_email,
                "action": e.action,
                "entity_type": e.entity_type,
                "entity_id": e.entity_id,
                "reason": e.reason,
            }
            for e in events
        ]
    }
