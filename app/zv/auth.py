from __future__ import annotations

import uuid
from datetime import datetime

from flask import Blueprint, current_app, g, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.zv import ratelimit
from app.zv.audit import record_event
from app.zv.constants import ROLE_PLAYER
from app.zv.db import db_session
from app.zv.errors import Conflict, Forbidden, Unauthorized, ValidationFailed
from app.zv.models import User
from app.zv.rbac import current_user, require_login, user_role_keys
from app.zv.security import ensure_csrf_token
from app.zv.utils import clean_str, iso, request_payload, validate_email

bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 8


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "tel": user.tel,
        "tg_id": user.tg_id,
        "avatar_url": user.avatar_url,
        "rpg_experience": user.rpg_experience,
        "contacts": user.contacts,
        "is_active": user.is_active,
        "roles": user_role_keys(user),
        "created_at": iso(user.created_at),
    }


def active_role_for(user: User) -> str | None:
    roles = user_role_keys(user)
    chosen = session.get("active_role")
    if chosen in roles:
        return chosen
    return roles[-1] if roles else None


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        session.pop("active_role", None)
        g.current_user = None
        return
    g.current_user = user


def register_user(s, payload: dict) -> User:
    from app.zv.modules.profiles.service import ensure_player_profile

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        raise ValidationFailed("Email and password are required")
    errors = []
    if not validate_email(email):
        errors.append("Invalid email")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if errors:
        raise ValidationFailed(errors)

    if s.query(User).filter(User.email == email).one_or_none():
        raise Conflict("User already exists")

    now = datetime.utcnow()
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        name=clean_str(payload.get("name")),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    user.add_role(ROLE_PLAYER)
    s.add(user)
    s.flush()
    ensure_player_profile(s, user)
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    return user


@bp.post("/register")
def register():
    ip = ratelimit.client_ip(request)
    ratelimit.enforce([ip, "register"], ratelimit.AUTH, "Too many registration attempts. Try again later.")
    s = db_session()
    user = register_user(s, request_payload())
    s.commit()
    return {"ok": True, "user_id": user.id}, 201


@bp.post("/login")
def login():
    payload = request_payload()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    ip = ratelimit.client_ip(request)

    ratelimit.enforce([ip, "login"], ratelimit.AUTH, "Too many login attempts. Try again later.")

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none() if email else None
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email or None,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise Unauthorized("Invalid credentials")

    session.clear()
    session["user_id"] = user.id
    session.permanent = True
    ratelimit.get_rate_limiter().reset([ip, "login"])
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Login user_id=%s request_id=%s", user.id, getattr(g, "request_id", None))
    return {
        "ok": True,
        "user": serialize_user(user),
        "roles": user_role_keys(user),
        "active_role": active_role_for(user),
        "csrf_token": ensure_csrf_token(),
    }


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return {"ok": True}


@bp.get("/me")
@require_login
def me():
    user = current_user()
    return {
        "user": serialize_user(user),
        "roles": user_role_keys(user),
        "active_role": active_role_for(user),
        "csrf_token": ensure_csrf_token(),
    }


@bp.get("/csrf")
def csrf():
    return {"csrf_token": ensure_csrf_token()}


@bp.post("/set-role")
@require_login
def set_role():
    user = current_user()
    role = ((request_payload().get("active_role") or "")).strip().upper()
    if not role:
        raise ValidationFailed("active_role is required")
    if role not in user_role_keys(user):
        raise Forbidden("Role not available")
    session["active_role"] = role
    return {"ok": True, "active_role": role}
