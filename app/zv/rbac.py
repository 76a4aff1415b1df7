from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.zv.constants import ADMIN_ROLES, ROLE_RANK, ROLE_SUPERADMIN
from app.zv.errors import Forbidden, Unauthorized
from app.zv.models import User


def user_role_keys(user: User | None) -> list[str]:
    if not user or not user.is_active:
        return []
    return sorted(set(user.role_keys), key=lambda r: ROLE_RANK.get(r, -1))


def has_role(user: User | None, role: str) -> bool:
    return role in user_role_keys(user)


def has_any_role(user: User | None, roles: tuple[str, ...] | list[str] | frozenset[str]) -> bool:
    keys = set(user_role_keys(user))
    return any(r in keys for r in roles)


def is_admin(user: User | None) -> bool:
    return has_any_role(user, ADMIN_ROLES)


def is_superadmin(user: User | None) -> bool:
    return has_role(user, ROLE_SUPERADMIN)


def role_rank(role: str | None) -> int:
    return ROLE_RANK.get(role or "", -1)


def highest_role(user: User | None) -> str | None:
    keys = user_role_keys(user)
    return keys[-1] if keys else None


def current_user() -> User:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        raise Unauthorized("Unauthorized")
    return user


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_user()
        return fn(*args, **kwargs)

    return wrapped


def require_roles(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            # Unauthenticated → 401, authenticated without any of the roles → 403
            user = current_user()
            if not has_any_role(user, roles):
                g.missing_role = "|".join(roles)
                raise Forbidden("Forbidden")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
