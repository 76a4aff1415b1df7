from __future__ import annotations

from typing import TYPE_CHECKING

from app.zv.audit import record_event
from app.zv.errors import Conflict, NotFound, ValidationFailed
from app.zv.modules.seasons.models import Season
from app.zv.utils import clean_str, iso, parse_bool, parse_datetime

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.zv.models import User


def get_active_season(s: "Session") -> Season | None:
    return (
        s.query(Season)
        .filter(Season.is_active.is_(True))
        .order_by(Season.starts_at.desc(), Season.id.desc())
        .first()
    )


def list_seasons(s: "Session", *, active: bool | None = None) -> list[Season]:
    q = s.query(Season)
    if active is not None:
        q = q.filter(Season.is_active.is_(active))
    return q.order_by(Season.starts_at.desc()).all()


def serialize_season(season: Season | None) -> dict | None:
    if season is None:
        return None
    return {
        "id": season.id,
        "title": season.title,
        "code": season.code,
        "starts_at": iso(season.starts_at),
        "ends_at": iso(season.ends_at),
        "is_active": season.is_active,
    }


def _parse_dates(payload: dict, errors: list[str]):
    starts_at = ends_at = None
    try:
        starts_at = parse_datetime(payload.get("starts_at"))
        ends_at = parse_datetime(payload.get("ends_at"))
    except ValueError:
        errors.append("Dates must be ISO 8601 timestamps.")
    return starts_at, ends_at


def create_season(s: "Session", payload: dict, user: "User") -> Season:
    errors = []
    title = clean_str(payload.get("title"))
    code = clean_str(payload.get("code"))
    if not title:
        errors.append("Title is required.")
    if not code:
        errors.append("Code is required.")
    starts_at, ends_at = _parse_dates(payload, errors)
    if not starts_at or not ends_at:
        errors.append("starts_at and ends_at are required.")
    elif ends_at <= starts_at:
        errors.append("ends_at must be after starts_at.")
    if errors:
        raise ValidationFailed(errors)
    if s.query(Season).filter(Season.code == code).one_or_none():
        raise Conflict("Season code already exists")

    season = Season(
        title=title,
        code=code,
        starts_at=starts_at,
        ends_at=ends_at,
        is_active=parse_bool(payload.get("is_active")),
    )
    s.add(season)
    s.flush()
    record_event(
        s,
        actor=user,
        action="season.create",
        entity_type="Season",
        entity_id=str(season.id),
        metadata={"code": season.code, "is_active": season.is_active},
    )
    return season


def update_season(s: "Session", season_id: int, payload: dict, user: "User") -> Season:
    season = s.get(Season, season_id)
    if not season:
        raise NotFound("Season not found")
    errors: list[str] = []
    if "title" in payload:
        title = clean_str(payload.get("title"))
        if not title:
            errors.append("Title is required.")
        else:
            season.title = title
    starts_at, ends_at = _parse_dates(payload, errors)
    season.starts_at = starts_at or season.starts_at
    season.ends_at = ends_at or season.ends_at
    if season.ends_at <= season.starts_at:
        errors.append("ends_at must be after starts_at.")
    if errors:
        raise ValidationFailed(errors)
    if "is_active" in payload:
        season.is_active = parse_bool(payload.get("is_active"))
    record_event(
        s,
        actor=user,
        action="season.edit",
        entity_type="Season",
        entity_id=str(season.id),
        metadata={"is_active": season.is_active},
    )
    return season
