from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.zv.constants import ORDER_STATUSES, REPORT_STATUSES, ROLES
from app.zv.models import User, UserRole
from app.zv.modules.battlepasses.models import Battlepass
from app.zv.modules.battlepasses.service import list_user_battlepasses, serialize_battlepass
from app.zv.modules.groups.models import GameSession, Group
from app.zv.modules.groups.service import (
    list_my_applications,
    list_user_groups,
    serialize_application,
    serialize_session,
)
from app.zv.modules.notifications.service import unread_count
from app.zv.modules.profiles.service import get_master_profile
from app.zv.modules.reports.models import Report, ReportPlayer
from app.zv.modules.reports.service import serialize_report
from app.zv.modules.seasons.service import get_active_season, serialize_season
from app.zv.modules.shop.models import Order

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

RECENT_LIMIT = 5
UPCOMING_LIMIT = 10


def _counts_by(s: "Session", column, keys: tuple[str, ...], *filters) -> dict[str, int]:
    rows = s.query(column, func.count()).filter(*filters).group_by(column).all()
    out = {k: 0 for k in keys}
    for key, n in rows:
        out[key] = int(n)
    return out


def battlepass_summary(s: "Session", user_id: int) -> dict:
    passes = list_user_battlepasses(s, user_id)
    active = [bp for bp in passes if bp.status == "ACTIVE"]
    return {
        "total_available_games": sum(bp.uses_left for bp in active),
        "active_count": len(active),
        "battlepasses": [serialize_battlepass(bp) for bp in passes],
    }


def player_dashboard(s: "Session", user: User) -> dict:
    groups = [g for g in list_user_groups(s, user) if g["role"] == "PLAYER"]
    pending = [a for a in list_my_applications(s, user) if a.status == "PENDING"]
    recent_reports = (
        s.query(Report)
        .join(ReportPlayer, ReportPlayer.report_id == Report.id)
        .filter(ReportPlayer.player_user_id == user.id, Report.status == "APPROVED")
        .order_by(Report.moderated_at.desc(), Report.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    season = get_active_season(s)
    return {
        "active_season": serialize_season(season),
        "battlepasses": battlepass_summary(s, user.id),
        "groups": groups,
        "pending_applications": [serialize_application(a) for a in pending],
        "unread_notifications": unread_count(s, user.id),
        "recent_reports": [serialize_report(r) for r in recent_reports],
    }


def master_dashboard(s: "Session", user: User, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    groups = [g for g in list_user_groups(s, user) if g["role"] == "MASTER"]
    master = get_master_profile(s, user.id)
    upcoming: list[GameSession] = []
    if master:
        upcoming = (
            s.query(GameSession)
            .join(Group, Group.id == GameSession.group_id)
            .filter(Group.master_id == master.id, GameSession.starts_at >= now)
            .order_by(GameSession.starts_at.asc())
            .limit(UPCOMING_LIMIT)
            .all()
        )
    return {
        "groups": groups,
        "pending_applications_total": sum(g["pending_applications"] for g in groups),
        "reports_by_status": _counts_by(s, Report.status, REPORT_STATUSES, Report.master_user_id == user.id),
        "upcoming_sessions": [serialize_session(gs) for gs in upcoming],
    }


def admin_dashboard(s: "Session") -> dict:
    pending = (
        s.query(Report)
        .filter(Report.status == "PENDING")
        .order_by(Report.created_at.asc())
        .limit(UPCOMING_LIMIT)
        .all()
    )
    pending_total = s.query(func.count(Report.id)).filter(Report.status == "PENDING").scalar() or 0
    revenue = s.query(func.coalesce(func.sum(Order.total_rub), 0)).filter(Order.status == "PAID").scalar() or 0
    active_games = (
        s.query(func.coalesce(func.sum(Battlepass.uses_left), 0)).filter(Battlepass.status == "ACTIVE").scalar() or 0
    )
    return {
        "pending_reports": [serialize_report(r) for r in pending],
        "pending_reports_total": int(pending_total),
        "users_total": s.query(func.count(User.id)).scalar() or 0,
        "users_by_role": _counts_by(s, UserRole.role, ROLES),
        "orders_by_status": _counts_by(s, Order.status, ORDER_STATUSES),
        "paid_revenue_rub": int(revenue),
        "active_battlepass_games": int(active_games),
    }
