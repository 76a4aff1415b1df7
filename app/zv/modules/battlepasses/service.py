from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError

from app.zv.audit import record_event
from app.zv.constants import BATTLEPASS_KINDS, ROLE_PLAYER
from app.zv.errors import Conflict, NotFound, ValidationFailed
from app.zv.models import User
from app.zv.modules.battlepasses.models import Battlepass, Writeoff
from app.zv.modules.seasons.models import Season
from app.zv.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_KIND_PRIORITY = {kind: i for i, kind in enumerate(BATTLEPASS_KINDS)}


@dataclass(frozen=True)
class RedeemResult:
    ok: bool
    already_redeemed: bool
    battlepass_id: int | None

    def to_dict(self) -> dict:
        return {"ok": self.ok, "already_redeemed": self.already_redeemed, "battlepass_id": self.battlepass_id}


def serialize_battlepass(bp: Battlepass) -> dict:
    return {
        "id": bp.id,
        "user_id": bp.user_id,
        "kind": bp.kind,
        "season_id": bp.season_id,
        "order_id": bp.order_id,
        "uses_total": bp.uses_total,
        "uses_left": bp.uses_left,
        "status": bp.status,
        "created_at": iso(bp.created_at),
    }


def issue_battlepass(
    s: "Session",
    *,
    user_id: int,
    kind: str,
    uses_total: int,
    season_id: int | None = None,
    order_id: int | None = None,
    actor: User | None = None,
) -> Battlepass:
    if not user_id:
        raise ValidationFailed("user_id is required")
    if kind not in BATTLEPASS_KINDS:
        raise ValidationFailed(f"Invalid kind. Must be one of: {', '.join(BATTLEPASS_KINDS)}")
    if uses_total is None or uses_total < 1:
        raise ValidationFailed("uses_total must be at least 1")
    if not s.get(User, user_id):
        raise NotFound("User not found")
    now = datetime.utcnow()
    bp = Battlepass(
        user_id=user_id,
        kind=kind,
        season_id=season_id,
        order_id=order_id,
        uses_total=uses_total,
        uses_left=uses_total,
        status="ACTIVE",
        created_at=now,
        updated_at=now,
    )
    s.add(bp)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="battlepass.issue",
        entity_type="Battlepass",
        entity_id=str(bp.id),
        metadata={"user_id": user_id, "kind": kind, "uses_total": uses_total, "order_id": order_id},
    )
    return bp


def list_user_battlepasses(s: "Session", user_id: int) -> list[Battlepass]:
    return (
        s.query(Battlepass)
        .filter(Battlepass.user_id == user_id)
        .order_by(Battlepass.created_at.desc(), Battlepass.id.desc())
        .all()
    )


def available_games(s: "Session", user_id: int) -> int:
    return (
        s.query(func.coalesce(func.sum(Battlepass.uses_left), 0))
        .filter(
            Battlepass.user_id == user_id,
            Battlepass.status == "ACTIVE",
            Battlepass.uses_left > 0,
        )
        .scalar()
        or 0
    )


def _existing_writeoff(s: "Session", user_id: int, session_id: int | None, report_id: int | None) -> Writeoff | None:
    q = s.query(Writeoff).filter(Writeoff.user_id == user_id)
    if report_id is not None:
        q = q.filter(Writeoff.report_id == report_id)
    else:
        q = q.filter(Writeoff.session_id == session_id)
    return q.first()


def redeem(
    s: "Session",
    user_id: int | None,
    *,
    session_id: int | None = None,
    report_id: int | None = None,
    actor: User | None = None,
) -> RedeemResult:
    """
    Write off one game use for a user against a session and/or report.

    Idempotent per (user, report) when a report is given, else per (user, session).
    Passes are spent in kind priority SINGLE, FOUR, SEASON, oldest first.
    """
    if not user_id:
        raise ValidationFailed("user_id is required")
    if session_id is None and report_id is None:
        raise ValidationFailed("session_id or report_id is required")

    existing = _existing_writeoff(s, user_id, session_id, report_id)
    if existing:
        return RedeemResult(ok=True, already_redeemed=True, battlepass_id=existing.battlepass_id)

    priority = case(_KIND_PRIORITY, value=Battlepass.kind, else_=len(_KIND_PRIORITY))
    candidate_ids = [
        row[0]
        for row in s.query(Battlepass.id)
        .filter(
            Battlepass.user_id == user_id,
            Battlepass.status == "ACTIVE",
            Battlepass.uses_left > 0,
        )
        .order_by(priority, Battlepass.created_at.asc(), Battlepass.id.asc())
        .all()
    ]

    now = datetime.utcnow()
    for bp_id in candidate_ids:
        try:
            with s.begin_nested():
                # Guarded decrement: a concurrent redeem that drained this pass makes rowcount 0.
                res = s.execute(
                    update(Battlepass)
                    .where(
                        Battlepass.id == bp_id,
                        Battlepass.status == "ACTIVE",
                        Battlepass.uses_left > 0,
                    )
                    .values(
                        uses_left=Battlepass.uses_left - 1,
                        status=case((Battlepass.uses_left <= 1, "USED_UP"), else_=Battlepass.status),
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount != 1:
                    continue
                s.add(Writeoff(user_id=user_id, session_id=session_id, report_id=report_id, battlepass_id=bp_id, created_at=now))
                s.flush()
        except IntegrityError:
            # Lost a race against an identical redeem; its writeoff stands.
            existing = _existing_writeoff(s, user_id, session_id, report_id)
            return RedeemResult(ok=True, already_redeemed=True, battlepass_id=existing.battlepass_id if existing else None)

        bp = s.get(Battlepass, bp_id)
        if bp is not None:
            s.refresh(bp)
        record_event(
            s,
            actor=actor,
            action="battlepass.redeem",
            entity_type="Battlepass",
            entity_id=str(bp_id),
            metadata={"user_id": user_id, "session_id": session_id, "report_id": report_id},
        )
        logger.info("Redeemed battlepass %s for user %s (session=%s report=%s)", bp_id, user_id, session_id, report_id)
        return RedeemResult(ok=True, already_redeemed=False, battlepass_id=bp_id)

    raise Conflict("No active battlepass")


def refund_report_writeoffs(s: "Session", report_id: int, *, actor: User | None = None) -> list[int]:
    """Return every use written off against a report. Returns the refunded user ids."""
    writeoffs = s.query(Writeoff).filter(Writeoff.report_id == report_id).all()
    refunded: list[int] = []
    now = datetime.utcnow()
    for w in writeoffs:
        bp = s.get(Battlepass, w.battlepass_id)
        if bp is not None:
            bp.uses_left = min(bp.uses_total, bp.uses_left + 1)
            if bp.status == "USED_UP":
                bp.status = "ACTIVE"
            bp.updated_at = now
        refunded.append(w.user_id)
        s.delete(w)
    if writeoffs:
        record_event(
            s,
            actor=actor,
            action="battlepass.refund",
            entity_type="Report",
            entity_id=str(report_id),
            metadata={"user_ids": refunded},
        )
    return refunded


def check_players(s: "Session", player_ids: Iterable[int]) -> list[dict]:
    out = []
    for pid in dict.fromkeys(player_ids):
        user = s.get(User, pid)
        games = available_games(s, pid) if user else 0
        out.append(
            {
                "player_id": pid,
                "player_name": (user.name or user.email) if user else None,
                "is_player": bool(user and ROLE_PLAYER in user.role_keys),
                "total_available_games": games,
                "has_available_games": games > 0,
            }
        )
    return out


def expire_battlepasses(s: "Session", now: datetime | None = None) -> int:
    """Mark ACTIVE passes of ended seasons as EXPIRED. Returns the number expired."""
    now = now or datetime.utcnow()
    rows = (
        s.query(Battlepass)
        .join(Season, Season.id == Battlepass.season_id)
        .filter(Battlepass.status == "ACTIVE", Season.ends_at < now)
        .all()
    )
    for bp in rows:
        bp.status = "EXPIRED"
        bp.updated_at = now
    if rows:
        logger.info("Expired %s battlepasses", len(rows))
    return len(rows)
