from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from app.zv.audit import record_event
from app.zv.constants import REPORT_STATUSES, ROLE_PLAYER
from app.zv.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.zv.models import User
from app.zv.modules.battlepasses.service import available_games, redeem, refund_report_writeoffs
from app.zv.modules.groups.models import GameSession
from app.zv.modules.groups.service import get_group, is_group_master
from app.zv.modules.notifications.service import notify
from app.zv.modules.reports.models import Report, ReportPlayer
from app.zv.rbac import is_admin
from app.zv.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 10


def serialize_report(r: Report) -> dict:
    return {
        "id": r.id,
        "group_id": r.group_id,
        "group_name": r.group.name if r.group else None,
        "session_id": r.session_id,
        "master_id": r.master_user_id,
        "master_name": r.master.name if r.master else None,
        "description": r.description,
        "highlights": r.highlights,
        "status": r.status,
        "rejection_reason": r.rejection_reason,
        "moderated_at": iso(r.moderated_at),
        "players": [
            {"player_id": p.player_user_id, "name": p.player.name if p.player else None} for p in r.players
        ],
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
    }


def _parse_player_ids(raw) -> list[int]:
    if not isinstance(raw, list) or not raw:
        raise ValidationFailed("At least one player is required")
    ids = [parse_int(x) for x in raw]
    if any(i is None for i in ids):
        raise ValidationFailed("player_ids must be integers")
    return list(dict.fromkeys(ids))


def validate_players(s: "Session", player_ids: list[int]) -> None:
    """Every player must be an existing PLAYER with at least one available game."""
    users = s.query(User).filter(User.id.in_(player_ids)).all()
    found = {u.id: u for u in users}
    invalid = [pid for pid in player_ids if pid not in found or ROLE_PLAYER not in found[pid].role_keys]
    if invalid:
        raise ValidationFailed("Some players are invalid", invalid_player_ids=invalid)

    without = [
        {"player_id": pid, "name": found[pid].name or found[pid].email}
        for pid in player_ids
        if available_games(s, pid) <= 0
    ]
    if without:
        raise ValidationFailed("Some players have no available games", players_without_battlepass=without)


def validate_report_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial and not parse_int(payload.get("group_id")):
        errors.append("group_id is required.")
    if not partial or "description" in payload:
        description = (payload.get("description") or "").strip()
        if len(description) < MIN_DESCRIPTION_LENGTH:
            errors.append(f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters.")
    if payload.get("session_id") not in (None, "") and parse_int(payload.get("session_id")) is None:
        errors.append("session_id must be an integer.")
    return errors


def _check_report_session(s: "Session", group_id: int, session_id: int | None, *, report_id: int | None = None) -> None:
    if session_id is None:
        return
    gs = s.get(GameSession, session_id)
    if not gs or gs.group_id != group_id:
        raise NotFound("Session not found")
    q = s.query(Report.id).filter(Report.session_id == session_id)
    if report_id is not None:
        q = q.filter(Report.id != report_id)
    if q.first():
        raise Conflict("A report for this session already exists")


def create_report(s: "Session", master: User, payload: dict) -> Report:
    errors = validate_report_payload(payload)
    if errors:
        raise ValidationFailed(errors)
    player_ids = _parse_player_ids(payload.get("player_ids"))

    group = get_group(s, parse_int(payload.get("group_id")))
    if not is_group_master(group, master):
        raise Forbidden("Only the group master can file reports")

    session_id = parse_int(payload.get("session_id"))
    _check_report_session(s, group.id, session_id)

    validate_players(s, player_ids)

    now = datetime.utcnow()
    report = Report(
        group_id=group.id,
        session_id=session_id,
        master_user_id=master.id,
        description=payload["description"].strip(),
        highlights=clean_str(payload.get("highlights")),
        status="PENDING",
        created_at=now,
        updated_at=now,
    )
    for pid in player_ids:
        report.players.append(ReportPlayer(player_user_id=pid))
    s.add(report)
    s.flush()
    record_event(
        s,
        actor=master,
        action="report.create",
        entity_type="Report",
        entity_id=str(report.id),
        metadata={"group_id": group.id, "session_id": session_id, "player_ids": player_ids},
    )
    return report


def list_reports(s: "Session", user: User, *, status: str | None = None, master_id: int | None = None) -> list[Report]:
    q = s.query(Report)
    if is_admin(user):
        if master_id:
            q = q.filter(Report.master_user_id == master_id)
    else:
        participated = select(ReportPlayer.report_id).where(ReportPlayer.player_user_id == user.id)
        q = q.filter(or_(Report.master_user_id == user.id, Report.id.in_(participated)))
    if status:
        status = status.upper()
        if status not in REPORT_STATUSES:
            raise ValidationFailed(f"Invalid status. Must be one of: {', '.join(REPORT_STATUSES)}")
        q = q.filter(Report.status == status)
    return q.order_by(Report.created_at.desc(), Report.id.desc()).all()


def get_report(s: "Session", report_id: int) -> Report:
    report = s.get(Report, report_id)
    if not report:
        raise NotFound("Report not found")
    return report


def get_visible_report(s: "Session", user: User, report_id: int) -> Report:
    report = get_report(s, report_id)
    if is_admin(user) or report.master_user_id == user.id or user.id in report.player_user_ids:
        return report
    raise Forbidden("Access denied")


def update_report(s: "Session", master: User, report_id: int, payload: dict) -> Report:
    report = get_report(s, report_id)
    if report.master_user_id != master.id:
        raise Forbidden("Only report owner can update it")
    if report.status not in ("PENDING", "REJECTED"):
        raise ValidationFailed("Can only edit pending or rejected reports")
    errors = validate_report_payload(payload, partial=True)
    if errors:
        raise ValidationFailed(errors)

    if "session_id" in payload:
        session_id = parse_int(payload.get("session_id"))
        _check_report_session(s, report.group_id, session_id, report_id=report.id)
        report.session_id = session_id
    if "description" in payload:
        report.description = payload["description"].strip()
    if "highlights" in payload:
        report.highlights = clean_str(payload.get("highlights"))
    if "player_ids" in payload:
        player_ids = _parse_player_ids(payload.get("player_ids"))
        validate_players(s, player_ids)
        report.players.clear()
        s.flush()
        for pid in player_ids:
            report.players.append(ReportPlayer(player_user_id=pid))

    resubmitted = report.status == "REJECTED"
    if resubmitted:
        report.status = "PENDING"
        report.rejection_reason = None
    report.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=master,
        action="report.edit",
        entity_type="Report",
        entity_id=str(report.id),
        metadata={"resubmitted": resubmitted},
    )
    return report


def moderate_report(
    s: "Session",
    moderator: User,
    report_id: int,
    action: str,
    rejection_reason: str | None = None,
) -> dict:
    if action not in ("approve", "reject"):
        raise ValidationFailed("action must be 'approve' or 'reject'")
    report = get_report(s, report_id)
    if report.status != "PENDING":
        raise ValidationFailed("Can only moderate pending reports")

    now = datetime.utcnow()
    report.status = "APPROVED" if action == "approve" else "REJECTED"
    report.rejection_reason = clean_str(rejection_reason) if action == "reject" else None
    report.moderated_by_user_id = moderator.id
    report.moderated_at = now
    report.updated_at = now
    s.flush()

    results: list[dict] = []
    group_name = report.group.name if report.group else ""
    if action == "approve":
        for pid in report.player_user_ids:
            try:
                r = redeem(s, pid, session_id=report.session_id, report_id=report.id, actor=moderator)
                results.append({"player_id": pid, **r.to_dict()})
            except Conflict as e:
                results.append({"player_id": pid, "ok": False, "error": e.message})

        failed = [r["player_id"] for r in results if not r["ok"]]
        if failed:
            notify(
                s,
                report.master_user_id,
                "Report approved with warnings",
                f"Report #{report.id} for \"{group_name}\" was approved, but {len(failed)} player(s) had no available games.",
                type="WARNING",
                related_type="REPORT",
                related_id=report.id,
            )
        else:
            notify(
                s,
                report.master_user_id,
                "Report approved",
                f"Report #{report.id} for \"{group_name}\" was approved.",
                type="SUCCESS",
                related_type="REPORT",
                related_id=report.id,
            )
        for r in results:
            if r["ok"] and r.get("already_redeemed"):
                continue
            if r["ok"]:
                notify(
                    s,
                    r["player_id"],
                    "Game counted",
                    f"A game in \"{group_name}\" was written off your battlepass.",
                    type="SUCCESS",
                    related_type="REPORT",
                    related_id=report.id,
                )
            else:
                notify(
                    s,
                    r["player_id"],
                    "No available games",
                    f"A game in \"{group_name}\" could not be written off: you have no available games.",
                    type="WARNING",
                    related_type="BATTLEPASS",
                    related_id=report.id,
                )
    else:
        reason = f" Reason: {report.rejection_reason}" if report.rejection_reason else ""
        notify(
            s,
            report.master_user_id,
            "Report rejected",
            f"Report #{report.id} for \"{group_name}\" was rejected.{reason}",
            type="ERROR",
            related_type="REPORT",
            related_id=report.id,
        )
        for pid in report.player_user_ids:
            notify(
                s,
                pid,
                "Game report rejected",
                f"The report for your game in \"{group_name}\" was rejected. No game was written off.",
                type="WARNING",
                related_type="REPORT",
                related_id=report.id,
            )

    record_event(
        s,
        actor=moderator,
        action=f"report.{action}",
        entity_type="Report",
        entity_id=str(report.id),
        reason=report.rejection_reason,
        metadata={"redeem_results": results} if results else None,
    )
    logger.info("Report %s %s by user %s", report.id, report.status, moderator.id)
    return {"success": True, "status": report.status, "redeem_results": results}


def cancel_report(s: "Session", superadmin: User, report_id: int, reason: str | None = None) -> Report:
    report = get_report(s, report_id)
    if report.status != "APPROVED":
        raise ValidationFailed("Can only cancel approved reports")
    refunded = refund_report_writeoffs(s, report.id, actor=superadmin)
    report.status = "CANCELLED"
    report.updated_at = datetime.utcnow()

    group_name = report.group.name if report.group else ""
    notify(
        s,
        report.master_user_id,
        "Report cancelled",
        f"Report #{report.id} for \"{group_name}\" was cancelled by an administrator.",
        type="WARNING",
        related_type="REPORT",
        related_id=report.id,
    )
    for uid in refunded:
        notify(
            s,
            uid,
            "Game returned",
            f"A game in \"{group_name}\" was returned to your battlepass.",
            type="INFO",
            related_type="BATTLEPASS",
            related_id=report.id,
        )
    record_event(
        s,
        actor=superadmin,
        action="report.cancel",
        entity_type="Report",
        entity_id=str(report.id),
        reason=clean_str(reason),
        metadata={"refunded_user_ids": refunded},
    )
    return report
