from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.zv.models import Base, User

if TYPE_CHECKING:
    from app.zv.modules.groups.models import Group


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        Index("idx_reports_status", "status"),
        Index("idx_reports_master", "master_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="RESTRICT"), nullable=False)
    session_id: Mapped[int | None] = mapped_column(
        ForeignKey("game_sessions.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    master_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    highlights: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    moderated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    moderated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped["Group"] = relationship(lazy="joined")
    master: Mapped[User] = relationship(foreign_keys=[master_user_id], lazy="joined")
    players: Mapped[list["ReportPlayer"]] = relationship(
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def player_user_ids(self) -> list[int]:
        return [p.player_user_id for p in self.players]


class ReportPlayer(Base):
    __tablename__ = "report_players"
    __table_args__ = (UniqueConstraint("report_id", "player_user_id", name="uq_report_players_report_player"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    player_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    report: Mapped[Report] = relationship(back_populates="players")
    player: Mapped[User] = relationship(lazy="joined")
