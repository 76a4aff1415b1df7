from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.zv.models import Base

if TYPE_CHECKING:
    from app.zv.modules.profiles.models import MasterProfile, PlayerProfile
    from app.zv.modules.seasons.models import Season


class Group(Base):
    __tablename__ = "groups"
    __table_args__ = (
        Index("idx_groups_master", "master_id"),
        Index("idx_groups_season", "season_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    is_recruiting: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    referral_code: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="OFFLINE")
    place: Mapped[str | None] = mapped_column(String(255), nullable=True)

    season_id: Mapped[int] = mapped_column(ForeignKey("seasons.id", ondelete="RESTRICT"), nullable=False)
    master_id: Mapped[int] = mapped_column(ForeignKey("master_profiles.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    season: Mapped["Season"] = relationship(lazy="joined")
    master: Mapped["MasterProfile"] = relationship(lazy="joined")
    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "player_id", name="uq_group_members_group_player"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    player_id: Mapped[int] = mapped_column(ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE | PAUSED | LEFT
    character_id: Mapped[int | None] = mapped_column(ForeignKey("characters.id", ondelete="SET NULL"), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped[Group] = relationship(back_populates="members")
    player: Mapped["PlayerProfile"] = relationship(lazy="joined")


class GroupApplication(Base):
    __tablename__ = "group_applications"
    __table_args__ = (
        Index("idx_group_applications_group", "group_id"),
        Index("idx_group_applications_player", "player_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    player_id: Mapped[int] = mapped_column(ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    master_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped[Group] = relationship(lazy="joined")
    player: Mapped["PlayerProfile"] = relationship(lazy="joined")


class GameSession(Base):
    __tablename__ = "game_sessions"
    __table_args__ = (Index("idx_game_sessions_group_starts", "group_id", "starts_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    duration_min: Mapped[int] = mapped_column(Integer, nullable=False, default=240)
    place: Mapped[str | None] = mapped_column(String(255), nullable=True)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="OFFLINE")
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    slots_total: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped[Group] = relationship(lazy="joined")
