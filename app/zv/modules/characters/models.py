from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.zv.models import Base

if TYPE_CHECKING:
    from app.zv.modules.profiles.models import PlayerProfile


class Character(Base):
    __tablename__ = "characters"
    __table_args__ = (Index("idx_characters_player", "player_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    archetype: Mapped[str | None] = mapped_column(String(100), nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    sheet_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    backstory: Mapped[str | None] = mapped_column(Text, nullable=True)
    journal: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_alive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # In-world calendar date, dd.mm.yyy
    death_date: Mapped[str | None] = mapped_column(String(16), nullable=True)

    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    player: Mapped["PlayerProfile"] = relationship(lazy="joined")
