from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)  # PLAYER | MASTER | MODERATOR | SUPERADMIN
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship(back_populates="role_links")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tel: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    tg_id: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    rpg_experience: Mapped[str | None] = mapped_column(String(32), nullable=True)
    contacts: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    role_links: Mapped[list[UserRole]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def role_keys(self) -> list[str]:
        return [link.role for link in self.role_links]

    def add_role(self, role: str) -> bool:
        if role in self.role_keys:
            return False
        self.role_links.append(UserRole(role=role))
        return True

    def remove_role(self, role: str) -> bool:
        for link in list(self.role_links):
            if link.role == role:
                self.role_links.remove(link)
                return True
        return False


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module-specific tables can refer to it by id if needed.
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "report.moderate"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Report"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.zv.modules.profiles.models import MasterProfile, PlayerProfile  # noqa: E402,F401
from app.zv.modules.seasons.models import Season  # noqa: E402,F401
from app.zv.modules.groups.models import GameSession, Group, GroupApplication, GroupMember  # noqa: E402,F401
from app.zv.modules.shop.models import Order, OrderItem, Product  # noqa: E402,F401
from app.zv.modules.battlepasses.models import Battlepass, Writeoff  # noqa: E402,F401
from app.zv.modules.reports.models import Report, ReportPlayer  # noqa: E402,F401
from app.zv.modules.notifications.models import Notification  # noqa: E402,F401
from app.zv.modules.wiki.models import WikiArticle, WikiComment, WikiSection  # noqa: E402,F401
from app.zv.modules.files.models import StoredFile  # noqa: E402,F401
from app.zv.modules.characters.models import Character  # noqa: E402,F401
