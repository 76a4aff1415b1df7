"""initial schema

Revision ID: 5e1a9c0d2b7f
Revises:
Create Date: 2026-10-19 10:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e1a9c0d2b7f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(), nullable=True)
    return sa.Column(name, sa.DateTime(), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    """Create users/roles/audit plus every module table."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("tel", sa.String(50), nullable=True, unique=True),
        sa.Column("tg_id", sa.String(50), nullable=True, unique=True),
        sa.Column("avatar_url", sa.String(1024), nullable=True),
        sa.Column("rpg_experience", sa.String(32), nullable=True),
        sa.Column("contacts", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _ts("created_at"),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )

    op.create_table(
        "seasons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("idx_seasons_active", "seasons", ["is_active"])

    op.create_table(
        "player_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("nickname", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "master_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("format", sa.String(16), nullable=False, server_default="OFFLINE"),
        sa.Column("location", sa.String(255), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("max_members", sa.Integer(), nullable=False, server_default="6"),
        sa.Column("is_recruiting", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("referral_code", sa.String(64), nullable=True, unique=True),
        sa.Column("format", sa.String(16), nullable=False, server_default="OFFLINE"),
        sa.Column("place", sa.String(255), nullable=True),
        sa.Column("season_id", sa.Integer(), sa.ForeignKey("seasons.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("master_id", sa.Integer(), sa.ForeignKey("master_profiles.id", ondelete="CASCADE"), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_groups_master", "groups", ["master_id"])
    op.create_index("idx_groups_season", "groups", ["season_id"])
    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        _ts("joined_at"),
        sa.UniqueConstraint("group_id", "player_id", name="uq_group_members_group_player"),
    )
    op.create_index("ix_group_members_player_id", "group_members", ["player_id"])
    op.create_table(
        "group_applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("master_response", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_group_applications_group", "group_applications", ["group_id"])
    op.create_index("idx_group_applications_player", "group_applications", ["player_id"])
    op.create_table(
        "game_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("duration_min", sa.Integer(), nullable=False, server_default="240"),
        sa.Column("place", sa.String(255), nullable=True),
        sa.Column("format", sa.String(16), nullable=False, server_default="OFFLINE"),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("slots_total", sa.Integer(), nullable=False, server_default="5"),
        _ts("created_at"),
    )
    op.create_index("idx_game_sessions_group_starts", "game_sessions", ["group_id", "starts_at"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="BATTLEPASS"),
        sa.Column("price_rub", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("bp_uses_total", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("season_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("archived_at", nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_products_visible_sort", "products", ["visible", "sort_index"])
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("for_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("total_rub", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("provider", sa.String(16), nullable=False, server_default="YOOKASSA"),
        sa.Column("provider_id", sa.String(128), nullable=True, unique=True),
        _ts("paid_at", nullable=True),
        _ts("fulfilled_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_orders_user", "orders", ["user_id"])
    op.create_index("idx_orders_for_user", "orders", ["for_user_id"])
    op.create_index("idx_orders_status", "orders", ["status"])
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("price_rub", sa.Integer(), nullable=False),
        sa.Column("price_rub_at_purchase", sa.Integer(), nullable=False),
        sa.Column("bp_uses_total_at_purchase", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("product_sku_snapshot", sa.String(64), nullable=False),
        sa.Column("product_title_snapshot", sa.String(255), nullable=False),
        sa.Column("bp_kind_at_purchase", sa.String(16), nullable=True),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "battlepasses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("season_id", sa.Integer(), sa.ForeignKey("seasons.id", ondelete="SET NULL"), nullable=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True),
        sa.Column("uses_total", sa.Integer(), nullable=False),
        sa.Column("uses_left", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_battlepasses_user_status", "battlepasses", ["user_id", "status"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("game_sessions.id", ondelete="SET NULL"), nullable=True, unique=True),
        sa.Column("master_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("highlights", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("moderated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("moderated_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_reports_status", "reports", ["status"])
    op.create_index("idx_reports_master", "reports", ["master_user_id"])
    op.create_table(
        "report_players",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.UniqueConstraint("report_id", "player_user_id", name="uq_report_players_report_player"),
    )
    op.create_index("ix_report_players_player_user_id", "report_players", ["player_user_id"])
    op.create_table(
        "writeoffs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("game_sessions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("reports.id", ondelete="SET NULL"), nullable=True),
        sa.Column("battlepass_id", sa.Integer(), sa.ForeignKey("battlepasses.id", ondelete="CASCADE"), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "session_id", name="uq_writeoffs_user_session"),
        sa.UniqueConstraint("user_id", "report_id", name="uq_writeoffs_user_report"),
    )
    op.create_index("idx_writeoffs_report", "writeoffs", ["report_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="INFO"),
        sa.Column("related_type", sa.String(16), nullable=True),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "is_read"])

    op.create_table(
        "wiki_sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("wiki_sections.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("parent_id", "slug", name="uq_wiki_sections_parent_slug"),
    )
    op.create_table(
        "wiki_articles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("section_id", sa.Integer(), sa.ForeignKey("wiki_sections.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False),
        sa.Column("content_md", sa.Text(), nullable=False, server_default=""),
        sa.Column("min_role", sa.String(32), nullable=False, server_default="MASTER"),
        sa.Column("author_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("last_updated_at"),
        _ts("created_at"),
        sa.UniqueConstraint("section_id", "slug", name="uq_wiki_articles_section_slug"),
    )
    op.create_index("idx_wiki_articles_section", "wiki_articles", ["section_id"])
    op.create_table(
        "wiki_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("article_id", sa.Integer(), sa.ForeignKey("wiki_articles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_wiki_comments_article_id", "wiki_comments", ["article_id"])

    op.create_table(
        "stored_files",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("storage_key", sa.String(512), nullable=False, unique=True),
        sa.Column("area", sa.String(32), nullable=False),
        sa.Column("folder", sa.String(64), nullable=False),
        sa.Column("upload_type", sa.String(64), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(128), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("uploaded_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
    )


def downgrade() -> None:
    for table in (
        "stored_files",
        "wiki_comments",
        "wiki_articles",
        "wiki_sections",
        "notifications",
        "writeoffs",
        "report_players",
        "reports",
        "battlepasses",
        "order_items",
        "orders",
        "products",
        "game_sessions",
        "group_applications",
        "group_members",
        "groups",
        "master_profiles",
        "player_profiles",
        "seasons",
        "audit_events",
        "user_roles",
        "users",
    ):
        op.drop_table(table)
