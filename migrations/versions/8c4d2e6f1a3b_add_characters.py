"""add characters and group member character link

Revision ID: 8c4d2e6f1a3b
Revises: 5e1a9c0d2b7f
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "8c4d2e6f1a3b"
down_revision: Union[str, Sequence[str], None] = "5e1a9c0d2b7f"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)

    if not insp.has_table("characters"):
        op.create_table(
            "characters",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("player_id", sa.Integer(), sa.ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("archetype", sa.String(100), nullable=True),
            sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("1")),
            sa.Column("avatar_url", sa.String(512), nullable=True),
            sa.Column("sheet_url", sa.String(512), nullable=True),
            sa.Column("backstory", sa.Text(), nullable=True),
            sa.Column("journal", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_alive", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("death_date", sa.String(16), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_characters_player", "characters", ["player_id"])

    cols = {c["name"] for c in insp.get_columns("group_members")}
    if "character_id" not in cols:
        with op.batch_alter_table("group_members") as batch_op:
            batch_op.add_column(sa.Column("character_id", sa.Integer(), nullable=True))
            batch_op.create_foreign_key(
                "fk_group_members_character",
                "characters",
                ["character_id"],
                ["id"],
                ondelete="SET NULL",
            )


def downgrade() -> None:
    with op.batch_alter_table("group_members") as batch_op:
        batch_op.drop_constraint("fk_group_members_character", type_="foreignkey")
        batch_op.drop_column("character_id")
    op.drop_index("idx_characters_player", table_name="characters")
    op.drop_table("characters")
