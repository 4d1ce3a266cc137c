"""users

Revision ID: 0001_users
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_users"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    user_role = sa.Enum("USER", "ADMIN", name="user_role")

    op.create_table(
        "users",
        sa.Column("tg_id", sa.BigInteger(), primary_key=True),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("tg_username", sa.String(length=64), nullable=True),
        sa.Column("role", user_role, server_default="USER", nullable=False),
        sa.Column("referred_by_tg_id", sa.BigInteger(), nullable=True),
        sa.Column("referred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_bot_message_id", sa.Integer(), nullable=True),
        sa.Column("last_bot_message_tag", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_tg_username", "users", ["tg_username"], unique=False)
    op.create_index("ix_users_referred_by_tg_id", "users", ["referred_by_tg_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_users_referred_by_tg_id", table_name="users")
    op.drop_index("ix_users_tg_username", table_name="users")
    op.drop_table("users")
    sa.Enum(name="user_role").drop(op.get_bind(), checkfirst=True)
