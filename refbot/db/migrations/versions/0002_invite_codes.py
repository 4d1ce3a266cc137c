"""invite codes

Revision ID: 0002_invite_codes
Revises: 0001_users
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "0002_invite_codes"
down_revision = "0001_users"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "invite_codes",
        sa.Column("code", sa.String(length=64), primary_key=True),
        sa.Column("owner_tg_id", sa.BigInteger(), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_invite_codes_uses_within_max",
        ),
    )
    op.create_index("ix_invite_codes_owner_tg_id", "invite_codes", ["owner_tg_id"], unique=False)

    # User: consumed invite code
    op.add_column("users", sa.Column("used_invite_code", sa.String(length=64), nullable=True))
    op.create_index("ix_users_used_invite_code", "users", ["used_invite_code"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_users_used_invite_code", table_name="users")
    op.drop_column("users", "used_invite_code")
    op.drop_index("ix_invite_codes_owner_tg_id", table_name="invite_codes")
    op.drop_table("invite_codes")
