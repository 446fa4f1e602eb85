"""Initial schema: users and chains.

Startup also runs Base.metadata.create_all, so each table is only created
here when it does not exist yet.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("hashed_password", sa.String(), nullable=False),
            sa.Column("username", sa.String(), nullable=True),
            sa.Column("bio", sa.Text(), nullable=True),
            sa.Column("avatar", sa.String(), nullable=True),
            sa.Column("plan_tier", sa.String(), nullable=False, server_default="free"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_username", "users", ["username"], unique=True)

    if not _has_table("chains"):
        op.create_table(
            "chains",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(100), nullable=False),
            sa.Column("emoji", sa.String(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(), nullable=False, server_default="Other"),
            sa.Column("price_initial", sa.Float(), nullable=False),
            sa.Column("price_final", sa.Float(), nullable=False),
            sa.Column("discount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("url", sa.String(), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("expires_in_days", sa.Integer(), nullable=False, server_default="7"),
            sa.Column("max_participants", sa.Integer(), nullable=False, server_default="100"),
            sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(), nullable=False, server_default="active"),
            sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("conversions", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("revenue", sa.Float(), nullable=False, server_default="0"),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("show_participants", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("show_countdown", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("featured", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_chains_id", "chains", ["id"])
        op.create_index("ix_chains_user_id", "chains", ["user_id"])
        # Owner listings filter by status and sort newest first; the sweep scans by expiry
        op.create_index("ix_chains_user_status", "chains", ["user_id", "status"])
        op.create_index("ix_chains_user_created", "chains", ["user_id", "created_at"])
        op.create_index("ix_chains_expires_at", "chains", ["expires_at"])


def downgrade() -> None:
    op.drop_table("chains")
    op.drop_table("users")
