"""create user table

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from app.core.config import settings
from app.core.constants import FieldSizes

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column("username", sa.String(length=FieldSizes.USERNAME), nullable=False),
        sa.Column("email", sa.String(length=FieldSizes.EMAIL), nullable=False),
        sa.Column("hashed_password", sa.String(length=FieldSizes.PASSWORD_HASH), nullable=False),
        sa.Column("first_name", sa.String(length=FieldSizes.FIRST_NAME), nullable=False),
        sa.Column("last_name", sa.String(length=FieldSizes.LAST_NAME), nullable=False),
        sa.Column("role", sa.String(length=FieldSizes.ROLE), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user")),
        sa.UniqueConstraint("username", name=op.f("uq_user_username")),
        schema=settings.postgres_db_schema,
    )
    op.create_index(
        op.f("ix_user_id"), "user", ["id"], unique=False, schema=settings.postgres_db_schema
    )
    op.create_index(
        op.f("ix_user_email"), "user", ["email"], unique=True, schema=settings.postgres_db_schema
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_user_email"), table_name="user", schema=settings.postgres_db_schema)
    op.drop_index(op.f("ix_user_id"), table_name="user", schema=settings.postgres_db_schema)
    op.drop_table("user", schema=settings.postgres_db_schema)
