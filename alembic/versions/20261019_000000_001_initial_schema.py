"""Initial schema: tracked carts and plugin options.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create scrm_abandoned_carts table
    op.create_table(
        "scrm_abandoned_carts",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("email", sa.String(200), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("cart_data", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("cart_total", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("email_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recovered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_scrm_abandoned_carts")),
    )
    for column in ("user_id", "email", "created_at", "email_sent", "recovered"):
        op.create_index(
            op.f(f"ix_scrm_abandoned_carts_{column}"),
            "scrm_abandoned_carts",
            [column],
            unique=False,
        )
    op.create_index(
        "ix_scrm_abandoned_carts_email_lower",
        "scrm_abandoned_carts",
        [sa.text("lower(email)")],
        unique=False,
    )

    # Create scrm_options table
    op.create_table(
        "scrm_options",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(191), nullable=False),
        sa.Column("value", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_scrm_options")),
        sa.UniqueConstraint("name", name=op.f("uq_scrm_options_name")),
    )


def downgrade() -> None:
    op.drop_table("scrm_options")
    op.drop_index("ix_scrm_abandoned_carts_email_lower", table_name="scrm_abandoned_carts")
    for column in ("recovered", "email_sent", "created_at", "email", "user_id"):
        op.drop_index(op.f(f"ix_scrm_abandoned_carts_{column}"), table_name="scrm_abandoned_carts")
    op.drop_table("scrm_abandoned_carts")
