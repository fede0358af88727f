"""create orders, bots, order_numbers

Revision ID: 20261002_0001
Revises:
Create Date: 2026-10-02 00:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261002_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_type = sa.Enum("NORMAL", "VIP", name="order_type", native_enum=False)
order_status = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETE", name="order_status", native_enum=False
)
bot_type = sa.Enum("NORMAL", "VIP", name="bot_type", native_enum=False)
bot_status = sa.Enum("IDLE", "PROCESSING", name="bot_status", native_enum=False)

LIVE = "deleted_at IS NULL"
LIVE_PROCESSING = "status = 'PROCESSING' AND deleted_at IS NULL"
LIVE_ASSIGNED = "current_order_id IS NOT NULL AND deleted_at IS NULL"


def upgrade() -> None:
    op.create_table(
        "order_numbers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("allocated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "bots",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("bot_type", bot_type, nullable=False),
        sa.Column("status", bot_status, nullable=False),
        sa.Column("current_order_id", sa.Uuid(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_bots_current_order_live",
        "bots",
        ["current_order_id"],
        unique=True,
        sqlite_where=sa.text(LIVE_ASSIGNED),
        postgresql_where=sa.text(LIVE_ASSIGNED),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("order_number", sa.Integer(), nullable=False),
        sa.Column("type", order_type, nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("bot_id", sa.Uuid(), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["bot_id"], ["bots.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_orders_order_number_live",
        "orders",
        ["order_number"],
        unique=True,
        sqlite_where=sa.text(LIVE),
        postgresql_where=sa.text(LIVE),
    )
    op.create_index(
        "uq_orders_processing_bot",
        "orders",
        ["bot_id"],
        unique=True,
        sqlite_where=sa.text(LIVE_PROCESSING),
        postgresql_where=sa.text(LIVE_PROCESSING),
    )
    op.create_index(
        "ix_orders_status_type_number",
        "orders",
        ["status", "type", "order_number"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_orders_status_type_number", table_name="orders")
    op.drop_index("uq_orders_processing_bot", table_name="orders")
    op.drop_index("uq_orders_order_number_live", table_name="orders")
    op.drop_table("orders")
    op.drop_index("uq_bots_current_order_live", table_name="bots")
    op.drop_table("bots")
    op.drop_table("order_numbers")
