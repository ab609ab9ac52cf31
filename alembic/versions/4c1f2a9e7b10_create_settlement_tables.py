"""create settlement tables

Revision ID: 4c1f2a9e7b10
Revises:
Create Date: 2025-11-03 10:12:41.118204
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "4c1f2a9e7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# condiviso da merchants.payout_status e payouts.payout_status
payout_status_enum = postgresql.ENUM("Pending", "Paid", name="payoutstatus", create_type=False)


def upgrade() -> None:
    """
    Tabelle lette dal motore (users, merchants, orders, order_items)
    e il ledger payouts: una riga per (merchant_key, settlement_cycle).
    """
    payout_status_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column(
            "role",
            sa.Enum("student", "owner", "admin", "delivery", name="userrole"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)

    op.create_table(
        "merchants",
        sa.Column("id", sa.String(length=24), primary_key=True, nullable=False),
        sa.Column("legacy_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("payout_status", payout_status_enum, nullable=False, server_default="Pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_merchants_legacy_id"), "merchants", ["legacy_id"], unique=True)
    op.create_index(op.f("ix_merchants_name"), "merchants", ["name"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("merchant_ref", sa.String(length=64), nullable=True),
        sa.Column("merchant_name", sa.String(length=200), nullable=True),
        sa.Column("total_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("payment_method", sa.Enum("Online", "COD", name="paymentmethod"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_orders_id"), "orders", ["id"], unique=False)
    op.create_index(op.f("ix_orders_merchant_ref"), "orders", ["merchant_ref"], unique=False)
    op.create_index(op.f("ix_orders_status"), "orders", ["status"], unique=False)
    op.create_index(op.f("ix_orders_created_at"), "orders", ["created_at"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
    )
    op.create_index(op.f("ix_order_items_id"), "order_items", ["id"], unique=False)

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("merchant_key", sa.String(length=255), nullable=False),
        sa.Column("merchant_id", sa.String(length=24), sa.ForeignKey("merchants.id"), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("merchant_name", sa.String(length=200), nullable=True),
        sa.Column("owner_name", sa.String(length=150), nullable=True),
        sa.Column("owner_email", sa.String(length=255), nullable=True),
        sa.Column("settlement_cycle", sa.String(length=10), nullable=False),
        sa.Column("total_orders", sa.Integer(), nullable=False),
        sa.Column("total_revenue", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column("commission", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("payable", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("payout_status", payout_status_enum, nullable=False, server_default="Pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("merchant_key", "settlement_cycle", name="uq_payouts_merchant_cycle"),
    )
    op.create_index(op.f("ix_payouts_id"), "payouts", ["id"], unique=False)
    op.create_index(op.f("ix_payouts_merchant_key"), "payouts", ["merchant_key"], unique=False)
    op.create_index(op.f("ix_payouts_settlement_cycle"), "payouts", ["settlement_cycle"], unique=False)


def downgrade() -> None:
    op.drop_table("payouts")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("merchants")
    op.drop_table("users")
    payout_status_enum.drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="paymentmethod").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
