"""add_payout_reconciliation_fields

Revision ID: 9b3e6d2f0a41
Revises: 4c1f2a9e7b10
Create Date: 2025-11-20 16:40:12.503117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "9b3e6d2f0a41"
down_revision: Union[str, Sequence[str], None] = "4c1f2a9e7b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # righe esistenti: nessuna quota altrove, nessuna sostituita
    op.add_column(
        "payouts",
        sa.Column("paid_elsewhere", sa.Numeric(precision=12, scale=2), nullable=False, server_default="0"),
    )
    op.add_column(
        "payouts",
        sa.Column("is_superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.add_column("payouts", sa.Column("superseded_by", sa.String(length=255), nullable=True))


def downgrade() -> None:
    op.drop_column("payouts", "superseded_by")
    op.drop_column("payouts", "is_superseded")
    op.drop_column("payouts", "paid_elsewhere")
