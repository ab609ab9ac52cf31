# models/payouts.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Boolean,
    Enum,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func
import enum
from decimal import Decimal

from models import Base


class PayoutStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"


class Payout(Base):
    """
    Una riga di ledger per (merchant, ciclo di liquidazione).
    Non viene MAI cancellata: serve come storico per audit.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        UniqueConstraint("merchant_key", "settlement_cycle", name="uq_payouts_merchant_cycle"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # ID canonico se risolto, altrimenti "name:<nome normalizzato>"
    merchant_key = Column(String(255), nullable=False, index=True)
    merchant_id = Column(String(24), ForeignKey("merchants.id"), nullable=True)
    is_resolved = Column(Boolean, nullable=False, default=True)

    merchant_name = Column(String(200), nullable=True)
    owner_name = Column(String(150), nullable=True)
    owner_email = Column(String(255), nullable=True)

    # Formato YYYY-MM-Cn
    settlement_cycle = Column(String(10), nullable=False, index=True)

    total_orders = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(12, 2), nullable=False, default=0)

    # Snapshot del tasso usato per calcolare commissione/pagabile
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission = Column(Numeric(12, 2), nullable=False, default=0)
    payable = Column(Numeric(12, 2), nullable=False, default=0)

    # quota già pagata su righe poi assorbite in questa (vedi riconciliazione)
    paid_elsewhere = Column(Numeric(12, 2), nullable=False, default=0)

    # riga non più prodotta dal report: ordini uniti altrove o non più idonei
    is_superseded = Column(Boolean, nullable=False, default=False)
    superseded_by = Column(String(255), nullable=True)

    payout_status = Column(
        Enum(PayoutStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PayoutStatus.PENDING,
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def amount_due(self) -> Decimal:
        """Pagabile meno quanto già pagato su righe assorbite (mai negativo)."""
        due = Decimal(str(self.payable or 0)) - Decimal(str(self.paid_elsewhere or 0))
        return max(due, Decimal("0"))
