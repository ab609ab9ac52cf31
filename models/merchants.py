# models/merchants.py

import uuid

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from models import Base
from models.payouts import PayoutStatus


def generate_merchant_id() -> str:
    # 24 caratteri esadecimali, stesso formato degli id storici
    return uuid.uuid4().hex[:24]


class Merchant(Base):
    __tablename__ = "merchants"

    # ID canonico (autoritativo)
    id = Column(String(24), primary_key=True, default=generate_merchant_id)

    # Vecchio ID numerico: alcuni ordini lo usano ancora al posto dell'ID canonico
    legacy_id = Column(Integer, nullable=True, unique=True, index=True)

    # Nome visualizzato (NON garantito univoco)
    name = Column(String(200), nullable=False, index=True)
    location = Column(String(255), nullable=True)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Copia dello stato del ledger, aggiornata solo su Pending -> Paid
    payout_status = Column(
        Enum(PayoutStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PayoutStatus.PENDING,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("User", lazy="joined")
