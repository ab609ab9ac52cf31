from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Enum,
    ForeignKey,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from models import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CASH_PENDING = "cash-pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    ONLINE = "Online"
    COD = "COD"


class Order(Base):
    """
    Ordine piazzato dal sottosistema ordini.
    Il motore payout lo legge soltanto: non modifica mai questi record.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Riferimento al merchant così come è arrivato:
    # ID canonico, vecchio ID numerico, oppure vuoto (solo nome)
    merchant_ref = Column(String(64), nullable=True, index=True)
    merchant_name = Column(String(200), nullable=True)

    # Può essere NULL su record storici: vale 0 ma l'ordine si conta comunque
    total_amount = Column(Numeric(12, 2), nullable=True)

    payment_method = Column(
        Enum(PaymentMethod, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentMethod.ONLINE,
    )

    # Stringa libera: il sottosistema ordini ne usa più di quelle in OrderStatus
    status = Column(String(32), nullable=False, default=OrderStatus.CONFIRMED.value, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # ==============================
    # RELATIONSHIPS
    # ==============================

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(200), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="items")
