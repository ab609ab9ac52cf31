# app/order_aggregator.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from models.orders import Order


@dataclass(frozen=True)
class OrderSnapshot:
    """Quello che il motore legge di un ordine (sola lettura)."""
    merchant_ref: Optional[str]
    merchant_name: Optional[str]
    total_amount: Optional[Decimal]
    created_at: Optional[datetime] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class RawGroup:
    merchant_ref: Optional[str]
    merchant_name: Optional[str]
    order_count: int
    revenue: Decimal


def fetch_eligible_orders(
    db: Session,
    start: datetime,
    end: datetime,
    statuses: Sequence[str],
) -> List[OrderSnapshot]:
    """
    Ordini con stato idoneo e created_at in [start, end).
    Una sola SELECT: tutti i gruppi del report vengono dallo stesso snapshot.
    """
    rows = (
        db.query(Order.merchant_ref, Order.merchant_name, Order.total_amount, Order.created_at, Order.status)
        .filter(
            Order.status.in_(list(statuses)),
            Order.created_at >= start,
            Order.created_at < end,
        )
        .all()
    )
    return [
        OrderSnapshot(
            merchant_ref=r.merchant_ref,
            merchant_name=r.merchant_name,
            total_amount=r.total_amount,
            created_at=r.created_at,
            status=r.status,
        )
        for r in rows
    ]


def _raw_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def aggregate_orders(
    orders: Iterable[OrderSnapshot],
    statuses: Optional[Sequence[str]] = None,
) -> List[RawGroup]:
    """
    Raggruppa per (riferimento grezzo, nome grezzo).
    - ordini con stato non idoneo: esclusi del tutto (se statuses è dato)
    - total_amount NULL: ricavo 0, ma l'ordine viene contato
    """
    allowed = set(statuses) if statuses is not None else None
    counts: Dict[Tuple[Optional[str], Optional[str]], int] = {}
    revenue: Dict[Tuple[Optional[str], Optional[str]], Decimal] = {}

    for o in orders:
        if allowed is not None and o.status not in allowed:
            continue
        key = (_raw_key(o.merchant_ref), _raw_key(o.merchant_name))
        amount = Decimal(str(o.total_amount)) if o.total_amount is not None else Decimal("0")
        counts[key] = counts.get(key, 0) + 1
        revenue[key] = revenue.get(key, Decimal("0")) + amount

    return [
        RawGroup(merchant_ref=k[0], merchant_name=k[1], order_count=counts[k], revenue=revenue[k])
        for k in counts
    ]
