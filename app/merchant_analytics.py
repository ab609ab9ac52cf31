# app/merchant_analytics.py
#
# Viste analitiche in sola lettura: NON toccano il ledger.

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.commission import commission
from app.merchant_identity import MerchantDirectory
from app.merchant_merger import merge_duplicates, resolve_groups
from app.order_aggregator import RawGroup
from app.settlement_cycle import to_reporting_time
from models.merchants import Merchant
from models.orders import Order
from models.users import User, UserRole

logger = logging.getLogger(__name__)

MAX_TOP_LIMIT = 20


def _midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, datetime.min.time(), tzinfo=tz)


def _today(tz: ZoneInfo, now: Optional[datetime]) -> date:
    now = now or datetime.now(tz)
    return to_reporting_time(now, tz).date()


# ---------------------------------------------------------
# TOP MERCHANTS (finestra mobile, indipendente dai cicli)
# ---------------------------------------------------------
def top_merchants(
    db: Session,
    *,
    statuses: Sequence[str],
    tz: ZoneInfo,
    limit: int = 5,
    since_days: int = 30,
    now: Optional[datetime] = None,
    max_passes: Optional[int] = None,
) -> List[Dict[str, Any]]:
    limit = max(1, min(int(limit), MAX_TOP_LIMIT))
    since = _midnight(_today(tz, now) - timedelta(days=max(0, int(since_days))), tz)

    rows = (
        db.query(
            Order.merchant_ref,
            Order.merchant_name,
            func.count(Order.id).label("order_count"),
            func.coalesce(func.sum(Order.total_amount), 0).label("total_revenue"),
        )
        .filter(Order.status.in_(list(statuses)), Order.created_at >= since)
        .group_by(Order.merchant_ref, Order.merchant_name)
        .all()
    )

    raw = [
        RawGroup(
            merchant_ref=r.merchant_ref,
            merchant_name=r.merchant_name,
            order_count=int(r.order_count or 0),
            revenue=Decimal(str(r.total_revenue or 0)),
        )
        for r in rows
    ]

    directory = MerchantDirectory.from_session(db)
    max_passes = settings.merge_max_passes if max_passes is None else max_passes
    result = merge_duplicates(resolve_groups(directory, raw), max_passes=max_passes)
    for warning in result.warnings:
        logger.warning("ANALYTICS: top merchants | %s", warning)

    merged = result.groups
    merged.sort(key=lambda g: (-g.revenue, -g.order_count, g.merchant_key))

    return [
        {
            "merchant_id": g.merchant_key,
            "name": g.display_name,
            "location": g.merchant.location if g.merchant else None,
            "order_count": g.order_count,
            "total_revenue": float(g.revenue),
        }
        for g in merged[:limit]
    ]


# ---------------------------------------------------------
# DAILY SUMMARY
# ---------------------------------------------------------
def daily_summary(
    db: Session,
    *,
    statuses: Sequence[str],
    tz: ZoneInfo,
    rate: Decimal,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    today = _today(tz, now)
    start, end = _midnight(today, tz), _midnight(today + timedelta(days=1), tz)

    total_orders, gross = (
        db.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
        )
        .filter(Order.status.in_(list(statuses)), Order.created_at >= start, Order.created_at < end)
        .one()
    )
    gross = Decimal(str(gross or 0))
    fee, owner_revenue = commission(gross, rate)

    return {
        "date": today.isoformat(),
        "total_orders": int(total_orders or 0),
        "total_gross_revenue": float(gross),
        "commission_rate": float(rate),
        "total_commission": float(fee),
        "total_owner_revenue": float(owner_revenue),
        "total_merchants": db.query(func.count(Merchant.id)).scalar() or 0,
        "total_owners": db.query(func.count(User.id)).filter(User.role == UserRole.OWNER).scalar() or 0,
    }


# ---------------------------------------------------------
# REVENUE TRENDS (ultimi N giorni, giorni mancanti = 0)
# ---------------------------------------------------------
def revenue_trends(
    db: Session,
    *,
    statuses: Sequence[str],
    tz: ZoneInfo,
    days: int = 7,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    days = max(1, int(days))
    today = _today(tz, now)
    first = today - timedelta(days=days - 1)

    rows = (
        db.query(Order.created_at, Order.total_amount)
        .filter(
            Order.status.in_(list(statuses)),
            Order.created_at >= _midnight(first, tz),
            Order.created_at < _midnight(today + timedelta(days=1), tz),
        )
        .all()
    )

    buckets: Dict[date, Decimal] = {first + timedelta(days=i): Decimal("0") for i in range(days)}
    counts: Dict[date, int] = {d: 0 for d in buckets}
    for created_at, amount in rows:
        day = to_reporting_time(created_at, tz).date()
        if day in buckets:
            buckets[day] += Decimal(str(amount)) if amount is not None else Decimal("0")
            counts[day] += 1

    return [
        {"date": d.isoformat(), "total_revenue": float(buckets[d]), "total_orders": counts[d]}
        for d in sorted(buckets)
    ]
