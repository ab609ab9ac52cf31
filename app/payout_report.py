# app/payout_report.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.config import settings, current_commission_rate
from app.email_service import send_payout_paid_email
from app.merchant_identity import MerchantDirectory
from app.merchant_merger import merge_duplicates, resolve_groups
from app.order_aggregator import aggregate_orders, fetch_eligible_orders
from app.payout_ledger import record_report
from app.settlement_cycle import SettlementCycle
from models.payouts import Payout

logger = logging.getLogger(__name__)


@dataclass
class PayoutReport:
    settlement_cycle: str
    commission_rate: Decimal
    generated_at: datetime
    rows: List[Payout]
    warnings: List[str] = field(default_factory=list)
    merge_passes: int = 0


def generate_report(
    db: Session,
    cycle: SettlementCycle,
    *,
    rate: Optional[Decimal] = None,
    tz: Optional[ZoneInfo] = None,
    statuses: Optional[Sequence[str]] = None,
    max_passes: Optional[int] = None,
) -> PayoutReport:
    """
    Report di liquidazione per un ciclo:
    ordini idonei -> gruppi grezzi -> risoluzione merchant -> merge duplicati
    -> commissione -> ledger (una transazione).
    Il tasso viene letto UNA volta qui e passato a tutte le righe.
    """
    rate = current_commission_rate() if rate is None else rate
    tz = tz or ZoneInfo(settings.reporting_timezone)
    statuses = list(statuses) if statuses is not None else settings.eligible_statuses
    max_passes = settings.merge_max_passes if max_passes is None else max_passes

    start, end = cycle.window(tz)
    orders = fetch_eligible_orders(db, start, end, statuses)
    raw_groups = aggregate_orders(orders)

    directory = MerchantDirectory.from_session(db)
    merged = merge_duplicates(resolve_groups(directory, raw_groups), max_passes=max_passes)

    logger.info(
        "PAYOUT: report | cycle=%s | rate=%s | orders=%s | raw_groups=%s | merged=%s | passes=%s",
        cycle.key,
        rate,
        len(orders),
        len(raw_groups),
        len(merged.groups),
        merged.passes,
    )

    written = record_report(db, merged.groups, cycle.key, rate)

    return PayoutReport(
        settlement_cycle=cycle.key,
        commission_rate=rate,
        generated_at=datetime.now(timezone.utc),
        rows=written.rows,
        warnings=merged.warnings + written.warnings,
        merge_passes=merged.passes,
    )


def report_totals(rows: Sequence[Payout]) -> dict:
    return {
        "total_orders": sum(int(r.total_orders or 0) for r in rows),
        "total_revenue": sum((Decimal(str(r.total_revenue or 0)) for r in rows), Decimal("0")),
        "commission": sum((Decimal(str(r.commission or 0)) for r in rows), Decimal("0")),
        "payable": sum((Decimal(str(r.payable or 0)) for r in rows), Decimal("0")),
        "amount_due": sum((r.amount_due for r in rows), Decimal("0")),
    }


def notify_payout_paid(payout: Payout) -> None:
    """
    Wrapper: logga sempre l'invio, e logga l'eccezione se fallisce.
    Un errore email non annulla la transizione a Paid.
    """
    if not payout.owner_email:
        logger.info("EMAIL: payout paid, no owner email | merchant=%s | cycle=%s",
                    payout.merchant_key, payout.settlement_cycle)
        return
    try:
        logger.info("EMAIL: attempting send_payout_paid_email | to=%s | merchant=%s | cycle=%s",
                    payout.owner_email, payout.merchant_key, payout.settlement_cycle)
        send_payout_paid_email(
            to_email=payout.owner_email,
            merchant_name=payout.merchant_name or payout.merchant_key,
            settlement_cycle=payout.settlement_cycle,
            total_orders=payout.total_orders,
            total_revenue=payout.total_revenue,
            commission=payout.commission,
            payable=payout.amount_due,
            owner_name=payout.owner_name,
        )
        logger.info("EMAIL: send_payout_paid_email DONE | to=%s", payout.owner_email)
    except Exception:
        logger.exception("EMAIL: send_payout_paid_email FAILED | to=%s | merchant=%s",
                         payout.owner_email, payout.merchant_key)
