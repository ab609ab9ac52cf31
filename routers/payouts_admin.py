# routers/payouts_admin.py

import logging
from typing import List, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings, current_commission_rate
from app.db import get_db
from app.deps_admin import get_current_admin
from app.errors import InvalidCycleError, InvalidStatusError, PayoutNotFoundError, PayoutTransitionError
from app.merchant_analytics import daily_summary, revenue_trends, top_merchants
from app.payout_ledger import merchant_history, resolve_status_target, set_status
from app.payout_report import PayoutReport, generate_report, notify_payout_paid, report_totals
from app.settlement_cycle import SettlementCycle, current_cycle, parse_cycle
from models.payouts import Payout
from schemas.payouts import (
    DailySummaryOut,
    PayoutOut,
    PayoutReportOut,
    PayoutStatusResponse,
    PayoutStatusUpdate,
    ReportTotals,
    RevenueTrendPoint,
    TopMerchantOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/payouts",
    tags=["Admin Payouts"],
)


def _tz() -> ZoneInfo:
    return ZoneInfo(settings.reporting_timezone)


def _cycle_or_current(cycle: Optional[str]) -> SettlementCycle:
    if not cycle:
        return current_cycle(_tz())
    try:
        return parse_cycle(cycle)
    except InvalidCycleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _payout_out(p: Payout) -> PayoutOut:
    return PayoutOut(
        merchant_id=p.merchant_key,
        merchant_name=p.merchant_name,
        owner_name=p.owner_name,
        owner_email=p.owner_email,
        total_orders=int(p.total_orders or 0),
        total_revenue=float(p.total_revenue or 0),
        commission_rate=float(p.commission_rate or 0),
        commission=float(p.commission or 0),
        payable=float(p.payable or 0),
        paid_elsewhere=float(p.paid_elsewhere or 0),
        amount_due=float(p.amount_due),
        payout_status=p.payout_status.value,
        settlement_cycle=p.settlement_cycle,
        is_resolved=bool(p.is_resolved),
        is_superseded=bool(p.is_superseded),
        superseded_by=p.superseded_by,
        paid_at=p.paid_at,
        updated_at=p.updated_at,
    )


def _run_report(db: Session, cycle: Optional[str]) -> PayoutReport:
    target = _cycle_or_current(cycle)
    try:
        return generate_report(db, target)
    except SQLAlchemyError:
        # nessuna riga parziale: la richiesta può essere ripetuta
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payout ledger write failed, please retry.",
        )


# ---------------------------------------------------------
# 1️⃣ PAYOUT PER CICLO (array di righe)
# ---------------------------------------------------------
@router.get("", response_model=List[PayoutOut])
def list_payouts(
    cycle: Optional[str] = None,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    report = _run_report(db, cycle)
    return [_payout_out(p) for p in report.rows]


# ---------------------------------------------------------
# 1B️⃣ STESSO REPORT CON METADATI (totali + warning)
# ---------------------------------------------------------
@router.get("/report", response_model=PayoutReportOut)
def payout_report(
    cycle: Optional[str] = None,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    report = _run_report(db, cycle)
    totals = report_totals(report.rows)

    return PayoutReportOut(
        settlement_cycle=report.settlement_cycle,
        commission_rate=float(report.commission_rate),
        generated_at=report.generated_at,
        items=[_payout_out(p) for p in report.rows],
        totals=ReportTotals(
            total_orders=totals["total_orders"],
            total_revenue=float(totals["total_revenue"]),
            commission=float(totals["commission"]),
            payable=float(totals["payable"]),
            amount_due=float(totals["amount_due"]),
        ),
        warnings=report.warnings,
    )


# ---------------------------------------------------------
# 2️⃣ AGGIORNAMENTO STATO (idempotente)
# ---------------------------------------------------------
def _status_response(code: int, **fields) -> JSONResponse:
    body = PayoutStatusResponse(**fields).model_dump(by_alias=True, exclude_none=True)
    return JSONResponse(status_code=code, content=body)


@router.put("/status", response_model=PayoutStatusResponse)
def update_payout_status(
    payload: PayoutStatusUpdate,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    merchant_id = (payload.merchant_id or "").strip()
    if not merchant_id:
        return _status_response(status.HTTP_400_BAD_REQUEST, success=False, message="merchantId missing")

    try:
        cycle = parse_cycle(payload.settlement_cycle) if payload.settlement_cycle else current_cycle(_tz())
    except InvalidCycleError as e:
        return _status_response(status.HTTP_400_BAD_REQUEST, success=False, message=str(e))

    merchant_key = resolve_status_target(db, merchant_id)

    try:
        change = set_status(
            db,
            merchant_key,
            cycle.key,
            payload.payout_status,
            on_paid=notify_payout_paid,
        )
    except InvalidStatusError as e:
        return _status_response(status.HTTP_400_BAD_REQUEST, success=False, message=str(e))
    except PayoutNotFoundError:
        return _status_response(
            status.HTTP_404_NOT_FOUND,
            success=False,
            message=f"No payout found for merchant {merchant_id} in cycle {cycle.key}",
        )
    except PayoutTransitionError as e:
        return _status_response(status.HTTP_409_CONFLICT, success=False, message=str(e))
    except SQLAlchemyError:
        db.rollback()
        logger.exception("PAYOUT: status update FAILED | merchant=%s | cycle=%s", merchant_key, cycle.key)
        return _status_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            success=False,
            message="Payout status update failed, please retry.",
        )

    new_status = change.payout.payout_status.value
    message = (
        f"Payout status updated to {new_status}"
        if change.changed
        else f"Payout status already {new_status}"
    )

    return PayoutStatusResponse(
        success=True,
        message=message,
        merchant_id=change.payout.merchant_key,
        settlement_cycle=change.payout.settlement_cycle,
        payout_status=new_status,
        changed=change.changed,
    )


# ---------------------------------------------------------
# 3️⃣ STORICO LEDGER DI UN MERCHANT
# ---------------------------------------------------------
@router.get("/history", response_model=List[PayoutOut])
def payout_history(
    merchantId: str,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    if not merchantId.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="merchantId missing")

    key = resolve_status_target(db, merchantId)
    return [_payout_out(p) for p in merchant_history(db, key)]


# ---------------------------------------------------------
# 4️⃣ TOP MERCHANT (analitica, fuori dal ledger)
# ---------------------------------------------------------
@router.get("/top", response_model=List[TopMerchantOut])
def payout_top_merchants(
    limit: int = 5,
    sinceDays: int = 30,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    rows = top_merchants(
        db,
        statuses=settings.eligible_statuses,
        tz=_tz(),
        limit=limit,
        since_days=sinceDays,
    )
    return [TopMerchantOut(**r) for r in rows]


# ---------------------------------------------------------
# 5️⃣ RIEPILOGO GIORNALIERO
# ---------------------------------------------------------
@router.get("/daily-summary", response_model=DailySummaryOut)
def payout_daily_summary(
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    summary = daily_summary(
        db,
        statuses=settings.eligible_statuses,
        tz=_tz(),
        rate=current_commission_rate(),
    )
    return DailySummaryOut(**summary)


# ---------------------------------------------------------
# 6️⃣ TREND RICAVI
# ---------------------------------------------------------
@router.get("/revenue-trends", response_model=List[RevenueTrendPoint])
def payout_revenue_trends(
    days: int = 7,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    if days < 1 or days > 90:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="days must be between 1 and 90")

    points = revenue_trends(db, statuses=settings.eligible_statuses, tz=_tz(), days=days)
    return [RevenueTrendPoint(**p) for p in points]
