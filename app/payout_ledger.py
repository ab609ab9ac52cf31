# app/payout_ledger.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple, Union

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.commission import commission
from app.errors import InvalidStatusError, PayoutNotFoundError, PayoutTransitionError
from app.merchant_identity import (
    UNRESOLVED_PREFIX,
    CanonicalId,
    LegacyId,
    normalize_name,
    parse_merchant_ref,
    unresolved_key,
)
from app.merchant_merger import MerchantAggregate
from models.merchants import Merchant
from models.payouts import Payout, PayoutStatus

logger = logging.getLogger(__name__)


@dataclass
class StatusChange:
    payout: Payout
    previous: PayoutStatus
    changed: bool


def coerce_status(value: Union[str, PayoutStatus, None]) -> PayoutStatus:
    if isinstance(value, PayoutStatus):
        return value
    text = (value or "").strip().lower()
    for s in PayoutStatus:
        if s.value.lower() == text:
            return s
    raise InvalidStatusError(f"Invalid payout status '{value}', expected Pending or Paid")


# ---------------------------------------------------------
# UPSERT (ri-aggregazione)
# ---------------------------------------------------------
def _apply_figures(payout: Payout, agg: MerchantAggregate, rate: Decimal) -> None:
    fee, payable = commission(agg.revenue, rate)
    payout.merchant_id = agg.merchant.id if agg.merchant else None
    payout.is_resolved = agg.resolved
    payout.merchant_name = agg.display_name
    payout.owner_name = agg.merchant.owner_name if agg.merchant else None
    payout.owner_email = agg.merchant.owner_email if agg.merchant else None
    payout.total_orders = agg.order_count
    payout.total_revenue = agg.revenue
    payout.commission_rate = rate
    payout.commission = fee
    payout.payable = payable
    payout.paid_elsewhere = Decimal("0")
    payout.is_superseded = False
    payout.superseded_by = None


def upsert_aggregate(db: Session, agg: MerchantAggregate, cycle: str, rate: Decimal) -> Payout:
    """
    Crea la riga Pending se non esiste; altrimenti aggiorna SOLO le cifre.
    Lo stato non viene mai toccato: la riconciliazione non "s-paga" nessuno.
    Non fa commit.
    """
    key = agg.merchant_key

    payout = (
        db.query(Payout)
        .filter(Payout.merchant_key == key, Payout.settlement_cycle == cycle)
        .with_for_update()
        .first()
    )

    if payout is None:
        payout = Payout(
            merchant_key=key,
            settlement_cycle=cycle,
            payout_status=PayoutStatus.PENDING,
        )
        db.add(payout)

    _apply_figures(payout, agg, rate)
    db.flush()
    return payout


@dataclass
class LedgerWrite:
    rows: List[Payout]
    superseded: List[Payout] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------
# RICONCILIAZIONE righe non più prodotte dal report
# ---------------------------------------------------------
def _absorbing_key(stale_key: str, groups: Sequence[MerchantAggregate]) -> Optional[str]:
    """
    Gruppo che ha assorbito gli ordini di una riga "name:<nome>":
    uno e un solo gruppo con quel nome fra i riferimenti grezzi.
    Le righe con ID canonico non vengono mai assorbite.
    """
    if not stale_key.startswith(UNRESOLVED_PREFIX):
        return None
    name = stale_key[len(UNRESOLVED_PREFIX):]

    candidates: Set[str] = set()
    for g in groups:
        raw_names = {normalize_name(v) for pair in g.raw_keys for v in pair if v}
        if g.normalized_name == name or name in raw_names:
            candidates.add(g.merchant_key)

    if len(candidates) == 1:
        return candidates.pop()
    return None


def _zero_figures(payout: Payout) -> None:
    payout.total_orders = 0
    payout.total_revenue = Decimal("0")
    payout.commission = Decimal("0")
    payout.payable = Decimal("0")
    payout.paid_elsewhere = Decimal("0")


def _reconcile_stale_rows(
    db: Session,
    groups: Sequence[MerchantAggregate],
    rows: Sequence[Payout],
    cycle: str,
) -> Tuple[List[Payout], List[str]]:
    """
    Ogni riga del ciclo che il report non produce più viene marcata
    superseded, mai cancellata:
    - Pending: cifre azzerate, non pagabile.
    - Paid: cifre conservate (è quanto già pagato); la quota viene
      scalata dalla riga che ne ha assorbito gli ordini, se esiste.
    """
    by_key = {r.merchant_key: r for r in rows}
    stale = (
        db.query(Payout)
        .filter(Payout.settlement_cycle == cycle, Payout.merchant_key.notin_(list(by_key)))
        .with_for_update()
        .all()
    )

    warnings: List[str] = []
    for payout in stale:
        target_key = _absorbing_key(payout.merchant_key, groups)
        target = by_key.get(target_key) if target_key else None

        if not payout.is_superseded:
            logger.info("PAYOUT: row superseded | merchant=%s | cycle=%s | by=%s | status=%s",
                        payout.merchant_key, cycle, target_key, payout.payout_status.value)
        payout.is_superseded = True
        payout.superseded_by = target_key

        if payout.payout_status != PayoutStatus.PAID:
            _zero_figures(payout)
            continue

        if target is not None:
            target.paid_elsewhere = (target.paid_elsewhere or Decimal("0")) + payout.payable
            msg = (
                f"Payout '{payout.merchant_key}' was already paid {payout.payable} for {cycle}; "
                f"its orders now belong to '{target.merchant_key}' and that amount is deducted"
            )
        else:
            msg = f"Payout '{payout.merchant_key}' was paid for {cycle} but no eligible orders remain"
        logger.warning("PAYOUT: %s", msg)
        warnings.append(msg)

    db.flush()
    return stale, warnings


def _refresh_merchant_mirror(db: Session, merchant_ids: Iterable[str]) -> None:
    # lo stato sul merchant rispecchia la riga attiva del ciclo più recente
    for merchant_id in set(merchant_ids):
        latest = (
            db.query(Payout.payout_status)
            .filter(Payout.merchant_id == merchant_id, Payout.is_superseded.is_(False))
            .order_by(Payout.settlement_cycle.desc())
            .first()
        )
        db.execute(
            update(Merchant)
            .where(Merchant.id == merchant_id)
            .values(payout_status=latest[0] if latest else PayoutStatus.PENDING)
            .execution_options(synchronize_session=False)
        )


def record_report(db: Session, groups: Iterable[MerchantAggregate], cycle: str, rate: Decimal) -> LedgerWrite:
    """
    Scrive tutte le righe del report in UNA transazione (tutto o niente),
    riconcilia le righe del ciclo che non compaiono più e aggiorna lo
    stato rispecchiato sui merchant.
    Se due report concorrenti creano la stessa riga, il vincolo univoco
    fa fallire uno dei due: rollback completo, la richiesta va ripetuta.
    """
    groups = list(groups)
    try:
        rows = [upsert_aggregate(db, g, cycle, rate) for g in groups]
        superseded, warnings = _reconcile_stale_rows(db, groups, rows, cycle)
        _refresh_merchant_mirror(db, [p.merchant_id for p in rows + superseded if p.merchant_id])
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("PAYOUT: ledger write FAILED | cycle=%s", cycle)
        raise

    for r in rows + superseded:
        db.refresh(r)
    return LedgerWrite(rows=rows, superseded=superseded, warnings=warnings)


# ---------------------------------------------------------
# STATO (azione admin)
# ---------------------------------------------------------
def resolve_status_target(db: Session, merchant_id: str) -> str:
    """
    Traduce il merchantId ricevuto dall'admin nella chiave di ledger:
    ID canonico, vecchio ID numerico, nome esatto, oppure "name:<nome>".
    """
    raw = (merchant_id or "").strip()
    if raw.startswith(UNRESOLVED_PREFIX):
        return UNRESOLVED_PREFIX + normalize_name(raw[len(UNRESOLVED_PREFIX):])

    ref = parse_merchant_ref(raw)
    merchant: Optional[Merchant] = None
    if isinstance(ref, CanonicalId):
        merchant = db.query(Merchant).filter(Merchant.id == ref.value).first()
    elif isinstance(ref, LegacyId):
        merchant = db.query(Merchant).filter(Merchant.legacy_id == ref.value).first()
    else:
        matches = db.query(Merchant).filter(Merchant.name == raw).limit(2).all()
        if len(matches) == 1:
            merchant = matches[0]

    if merchant:
        return merchant.id
    if isinstance(ref, CanonicalId):
        return ref.value
    return unresolved_key(raw)


def set_status(
    db: Session,
    merchant_key: str,
    cycle: str,
    new_status: Union[str, PayoutStatus],
    on_paid: Optional[Callable[[Payout], None]] = None,
) -> StatusChange:
    """
    Transizione idempotente Pending -> Paid.
    - nessun record, riga superseded o senza ordini idonei: PayoutNotFoundError
      (nessuna creazione implicita)
    - Paid su Paid: successo, nessun effetto collaterale
    - Paid -> Pending: PayoutTransitionError
    La scrittura è condizionale (compare-and-swap su payout_status), quindi
    due click concorrenti producono UNA sola transizione e UNA sola notifica.
    """
    target = coerce_status(new_status)

    payout = (
        db.query(Payout)
        .filter(Payout.merchant_key == merchant_key, Payout.settlement_cycle == cycle)
        .first()
    )
    if payout is None or payout.is_superseded or not payout.total_orders:
        raise PayoutNotFoundError(merchant_key, cycle)

    previous = payout.payout_status

    if target == PayoutStatus.PENDING:
        if previous == PayoutStatus.PAID:
            raise PayoutTransitionError("Payout already marked as Paid and cannot be reverted to Pending")
        return StatusChange(payout=payout, previous=previous, changed=False)

    result = db.execute(
        update(Payout)
        .where(
            Payout.id == payout.id,
            Payout.payout_status == PayoutStatus.PENDING,
            Payout.is_superseded.is_(False),
        )
        .values(payout_status=PayoutStatus.PAID, paid_at=func.now(), updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    changed = result.rowcount == 1

    if changed and payout.merchant_id:
        _refresh_merchant_mirror(db, [payout.merchant_id])

    db.commit()
    db.refresh(payout)

    if not changed and payout.payout_status != PayoutStatus.PAID:
        # superseded da un report concorrente fra lettura e scrittura
        raise PayoutNotFoundError(merchant_key, cycle)

    if changed:
        logger.info("PAYOUT: status updated | merchant=%s | cycle=%s | %s -> %s",
                    merchant_key, cycle, previous.value, payout.payout_status.value)
        if on_paid is not None:
            on_paid(payout)
    else:
        logger.info("PAYOUT: status unchanged | merchant=%s | cycle=%s | status=%s",
                    merchant_key, cycle, payout.payout_status.value)

    return StatusChange(payout=payout, previous=previous, changed=changed)


def merchant_history(db: Session, merchant_key: str) -> List[Payout]:
    return (
        db.query(Payout)
        .filter(Payout.merchant_key == merchant_key)
        .order_by(Payout.settlement_cycle.desc())
        .all()
    )
