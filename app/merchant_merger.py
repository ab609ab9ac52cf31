# app/merchant_merger.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from app.merchant_identity import (
    UNNAMED_MERCHANT,
    MerchantDirectory,
    MerchantInfo,
    normalize_name,
    resolve_merchant,
    unresolved_key,
)
from app.order_aggregator import RawGroup

logger = logging.getLogger(__name__)

RawKey = Tuple[Optional[str], Optional[str]]


@dataclass(frozen=True)
class MerchantAggregate:
    merchant: Optional[MerchantInfo]
    display_name: str
    order_count: int
    revenue: Decimal
    raw_keys: FrozenSet[RawKey] = field(default_factory=frozenset)

    @property
    def resolved(self) -> bool:
        return self.merchant is not None

    @property
    def merchant_key(self) -> str:
        if self.merchant is not None:
            return self.merchant.id
        return unresolved_key(self.display_name)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.display_name)


@dataclass
class MergeResult:
    groups: List[MerchantAggregate]
    passes: int
    converged: bool
    warnings: List[str] = field(default_factory=list)


def resolve_groups(directory: MerchantDirectory, raw_groups: Iterable[RawGroup]) -> List[MerchantAggregate]:
    out = []
    for g in raw_groups:
        res = resolve_merchant(directory, g.merchant_ref, g.merchant_name)
        out.append(
            MerchantAggregate(
                merchant=res.merchant,
                display_name=res.display_name,
                order_count=g.order_count,
                revenue=g.revenue,
                raw_keys=frozenset({(g.merchant_ref, g.merchant_name)}),
            )
        )
    return out


def _preferred_name(a: str, b: str) -> str:
    # scelta simmetrica: nome "vero" prima del segnaposto, poi ordine alfabetico
    return min(a, b, key=lambda n: (not n or n == UNNAMED_MERCHANT, n))


def merge_pair(a: MerchantAggregate, b: MerchantAggregate) -> MerchantAggregate:
    merchant = a.merchant or b.merchant
    name = merchant.name if merchant else _preferred_name(a.display_name, b.display_name)
    return MerchantAggregate(
        merchant=merchant,
        display_name=name,
        order_count=a.order_count + b.order_count,
        revenue=a.revenue + b.revenue,
        raw_keys=a.raw_keys | b.raw_keys,
    )


def _ambiguous_names(groups: Iterable[MerchantAggregate]) -> Set[str]:
    ids_by_name: Dict[str, Set[str]] = {}
    for g in groups:
        if g.resolved:
            ids_by_name.setdefault(g.normalized_name, set()).add(g.merchant.id)
    return {n for n, ids in ids_by_name.items() if len(ids) > 1}


def _can_merge(a: MerchantAggregate, b: MerchantAggregate, ambiguous: Set[str]) -> bool:
    if a.resolved and b.resolved:
        return a.merchant.id == b.merchant.id

    # almeno uno non risolto: si confronta il nome normalizzato
    name = a.normalized_name
    if not name or name != b.normalized_name:
        return False
    if (a.resolved or b.resolved) and name in ambiguous:
        return False
    return True


def _merge_pass(groups: List[MerchantAggregate]) -> Tuple[List[MerchantAggregate], bool]:
    ambiguous = _ambiguous_names(groups)
    out: List[MerchantAggregate] = []
    changed = False

    for g in groups:
        for i, existing in enumerate(out):
            if _can_merge(existing, g, ambiguous):
                out[i] = merge_pair(existing, g)
                changed = True
                break
        else:
            out.append(g)

    return out, changed


def merge_duplicates(groups: Iterable[MerchantAggregate], max_passes: int = 10) -> MergeResult:
    """
    Unisce i gruppi che rappresentano lo stesso merchant fisico:
    - stesso ID canonico, oppure
    - (se almeno uno non è risolto) stesso nome normalizzato.
    Ripete finché non ci sono più unioni possibili (punto fisso).
    Se il limite di passate viene raggiunto si restituisce comunque
    il risultato migliore, con un warning.
    """
    current = list(groups)
    warnings: List[str] = []
    passes = 0
    converged = False

    while passes < max_passes:
        passes += 1
        current, changed = _merge_pass(current)
        if not changed:
            converged = True
            break

    if not converged:
        msg = f"Merchant merge did not reach a fixed point after {max_passes} passes"
        logger.warning("PAYOUT: %s | groups=%s", msg, len(current))
        warnings.append(msg)

    for name in sorted(_ambiguous_names(current)):
        if any(not g.resolved and g.normalized_name == name for g in current):
            msg = f"Unresolved orders named '{name}' match more than one merchant and were not merged"
            logger.warning("PAYOUT: %s", msg)
            warnings.append(msg)

    current.sort(key=lambda g: (g.merchant_key, g.display_name))
    return MergeResult(groups=current, passes=passes, converged=converged, warnings=warnings)
