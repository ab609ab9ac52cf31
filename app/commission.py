# app/commission.py

from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

Number = Union[Decimal, int, str]


def to_decimal(v) -> Decimal:
    if v is None:
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


def money0(v: Decimal) -> Decimal:
    # arrotondamento half-up all'unità di valuta intera
    return v.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def commission(revenue: Number, rate: Number) -> Tuple[Decimal, Decimal]:
    """
    Ritorna (commissione, pagabile).
    commissione = round(revenue * rate / 100), pagabile = revenue - commissione
    """
    revenue = to_decimal(revenue)
    rate = to_decimal(rate)
    fee = money0((revenue * rate) / Decimal("100"))
    return fee, revenue - fee
