# schemas/payouts.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# --------- LEDGER ROWS ---------


class PayoutOut(CamelModel):
    merchant_id: str
    merchant_name: Optional[str] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    total_orders: int
    total_revenue: float
    commission_rate: float
    commission: float
    payable: float
    paid_elsewhere: float = 0
    amount_due: float
    payout_status: str
    settlement_cycle: str
    is_resolved: bool = True
    is_superseded: bool = False
    superseded_by: Optional[str] = None
    paid_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReportTotals(CamelModel):
    total_orders: int
    total_revenue: float
    commission: float
    payable: float
    amount_due: float


class PayoutReportOut(CamelModel):
    settlement_cycle: str
    commission_rate: float
    generated_at: datetime
    items: List[PayoutOut]
    totals: ReportTotals
    warnings: List[str] = []


# --------- STATUS UPDATE ---------


class PayoutStatusUpdate(CamelModel):
    # opzionali: il 400 lo restituiamo noi, non il 422 di FastAPI
    merchant_id: Optional[str] = None
    payout_status: Optional[str] = None
    settlement_cycle: Optional[str] = None


class PayoutStatusResponse(CamelModel):
    success: bool
    message: str
    merchant_id: Optional[str] = None
    settlement_cycle: Optional[str] = None
    payout_status: Optional[str] = None
    changed: Optional[bool] = None


# --------- ANALYTICS ---------


class TopMerchantOut(CamelModel):
    merchant_id: str
    name: str
    location: Optional[str] = None
    order_count: int
    total_revenue: float


class DailySummaryOut(CamelModel):
    date: str
    total_orders: int
    total_gross_revenue: float
    commission_rate: float
    total_commission: float
    total_owner_revenue: float
    total_merchants: int
    total_owners: int


class RevenueTrendPoint(CamelModel):
    date: str
    total_revenue: float
    total_orders: int
