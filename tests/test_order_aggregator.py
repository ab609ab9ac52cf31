from datetime import datetime
from decimal import Decimal

from app.order_aggregator import OrderSnapshot, aggregate_orders, fetch_eligible_orders
from app.settlement_cycle import parse_cycle

from tests.conftest import ANNAPURNA_ID, make_order

ELIGIBLE = ["confirmed", "cash-pending", "delivered"]


def snap(ref, name, total, status="confirmed"):
    return OrderSnapshot(
        merchant_ref=ref,
        merchant_name=name,
        total_amount=Decimal(str(total)) if total is not None else None,
        status=status,
    )


class TestAggregateOrders:
    def test_groups_by_raw_reference_and_name(self):
        groups = aggregate_orders(
            [
                snap(ANNAPURNA_ID, "Annapurna Mess", 100),
                snap(ANNAPURNA_ID, "Annapurna Mess", 200),
                snap("17", None, 50),
                snap(None, "annapurna mess", 25),
            ]
        )
        by_key = {(g.merchant_ref, g.merchant_name): g for g in groups}

        assert len(groups) == 3
        assert by_key[(ANNAPURNA_ID, "Annapurna Mess")].order_count == 2
        assert by_key[(ANNAPURNA_ID, "Annapurna Mess")].revenue == Decimal("300")
        assert by_key[("17", None)].revenue == Decimal("50")

    def test_ineligible_status_is_absent(self):
        groups = aggregate_orders(
            [snap("17", None, 50, "cancelled"), snap("18", None, 10, "pending")],
            statuses=ELIGIBLE,
        )
        assert groups == []

    def test_null_total_counts_as_zero_revenue(self):
        groups = aggregate_orders([snap("17", None, None), snap("17", None, 40)])
        assert len(groups) == 1
        assert groups[0].order_count == 2
        assert groups[0].revenue == Decimal("40")

    def test_blank_values_share_a_key(self):
        groups = aggregate_orders([snap("  ", "X", 1), snap(None, "X ", 2)])
        assert len(groups) == 1
        assert groups[0].merchant_ref is None


class TestFetchEligibleOrders:
    def test_window_and_status_filter(self, db):
        make_order(db, "17", None, 100, datetime(2025, 3, 1, 0, 0))
        make_order(db, "17", None, 200, datetime(2025, 3, 10, 23, 59))
        make_order(db, "17", None, 400, datetime(2025, 3, 11, 0, 0))
        make_order(db, "17", None, 800, datetime(2025, 3, 5), status="cancelled")
        make_order(db, "17", None, 1600, datetime(2025, 3, 5), status="cash-pending")
        make_order(db, "17", None, None, datetime(2025, 3, 6), status="delivered")

        start, end = parse_cycle("2025-03-C1").window()
        orders = fetch_eligible_orders(db, start, end, ELIGIBLE)

        totals = sorted((o.total_amount or 0) for o in orders)
        assert totals == [0, 100, 200, 1600]
