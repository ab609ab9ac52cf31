import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.deps_admin import get_current_admin
from app.main import app
from app.merchant_analytics import top_merchants
from app.security import create_access_token
from models.payouts import Payout, PayoutStatus

from tests.conftest import ANNAPURNA_ID, SHARMA_ID, make_merchant, make_order, make_owner

CYCLE = "2025-03-C1"


class TestListPayouts:
    def test_annapurna_merges_into_one_row(self, client, annapurna):
        r = client.get("/payouts", params={"cycle": CYCLE})

        assert r.status_code == 200
        rows = r.json()
        assert len(rows) == 1
        row = rows[0]
        assert row["merchantId"] == ANNAPURNA_ID
        assert row["merchantName"] == "Annapurna Mess"
        assert row["ownerName"] == "Ravi Kumar"
        assert row["ownerEmail"] == "ravi@example.com"
        assert row["totalOrders"] == 3
        assert row["totalRevenue"] == 500
        assert row["commissionRate"] == 10
        assert row["commission"] == 50
        assert row["payable"] == 450
        assert row["payoutStatus"] == "Pending"
        assert row["settlementCycle"] == CYCLE

    def test_other_cycle_is_empty(self, client, annapurna):
        r = client.get("/payouts", params={"cycle": "2025-03-C2"})
        assert r.status_code == 200
        assert r.json() == []

    def test_repeated_runs_do_not_double_count(self, client, db, annapurna):
        client.get("/payouts", params={"cycle": CYCLE})
        r = client.get("/payouts", params={"cycle": CYCLE})

        assert r.json()[0]["totalOrders"] == 3
        assert db.query(Payout).count() == 1

    def test_malformed_cycle(self, client):
        r = client.get("/payouts", params={"cycle": "2025-3-C9"})
        assert r.status_code == 400

    def test_commission_rate_snapshot_from_env(self, client, annapurna, monkeypatch):
        monkeypatch.setenv("COMMISSION_RATE", "20")
        row = client.get("/payouts", params={"cycle": CYCLE}).json()[0]
        assert row["commissionRate"] == 20
        assert row["commission"] == 100
        assert row["payable"] == 400

    def test_unresolved_merchant_still_listed(self, client, db):
        make_order(db, None, "Green Leaf", 120, datetime(2025, 3, 4))
        make_order(db, "999", "green  leaf", 30, datetime(2025, 3, 5))

        rows = client.get("/payouts", params={"cycle": CYCLE}).json()

        assert len(rows) == 1
        assert rows[0]["merchantId"] == "name:green leaf"
        assert rows[0]["totalOrders"] == 2
        assert rows[0]["isResolved"] is False
        assert rows[0]["ownerEmail"] is None


class TestReport:
    def test_report_metadata(self, client, db, annapurna):
        make_merchant(db, SHARMA_ID, "Sharma Tiffin", legacy_id=42)
        make_order(db, "42", None, 205, datetime(2025, 3, 9))

        r = client.get("/payouts/report", params={"cycle": CYCLE})

        assert r.status_code == 200
        body = r.json()
        assert body["settlementCycle"] == CYCLE
        assert body["commissionRate"] == 10
        assert len(body["items"]) == 2
        assert body["totals"]["totalOrders"] == 4
        assert body["totals"]["totalRevenue"] == 705
        assert body["totals"]["commission"] + body["totals"]["payable"] == 705
        assert body["warnings"] == []


class TestUpdateStatus:
    def test_missing_merchant_id(self, client):
        r = client.put("/payouts/status", json={"payoutStatus": "Paid"})
        assert r.status_code == 400
        assert r.json()["success"] is False

    def test_invalid_status(self, client, annapurna):
        client.get("/payouts", params={"cycle": CYCLE})
        r = client.put(
            "/payouts/status",
            json={"merchantId": ANNAPURNA_ID, "payoutStatus": "Settled", "settlementCycle": CYCLE},
        )
        assert r.status_code == 400

    def test_no_orders_is_not_found(self, client, db, annapurna):
        make_merchant(db, SHARMA_ID, "Sharma Tiffin", legacy_id=42)
        client.get("/payouts", params={"cycle": CYCLE})

        r = client.put(
            "/payouts/status",
            json={"merchantId": SHARMA_ID, "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )

        assert r.status_code == 404
        assert r.json()["success"] is False
        assert db.query(Payout).filter(Payout.merchant_key == SHARMA_ID).count() == 0

    def test_paid_is_idempotent(self, client, annapurna, monkeypatch):
        sent = []
        monkeypatch.setattr("app.payout_report.send_payout_paid_email", lambda **kw: sent.append(kw))
        client.get("/payouts", params={"cycle": CYCLE})

        body = {"merchantId": "17", "payoutStatus": "Paid", "settlementCycle": CYCLE}
        first = client.put("/payouts/status", json=body)
        second = client.put("/payouts/status", json=body)

        assert first.status_code == 200
        assert first.json()["payoutStatus"] == "Paid"
        assert first.json()["changed"] is True
        assert second.status_code == 200
        assert second.json()["changed"] is False
        assert len(sent) == 1
        assert sent[0]["to_email"] == "ravi@example.com"

    def test_reaggregation_keeps_paid(self, client, db, annapurna):
        client.get("/payouts", params={"cycle": CYCLE})
        client.put(
            "/payouts/status",
            json={"merchantId": ANNAPURNA_ID, "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )
        make_order(db, ANNAPURNA_ID, "Annapurna Mess", 1000, datetime(2025, 3, 8))

        row = client.get("/payouts", params={"cycle": CYCLE}).json()[0]

        assert row["payoutStatus"] == "Paid"
        assert row["totalOrders"] == 4

    def test_revert_is_conflict(self, client, annapurna):
        client.get("/payouts", params={"cycle": CYCLE})
        body = {"merchantId": ANNAPURNA_ID, "settlementCycle": CYCLE}
        client.put("/payouts/status", json={**body, "payoutStatus": "Paid"})

        r = client.put("/payouts/status", json={**body, "payoutStatus": "Pending"})
        assert r.status_code == 409

    def test_malformed_cycle(self, client):
        r = client.put(
            "/payouts/status",
            json={"merchantId": ANNAPURNA_ID, "payoutStatus": "Paid", "settlementCycle": "March"},
        )
        assert r.status_code == 400

    def test_unresolved_row_by_synthetic_key(self, client, db):
        make_order(db, None, "Green Leaf", 120, datetime(2025, 3, 4))
        client.get("/payouts", params={"cycle": CYCLE})

        r = client.put(
            "/payouts/status",
            json={"merchantId": "name:green leaf", "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )
        assert r.status_code == 200
        assert r.json()["payoutStatus"] == "Paid"


class TestReconciliation:
    def test_name_only_payout_is_not_paid_again_after_merge(self, client, db):
        make_merchant(db, ANNAPURNA_ID, "Annapurna Mess", legacy_id=17, owner=make_owner(db))
        make_order(db, None, "annapurna mess", 50, datetime(2025, 3, 3, 12, 30))

        rows = client.get("/payouts", params={"cycle": CYCLE}).json()
        assert [r["merchantId"] for r in rows] == ["name:annapurna mess"]
        paid = client.put(
            "/payouts/status",
            json={"merchantId": "name:annapurna mess", "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )
        assert paid.status_code == 200

        make_order(db, ANNAPURNA_ID, "Annapurna Mess", 300, datetime(2025, 3, 4))
        body = client.get("/payouts/report", params={"cycle": CYCLE}).json()

        assert len(body["items"]) == 1
        row = body["items"][0]
        assert row["merchantId"] == ANNAPURNA_ID
        assert row["totalRevenue"] == 350
        assert row["payable"] == 315
        assert row["paidElsewhere"] == 45
        assert row["amountDue"] == 270
        assert len(body["warnings"]) == 1

        again = client.put(
            "/payouts/status",
            json={"merchantId": "name:annapurna mess", "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )
        assert again.status_code == 404

        client.put(
            "/payouts/status",
            json={"merchantId": ANNAPURNA_ID, "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )
        db.expire_all()
        paid_rows = db.query(Payout).filter(Payout.payout_status == PayoutStatus.PAID).all()
        # 45 sulla vecchia riga + 270 sulla riga del merchant = 315 pagabile
        assert sum(p.amount_due if not p.is_superseded else p.payable for p in paid_rows) == 315

    def test_cancelled_orders_cannot_be_paid(self, client, db):
        make_merchant(db, ANNAPURNA_ID, "Annapurna Mess", legacy_id=17)
        order = make_order(db, ANNAPURNA_ID, "Annapurna Mess", 300, datetime(2025, 3, 3))
        client.get("/payouts", params={"cycle": CYCLE})

        order.status = "cancelled"
        db.commit()

        assert client.get("/payouts", params={"cycle": CYCLE}).json() == []
        r = client.put(
            "/payouts/status",
            json={"merchantId": ANNAPURNA_ID, "payoutStatus": "Paid", "settlementCycle": CYCLE},
        )
        assert r.status_code == 404

        history = client.get("/payouts/history", params={"merchantId": ANNAPURNA_ID}).json()
        assert history[0]["isSuperseded"] is True
        assert history[0]["totalOrders"] == 0


class TestHistory:
    def test_history(self, client, db, annapurna):
        make_order(db, ANNAPURNA_ID, "Annapurna Mess", 80, datetime(2025, 3, 15))
        client.get("/payouts", params={"cycle": CYCLE})
        client.get("/payouts", params={"cycle": "2025-03-C2"})

        r = client.get("/payouts/history", params={"merchantId": "17"})

        assert [p["settlementCycle"] for p in r.json()] == ["2025-03-C2", CYCLE]


class TestAnalytics:
    def test_top_merchants_merges_and_ranks(self, client, db):
        tz = ZoneInfo("Asia/Kolkata")
        today = datetime.now(tz).replace(tzinfo=None, hour=12, minute=0, second=0, microsecond=0)
        make_merchant(db, ANNAPURNA_ID, "Annapurna Mess", legacy_id=17)
        make_merchant(db, SHARMA_ID, "Sharma Tiffin", legacy_id=42)
        make_order(db, ANNAPURNA_ID, None, 100, today)
        make_order(db, "17", None, 100, today - timedelta(days=1))
        make_order(db, "42", None, 150, today)
        make_order(db, "42", None, 9999, today - timedelta(days=60))

        r = client.get("/payouts/top", params={"limit": 5, "sinceDays": 30})

        assert r.status_code == 200
        body = r.json()
        assert [m["merchantId"] for m in body] == [ANNAPURNA_ID, SHARMA_ID]
        assert body[0]["orderCount"] == 2
        assert body[0]["totalRevenue"] == 200
        assert body[0]["location"] == "Pune"

    def test_top_limit_is_capped(self, client, db):
        tz = ZoneInfo("Asia/Kolkata")
        today = datetime.now(tz).replace(tzinfo=None, hour=12)
        for i in range(25):
            make_order(db, None, f"Mess {i}", 10 + i, today)

        r = client.get("/payouts/top", params={"limit": 100})
        assert len(r.json()) == 20

    def test_daily_summary(self, client, db):
        tz = ZoneInfo("Asia/Kolkata")
        today = datetime.now(tz).replace(tzinfo=None, hour=12)
        make_merchant(db, ANNAPURNA_ID, "Annapurna Mess", legacy_id=17)
        make_order(db, "17", None, 250, today)
        make_order(db, "17", None, 250, today, status="cancelled")

        body = client.get("/payouts/daily-summary").json()

        assert body["totalOrders"] == 1
        assert body["totalGrossRevenue"] == 250
        assert body["totalCommission"] == 25
        assert body["totalOwnerRevenue"] == 225
        assert body["totalMerchants"] == 1

    def test_revenue_trends_zero_filled(self, client, db):
        tz = ZoneInfo("Asia/Kolkata")
        today = datetime.now(tz).replace(tzinfo=None, hour=12)
        make_order(db, "17", None, 75, today)

        points = client.get("/payouts/revenue-trends", params={"days": 7}).json()

        assert len(points) == 7
        assert points[-1]["totalRevenue"] == 75
        assert sum(p["totalRevenue"] for p in points) == 75

    def test_revenue_trends_bad_days(self, client):
        assert client.get("/payouts/revenue-trends", params={"days": 0}).status_code == 400


class TestAdminAuth:
    @pytest.fixture
    def raw_client(self, client):
        app.dependency_overrides.pop(get_current_admin, None)
        return client

    def test_missing_token(self, raw_client):
        assert raw_client.get("/payouts", params={"cycle": CYCLE}).status_code in (401, 403)

    def test_non_admin_token(self, raw_client):
        token = create_access_token({"sub": "42"})
        r = raw_client.get("/payouts", params={"cycle": CYCLE}, headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 403

    def test_admin_token(self, raw_client):
        token = create_access_token({"sub": "admin:1"})
        r = raw_client.get("/payouts", params={"cycle": CYCLE}, headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200

    def test_garbage_token(self, raw_client):
        r = raw_client.get("/payouts", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401


def test_health():
    with TestClient(app) as c:
        assert c.get("/health").json() == {"ok": True}


def test_top_merchants_uses_configured_pass_cap(db, monkeypatch, caplog):
    tz = ZoneInfo("Asia/Kolkata")
    today = datetime.now(tz).replace(tzinfo=None, hour=12)
    make_merchant(db, ANNAPURNA_ID, "Annapurna Mess", legacy_id=17)
    make_order(db, ANNAPURNA_ID, None, 100, today)
    make_order(db, None, "annapurna mess", 50, today)
    monkeypatch.setattr(settings, "merge_max_passes", 1)

    with caplog.at_level(logging.WARNING, logger="app.merchant_analytics"):
        rows = top_merchants(db, statuses=settings.eligible_statuses, tz=tz)

    assert rows[0]["total_revenue"] == 150
    assert any("fixed point" in r.getMessage() for r in caplog.records if r.name == "app.merchant_analytics")
