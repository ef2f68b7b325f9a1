"""
HTTP API Tests
"""

import logging

import pytest
from fastapi.testclient import TestClient

from billing_service.app.deps import BillingServices, get_services
from billing_service.app.main import create_app
from billing_service.app.repositories.memory import memory_repositories


def _client(database, sink):
    app = create_app()
    services = BillingServices(memory_repositories(database), audit=sink)
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


@pytest.fixture
def client(db, sink):
    return _client(db, sink)


@pytest.fixture
def batch_client(batch_db, sink):
    return _client(batch_db, sink)


CARD = {"id": "PM001", "brand": "Visa", "last4": "4242"}


class TestReadEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True, "service": "billing_service"}

    def test_billing_options_fallback(self, client, sink, caplog):
        caplog.set_level(logging.INFO, logger="billing_service.app.billing.policy")
        resp = client.get("/billing-options", params={
            "cycle": "quarterly", "start_date": "2025-01-01", "end_date": "2025-03-01",
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["selected"] == "monthly"
        assert body["fell_back"] is True
        assert body["warning"]["code"] == "billing_cycle_too_short"
        assert [o["cycle"] for o in body["options"] if o["enabled"]] == ["monthly"]
        assert "billing cycle fallback requested=quarterly" in caplog.text
        # a read publishes nothing
        assert sink.events == []

    def test_billing_options_kept(self, client, sink):
        body = client.get("/billing-options", params={"cycle": "quarterly", "duration_months": 6}).json()
        assert body["selected"] == "quarterly"
        assert body["warning"] is None
        assert sink.events == []

    def test_billing_options_bad_range(self, client):
        resp = client.get("/billing-options", params={"start_date": "2025-03-01", "end_date": "2025-01-01"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_obligations(self, client):
        body = client.get("/accounts/EA001/obligations", params={"as_of": "2025-01-10"}).json()

        courses = {e["course_id"]: e for e in body["enrollments"]}
        programming = courses["CRS001"]
        assert programming["payment_status"] == "overdue"
        assert programming["total_fee"] == "750.00"
        first, second = programming["obligations"][:2]
        assert (first["charge_id"], first["status"], first["payable"]) == ("CHG001", "pending", True)
        assert (second["charge_id"], second["status"], second["payable"]) == ("CHG004", "ongoing", False)
        assert [n["code"] for n in programming["notices"]] == ["unmatched_cycle"] * 4

    def test_unknown_account(self, client):
        resp = client.get("/accounts/NOPE/obligations")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": {"code": "not_found", "message": "account NOPE not found"}}


class TestCheckoutEndpoints:
    """Tests for quote and checkout over HTTP."""

    def test_quote(self, client):
        body = client.post("/accounts/EA001/checkout/quote", json={"charge_ids": ["CHG001", "CHG002", "CHG003"]}).json()

        assert body["selected_total"] == "420.00"
        assert body["methods"] == ["card", "combined"]
        assert body["remaining_after_balance"] == "320.00"

    def test_combined_checkout(self, client, sink):
        resp = client.post("/accounts/EA001/checkout", json={
            "charge_ids": ["CHG001", "CHG002", "CHG003"], "method": "combined", "instrument": CARD,
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["allocation"] == {
            "method": "combined",
            "selected_total": "420.00",
            "balance_used": "100.00",
            "external_amount": "320.00",
            "balance_after": "0.00",
        }
        assert body["transaction"]["amount"] == "-420.00"
        assert {c["status"] for c in body["charges"]} == {"paid"}
        assert sink.types == ["payment_settled"]

    def test_insufficient_balance_is_conflict(self, client):
        resp = client.post("/accounts/EA001/checkout", json={
            "charge_ids": ["CHG001", "CHG002", "CHG003"], "method": "balance",
        })

        assert resp.status_code == 409
        assert resp.json()["success"] is False
        assert resp.json()["error"]["code"] == "insufficient_balance"

    def test_out_of_order_cycle(self, client):
        resp = client.post("/accounts/EA001/checkout", json={
            "charge_ids": ["CHG004"], "method": "card", "instrument": CARD,
        })
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "invalid_state"

    def test_missing_instrument(self, client):
        resp = client.post("/accounts/EA001/checkout", json={"charge_ids": ["CHG001"], "method": "card"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_payment_instrument"


class TestLedgerEndpoints:
    def test_top_up_and_history(self, client):
        resp = client.post("/accounts/EA001/top-ups", json={"amount": "25.50", "description": "Grant"})
        assert resp.status_code == 201
        assert resp.json()["transaction"]["balance_after"] == "125.50"

        client.post("/accounts/EA001/charges", json={"amount": "5", "description": "Materials"})

        history = client.get("/accounts/EA001/transactions").json()
        assert history["balance"] == "120.50"
        assert [t["type"] for t in history["transactions"]] == ["charge", "top_up"]

    def test_zero_amount_rejected(self, client):
        resp = client.post("/accounts/EA001/top-ups", json={"amount": "0", "description": "x"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_charge_cannot_overdraw(self, client):
        resp = client.post("/accounts/EA002/charges", json={"amount": "80", "description": "Course Fee"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "insufficient_balance"

    def test_scheduled_then_run_due(self, client):
        scheduled = client.post("/accounts/EA001/top-ups", json={
            "amount": "10", "description": "Grant", "schedule": True, "scheduled_for": "2025-02-01",
        }).json()["transaction"]
        assert scheduled["status"] == "pending"

        early = client.post("/transactions/run-due", json={"as_of": "2025-01-31"}).json()
        assert early["executed"] == []

        due = client.post("/transactions/run-due", json={"as_of": "2025-02-01"}).json()
        assert [t["id"] for t in due["executed"]] == [scheduled["id"]]

        again = client.post(f"/transactions/{scheduled['id']}/execute", json={"as_of": "2025-02-01"})
        assert again.status_code == 409

    def test_batch_top_up(self, batch_client):
        resp = batch_client.post("/top-ups/batch", json={
            "criteria": {"min_age": 16, "max_age": 29}, "amount": "50", "description": "Youth Grant",
        })

        assert resp.status_code == 201
        body = resp.json()
        assert body["batch"]["account_count"] == 1
        assert body["batch"]["created_by"] == "admin"
        assert [t["account_id"] for t in body["transactions"]] == ["A20"]

    def test_batch_without_matches(self, batch_client):
        resp = batch_client.post("/top-ups/batch", json={
            "criteria": {"min_age": 60}, "amount": "50", "description": "Seniors",
        })
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_eligible_accounts"

    def test_fee_run(self, client, sink):
        body = client.post("/fee-runs", json={"run_date": "2025-02-02"}).json()

        assert body["success"] is True
        assert [c["period"] for c in body["posted"]] == ["Cycle 2 - Feb 2025"]
        assert body["total_amount"] == "50.00"
        assert sink.types[-1] == "fee_run_completed"
