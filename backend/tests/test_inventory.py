"""
Stock reconciliation on sale transactions.

Verifies:
- Selling deducts stock in the same commit as the transaction
- Overselling under "clamp" floors stock at zero and reports a warning
- Overselling under "reject" fails with 409 and changes nothing
- stock_low events fire once stock reaches the reorder level
- Expiring stock is listed soonest first within the warning window
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from pharmasys.errors import InsufficientStock, ValidationError
from pharmasys.extensions import db
from pharmasys.models import Medicine, SecurityEvent, Transaction
from pharmasys.services import inventory_service
from pharmasys.time_utils import utcnow


def _sell(client, headers, patient, *items, **extra):
    payload = {"patient_id": patient.id, "items": list(items), **extra}
    return client.post("/api/transactions", json=payload, headers=headers)


def _stock(medicine_id: int) -> int:
    return db.session.get(Medicine, medicine_id).stock_quantity


class TestSaleDeduction:

    def test_sale_deducts_stock(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=20, reorder_level=2)
        resp = _sell(client, pharmacist_headers, patient, {"medicine_id": med.id, "quantity": 3})
        assert resp.status_code == 201

        body = resp.get_json()
        assert body["stock_warnings"] == []
        assert len(body["items"]) == 1
        assert body["items"][0]["unit_price"] == "2.50"
        assert Decimal(body["transaction"]["total_amount"]) == Decimal("7.50")
        assert _stock(med.id) == 17

    def test_explicit_total_and_price_kept(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=20)
        resp = _sell(
            client, pharmacist_headers, patient,
            {"medicine_id": med.id, "quantity": 2, "unit_price": "1.00"},
            total_amount="1.50",
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["items"][0]["unit_price"] == "1.00"
        assert Decimal(body["transaction"]["total_amount"]) == Decimal("1.50")

    def test_oversell_clamps_to_zero_with_warning(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(name="Ibuprofen 200mg", stock=10)
        resp = _sell(client, pharmacist_headers, patient, {"medicine_id": med.id, "quantity": 15})
        assert resp.status_code == 201

        warnings = resp.get_json()["stock_warnings"]
        assert len(warnings) == 1
        assert warnings[0]["medicine_id"] == med.id
        assert warnings[0]["requested"] == 15
        assert warnings[0]["available"] == 10
        assert warnings[0]["shortfall"] == 5
        assert _stock(med.id) == 0

    def test_repeated_lines_apply_against_running_stock(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=5)
        resp = _sell(
            client, pharmacist_headers, patient,
            {"medicine_id": med.id, "quantity": 3},
            {"medicine_id": med.id, "quantity": 3},
        )
        assert resp.status_code == 201
        warnings = resp.get_json()["stock_warnings"]
        assert [(w["requested"], w["available"]) for w in warnings] == [(3, 2)]
        assert _stock(med.id) == 0

    def test_reject_policy_leaves_stock_untouched(self, app, client, pharmacist_headers, patient, make_medicine):
        app.config["STOCK_OVERSELL_POLICY"] = "reject"
        plenty = make_medicine(name="Paracetamol", stock=50)
        scarce = make_medicine(name="Insulin", stock=2)

        resp = _sell(
            client, pharmacist_headers, patient,
            {"medicine_id": plenty.id, "quantity": 5},
            {"medicine_id": scarce.id, "quantity": 3},
        )
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["medicine_id"] == scarce.id
        assert body["available"] == 2

        assert _stock(plenty.id) == 50
        assert _stock(scarce.id) == 2
        assert db.session.query(Transaction).count() == 0

    def test_unknown_patient_rejected(self, client, pharmacist_headers, make_medicine):
        med = make_medicine(stock=5)
        resp = client.post(
            "/api/transactions",
            json={"patient_id": 9999, "items": [{"medicine_id": med.id, "quantity": 1}]},
            headers=pharmacist_headers,
        )
        assert resp.status_code == 400
        assert _stock(med.id) == 5

    def test_unknown_medicine_rejected(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=5)
        resp = _sell(
            client, pharmacist_headers, patient,
            {"medicine_id": med.id, "quantity": 1},
            {"medicine_id": 9999, "quantity": 1},
        )
        assert resp.status_code == 400
        assert _stock(med.id) == 5
        assert db.session.query(Transaction).count() == 0

    @pytest.mark.parametrize("items", [[], None, [{"medicine_id": 1, "quantity": 0}], "x"])
    def test_invalid_items_rejected(self, client, pharmacist_headers, patient, items):
        payload = {"patient_id": patient.id}
        if items is not None:
            payload["items"] = items
        resp = client.post("/api/transactions", json=payload, headers=pharmacist_headers)
        assert resp.status_code == 400

    def test_transaction_readback(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=5)
        created = _sell(client, pharmacist_headers, patient, {"medicine_id": med.id, "quantity": 1}).get_json()
        txn_id = created["transaction"]["id"]

        resp = client.get(f"/api/transactions/{txn_id}", headers=pharmacist_headers)
        assert resp.status_code == 200
        assert resp.get_json()["items"][0]["medicine_id"] == med.id

        listing = client.get(f"/api/transactions?patient_id={patient.id}", headers=pharmacist_headers)
        assert listing.get_json()["count"] == 1

        assert client.get("/api/transactions/9999", headers=pharmacist_headers).status_code == 404


class TestLowStock:

    def test_sale_reaching_reorder_level_is_audited(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(name="Cetirizine", stock=8, reorder_level=5)
        _sell(client, pharmacist_headers, patient, {"medicine_id": med.id, "quantity": 3})

        event = db.session.query(SecurityEvent).filter_by(event_type="STOCK_LOW").one()
        assert event.action == "pharma"
        assert f"medicine_id={med.id}" in event.reason
        assert "stock_quantity=5" in event.reason

    def test_no_event_above_reorder_level(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=20, reorder_level=5)
        _sell(client, pharmacist_headers, patient, {"medicine_id": med.id, "quantity": 1})
        assert db.session.query(SecurityEvent).filter_by(event_type="STOCK_LOW").count() == 0

    def test_low_stock_endpoint(self, client, doctor_headers, make_medicine):
        low = make_medicine(name="Low", stock=1, reorder_level=5)
        make_medicine(name="Fine", stock=50, reorder_level=5)

        resp = client.get("/api/medicines/low-stock", headers=doctor_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["items"][0]["id"] == low.id


class TestDeductForSale:

    def test_reject_raises_before_any_change(self, db_session, make_medicine):
        med = make_medicine(stock=4)
        with pytest.raises(InsufficientStock):
            inventory_service.deduct_for_sale(
                [{"medicine_id": med.id, "quantity": 2}, {"medicine_id": med.id, "quantity": 3}],
                policy=inventory_service.POLICY_REJECT,
            )
        db.session.rollback()
        assert _stock(med.id) == 4

    def test_unknown_policy(self, db_session, make_medicine):
        med = make_medicine(stock=4)
        with pytest.raises(ValueError):
            inventory_service.deduct_for_sale([{"medicine_id": med.id, "quantity": 1}], policy="ignore")

    def test_low_stock_reported(self, db_session, make_medicine):
        med = make_medicine(stock=6, reorder_level=5)
        result = inventory_service.deduct_for_sale([{"medicine_id": med.id, "quantity": 2}])
        assert [level.medicine_id for level in result.low_stock] == [med.id]
        assert result.low_stock[0].stock_quantity == 4
        db.session.rollback()


class TestExpiringMedicines:

    def test_window_and_order(self, db_session, make_medicine):
        today = date(2030, 6, 1)
        soon = make_medicine(name="Soon", expiry_date=date(2030, 6, 20))
        edge = make_medicine(name="Edge", expiry_date=date(2030, 7, 1))
        make_medicine(name="Later", expiry_date=date(2030, 7, 2))
        past = make_medicine(name="Past", expiry_date=date(2030, 5, 30))

        expiring = inventory_service.expiring_medicines(today=today)
        assert [m.id for m in expiring] == [soon.id, edge.id]

        with_expired = inventory_service.expiring_medicines(today=today, include_expired=True)
        assert [m.id for m in with_expired] == [past.id, soon.id, edge.id]

    def test_negative_days_rejected(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.expiring_medicines(-1)

    def test_endpoint(self, client, pharmacist_headers, make_medicine):
        today = utcnow().date()
        soon = make_medicine(name="Soon", expiry_date=today + timedelta(days=5))
        make_medicine(name="Later", expiry_date=today + timedelta(days=60))

        resp = client.get("/api/medicines/expiring", headers=pharmacist_headers)
        assert resp.status_code == 200
        assert [m["id"] for m in resp.get_json()["items"]] == [soon.id]

        resp = client.get("/api/medicines/expiring?days=90", headers=pharmacist_headers)
        assert resp.get_json()["count"] == 2

        resp = client.get("/api/medicines/expiring?days=-3", headers=pharmacist_headers)
        assert resp.status_code == 400

    def test_patient_cannot_list_expiring(self, client, patient_headers):
        assert client.get("/api/medicines/expiring", headers=patient_headers).status_code == 403
