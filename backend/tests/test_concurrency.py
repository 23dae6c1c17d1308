"""
Optimistic locking on stock rows.

Verifies:
- A sale whose medicine row changed underneath it is retried and deducted once
- run_with_retry gives up after its attempt budget
- Every stock write bumps Medicine.version_id
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from pharmasys.extensions import db
from pharmasys.models import Medicine, Transaction
from pharmasys.services import concurrency, inventory_service, transaction_service
from pharmasys.services.concurrency import run_with_retry


medicines_table = Medicine.__table__


def _bump_version_out_of_band(medicine_id: int) -> None:
    # Straight on the connection, so the session's pending changes are not flushed
    db.session.connection().execute(
        medicines_table.update()
        .where(medicines_table.c.id == medicine_id)
        .values(version_id=medicines_table.c.version_id + 1)
    )


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)


class TestStaleStockWrite:

    def test_sale_retried_after_concurrent_update(
        self, monkeypatch, no_backoff, pharmacist_user, patient, make_medicine
    ):
        med = make_medicine(stock=10, reorder_level=0)
        real_deduct = inventory_service.deduct_for_sale
        calls = []

        def deduct_then_collide(lines, **kwargs):
            result = real_deduct(lines, **kwargs)
            calls.append(1)
            if len(calls) == 1:
                _bump_version_out_of_band(med.id)
            return result

        monkeypatch.setattr(inventory_service, "deduct_for_sale", deduct_then_collide)

        txn, warnings = transaction_service.create_transaction(
            {"patient_id": patient.id, "items": [{"medicine_id": med.id, "quantity": 4}]},
            actor=pharmacist_user,
        )

        assert len(calls) == 2
        assert warnings == []
        assert db.session.query(Transaction).count() == 1
        assert db.session.get(Transaction, txn.id) is not None

        medicine = db.session.get(Medicine, med.id)
        assert medicine.stock_quantity == 6
        assert medicine.version_id == 2

    def test_stale_write_raises_without_retry(self, make_medicine):
        med = make_medicine(stock=10)
        medicine = db.session.get(Medicine, med.id)
        assert medicine.version_id == 1
        medicine.stock_quantity = 3
        _bump_version_out_of_band(med.id)

        with pytest.raises(StaleDataError):
            db.session.commit()
        db.session.rollback()

        assert db.session.get(Medicine, med.id).stock_quantity == 10


class TestRunWithRetry:

    def test_gives_up_after_attempts(self, no_backoff, db_session):
        calls = []

        def always_stale():
            calls.append(1)
            raise StaleDataError("row changed")

        with pytest.raises(StaleDataError):
            run_with_retry(always_stale, attempts=3)
        assert len(calls) == 3

    def test_returns_value_after_one_conflict(self, no_backoff, db_session):
        calls = []

        def stale_once():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("row changed")
            return "done"

        assert run_with_retry(stale_once) == "done"
        assert len(calls) == 2

    def test_other_errors_are_not_retried(self, no_backoff, db_session):
        calls = []

        def boom():
            calls.append(1)
            raise ValueError("not a conflict")

        with pytest.raises(ValueError):
            run_with_retry(boom)
        assert len(calls) == 1


class TestVersionColumn:

    def test_sale_bumps_version(self, client, pharmacist_headers, patient, make_medicine):
        med = make_medicine(stock=10)
        assert med.version_id == 1

        resp = client.post(
            "/api/transactions",
            json={"patient_id": patient.id, "items": [{"medicine_id": med.id, "quantity": 1}]},
            headers=pharmacist_headers,
        )
        assert resp.status_code == 201
        assert db.session.get(Medicine, med.id).version_id == 2
