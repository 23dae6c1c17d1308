# Overview: Sale transactions: record the sale and its items, deduct stock in the same unit of work.

"""
Sale Transactions

A transaction and its items are written together with the stock
deductions in one commit (run_with_retry). Transactions are immutable once
recorded: there is no edit or void flow.

Item unit_price defaults to the medicine's current price; total_amount
defaults to the sum of quantity * unit_price over the items.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import NotFound, PharmaSysError, ValidationError
from ..extensions import db
from ..models import Medicine, Patient, Prescription, Transaction, TransactionItem, User
from ..notifier import EventNotifier
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_amount,
    validate_line_items,
    validate_payload,
)
from . import inventory_service
from .concurrency import run_with_retry


TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "patient_id", "prescription_id", "transaction_date", "total_amount",
        "payment_method", "notes",
    },
    required_on_create={"patient_id"},
    aliases={
        "patientId": "patient_id",
        "prescriptionId": "prescription_id",
        "transactionDate": "transaction_date",
        "totalAmount": "total_amount",
        "paymentMethod": "payment_method",
    },
)


def _line_total(items: list[dict]) -> Decimal:
    return sum((item["unit_price"] * item["quantity"] for item in items), Decimal("0.00"))


def create_transaction(
    payload: dict,
    *,
    actor: User,
    policy: str = inventory_service.POLICY_CLAMP,
    notifier: EventNotifier | None = None,
) -> tuple[Transaction, list[inventory_service.StockWarning]]:
    """
    Record a sale and deduct its items from stock.

    Returns (transaction, stock_warnings). Raises ValidationError for bad
    input or unknown patient/prescription/medicine, and InsufficientStock
    under the "reject" policy. Nothing is written when an error is raised.
    """
    if not isinstance(payload, dict):
        raise ValidationError("JSON object required")

    header = {k: v for k, v in payload.items() if k != "items"}
    patch = validate_payload(model=Transaction, payload=header, policy=TRANSACTION_POLICY, partial=False)
    enforce_rules_amount(patch)
    items = validate_line_items(payload.get("items"), require_unit_price=False, allow_empty=False)

    def _op():
        try:
            if db.session.get(Patient, patch["patient_id"]) is None:
                raise ValidationError("patient_id refers to an unknown patient")
            prescription_id = patch.get("prescription_id")
            if prescription_id is not None:
                prescription = db.session.get(Prescription, prescription_id)
                if prescription is None:
                    raise ValidationError("prescription_id refers to an unknown prescription")
                if prescription.patient_id != patch["patient_id"]:
                    raise ValidationError("Prescription belongs to a different patient")

            lines = []
            for item in items:
                medicine = db.session.get(Medicine, item["medicine_id"])
                if medicine is None:
                    raise ValidationError(f"Medicine {item['medicine_id']} not found")
                lines.append({
                    "medicine_id": medicine.id,
                    "quantity": item["quantity"],
                    "unit_price": item.get("unit_price", medicine.unit_price),
                })

            result = inventory_service.deduct_for_sale(lines, policy=policy)

            txn = Transaction(created_by_user_id=actor.id, **patch)
            if txn.total_amount is None:
                txn.total_amount = _line_total(lines)
            for line in lines:
                txn.items.append(TransactionItem(**line))

            db.session.add(txn)
            db.session.commit()
            return txn, result
        except PharmaSysError:
            db.session.rollback()
            raise

    txn, result = run_with_retry(_op)

    inventory_service.announce_low_stock(result, notifier=notifier, actor_username=actor.username)
    return txn, result.warnings


def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if txn is None:
        raise NotFound("Transaction not found")
    return txn


def list_transactions(*, patient_id: int | None = None, limit: int | None = None) -> list[Transaction]:
    query = db.session.query(Transaction)
    if patient_id is not None:
        query = query.filter(Transaction.patient_id == patient_id)
    query = query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def transaction_to_dict(txn: Transaction) -> dict:
    data = txn.to_dict()
    data["items"] = [item.to_dict() for item in txn.items]
    return data
