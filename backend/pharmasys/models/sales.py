from __future__ import annotations

from ..extensions import db
from pharmasys.time_utils import to_utc_z

class Transaction(db.Model):
    """
    Sale transaction (dispensing to a patient).

    WHY: A sale is recorded once, together with its items, and every item
    deducts stock from its medicine exactly once in the same unit of work.
    There is no edit/void flow: a transaction is immutable after creation.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_date", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    prescription_id = db.Column(db.Integer, db.ForeignKey("prescriptions.id"), nullable=True, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed")
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    patient = db.relationship("Patient", backref=db.backref("transactions", lazy=True))
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "prescription_id": self.prescription_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class TransactionItem(db.Model):
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    medicine = db.relationship("Medicine")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "medicine_id": self.medicine_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "created_at": to_utc_z(self.created_at),
        }
