from __future__ import annotations

from ..extensions import db
from pharmasys.time_utils import to_utc_z, to_iso_date


ORDER_STATUSES = ("pending", "delivered", "cancelled")


class Order(db.Model):
    """
    Supplier purchase order.

    LIFECYCLE:
    1. pending: created, items may be added/removed
    2. delivered: goods received; stock incremented exactly once (terminal)
    3. cancelled: abandoned; may be reopened to pending

    stock_applied_at records when the delivery increments were applied. It is
    the idempotency marker: once set, the increments are never applied again.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expected_delivery_date = db.Column(db.Date, nullable=True)
    total_amount = db.Column(db.Numeric(10, 2), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stock_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier.name if self.supplier else "Unknown",
            "order_date": to_utc_z(self.order_date),
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "status": self.status,
            "notes": self.notes,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    medicine = db.relationship("Medicine")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "medicine_id": self.medicine_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "created_at": to_utc_z(self.created_at),
        }
