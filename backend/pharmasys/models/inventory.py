from __future__ import annotations

from ..extensions import db
from pharmasys.time_utils import to_utc_z, to_iso_date


def _money(value) -> str | None:
    return str(value) if value is not None else None


class Medicine(db.Model):
    """
    Medicine master data with its on-hand stock level.

    STOCK INVARIANT: stock_quantity >= 0 always. It is only mutated through
    inventory_service (sale deductions, delivered purchase orders) or an
    explicit edit by an authorized user.

    CONCURRENCY: version_id is an optimistic lock column. Concurrent writers
    to the same row get StaleDataError and are retried by run_with_retry.
    """
    __tablename__ = "medicines"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_medicines_stock_non_negative"),
        db.Index("ix_medicines_name", "name"),
        db.Index("ix_medicines_expiry_date", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=False)
    manufacturer = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("medicines", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= (self.reorder_level or 0)

    def __repr__(self) -> str:
        return f"<Medicine id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "manufacturer": self.manufacturer,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "stock_quantity": self.stock_quantity,
            "unit_price": _money(self.unit_price),
            "reorder_level": self.reorder_level,
            "supplier_id": self.supplier_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    """Supplier master data; purchase orders are raised against a supplier."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "contact_number": self.contact_number,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }
