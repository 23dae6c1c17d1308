# Overview: Stock reconciliation: deductions on sale, increments on delivered purchase orders.

"""
Inventory Reconciliation

STOCK INVARIANT: Medicine.stock_quantity never goes below zero.

SALES:
    deduct_for_sale() subtracts each line's quantity from its medicine.
    The oversell policy decides what happens when a line asks for more than
    is on hand:
    - "clamp" (default): stock floors at zero and a StockWarning is reported
    - "reject": InsufficientStock is raised before any row is changed

PURCHASE ORDERS:
    receive_for_order() adds each order line's quantity exactly once per
    order. Order.stock_applied_at is the marker; a second call is a no-op.

UNIT OF WORK:
    Neither function commits. Callers run them inside run_with_retry and
    commit once, so the transaction/order row and the stock changes land
    together. stock_low events are announced only after that commit
    (announce_low_stock), so observers never see uncommitted stock.

EXPIRY:
    expiring_medicines() lists stock whose expiry date falls within the
    next EXPIRY_WARNING_DAYS days, soonest first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from ..errors import InsufficientStock, ValidationError
from ..extensions import db
from ..models import Medicine, Order
from ..notifier import EventNotifier
from .concurrency import lock_for_update
from pharmasys.time_utils import utcnow


POLICY_CLAMP = "clamp"
POLICY_REJECT = "reject"
OVERSELL_POLICIES = (POLICY_CLAMP, POLICY_REJECT)

EXPIRY_WARNING_DAYS = 30


@dataclass(frozen=True)
class StockWarning:
    medicine_id: int
    medicine_name: str
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return self.requested - self.available

    def to_dict(self) -> dict:
        return {
            "medicine_id": self.medicine_id,
            "medicine_name": self.medicine_name,
            "requested": self.requested,
            "available": self.available,
            "shortfall": self.shortfall,
            "message": (
                f"Only {self.available} of {self.requested} units of "
                f"{self.medicine_name} were in stock; stock set to 0"
            ),
        }


@dataclass(frozen=True)
class LowStockLevel:
    medicine_id: int
    medicine_name: str
    stock_quantity: int
    reorder_level: int


@dataclass
class SaleStockResult:
    warnings: list[StockWarning] = field(default_factory=list)
    low_stock: list[LowStockLevel] = field(default_factory=list)


def _locked_medicine(medicine_id: int) -> Medicine:
    medicine = lock_for_update(db.session.query(Medicine).filter_by(id=medicine_id)).first()
    if medicine is None:
        raise ValidationError(f"Medicine {medicine_id} not found")
    return medicine


def _check_policy(policy: str) -> None:
    if policy not in OVERSELL_POLICIES:
        raise ValueError(f"Unknown stock oversell policy: {policy!r}")


def deduct_for_sale(items: Iterable[dict], *, policy: str = POLICY_CLAMP) -> SaleStockResult:
    """
    Apply sale lines ({medicine_id, quantity}) to stock.

    Lines for the same medicine are applied in order against the running
    stock. Under "reject" the totals per medicine are checked up front, so
    a rejected sale leaves every row untouched.
    """
    _check_policy(policy)
    items = list(items)

    medicines: dict[int, Medicine] = {}
    requested: dict[int, int] = {}
    for item in items:
        medicine_id = item["medicine_id"]
        if medicine_id not in medicines:
            medicines[medicine_id] = _locked_medicine(medicine_id)
        requested[medicine_id] = requested.get(medicine_id, 0) + item["quantity"]

    if policy == POLICY_REJECT:
        for medicine_id, quantity in requested.items():
            medicine = medicines[medicine_id]
            if quantity > medicine.stock_quantity:
                raise InsufficientStock(
                    f"Insufficient stock for {medicine.name}: "
                    f"requested {quantity}, available {medicine.stock_quantity}",
                    medicine_id=medicine_id,
                    requested=quantity,
                    available=medicine.stock_quantity,
                )

    result = SaleStockResult()
    for item in items:
        medicine = medicines[item["medicine_id"]]
        available = medicine.stock_quantity
        quantity = item["quantity"]
        if quantity > available:
            result.warnings.append(StockWarning(
                medicine_id=medicine.id,
                medicine_name=medicine.name,
                requested=quantity,
                available=available,
            ))
        medicine.stock_quantity = max(available - quantity, 0)

    for medicine in medicines.values():
        if medicine.is_low_stock:
            result.low_stock.append(LowStockLevel(
                medicine_id=medicine.id,
                medicine_name=medicine.name,
                stock_quantity=medicine.stock_quantity,
                reorder_level=medicine.reorder_level,
            ))

    db.session.flush()
    return result


def announce_low_stock(
    result: SaleStockResult,
    *,
    notifier: EventNotifier | None,
    actor_username: str,
) -> None:
    """Emit one stock_low event per medicine left at or below its reorder level."""
    if notifier is None:
        return
    for level in result.low_stock:
        notifier.emit(
            actor_username,
            "stock_low",
            medicine_id=level.medicine_id,
            medicine_name=level.medicine_name,
            stock_quantity=level.stock_quantity,
            reorder_level=level.reorder_level,
        )


def receive_for_order(order: Order) -> bool:
    """
    Add every order line to stock, once per order.

    Returns True if the increments were applied now, False if they had
    already been applied earlier.
    """
    if order.stock_applied_at is not None:
        return False

    for item in order.items:
        medicine = _locked_medicine(item.medicine_id)
        medicine.stock_quantity = medicine.stock_quantity + item.quantity

    order.stock_applied_at = utcnow()
    db.session.flush()
    return True


def low_stock_medicines() -> list[Medicine]:
    return (
        db.session.query(Medicine)
        .filter(Medicine.stock_quantity <= Medicine.reorder_level)
        .order_by(Medicine.stock_quantity.asc(), Medicine.name.asc())
        .all()
    )


def expiring_medicines(
    days: int = EXPIRY_WARNING_DAYS,
    *,
    include_expired: bool = False,
    today: date | None = None,
) -> list[Medicine]:
    """
    Medicines expiring between today and today + days (both inclusive).

    include_expired also returns stock whose expiry date has already passed.
    """
    if days < 0:
        raise ValidationError("days must be zero or positive")

    today = today or utcnow().date()
    query = db.session.query(Medicine).filter(Medicine.expiry_date <= today + timedelta(days=days))
    if not include_expired:
        query = query.filter(Medicine.expiry_date >= today)

    return query.order_by(Medicine.expiry_date.asc(), Medicine.name.asc()).all()
