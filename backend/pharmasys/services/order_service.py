# Overview: Supplier purchase orders: lifecycle transitions, line items, and stock receipt on delivery.

"""
Purchase Orders

LIFECYCLE:
    pending  -> delivered   stock incremented once, delivered_at set
    pending  -> cancelled
    cancelled -> pending    reopen
    delivered -> delivered  no-op

Any other transition raises OrderStateError. A delivered order is terminal:
it cannot be edited, reopened, cancelled or deleted, because its stock has
already been applied. Line items can only be changed while pending.

total_amount is recomputed from the priced lines whenever lines change,
unless the client supplies it explicitly on create or update.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import NotFound, OrderStateError, PharmaSysError, ValidationError
from ..extensions import db
from ..models import Medicine, Order, OrderItem, ORDER_STATUSES, Supplier, User
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_amount,
    validate_line_items,
    validate_payload,
)
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry
from pharmasys.time_utils import utcnow


STATUS_PENDING = "pending"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

ALLOWED_TRANSITIONS = {
    (STATUS_PENDING, STATUS_DELIVERED),
    (STATUS_PENDING, STATUS_CANCELLED),
    (STATUS_CANCELLED, STATUS_PENDING),
}

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"supplier_id", "order_date", "expected_delivery_date", "total_amount", "notes"},
    required_on_create={"supplier_id"},
    aliases={
        "supplierId": "supplier_id",
        "orderDate": "order_date",
        "expectedDeliveryDate": "expected_delivery_date",
        "totalAmount": "total_amount",
    },
)


def _priced_total(items) -> Decimal | None:
    priced = [item for item in items if item.unit_price is not None]
    if not priced:
        return None
    return sum((item.unit_price * item.quantity for item in priced), Decimal("0.00"))


def _check_supplier(supplier_id: int) -> None:
    if db.session.get(Supplier, supplier_id) is None:
        raise ValidationError("supplier_id refers to an unknown supplier")


def _check_medicine(medicine_id: int) -> None:
    if db.session.get(Medicine, medicine_id) is None:
        raise ValidationError(f"Medicine {medicine_id} not found")


def _split_payload(payload: dict) -> tuple[dict, str | None, object]:
    if not isinstance(payload, dict):
        raise ValidationError("JSON object required")
    header = {k: v for k, v in payload.items() if k not in ("status", "items")}
    status = payload.get("status")
    if status is not None:
        if not isinstance(status, str) or status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")
    return header, status, payload.get("items")


def get_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound("Order not found")
    return order


def list_orders(*, status: str | None = None, supplier_id: int | None = None) -> list[Order]:
    query = db.session.query(Order)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")
        query = query.filter(Order.status == status)
    if supplier_id is not None:
        query = query.filter(Order.supplier_id == supplier_id)
    return query.order_by(Order.order_date.desc(), Order.id.desc()).all()


def recent_orders(limit: int = 5) -> list[Order]:
    return (
        db.session.query(Order)
        .order_by(Order.order_date.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )


def create_order(payload: dict, *, actor: User) -> Order:
    """New orders always start pending; status in the payload is ignored."""
    header, _, raw_items = _split_payload(payload)
    patch = validate_payload(model=Order, payload=header, policy=ORDER_POLICY, partial=False)
    enforce_rules_amount(patch)
    items = validate_line_items(raw_items, require_unit_price=False)

    try:
        _check_supplier(patch["supplier_id"])
        for item in items:
            _check_medicine(item["medicine_id"])

        order = Order(status=STATUS_PENDING, created_by_user_id=actor.id, **patch)
        for item in items:
            order.items.append(OrderItem(**item))
        if "total_amount" not in patch:
            order.total_amount = _priced_total(order.items)

        db.session.add(order)
        db.session.commit()
        return order
    except PharmaSysError:
        db.session.rollback()
        raise


def _apply_transition(order: Order, new_status: str) -> None:
    current = order.status
    if new_status == current:
        return
    if (current, new_status) not in ALLOWED_TRANSITIONS:
        raise OrderStateError(f"Cannot change order status from {current} to {new_status}")

    if new_status == STATUS_DELIVERED:
        inventory_service.receive_for_order(order)
        order.delivered_at = utcnow()

    order.status = new_status


def update_order(order_id: int, payload: dict) -> Order:
    """
    Edit header fields and/or move the order through its lifecycle.

    Setting status to delivered applies the stock increments in the same
    commit. On a delivered order the only accepted update is
    {"status": "delivered"}, which changes nothing.
    """
    header, new_status, raw_items = _split_payload(payload)
    if raw_items is not None:
        raise ValidationError("Use the order items endpoints to change items")
    patch = validate_payload(model=Order, payload=header, policy=ORDER_POLICY, partial=True)
    enforce_rules_amount(patch)

    def _op():
        try:
            order = get_order(order_id, lock=True)

            if order.status == STATUS_DELIVERED:
                if patch or new_status not in (None, STATUS_DELIVERED):
                    raise OrderStateError("Delivered orders cannot be modified")
                return order

            if "supplier_id" in patch:
                _check_supplier(patch["supplier_id"])
            for key, value in patch.items():
                setattr(order, key, value)

            if new_status is not None:
                _apply_transition(order, new_status)

            db.session.commit()
            return order
        except PharmaSysError:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def _pending_order(order_id: int) -> Order:
    order = get_order(order_id, lock=True)
    if order.status != STATUS_PENDING:
        raise OrderStateError("Items can only be changed on pending orders")
    return order


def add_item(order_id: int, payload: dict) -> OrderItem:
    items = validate_line_items([payload], require_unit_price=False, allow_empty=False)
    item_data = items[0]

    def _op():
        try:
            order = _pending_order(order_id)
            _check_medicine(item_data["medicine_id"])
            item = OrderItem(**item_data)
            order.items.append(item)
            order.total_amount = _priced_total(order.items)
            db.session.commit()
            return item
        except PharmaSysError:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def remove_item(order_id: int, item_id: int) -> None:
    def _op():
        try:
            order = _pending_order(order_id)
            item = next((i for i in order.items if i.id == item_id), None)
            if item is None:
                raise NotFound("Order item not found")
            order.items.remove(item)
            order.total_amount = _priced_total(order.items)
            db.session.commit()
        except PharmaSysError:
            db.session.rollback()
            raise

    run_with_retry(_op)


def delete_order(order_id: int) -> None:
    try:
        order = get_order(order_id)
        if order.status == STATUS_DELIVERED:
            raise OrderStateError("Delivered orders cannot be deleted")
        db.session.delete(order)
        db.session.commit()
    except PharmaSysError:
        db.session.rollback()
        raise
