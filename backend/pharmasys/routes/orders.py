# Overview: Flask API routes for supplier purchase orders and their line items.

"""
Purchase order routes (admin, pharmacist)

PUT /api/orders/<id> with {"status": "delivered"} receives the goods:
stock is incremented exactly once per order.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import INVENTORY_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_access(*INVENTORY_ROLES)
def list_orders():
    """Query params: status, supplier_id (both optional)."""
    try:
        orders = order_service.list_orders(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
        )
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
    except PharmaSysError as e:
        return error_response(e)


@orders_bp.get("/recent")
@require_access(*INVENTORY_ROLES)
def recent_orders():
    limit = min(max(request.args.get("limit", 5, type=int), 1), 50)
    orders = order_service.recent_orders(limit)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.get("/<int:order_id>")
@require_access(*INVENTORY_ROLES)
def get_order(order_id: int):
    try:
        return jsonify(order_service.get_order(order_id).to_dict(include_items=True)), 200
    except PharmaSysError as e:
        return error_response(e)


@orders_bp.post("")
@require_access(*INVENTORY_ROLES)
def create_order():
    try:
        order = order_service.create_order(request.get_json(silent=True), actor=g.current_user)
        return jsonify(order.to_dict(include_items=True)), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("create order")


@orders_bp.put("/<int:order_id>")
@require_access(*INVENTORY_ROLES)
def update_order(order_id: int):
    try:
        order = order_service.update_order(order_id, request.get_json(silent=True))
        return jsonify(order.to_dict(include_items=True)), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("update order")


@orders_bp.delete("/<int:order_id>")
@require_access(*INVENTORY_ROLES)
def delete_order(order_id: int):
    try:
        order_service.delete_order(order_id)
        return jsonify({"ok": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("delete order")


@orders_bp.post("/<int:order_id>/items")
@require_access(*INVENTORY_ROLES)
def add_order_item(order_id: int):
    try:
        item = order_service.add_item(order_id, request.get_json(silent=True))
        return jsonify(item.to_dict()), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("add order item")


@orders_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_access(*INVENTORY_ROLES)
def remove_order_item(order_id: int, item_id: int):
    try:
        order_service.remove_item(order_id, item_id)
        return jsonify({"ok": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("remove order item")
