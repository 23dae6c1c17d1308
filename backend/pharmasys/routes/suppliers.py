# Overview: Flask API routes for suppliers and the purchase orders raised against them.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import INVENTORY_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db
from ..services import order_service, records_service
from ..services.records_service import SUPPLIERS


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("")
@require_access(*INVENTORY_ROLES)
def list_suppliers():
    suppliers = records_service.list_records(SUPPLIERS, search=request.args.get("q"))
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_access(*INVENTORY_ROLES)
def get_supplier(supplier_id: int):
    try:
        return jsonify(records_service.get_record(SUPPLIERS, supplier_id).to_dict()), 200
    except PharmaSysError as e:
        return error_response(e)


@suppliers_bp.get("/<int:supplier_id>/orders")
@require_access(*INVENTORY_ROLES)
def list_supplier_orders(supplier_id: int):
    try:
        records_service.get_record(SUPPLIERS, supplier_id)
        orders = order_service.list_orders(supplier_id=supplier_id)
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
    except PharmaSysError as e:
        return error_response(e)


@suppliers_bp.post("")
@require_access(*INVENTORY_ROLES)
def create_supplier():
    try:
        supplier = records_service.create_record(SUPPLIERS, request.get_json(silent=True))
        return jsonify(supplier.to_dict()), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("create supplier")


@suppliers_bp.put("/<int:supplier_id>")
@require_access(*INVENTORY_ROLES)
def update_supplier(supplier_id: int):
    try:
        supplier = records_service.update_record(SUPPLIERS, supplier_id, request.get_json(silent=True))
        return jsonify(supplier.to_dict()), 200
    except PharmaSysError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("update supplier")


@suppliers_bp.delete("/<int:supplier_id>")
@require_access(*INVENTORY_ROLES)
def delete_supplier(supplier_id: int):
    try:
        records_service.delete_record(SUPPLIERS, supplier_id)
        return jsonify({"ok": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("delete supplier")
