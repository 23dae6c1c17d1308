# Overview: Flask API routes for the medicine catalogue and stock levels.

"""
Medicine routes

SECURITY:
- Read: admin, pharmacist, doctor
- Write: admin, pharmacist
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import INVENTORY_ROLES, STAFF_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db
from ..services import inventory_service, records_service
from ..services.records_service import MEDICINES


medicines_bp = Blueprint("medicines", __name__, url_prefix="/api/medicines")


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


@medicines_bp.get("")
@require_access(*STAFF_ROLES)
def list_medicines():
    """Query params: q (optional) - matches name, category or manufacturer."""
    medicines = records_service.list_records(MEDICINES, search=request.args.get("q"))
    return jsonify({"items": [m.to_dict() for m in medicines], "count": len(medicines)}), 200


@medicines_bp.get("/low-stock")
@require_access(*STAFF_ROLES)
def low_stock_medicines():
    medicines = inventory_service.low_stock_medicines()
    return jsonify({"items": [m.to_dict() for m in medicines], "count": len(medicines)}), 200


@medicines_bp.get("/expiring")
@require_access(*STAFF_ROLES)
def expiring_medicines():
    """Query params: days (default 30), include_expired (true/false)."""
    try:
        days = request.args.get("days", inventory_service.EXPIRY_WARNING_DAYS, type=int)
        include_expired = request.args.get("include_expired", "").lower() in ("1", "true", "yes")
        medicines = inventory_service.expiring_medicines(days, include_expired=include_expired)
        return jsonify({"items": [m.to_dict() for m in medicines], "count": len(medicines)}), 200
    except PharmaSysError as e:
        return error_response(e)


@medicines_bp.get("/<int:medicine_id>")
@require_access(*STAFF_ROLES)
def get_medicine(medicine_id: int):
    try:
        return jsonify(records_service.get_record(MEDICINES, medicine_id).to_dict()), 200
    except PharmaSysError as e:
        return error_response(e)


@medicines_bp.post("")
@require_access(*INVENTORY_ROLES)
def create_medicine():
    try:
        medicine = records_service.create_record(MEDICINES, request.get_json(silent=True))
        return jsonify(medicine.to_dict()), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("create medicine")


@medicines_bp.put("/<int:medicine_id>")
@require_access(*INVENTORY_ROLES)
def update_medicine(medicine_id: int):
    try:
        medicine = records_service.update_record(MEDICINES, medicine_id, request.get_json(silent=True))
        return jsonify(medicine.to_dict()), 200
    except PharmaSysError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("update medicine")


@medicines_bp.delete("/<int:medicine_id>")
@require_access(*INVENTORY_ROLES)
def delete_medicine(medicine_id: int):
    try:
        records_service.delete_record(MEDICINES, medicine_id)
        return jsonify({"ok": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("delete medicine")
