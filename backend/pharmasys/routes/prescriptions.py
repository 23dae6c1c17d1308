# Overview: Flask API routes for prescriptions.

"""
Prescription routes

SECURITY:
- Read: admin, pharmacist, doctor
- Create: admin, doctor, pharmacist
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import STAFF_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db
from ..services import prescription_service


prescriptions_bp = Blueprint("prescriptions", __name__, url_prefix="/api/prescriptions")

PRESCRIBER_ROLES = ("admin", "doctor", "pharmacist")


@prescriptions_bp.get("")
@require_access(*STAFF_ROLES)
def list_prescriptions():
    """Query params: patient_id, doctor_id (both optional)."""
    prescriptions = prescription_service.list_prescriptions(
        patient_id=request.args.get("patient_id", type=int),
        doctor_id=request.args.get("doctor_id", type=int),
    )
    return jsonify({"items": [p.to_dict() for p in prescriptions], "count": len(prescriptions)}), 200


@prescriptions_bp.get("/<int:prescription_id>")
@require_access(*STAFF_ROLES)
def get_prescription(prescription_id: int):
    try:
        prescription = prescription_service.get_prescription(prescription_id)
        return jsonify(prescription.to_dict(include_items=True)), 200
    except PharmaSysError as e:
        return error_response(e)


@prescriptions_bp.post("")
@require_access(*PRESCRIBER_ROLES)
def create_prescription():
    try:
        prescription = prescription_service.create_prescription(request.get_json(silent=True))
        return jsonify(prescription.to_dict(include_items=True)), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create prescription")
        return jsonify({"error": "Internal server error"}), 500
