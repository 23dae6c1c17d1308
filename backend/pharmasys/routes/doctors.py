# Overview: Flask API routes for the doctor directory.

"""
Doctor routes

SECURITY:
- Read: admin, pharmacist, doctor
- Write: admin
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import STAFF_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db
from ..services import records_service
from ..services.records_service import DOCTORS


doctors_bp = Blueprint("doctors", __name__, url_prefix="/api/doctors")


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


@doctors_bp.get("")
@require_access(*STAFF_ROLES)
def list_doctors():
    doctors = records_service.list_records(DOCTORS, search=request.args.get("q"))
    return jsonify({"items": [d.to_dict() for d in doctors], "count": len(doctors)}), 200


@doctors_bp.get("/<int:doctor_id>")
@require_access(*STAFF_ROLES)
def get_doctor(doctor_id: int):
    try:
        return jsonify(records_service.get_record(DOCTORS, doctor_id).to_dict()), 200
    except PharmaSysError as e:
        return error_response(e)


@doctors_bp.post("")
@require_access("admin")
def create_doctor():
    try:
        doctor = records_service.create_record(DOCTORS, request.get_json(silent=True))
        return jsonify(doctor.to_dict()), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("create doctor")


@doctors_bp.put("/<int:doctor_id>")
@require_access("admin")
def update_doctor(doctor_id: int):
    try:
        doctor = records_service.update_record(DOCTORS, doctor_id, request.get_json(silent=True))
        return jsonify(doctor.to_dict()), 200
    except PharmaSysError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("update doctor")


@doctors_bp.delete("/<int:doctor_id>")
@require_access("admin")
def delete_doctor(doctor_id: int):
    try:
        records_service.delete_record(DOCTORS, doctor_id)
        return jsonify({"ok": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("delete doctor")
