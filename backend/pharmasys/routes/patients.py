# Overview: Flask API routes for patient records and their prescriptions.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import STAFF_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db
from ..services import prescription_service, records_service
from ..services.records_service import PATIENTS


patients_bp = Blueprint("patients", __name__, url_prefix="/api/patients")


def _internal_error(what: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", what)
    return jsonify({"error": "Internal server error"}), 500


@patients_bp.get("")
@require_access(*STAFF_ROLES)
def list_patients():
    patients = records_service.list_records(PATIENTS, search=request.args.get("q"))
    return jsonify({"items": [p.to_dict() for p in patients], "count": len(patients)}), 200


@patients_bp.get("/<int:patient_id>")
@require_access(*STAFF_ROLES)
def get_patient(patient_id: int):
    try:
        return jsonify(records_service.get_record(PATIENTS, patient_id).to_dict()), 200
    except PharmaSysError as e:
        return error_response(e)


@patients_bp.get("/<int:patient_id>/prescriptions")
@require_access(*STAFF_ROLES)
def list_patient_prescriptions(patient_id: int):
    try:
        records_service.get_record(PATIENTS, patient_id)
        prescriptions = prescription_service.list_prescriptions(patient_id=patient_id)
        return jsonify({
            "items": [p.to_dict(include_items=True) for p in prescriptions],
            "count": len(prescriptions),
        }), 200
    except PharmaSysError as e:
        return error_response(e)


@patients_bp.post("")
@require_access(*STAFF_ROLES)
def create_patient():
    try:
        patient = records_service.create_record(PATIENTS, request.get_json(silent=True))
        return jsonify(patient.to_dict()), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("create patient")


@patients_bp.put("/<int:patient_id>")
@require_access(*STAFF_ROLES)
def update_patient(patient_id: int):
    try:
        patient = records_service.update_record(PATIENTS, patient_id, request.get_json(silent=True))
        return jsonify(patient.to_dict()), 200
    except PharmaSysError as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        return _internal_error("update patient")


@patients_bp.delete("/<int:patient_id>")
@require_access(*STAFF_ROLES)
def delete_patient(patient_id: int):
    try:
        records_service.delete_record(PATIENTS, patient_id)
        return jsonify({"ok": True}), 200
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        return _internal_error("delete patient")
