# Overview: Prescriptions issued for a patient by a doctor, with their medicine lines.

from __future__ import annotations

from ..errors import NotFound, PharmaSysError, ValidationError
from ..extensions import db
from ..models import Doctor, Medicine, Patient, Prescription, PrescriptionItem
from ..validation import ModelValidationPolicy, validate_line_items, validate_payload


PRESCRIPTION_STATUSES = ("active", "completed", "cancelled")

PRESCRIPTION_POLICY = ModelValidationPolicy(
    writable_fields={"patient_id", "doctor_id", "issue_date", "expiry_date", "status", "notes"},
    required_on_create={"patient_id", "doctor_id"},
    aliases={
        "patientId": "patient_id",
        "doctorId": "doctor_id",
        "issueDate": "issue_date",
        "expiryDate": "expiry_date",
    },
)

ITEM_TEXT_FIELDS = {"dosage", "frequency", "duration", "instructions"}


def create_prescription(payload: dict) -> Prescription:
    """
    Each item needs medicine_id, quantity, dosage and frequency.
    Prescriptions never touch stock.
    """
    if not isinstance(payload, dict):
        raise ValidationError("JSON object required")

    header = {k: v for k, v in payload.items() if k != "items"}
    patch = validate_payload(model=Prescription, payload=header, policy=PRESCRIPTION_POLICY, partial=False)
    if patch.get("status") is not None and patch["status"] not in PRESCRIPTION_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(PRESCRIPTION_STATUSES)}")
    if patch.get("issue_date") and patch.get("expiry_date") and patch["expiry_date"] < patch["issue_date"]:
        raise ValidationError("expiry_date cannot be before issue_date")

    items = validate_line_items(
        payload.get("items"),
        require_unit_price=False,
        allow_empty=False,
        extra_fields=ITEM_TEXT_FIELDS,
    )
    for index, item in enumerate(items):
        item.pop("unit_price", None)
        for required in ("dosage", "frequency"):
            if not item.get(required):
                raise ValidationError(f"items[{index}].{required} is required")

    try:
        if db.session.get(Patient, patch["patient_id"]) is None:
            raise ValidationError("patient_id refers to an unknown patient")
        if db.session.get(Doctor, patch["doctor_id"]) is None:
            raise ValidationError("doctor_id refers to an unknown doctor")
        for item in items:
            if db.session.get(Medicine, item["medicine_id"]) is None:
                raise ValidationError(f"Medicine {item['medicine_id']} not found")

        prescription = Prescription(**patch)
        for item in items:
            prescription.items.append(PrescriptionItem(**item))

        db.session.add(prescription)
        db.session.commit()
        return prescription
    except PharmaSysError:
        db.session.rollback()
        raise


def get_prescription(prescription_id: int) -> Prescription:
    prescription = db.session.get(Prescription, prescription_id)
    if prescription is None:
        raise NotFound("Prescription not found")
    return prescription


def list_prescriptions(*, patient_id: int | None = None, doctor_id: int | None = None) -> list[Prescription]:
    query = db.session.query(Prescription)
    if patient_id is not None:
        query = query.filter(Prescription.patient_id == patient_id)
    if doctor_id is not None:
        query = query.filter(Prescription.doctor_id == doctor_id)
    return query.order_by(Prescription.issue_date.desc(), Prescription.id.desc()).all()
