from __future__ import annotations

from ..extensions import db
from pharmasys.time_utils import to_utc_z, to_iso_date, utcnow


class Patient(db.Model):
    __tablename__ = "patients"
    __table_args__ = (
        db.Index("ix_patients_name", "last_name", "first_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(32), nullable=True)
    allergies = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "contact_number": self.contact_number,
            "address": self.address,
            "date_of_birth": to_iso_date(self.date_of_birth),
            "gender": self.gender,
            "allergies": self.allergies,
            "created_at": to_utc_z(self.created_at),
        }


class Doctor(db.Model):
    __tablename__ = "doctors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    specialization = db.Column(db.String(128), nullable=True)
    license_number = db.Column(db.String(64), nullable=False, unique=True)
    contact_number = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "specialization": self.specialization,
            "license_number": self.license_number,
            "contact_number": self.contact_number,
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
        }


class Prescription(db.Model):
    """
    Prescription issued by a doctor for a patient.

    Prescriptions do not touch stock: medicine leaves the shelf only when a
    sale transaction (optionally referencing the prescription) is recorded.
    """
    __tablename__ = "prescriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    issue_date = db.Column(db.Date, nullable=False, default=lambda: utcnow().date())
    expiry_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    patient = db.relationship("Patient", backref=db.backref("prescriptions", lazy=True))
    doctor = db.relationship("Doctor", backref=db.backref("prescriptions", lazy=True))
    items = db.relationship(
        "PrescriptionItem",
        backref="prescription",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PrescriptionItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "issue_date": to_iso_date(self.issue_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PrescriptionItem(db.Model):
    __tablename__ = "prescription_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    prescription_id = db.Column(db.Integer, db.ForeignKey("prescriptions.id"), nullable=False, index=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    dosage = db.Column(db.String(128), nullable=False)
    frequency = db.Column(db.String(128), nullable=False)
    duration = db.Column(db.String(128), nullable=True)
    instructions = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "medicine_id": self.medicine_id,
            "quantity": self.quantity,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "duration": self.duration,
            "instructions": self.instructions,
            "created_at": to_utc_z(self.created_at),
        }
