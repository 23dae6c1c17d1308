# Overview: Generic create/read/update/delete for the plain master-data records.

"""
Master Data Records

Medicines, patients, doctors and suppliers share one CRUD path. Each record
type declares its validation policy (writable fields, required fields,
camelCase aliases), foreign keys that must point at existing rows, and the
rows that reference it (which block deletion).

Stock levels are editable here only as an explicit correction by an
authorized user; sales and deliveries go through inventory_service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import (
    Doctor,
    Medicine,
    OrderItem,
    Order,
    Patient,
    Prescription,
    PrescriptionItem,
    Supplier,
    Transaction,
    TransactionItem,
)
from ..validation import ModelValidationPolicy, enforce_rules_medicine, validate_payload


@dataclass(frozen=True)
class RecordType:
    model: type
    label: str
    policy: ModelValidationPolicy
    order_by: tuple
    search_columns: tuple = ()
    # column key -> referenced model
    foreign_keys: dict = field(default_factory=dict)
    # (referencing model, referencing column key)
    referenced_by: tuple = ()
    rules: Callable[[dict], None] | None = None


MEDICINES = RecordType(
    model=Medicine,
    label="Medicine",
    policy=ModelValidationPolicy(
        writable_fields={
            "name", "description", "category", "manufacturer", "batch_number",
            "expiry_date", "stock_quantity", "unit_price", "reorder_level", "supplier_id",
        },
        required_on_create={"name", "category", "expiry_date", "unit_price"},
        aliases={
            "batchNumber": "batch_number",
            "expiryDate": "expiry_date",
            "stockQuantity": "stock_quantity",
            "unitPrice": "unit_price",
            "reorderLevel": "reorder_level",
            "supplierId": "supplier_id",
        },
    ),
    order_by=(Medicine.name.asc(), Medicine.id.asc()),
    search_columns=(Medicine.name, Medicine.category, Medicine.manufacturer),
    foreign_keys={"supplier_id": Supplier},
    referenced_by=(
        (TransactionItem, "medicine_id"),
        (OrderItem, "medicine_id"),
        (PrescriptionItem, "medicine_id"),
    ),
    rules=enforce_rules_medicine,
)

PATIENTS = RecordType(
    model=Patient,
    label="Patient",
    policy=ModelValidationPolicy(
        writable_fields={
            "first_name", "last_name", "email", "contact_number", "address",
            "date_of_birth", "gender", "allergies",
        },
        required_on_create={"first_name", "last_name"},
        aliases={
            "firstName": "first_name",
            "lastName": "last_name",
            "contactNumber": "contact_number",
            "dateOfBirth": "date_of_birth",
        },
    ),
    order_by=(Patient.last_name.asc(), Patient.first_name.asc(), Patient.id.asc()),
    search_columns=(Patient.first_name, Patient.last_name, Patient.email),
    referenced_by=(
        (Transaction, "patient_id"),
        (Prescription, "patient_id"),
    ),
)

DOCTORS = RecordType(
    model=Doctor,
    label="Doctor",
    policy=ModelValidationPolicy(
        writable_fields={
            "first_name", "last_name", "specialization", "license_number",
            "contact_number", "email",
        },
        required_on_create={"first_name", "last_name", "license_number"},
        aliases={
            "firstName": "first_name",
            "lastName": "last_name",
            "licenseNumber": "license_number",
            "contactNumber": "contact_number",
        },
    ),
    order_by=(Doctor.last_name.asc(), Doctor.first_name.asc(), Doctor.id.asc()),
    search_columns=(Doctor.first_name, Doctor.last_name, Doctor.specialization),
    referenced_by=((Prescription, "doctor_id"),),
)

SUPPLIERS = RecordType(
    model=Supplier,
    label="Supplier",
    policy=ModelValidationPolicy(
        writable_fields={"name", "contact_person", "email", "contact_number", "address"},
        required_on_create={"name"},
        aliases={
            "contactPerson": "contact_person",
            "contactNumber": "contact_number",
        },
    ),
    order_by=(Supplier.name.asc(), Supplier.id.asc()),
    search_columns=(Supplier.name, Supplier.contact_person),
    referenced_by=(
        (Order, "supplier_id"),
        (Medicine, "supplier_id"),
    ),
)


def _check_foreign_keys(kind: RecordType, patch: dict) -> None:
    for key, target in kind.foreign_keys.items():
        value = patch.get(key)
        if value is not None and db.session.get(target, value) is None:
            raise ValidationError(f"{key} refers to an unknown {target.__name__.lower()}")


def _validated(kind: RecordType, payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=kind.model, payload=payload, policy=kind.policy, partial=partial)
    if kind.rules is not None:
        kind.rules(patch)
    _check_foreign_keys(kind, patch)
    return patch


def _commit(kind: RecordType) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{kind.label} conflicts with an existing record")
    except StaleDataError:
        db.session.rollback()
        raise ConflictError(f"{kind.label} was modified concurrently, reload and retry")


def list_records(kind: RecordType, *, search: str | None = None) -> list:
    query = db.session.query(kind.model)
    if search and kind.search_columns:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(*[col.ilike(pattern) for col in kind.search_columns]))
    return query.order_by(*kind.order_by).all()


def get_record(kind: RecordType, record_id: int):
    record = db.session.get(kind.model, record_id)
    if record is None:
        raise NotFound(f"{kind.label} not found")
    return record


def create_record(kind: RecordType, payload: dict):
    patch = _validated(kind, payload, partial=False)
    record = kind.model(**patch)
    db.session.add(record)
    _commit(kind)
    return record


def update_record(kind: RecordType, record_id: int, payload: dict):
    record = get_record(kind, record_id)
    patch = _validated(kind, payload, partial=True)
    for key, value in patch.items():
        setattr(record, key, value)
    _commit(kind)
    return record


def delete_record(kind: RecordType, record_id: int) -> None:
    """Refuses (ConflictError) while other records still point at this one."""
    record = get_record(kind, record_id)

    for model, column_key in kind.referenced_by:
        in_use = db.session.query(model.id).filter(
            getattr(model, column_key) == record_id
        ).first()
        if in_use is not None:
            raise ConflictError(
                f"{kind.label} is referenced by existing {model.__tablename__} and cannot be deleted"
            )

    db.session.delete(record)
    _commit(kind)
