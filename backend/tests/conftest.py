"""
Pytest fixtures for PharmaSys backend tests.

Provides the app on an in-memory database, a per-test table wipe, users
for every role, login helpers and a capturing mailer for email MFA codes.
"""

import re
from datetime import date
from decimal import Decimal

import pytest

from pharmasys import create_app
from pharmasys.extensions import MAILER_KEY, db
from pharmasys.models import Doctor, Medicine, Patient, Supplier
from pharmasys.services import auth_service


DEFAULT_PASSWORD = "Password123!"


class CapturingMailer:
    """Keeps sent messages in memory instead of delivering them."""

    def __init__(self):
        self.outbox = []

    def send(self, to_email, subject, body):
        self.outbox.append({"to": to_email, "subject": subject, "body": body})

    def last_code(self) -> str:
        assert self.outbox, "no mail was sent"
        return re.search(r"\b(\d{6})\b", self.outbox[-1]["body"]).group(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })
    app.extensions[MAILER_KEY] = CapturingMailer()

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        app.config['STOCK_OVERSELL_POLICY'] = 'clamp'
        app.extensions[MAILER_KEY].outbox.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def mailer(app):
    return app.extensions[MAILER_KEY]


@pytest.fixture
def make_user(db_session):
    def _make(username, role="pharmacist", password=DEFAULT_PASSWORD, **fields):
        return auth_service.create_user(
            username=username,
            password=password,
            name=fields.pop("name", username.title()),
            email=fields.pop("email", f"{username}@pharmasys.test"),
            role=role,
            **fields,
        )
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", role="admin")


@pytest.fixture
def pharmacist_user(make_user):
    return make_user("pharma", role="pharmacist")


@pytest.fixture
def doctor_user(make_user):
    return make_user("doc", role="doctor")


@pytest.fixture
def patient_user(make_user):
    return make_user("pat", role="patient")


def login(client, username: str, password: str = DEFAULT_PASSWORD):
    """POST /api/login and return the response."""
    return client.post('/api/login', json={'username': username, 'password': password})


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = login(client, username, password)
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture
def pharmacist_headers(client, pharmacist_user):
    return auth_headers(get_auth_token(client, pharmacist_user.username))


@pytest.fixture
def doctor_headers(client, doctor_user):
    return auth_headers(get_auth_token(client, doctor_user.username))


@pytest.fixture
def patient_headers(client, patient_user):
    return auth_headers(get_auth_token(client, patient_user.username))


@pytest.fixture
def supplier(db_session):
    supplier = Supplier(name="MedSupply Co", contact_person="Dana", email="orders@medsupply.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture
def make_medicine(db_session):
    def _make(name="Amoxicillin 500mg", stock=10, price="2.50", reorder_level=5, **fields):
        medicine = Medicine(
            name=name,
            category=fields.pop("category", "Antibiotic"),
            expiry_date=fields.pop("expiry_date", date(2030, 1, 1)),
            stock_quantity=stock,
            unit_price=Decimal(price),
            reorder_level=reorder_level,
            **fields,
        )
        db_session.add(medicine)
        db_session.commit()
        return medicine
    return _make


@pytest.fixture
def patient(db_session):
    patient = Patient(first_name="Jordan", last_name="Reyes", email="jordan@example.test")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def doctor(db_session):
    doctor = Doctor(first_name="Sam", last_name="Okafor", license_number="LIC-1001", specialization="GP")
    db_session.add(doctor)
    db_session.commit()
    return doctor
