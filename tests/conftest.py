"""Shared pytest fixtures."""

import os
import tempfile

# Must be set before any carelink module reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="carelink-test-uploads-")
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from datetime import date, datetime
from fastapi.testclient import TestClient

from carelink.core.storage import LocalStorage, get_storage
from carelink.database.connection import Base, SessionLocal, engine
from carelink.database.models import (
    DoctorPatientLink,
    HealthcareOrganization,
    LinkStatus,
    MedicalRecord,
    PatientOrganizationAccess,
)
from carelink.main import app

PASSWORD = "correct-horse-battery"

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


@pytest.fixture(autouse=True)
def reset_database():
    """Fresh schema for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    local = LocalStorage(base_dir=tmp_path, media_url="/uploads")
    app.dependency_overrides[get_storage] = lambda: local
    yield local
    app.dependency_overrides.pop(get_storage, None)


@pytest.fixture
def client(storage):
    with TestClient(app) as test_client:
        yield test_client


class Account:
    """A signed-up user with ready-made auth headers."""

    def __init__(self, data: dict):
        self.id = data["user"]["id"]
        self.role = data["user"]["role"]
        self.full_name = data["user"]["full_name"]
        self.access_token = data["access_token"]
        self.refresh_token = data["refresh_token"]
        self.headers = {"Authorization": f"Bearer {self.access_token}"}


def signup(client, email, role="patient", full_name=None) -> Account:
    response = client.post("/api/auth/signup", json={
        "email": email,
        "password": PASSWORD,
        "full_name": full_name or email.split("@")[0].title(),
        "role": role
    })
    assert response.status_code == 201, response.text
    return Account(response.json())


@pytest.fixture
def patient(client):
    return signup(client, "asha@example.com", "patient", "Asha Menon")


@pytest.fixture
def other_patient(client):
    return signup(client, "vikram@example.com", "patient", "Vikram Rao")


@pytest.fixture
def doctor(client):
    return signup(client, "meera@example.com", "doctor", "Dr. Meera Iyer")


@pytest.fixture
def organization(client, db):
    account = signup(client, "admin@citycare.example.com", "healthcare_organization", "CityCare")
    db.add(HealthcareOrganization(id=account.id, name="CityCare Hospital"))
    db.commit()
    return account


def add_link(db, doctor_id, patient_id, status=LinkStatus.APPROVED.value) -> DoctorPatientLink:
    link = DoctorPatientLink(doctor_id=doctor_id, patient_id=patient_id, status=status)
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def add_grant(db, patient_id, organization_id, has_access=True) -> PatientOrganizationAccess:
    grant = PatientOrganizationAccess(
        patient_id=patient_id,
        organization_id=organization_id,
        has_access=has_access
    )
    db.add(grant)
    db.commit()
    db.refresh(grant)
    return grant


def add_record(db, patient_id, record_date: date, title="Checkup", doctor_id=None) -> MedicalRecord:
    record = MedicalRecord(
        patient_id=patient_id,
        doctor_id=doctor_id,
        title=title,
        record_date=record_date,
        record_type="general"
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def at(year, month, day, hour=10, minute=0) -> str:
    return datetime(year, month, day, hour, minute).isoformat()
