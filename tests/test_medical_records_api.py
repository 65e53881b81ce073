"""Tests for adding and viewing medical records over HTTP."""

from datetime import date
from unittest.mock import patch

from carelink.api import medical_records
from carelink.core.storage import WORD_DOCX
from carelink.database.models import MedicalRecord, MedicalRecordAccessLog

from conftest import PDF_BYTES, add_grant, add_link, add_record


def post_record(client, account, files=None, **form):
    data = {"title": "Consultation", "record_date": "2024-02-10", **form}
    return client.post("/api/medical-records", data=data, files=files, headers=account.headers)


class TestAddRecord:

    def test_patient_adds_own_record_with_attachment(self, client, storage, patient):
        response = post_record(
            client, patient,
            files={"file": ("scan.pdf", PDF_BYTES, "application/pdf")},
            record_type="lab_report",
            notes="Fasting sample"
        )
        assert response.status_code == 201, response.text

        record = response.json()["record"]
        assert record["doctor_id"] is None
        assert record["record_type"] == "lab_report"
        assert record["description"] == "Notes:\nFasting sample"
        assert record["attachment_url"] == f"/uploads/medical-records/{record['file_url']}"
        assert storage.exists(record["file_url"])

    def test_sections_composed_in_order(self, client, patient):
        response = post_record(client, patient, objective="Cough", diagnosis="Bronchitis", followup="5 days")
        assert response.json()["record"]["description"] == (
            "Objective:\nCough\n\nDiagnosis:\nBronchitis\n\nFollow-up:\n5 days"
        )

    def test_doctor_without_link_rejected_and_nothing_persisted(self, client, db, storage, doctor, patient):
        response = post_record(
            client, doctor,
            files={"file": ("scan.pdf", PDF_BYTES, "application/pdf")},
            patient_id=patient.id
        )
        assert response.status_code == 403
        assert db.query(MedicalRecord).count() == 0
        assert not (storage.base_dir / storage.bucket).exists()

    def test_doctor_with_pending_link_rejected(self, client, db, doctor, patient):
        add_link(db, doctor.id, patient.id, "pending")
        assert post_record(client, doctor, patient_id=patient.id).status_code == 403
        assert db.query(MedicalRecord).count() == 0

    def test_doctor_with_active_link_allowed(self, client, db, doctor, patient):
        add_link(db, doctor.id, patient.id, "active")
        response = post_record(client, doctor, patient_id=patient.id, diagnosis="Flu")
        assert response.status_code == 201
        assert response.json()["record"]["doctor_id"] == doctor.id

    def test_discharged_link_rejected(self, client, db, doctor, patient):
        add_link(db, doctor.id, patient.id, "discharged")
        assert post_record(client, doctor, patient_id=patient.id).status_code == 403

    def test_organization_needs_link_not_grant(self, client, db, organization, patient):
        add_grant(db, patient.id, organization.id)
        assert post_record(client, organization, patient_id=patient.id).status_code == 403

        add_link(db, organization.id, patient.id, "approved")
        assert post_record(client, organization, patient_id=patient.id).status_code == 201

    def test_patient_cannot_write_for_someone_else(self, client, patient, other_patient):
        assert post_record(client, patient, patient_id=other_patient.id).status_code == 403

    def test_invalid_attachment(self, client, db, patient):
        response = post_record(client, patient, files={"file": ("scan.pdf", b"not a pdf", "application/pdf")})
        assert response.status_code == 400
        assert response.json()["errors"]
        assert db.query(MedicalRecord).count() == 0

    def test_executable_disguised_as_docx_rejected(self, client, db, storage, patient):
        payload = b"MZ\x90\x00\x03\x00\x00\x00\x04\x00\x00\x00\xff\xff\x00\x00" + b"\x00" * 64
        response = post_record(client, patient, files={"file": ("x.docx", payload, WORD_DOCX)})
        assert response.status_code == 400
        assert db.query(MedicalRecord).count() == 0
        assert not list((storage.base_dir / storage.bucket).rglob("*.docx"))

    def test_unknown_record_type(self, client, patient):
        assert post_record(client, patient, record_type="horoscope").status_code == 422

    def test_insert_failure_keeps_upload_unless_compensating(self, client, storage, patient):
        files = {"file": ("scan.pdf", PDF_BYTES, "application/pdf")}
        root = storage.base_dir / storage.bucket

        with patch("sqlalchemy.orm.Session.commit", side_effect=RuntimeError("db down")):
            response = post_record(client, patient, files=files)
        assert response.status_code == 500
        assert len([p for p in root.rglob("*") if p.is_file()]) == 1

        with patch.object(medical_records, "COMPENSATE_ORPHANED_UPLOADS", True), \
             patch("sqlalchemy.orm.Session.commit", side_effect=RuntimeError("db down")):
            response = post_record(client, patient, files={"file": ("other.pdf", PDF_BYTES, "application/pdf")})
        assert response.status_code == 500
        assert len([p for p in root.rglob("*") if p.is_file()]) == 1


class TestViewHistory:

    def test_patient_lists_own_history_newest_first(self, client, db, patient):
        add_record(db, patient.id, date(2024, 1, 1), title="old")
        add_record(db, patient.id, date(2024, 3, 1), title="new")

        listing = client.get("/api/medical-records", headers=patient.headers).json()
        assert [r["title"] for r in listing["records"]] == ["new", "old"]

    def test_own_history_is_not_logged(self, client, db, patient):
        add_record(db, patient.id, date(2024, 1, 1))
        client.get(f"/api/medical-records/patient/{patient.id}", headers=patient.headers)
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_organization_with_grant_reads_and_is_logged(self, client, db, organization, patient):
        ids = {add_record(db, patient.id, date(2024, 1, d)).id for d in (1, 2)}
        add_grant(db, patient.id, organization.id)

        response = client.get(f"/api/medical-records/patient/{patient.id}", headers=organization.headers)
        assert response.status_code == 200
        assert response.json()["total"] == 2

        logs = db.query(MedicalRecordAccessLog).all()
        assert {log.medical_record_id for log in logs} == ids
        assert all(log.accessed_by == organization.id for log in logs)
        assert all(log.accessed_by_role == "healthcare_organization" for log in logs)

    def test_organization_without_grant_refused(self, client, db, organization, patient):
        add_record(db, patient.id, date(2024, 1, 1))
        response = client.get(f"/api/medical-records/patient/{patient.id}", headers=organization.headers)
        assert response.status_code == 403

    def test_revoked_grant_refused(self, client, db, organization, patient):
        add_grant(db, patient.id, organization.id, has_access=False)
        response = client.get(f"/api/medical-records/patient/{patient.id}", headers=organization.headers)
        assert response.status_code == 403

    def test_doctor_with_approved_link_reads(self, client, db, doctor, patient):
        add_record(db, patient.id, date(2024, 1, 1))
        add_link(db, doctor.id, patient.id, "approved")
        response = client.get(f"/api/medical-records/patient/{patient.id}", headers=doctor.headers)
        assert response.status_code == 200
        assert db.query(MedicalRecordAccessLog).count() == 1

    def test_doctor_with_pending_link_refused(self, client, db, doctor, patient):
        add_link(db, doctor.id, patient.id, "pending")
        response = client.get(f"/api/medical-records/patient/{patient.id}", headers=doctor.headers)
        assert response.status_code == 403

    def test_log_failure_does_not_block_read(self, client, db, organization, patient):
        add_record(db, patient.id, date(2024, 1, 1), title="visible")
        add_grant(db, patient.id, organization.id)

        with patch("carelink.core.access_log.MedicalRecordAccessLog", side_effect=RuntimeError("log store down")):
            response = client.get(f"/api/medical-records/patient/{patient.id}", headers=organization.headers)

        assert response.status_code == 200
        assert [r["title"] for r in response.json()["records"]] == ["visible"]
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_log_commit_failure_does_not_block_read(self, client, db, organization, patient):
        add_record(db, patient.id, date(2024, 1, 1), title="older")
        add_record(db, patient.id, date(2024, 2, 1), title="newer")
        add_grant(db, patient.id, organization.id)

        with patch("sqlalchemy.orm.Session.commit", side_effect=RuntimeError("log store down")):
            response = client.get(f"/api/medical-records/patient/{patient.id}", headers=organization.headers)

        assert response.status_code == 200
        assert [r["title"] for r in response.json()["records"]] == ["newer", "older"]
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_single_record_view(self, client, db, organization, patient):
        record = add_record(db, patient.id, date(2024, 1, 1))
        add_grant(db, patient.id, organization.id)

        response = client.get(f"/api/medical-records/{record.id}", headers=organization.headers)
        assert response.status_code == 200
        assert response.json()["id"] == record.id
        assert db.query(MedicalRecordAccessLog).count() == 1

    def test_missing_record(self, client, patient):
        assert client.get("/api/medical-records/nope", headers=patient.headers).status_code == 404
