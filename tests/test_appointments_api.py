"""Tests for booking, listing and completing appointments."""

from datetime import date
from unittest.mock import patch

from carelink.api import appointments
from carelink.database.models import Appointment, MedicalRecordAccessLog

from conftest import add_grant, add_link, add_record, at


def book(client, account, when, patient_id=None, **extra):
    body = {"appointment_date": when, **extra}
    if patient_id:
        body["patient_id"] = patient_id
    return client.post("/api/appointments", json=body, headers=account.headers)


def set_status(client, account, appointment_id, status):
    return client.post(
        f"/api/appointments/{appointment_id}/status",
        json={"status": status},
        headers=account.headers
    )


class TestBooking:

    def test_patient_books_for_self(self, client, patient):
        response = book(client, patient, at(2024, 2, 10))
        assert response.status_code == 201
        appointment = response.json()["appointment"]
        assert appointment["status"] == "booked"
        assert appointment["patient_id"] == patient.id
        assert appointment["patient_name"] == "Asha Menon"

    def test_doctor_books_without_link(self, client, doctor, patient):
        response = book(client, doctor, at(2024, 2, 10), patient_id=patient.id)
        assert response.status_code == 201
        assert response.json()["appointment"]["created_by"] == doctor.id

    def test_organization_needs_link(self, client, db, organization, patient):
        assert book(client, organization, at(2024, 2, 10), patient_id=patient.id).status_code == 403
        add_link(db, organization.id, patient.id, "active")
        assert book(client, organization, at(2024, 2, 10), patient_id=patient.id).status_code == 201

    def test_patient_cannot_book_for_others(self, client, patient, other_patient):
        assert book(client, patient, at(2024, 2, 10), patient_id=other_patient.id).status_code == 403

    def test_must_start_booked(self, client, patient):
        assert book(client, patient, at(2024, 2, 10), status="completed").status_code == 400

    def test_offset_times_stored_as_utc(self, client, patient):
        india = book(client, patient, "2024-02-10T10:00:00+05:30").json()["appointment"]
        utc = book(client, patient, "2024-02-10T10:00:00Z").json()["appointment"]
        local = book(client, patient, "2024-02-10T10:00:00").json()["appointment"]

        assert india["appointment_date"] == "2024-02-10T04:30:00"
        assert utc["appointment_date"] == "2024-02-10T10:00:00"
        assert local["appointment_date"] == "2024-02-10T10:00:00"


class TestListing:

    def test_grouped_by_day_ascending(self, client, patient):
        book(client, patient, at(2024, 2, 11, 9))
        book(client, patient, at(2024, 2, 10, 15))
        book(client, patient, at(2024, 2, 10, 9))

        listing = client.get("/api/appointments", headers=patient.headers).json()
        assert listing["total"] == 3
        assert [d["date"] for d in listing["days"]] == ["2024-02-10", "2024-02-11"]
        first_day = [a["appointment_date"] for a in listing["days"][0]["appointments"]]
        assert first_day == [at(2024, 2, 10, 9), at(2024, 2, 10, 15)]

    def test_doctor_sees_what_they_booked(self, client, db, doctor, patient, other_patient):
        add_link(db, doctor.id, patient.id, "approved")
        book(client, doctor, at(2024, 2, 10), patient_id=patient.id)
        book(client, other_patient, at(2024, 2, 12))

        listing = client.get("/api/appointments", headers=doctor.headers).json()
        assert listing["total"] == 1

    def test_doctor_bookings_hidden_without_link(self, client, db, doctor, patient, other_patient):
        add_link(db, doctor.id, patient.id, "approved")
        book(client, doctor, at(2024, 2, 10), patient_id=patient.id)
        book(client, doctor, at(2024, 2, 11), patient_id=other_patient.id)

        listing = client.get("/api/appointments", headers=doctor.headers).json()
        assert listing["total"] == 1
        assert listing["days"][0]["appointments"][0]["patient_id"] == patient.id

    def test_organization_bookings_hidden_without_grant(self, client, db, organization, patient):
        add_link(db, organization.id, patient.id, "approved")
        book(client, organization, at(2024, 2, 10), patient_id=patient.id)

        assert client.get("/api/appointments", headers=organization.headers).json()["total"] == 0

        add_grant(db, patient.id, organization.id)
        assert client.get("/api/appointments", headers=organization.headers).json()["total"] == 1

    def test_organization_read_gated_on_grant(self, client, db, organization, patient):
        book(client, patient, at(2024, 2, 10))
        url = f"/api/appointments?patient_id={patient.id}"

        assert client.get(url, headers=organization.headers).status_code == 403

        add_grant(db, patient.id, organization.id)
        assert client.get(url, headers=organization.headers).json()["total"] == 1


class TestStatusChanges:

    def test_complete_then_reopen_rejected(self, client, patient):
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]

        completed = set_status(client, patient, appointment_id, "completed")
        assert completed.status_code == 200
        assert completed.json()["appointment"]["status"] == "completed"

        reopened = set_status(client, patient, appointment_id, "booked")
        assert reopened.status_code == 409
        assert "completed" in reopened.json()["detail"]

    def test_cancelled_is_final(self, client, patient):
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]
        set_status(client, patient, appointment_id, "cancelled")
        assert set_status(client, patient, appointment_id, "completed").status_code == 409

    def test_unrelated_user_cannot_change_status(self, client, patient, other_patient):
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]
        assert set_status(client, other_patient, appointment_id, "cancelled").status_code == 403

    def test_unknown_status_value(self, client, patient):
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]
        assert set_status(client, patient, appointment_id, "rescheduled").status_code == 422

    def test_discharged_link_ignored_without_strict_recheck(self, client, db, organization, patient):
        link = add_link(db, organization.id, patient.id, "approved")
        appointment_id = book(client, organization, at(2024, 2, 10), patient_id=patient.id).json()["appointment"]["id"]
        link.status = "discharged"
        db.commit()

        assert set_status(client, organization, appointment_id, "completed").status_code == 200

    def test_strict_recheck_refuses_after_discharge(self, client, db, organization, patient):
        link = add_link(db, organization.id, patient.id, "approved")
        appointment_id = book(client, organization, at(2024, 2, 10), patient_id=patient.id).json()["appointment"]["id"]
        link.status = "discharged"
        db.commit()

        with patch.object(appointments, "STRICT_STATUS_RECHECK", True):
            response = set_status(client, organization, appointment_id, "completed")

        assert response.status_code == 403
        db.expire_all()
        assert db.get(Appointment, appointment_id).status == "booked"


class TestDetails:

    def test_linked_record_is_nearest_and_logged_once(self, client, db, doctor, patient):
        add_link(db, doctor.id, patient.id, "approved")
        add_record(db, patient.id, date(2024, 1, 1), title="jan")
        add_record(db, patient.id, date(2024, 3, 1), title="mar")
        feb = add_record(db, patient.id, date(2024, 2, 15), title="feb")
        appointment_id = book(client, doctor, at(2024, 2, 10), patient_id=patient.id).json()["appointment"]["id"]

        detail = client.get(f"/api/appointments/{appointment_id}", headers=doctor.headers)
        assert detail.status_code == 200
        assert detail.json()["linked_record"]["id"] == feb.id

        logs = db.query(MedicalRecordAccessLog).all()
        assert len(logs) == 1
        assert logs[0].medical_record_id == feb.id
        assert logs[0].context == f"appointment:{appointment_id}"

    def test_patient_viewing_own_appointment_is_not_logged(self, client, db, patient):
        add_record(db, patient.id, date(2024, 2, 9))
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]

        detail = client.get(f"/api/appointments/{appointment_id}", headers=patient.headers).json()
        assert detail["linked_record"] is not None
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_doctor_without_link_cannot_view_booking(self, client, db, doctor, patient):
        add_record(db, patient.id, date(2024, 2, 9), title="secret")
        appointment_id = book(client, doctor, at(2024, 2, 10), patient_id=patient.id).json()["appointment"]["id"]

        response = client.get(f"/api/appointments/{appointment_id}", headers=doctor.headers)
        assert response.status_code == 403
        assert "secret" not in response.text
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_organization_link_without_grant_cannot_view_booking(self, client, db, organization, patient):
        add_record(db, patient.id, date(2024, 2, 9), title="secret")
        add_link(db, organization.id, patient.id, "approved")
        appointment_id = book(client, organization, at(2024, 2, 10), patient_id=patient.id).json()["appointment"]["id"]

        assert client.get(f"/api/medical-records/patient/{patient.id}", headers=organization.headers).status_code == 403
        response = client.get(f"/api/appointments/{appointment_id}", headers=organization.headers)
        assert response.status_code == 403
        assert "secret" not in response.text
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_log_commit_failure_does_not_block_details(self, client, db, organization, patient):
        record = add_record(db, patient.id, date(2024, 2, 9), title="visible")
        add_grant(db, patient.id, organization.id)
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]

        with patch("sqlalchemy.orm.Session.commit", side_effect=RuntimeError("log store down")):
            response = client.get(f"/api/appointments/{appointment_id}", headers=organization.headers)

        assert response.status_code == 200
        assert response.json()["id"] == appointment_id
        assert response.json()["linked_record"]["id"] == record.id
        assert response.json()["linked_record"]["title"] == "visible"
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_no_records_means_no_link_and_no_log(self, client, db, doctor, patient):
        add_link(db, doctor.id, patient.id, "approved")
        appointment_id = book(client, doctor, at(2024, 2, 10), patient_id=patient.id).json()["appointment"]["id"]
        detail = client.get(f"/api/appointments/{appointment_id}", headers=doctor.headers).json()
        assert detail["linked_record"] is None
        assert db.query(MedicalRecordAccessLog).count() == 0

    def test_outsider_needs_read_access(self, client, db, organization, patient):
        appointment_id = book(client, patient, at(2024, 2, 10)).json()["appointment"]["id"]
        assert client.get(f"/api/appointments/{appointment_id}", headers=organization.headers).status_code == 403

        add_grant(db, patient.id, organization.id)
        assert client.get(f"/api/appointments/{appointment_id}", headers=organization.headers).status_code == 200

    def test_missing_appointment(self, client, patient):
        assert client.get("/api/appointments/nope", headers=patient.headers).status_code == 404
