"""Tests for patient and doctor profiles."""

from carelink.database.models import DoctorProfile


class TestPatientProfile:

    def test_empty_profile_is_valid(self, client, patient):
        response = client.get("/api/profile/patient", headers=patient.headers)
        assert response.status_code == 200
        body = response.json()
        assert body["profile"]["full_name"] == "Asha Menon"
        assert body["profile"]["blood_group"] is None
        assert body["emergency_details"]["allergies"] is None

    def test_upsert_profile(self, client, patient):
        first = client.put("/api/profile/patient", json={"blood_group": "O+", "date_of_birth": "1990-04-12"},
                           headers=patient.headers)
        assert first.status_code == 200

        second = client.put("/api/profile/patient", json={"phone": "+919876543210", "full_name": "Asha M"},
                            headers=patient.headers)
        profile = second.json()["profile"]
        assert profile["blood_group"] == "O+"
        assert profile["phone"] == "+919876543210"
        assert profile["full_name"] == "Asha M"

    def test_invalid_blood_group(self, client, patient):
        assert client.put("/api/profile/patient", json={"blood_group": "Q"}, headers=patient.headers).status_code == 422

    def test_doctor_cannot_write_patient_profile(self, client, doctor):
        assert client.put("/api/profile/patient", json={"phone": "1"}, headers=doctor.headers).status_code == 403

    def test_emergency_details_public_to_signed_in_users(self, client, patient, doctor):
        client.put("/api/profile/emergency", json={"allergies": "Penicillin"}, headers=patient.headers)

        response = client.get(f"/api/profile/emergency/{patient.id}", headers=doctor.headers)
        assert response.status_code == 200
        assert response.json()["allergies"] == "Penicillin"
        assert response.json()["full_name"] == "Asha Menon"

    def test_emergency_details_for_non_patient(self, client, patient, doctor):
        assert client.get(f"/api/profile/emergency/{doctor.id}", headers=patient.headers).status_code == 404


class TestDoctorProfile:

    def test_profile_created_on_first_read(self, client, db, doctor):
        assert db.query(DoctorProfile).count() == 0
        response = client.get("/api/profile/doctor", headers=doctor.headers)
        assert response.status_code == 200
        assert response.json()["academic_records"] == []
        assert db.query(DoctorProfile).count() == 1

        client.get("/api/profile/doctor", headers=doctor.headers)
        assert db.query(DoctorProfile).count() == 1

    def test_update_with_organization(self, client, doctor, organization):
        response = client.put("/api/profile/doctor", json={
            "specialization": "Neurology",
            "years_of_experience": 8,
            "healthcare_organization_id": organization.id
        }, headers=doctor.headers)
        assert response.status_code == 200
        assert response.json()["doctor"]["organization_name"] == "CityCare Hospital"

    def test_update_with_unknown_organization(self, client, doctor):
        response = client.put("/api/profile/doctor", json={"healthcare_organization_id": "nope"}, headers=doctor.headers)
        assert response.status_code == 404

    def test_academic_records(self, client, doctor):
        added = client.post("/api/profile/doctor/academic-records", json={
            "degree_name": "MBBS",
            "institution": "AIIMS",
            "year_obtained": 2010
        }, headers=doctor.headers)
        assert added.status_code == 201
        record_id = added.json()["academic_record"]["id"]

        profile = client.get("/api/profile/doctor", headers=doctor.headers).json()
        assert [r["degree_name"] for r in profile["academic_records"]] == ["MBBS"]

        assert client.delete(f"/api/profile/doctor/academic-records/{record_id}", headers=doctor.headers).status_code == 200
        assert client.get("/api/profile/doctor", headers=doctor.headers).json()["academic_records"] == []

    def test_patients_have_no_doctor_profile(self, client, patient):
        assert client.get("/api/profile/doctor", headers=patient.headers).status_code == 403

    def test_doctors_directory(self, client, patient, doctor):
        client.put("/api/profile/doctor", json={"specialization": "Cardiology"}, headers=doctor.headers)
        listing = client.get("/api/profile/doctors", headers=patient.headers).json()
        assert listing["total"] == 1
        assert listing["doctors"][0]["specialization"] == "Cardiology"
