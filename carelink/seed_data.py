# Demo data: python -m carelink.seed_data
from datetime import date, datetime, time, timedelta

from carelink.api.auth import hash_password
from carelink.core.record_description import compose_description
from carelink.database.connection import Base, SessionLocal, engine
from carelink.database.models import (
    AcademicRecord,
    Appointment,
    AppointmentStatus,
    DoctorPatientLink,
    DoctorProfile,
    HealthcareOrganization,
    LinkStatus,
    MedicalRecord,
    MedicalRecordAccessLog,
    PatientEmergencyDetails,
    PatientOrganizationAccess,
    PatientProfile,
    PatientRecord,
    Profile,
    RecordType,
    UserRole,
)

DEMO_PASSWORD = "carelink-demo"

# Child tables first
SEEDED_TABLES = [
    MedicalRecordAccessLog,
    Appointment,
    MedicalRecord,
    PatientOrganizationAccess,
    DoctorPatientLink,
    AcademicRecord,
    DoctorProfile,
    PatientRecord,
    PatientEmergencyDetails,
    PatientProfile,
    HealthcareOrganization,
    Profile,
]


def clear_data(db):
    for model in SEEDED_TABLES:
        db.query(model).delete()
    db.commit()


def seed_data(db, force: bool = False) -> dict:
    """Insert demo accounts and data. Returns a summary of what was created."""
    existing_users = db.query(Profile).count()
    if existing_users > 0:
        if not force:
            print(f"⚠️ Database already has {existing_users} accounts. Skipping seeding.")
            return {}
        print("🗑️ Clearing existing data...")
        clear_data(db)

    # ==================== ACCOUNTS ====================
    print("\n👤 Creating accounts...")
    password_hash = hash_password(DEMO_PASSWORD)

    def account(email, full_name, role):
        user = Profile(email=email, password_hash=password_hash, full_name=full_name, role=role.value)
        db.add(user)
        return user

    patients = [
        account("asha.patient@carelink.dev", "Asha Menon", UserRole.PATIENT),
        account("vikram.patient@carelink.dev", "Vikram Rao", UserRole.PATIENT),
    ]
    doctor = account("meera.doctor@carelink.dev", "Dr. Meera Iyer", UserRole.DOCTOR)
    org_account = account("admin@citycare.carelink.dev", "CityCare Hospital", UserRole.HEALTHCARE_ORGANIZATION)
    db.flush()

    # ==================== PROFILES ====================
    print("🩺 Creating profiles...")
    org = HealthcareOrganization(
        id=org_account.id,
        name="CityCare Hospital",
        address="12 Lake Road, Chennai",
        contact_info="+91 44 4000 1000"
    )
    db.add(org)

    doctor_profile = DoctorProfile(
        user_id=doctor.id,
        specialization="Cardiology",
        years_of_experience=12,
        bio="Consultant cardiologist.",
        healthcare_organization_id=org.id
    )
    db.add(doctor_profile)
    db.flush()
    db.add(AcademicRecord(
        doctor_id=doctor_profile.id,
        degree_name="MD (Cardiology)",
        institution="Madras Medical College",
        year_obtained=2012
    ))

    db.add(PatientProfile(
        user_id=patients[0].id,
        phone="+919876543210",
        date_of_birth=date(1990, 4, 12),
        blood_group="O+"
    ))
    db.add(PatientEmergencyDetails(
        user_id=patients[0].id,
        emergency_contact_name="Ravi Menon",
        emergency_contact_phone="+919876500000",
        emergency_contact_relationship="Spouse",
        allergies="Penicillin"
    ))

    # ==================== LINKS & GRANTS ====================
    print("🔗 Creating links and grants...")
    db.add(DoctorPatientLink(
        doctor_id=doctor.id,
        patient_id=patients[0].id,
        status=LinkStatus.APPROVED.value,
        admission_date=datetime.now() - timedelta(days=30)
    ))
    db.add(DoctorPatientLink(
        doctor_id=doctor.id,
        patient_id=patients[1].id,
        status=LinkStatus.PENDING.value
    ))
    db.add(PatientOrganizationAccess(
        patient_id=patients[0].id,
        organization_id=org.id,
        has_access=True
    ))
    db.add(PatientRecord(
        full_name="Lakshmi Narayanan",
        date_of_birth=date(1958, 11, 3),
        phone="+919800011122",
        notes="Walk-in, follow up in two weeks",
        created_by=doctor.id
    ))

    # ==================== RECORDS & APPOINTMENTS ====================
    print("📄 Creating medical records and appointments...")
    today = date.today()
    records = [
        MedicalRecord(
            patient_id=patients[0].id,
            doctor_id=doctor.id,
            title="Cardiology consultation",
            record_type=RecordType.DIAGNOSIS.value,
            record_date=today - timedelta(days=14),
            description=compose_description({
                "objective": "Chest discomfort on exertion",
                "diagnosis": "Stable angina",
                "medicines": "Aspirin 75mg OD",
                "followup": "Review in 2 weeks"
            })
        ),
        MedicalRecord(
            patient_id=patients[0].id,
            title="Lipid profile",
            record_type=RecordType.LAB_REPORT.value,
            record_date=today - timedelta(days=10),
            description=compose_description({"notes": "LDL 160 mg/dL"})
        ),
    ]
    db.add_all(records)

    appointments = [
        Appointment(
            patient_id=patients[0].id,
            appointment_date=datetime.combine(today - timedelta(days=14), time(10, 30)),
            status=AppointmentStatus.COMPLETED.value,
            created_by=doctor.id
        ),
        Appointment(
            patient_id=patients[0].id,
            appointment_date=datetime.combine(today + timedelta(days=3), time(11, 0)),
            status=AppointmentStatus.BOOKED.value,
            notes="Follow-up",
            created_by=doctor.id
        ),
    ]
    db.add_all(appointments)

    db.commit()

    summary = {
        "accounts": 4,
        "organizations": 1,
        "links": 2,
        "grants": 1,
        "medical_records": len(records),
        "appointments": len(appointments)
    }

    print("\n" + "=" * 50)
    print("🎉 Database seeding completed successfully!")
    print("=" * 50)
    print(f"\n📊 Summary:")
    for name, count in summary.items():
        print(f"   {name}: {count}")
    print(f"\n🔑 All demo accounts use password: {DEMO_PASSWORD}")
    return summary


if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        force = False
        if session.query(Profile).count() > 0:
            response = input("Do you want to clear and re-seed? (yes/no): ")
            force = response.lower() == "yes"
        seed_data(session, force=force)
    except Exception as e:
        session.rollback()
        print(f"\n❌ Error during seeding: {e}")
        raise
    finally:
        session.close()
