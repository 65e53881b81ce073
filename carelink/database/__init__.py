# Database Package - Centralized imports
# Allows easy importing of models, connection utilities, and ORM objects

from .connection import (
    engine,
    Base,
    SessionLocal,
    get_db,
)

from .models import (
    # Enums
    UserRole,
    LinkStatus,
    AppointmentStatus,
    RecordType,

    # Accounts
    Profile,

    # Patient side
    PatientProfile,
    PatientEmergencyDetails,
    PatientRecord,

    # Doctor / organization side
    HealthcareOrganization,
    DoctorProfile,
    AcademicRecord,

    # Relationships & grants
    DoctorPatientLink,
    PatientOrganizationAccess,

    # Clinical data
    MedicalRecord,
    Appointment,
    MedicalRecordAccessLog,
)

__all__ = [
    # Connection
    "engine",
    "Base",
    "SessionLocal",
    "get_db",

    # Enums
    "UserRole",
    "LinkStatus",
    "AppointmentStatus",
    "RecordType",

    # Accounts
    "Profile",

    # Patient side
    "PatientProfile",
    "PatientEmergencyDetails",
    "PatientRecord",

    # Doctor / organization side
    "HealthcareOrganization",
    "DoctorProfile",
    "AcademicRecord",

    # Relationships & grants
    "DoctorPatientLink",
    "PatientOrganizationAccess",

    # Clinical data
    "MedicalRecord",
    "Appointment",
    "MedicalRecordAccessLog",
]
