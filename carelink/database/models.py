"""
CareLink - Database Models
Profiles, care relationships, organization grants, medical records,
appointments and the medical record access audit trail
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Boolean, Date, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from .connection import Base
import enum
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================
# ENUMS
# ============================================

class UserRole(str, enum.Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    HEALTHCARE_ORGANIZATION = "healthcare_organization"


class LinkStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    APPROVED = "approved"
    DISCHARGED = "discharged"


class AppointmentStatus(str, enum.Enum):
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RecordType(str, enum.Enum):
    GENERAL = "general"
    DIAGNOSIS = "diagnosis"
    PRESCRIPTION = "prescription"
    LAB_REPORT = "lab_report"
    LAB = "lab"
    IMAGING = "imaging"
    REFERRAL = "referral"
    DISCHARGE = "discharge"


# ============================================
# ACCOUNTS
# ============================================

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    role = Column(String(30), nullable=False)  # patient | doctor | healthcare_organization

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    patient_profile = relationship("PatientProfile", back_populates="user", uselist=False)
    emergency_details = relationship("PatientEmergencyDetails", back_populates="user", uselist=False)
    doctor_profile = relationship("DoctorProfile", back_populates="user", uselist=False)
    organization = relationship("HealthcareOrganization", back_populates="account", uselist=False)


# ============================================
# PATIENT SIDE
# ============================================

class PatientProfile(Base):
    __tablename__ = "patient_profiles"

    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    phone = Column(String(30))
    address = Column(Text)
    date_of_birth = Column(Date)
    blood_group = Column(String(5))
    insurance_id = Column(String(50))

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    user = relationship("Profile", back_populates="patient_profile")


class PatientEmergencyDetails(Base):
    __tablename__ = "patient_emergency_details"

    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    emergency_contact_name = Column(String(100))
    emergency_contact_phone = Column(String(30))
    emergency_contact_relationship = Column(String(50))
    allergies = Column(Text)
    chronic_conditions = Column(Text)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    user = relationship("Profile", back_populates="emergency_details")


class PatientRecord(Base):
    """Directory entry kept privately by the doctor/organization that created it"""
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=new_id)
    full_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    phone = Column(String(30))
    email = Column(String(255))
    notes = Column(Text)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


# ============================================
# DOCTOR / ORGANIZATION SIDE
# ============================================

class HealthcareOrganization(Base):
    __tablename__ = "healthcare_organizations"

    # Same id as the organization account's profile
    id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String(200), nullable=False)
    address = Column(Text)
    contact_info = Column(Text)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    account = relationship("Profile", back_populates="organization")
    doctors = relationship("DoctorProfile", back_populates="organization")


class DoctorProfile(Base):
    __tablename__ = "doctor_profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False)
    specialization = Column(String(100))
    years_of_experience = Column(Integer)
    bio = Column(Text)
    healthcare_organization_id = Column(String(36), ForeignKey("healthcare_organizations.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    user = relationship("Profile", back_populates="doctor_profile")
    organization = relationship("HealthcareOrganization", back_populates="doctors")
    academic_records = relationship("AcademicRecord", back_populates="doctor", cascade="all, delete-orphan")


class AcademicRecord(Base):
    __tablename__ = "academic_records"

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_id = Column(String(36), ForeignKey("doctor_profiles.id", ondelete="CASCADE"), nullable=False)
    degree_name = Column(String(200), nullable=False)
    institution = Column(String(200), nullable=False)
    year_obtained = Column(Integer, nullable=False)
    certificate_url = Column(Text)

    created_at = Column(DateTime, default=datetime.now)

    doctor = relationship("DoctorProfile", back_populates="academic_records")


# ============================================
# RELATIONSHIPS & GRANTS
# ============================================

class DoctorPatientLink(Base):
    __tablename__ = "doctor_patients"

    id = Column(String(36), primary_key=True, default=new_id)
    doctor_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String(20), default=LinkStatus.PENDING.value, nullable=False)
    admission_date = Column(DateTime, default=datetime.now, nullable=False)
    discharge_date = Column(DateTime, nullable=True)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class PatientOrganizationAccess(Base):
    __tablename__ = "patient_organization_access"
    __table_args__ = (
        UniqueConstraint("patient_id", "organization_id", name="uq_patient_organization"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    patient_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    organization_id = Column(String(36), ForeignKey("healthcare_organizations.id"), nullable=False, index=True)
    has_access = Column(Boolean, default=True, nullable=False)
    granted_at = Column(DateTime, default=datetime.now, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    organization = relationship("HealthcareOrganization")


# ============================================
# CLINICAL DATA
# ============================================

class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(String(36), primary_key=True, default=new_id)
    patient_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("profiles.id"), nullable=True)  # None when self-authored
    title = Column(String(200), nullable=False)
    description = Column(Text)
    record_date = Column(Date, nullable=False)
    record_type = Column(String(30), default=RecordType.GENERAL.value, nullable=False)
    file_url = Column(Text)  # storage path, not a URL

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    access_logs = relationship("MedicalRecordAccessLog", back_populates="medical_record")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=new_id)
    patient_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    appointment_date = Column(DateTime, nullable=False)
    status = Column(String(20), default=AppointmentStatus.BOOKED.value, nullable=False)  # booked | completed | cancelled
    notes = Column(Text)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    patient = relationship("Profile", foreign_keys=[patient_id])


class MedicalRecordAccessLog(Base):
    __tablename__ = "medical_record_access_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    medical_record_id = Column(String(36), ForeignKey("medical_records.id"), nullable=False, index=True)
    accessed_by = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    accessed_by_role = Column(String(30))
    access_type = Column(String(30))
    context = Column(Text)
    accessed_at = Column(DateTime, default=datetime.now, nullable=False)

    medical_record = relationship("MedicalRecord", back_populates="access_logs")
