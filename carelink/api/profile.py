"""
👤 Profiles

Patient profile and emergency details, doctor profile with academic
records, and the public doctors directory.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime
import logging

from carelink.api.auth import get_request_context, require_role
from carelink.core.access import Resource, ensure_can_write
from carelink.core.context import RequestContext
from carelink.database.connection import get_db
from carelink.database.models import (
    AcademicRecord,
    DoctorProfile,
    HealthcareOrganization,
    PatientEmergencyDetails,
    PatientProfile,
    Profile,
    UserRole,
)

router = APIRouter(prefix="/api/profile", tags=["Profile"])
logger = logging.getLogger(__name__)

# ==================== PYDANTIC MODELS ====================

class PatientProfileRequest(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    blood_group: Optional[str] = Field(None, pattern=r"^(A|B|AB|O)[+-]$", description="A+, B+, O+, etc.")
    insurance_id: Optional[str] = Field(None, max_length=50)

class EmergencyDetailsRequest(BaseModel):
    emergency_contact_name: Optional[str] = Field(None, max_length=100)
    emergency_contact_phone: Optional[str] = Field(None, max_length=30)
    emergency_contact_relationship: Optional[str] = Field(None, max_length=50)
    allergies: Optional[str] = None
    chronic_conditions: Optional[str] = None

class DoctorProfileRequest(BaseModel):
    specialization: Optional[str] = Field(None, max_length=100)
    years_of_experience: Optional[int] = Field(None, ge=0, le=80)
    bio: Optional[str] = None
    healthcare_organization_id: Optional[str] = None

class AcademicRecordRequest(BaseModel):
    degree_name: str = Field(..., min_length=2, max_length=200)
    institution: str = Field(..., min_length=2, max_length=200)
    year_obtained: int = Field(..., ge=1900, le=2100)
    certificate_url: Optional[str] = None

# ==================== HELPER FUNCTIONS ====================

def serialize_patient_profile(user: Profile, profile: Optional[PatientProfile]) -> dict:
    return {
        "user_id": user.id,
        "full_name": user.full_name,
        "email": user.email,
        "phone": profile.phone if profile else None,
        "address": profile.address if profile else None,
        "date_of_birth": profile.date_of_birth.isoformat() if profile and profile.date_of_birth else None,
        "blood_group": profile.blood_group if profile else None,
        "insurance_id": profile.insurance_id if profile else None
    }

def serialize_emergency(patient_id: str, details: Optional[PatientEmergencyDetails]) -> dict:
    return {
        "user_id": patient_id,
        "emergency_contact_name": details.emergency_contact_name if details else None,
        "emergency_contact_phone": details.emergency_contact_phone if details else None,
        "emergency_contact_relationship": details.emergency_contact_relationship if details else None,
        "allergies": details.allergies if details else None,
        "chronic_conditions": details.chronic_conditions if details else None
    }

def serialize_academic(record: AcademicRecord) -> dict:
    return {
        "id": record.id,
        "degree_name": record.degree_name,
        "institution": record.institution,
        "year_obtained": record.year_obtained,
        "certificate_url": record.certificate_url
    }

def serialize_doctor(user: Profile, doctor: DoctorProfile) -> dict:
    return {
        "id": doctor.id,
        "user_id": user.id,
        "full_name": user.full_name,
        "specialization": doctor.specialization,
        "years_of_experience": doctor.years_of_experience,
        "bio": doctor.bio,
        "healthcare_organization_id": doctor.healthcare_organization_id,
        "organization_name": doctor.organization.name if doctor.organization else None,
        "academic_records": [serialize_academic(r) for r in doctor.academic_records]
    }

def get_or_create_doctor_profile(db: Session, user_id: str) -> DoctorProfile:
    """Doctors get an empty profile the first time they open it."""
    doctor = db.query(DoctorProfile).filter(DoctorProfile.user_id == user_id).first()
    if doctor is None:
        doctor = DoctorProfile(user_id=user_id)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        logger.info(f"Created doctor profile for {user_id}")
    return doctor

def commit_or_500(db: Session, what: str) -> None:
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to save {what}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to save {what}")

# ==================== PATIENT ENDPOINTS ====================

@router.get("/patient", response_model=dict)
async def get_patient_profile(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Profile and emergency details, loaded together"""
    require_role(ctx, UserRole.PATIENT)

    user = db.query(Profile).filter(Profile.id == ctx.actor_id).first()
    profile = db.query(PatientProfile).filter(PatientProfile.user_id == ctx.actor_id).first()
    details = db.query(PatientEmergencyDetails).filter(PatientEmergencyDetails.user_id == ctx.actor_id).first()

    return {
        "profile": serialize_patient_profile(user, profile),
        "emergency_details": serialize_emergency(ctx.actor_id, details)
    }


@router.put("/patient", response_model=dict)
async def upsert_patient_profile(
    request: PatientProfileRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    ensure_can_write(ctx, ctx.actor_id, Resource.PATIENT_PROFILE)

    user = db.query(Profile).filter(Profile.id == ctx.actor_id).first()
    profile = db.query(PatientProfile).filter(PatientProfile.user_id == ctx.actor_id).first()
    if profile is None:
        profile = PatientProfile(user_id=ctx.actor_id)
        db.add(profile)

    fields = request.model_dump(exclude_unset=True)
    full_name = fields.pop("full_name", None)
    if full_name:
        user.full_name = full_name.strip()
    for field, value in fields.items():
        setattr(profile, field, value)

    commit_or_500(db, "profile")
    db.refresh(profile)

    return {
        "status": "success",
        "message": "Profile updated",
        "profile": serialize_patient_profile(user, profile)
    }


@router.put("/emergency", response_model=dict)
async def upsert_emergency_details(
    request: EmergencyDetailsRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🚑 Emergency contact, allergies and chronic conditions"""
    ensure_can_write(ctx, ctx.actor_id, Resource.EMERGENCY_DETAILS)

    details = db.query(PatientEmergencyDetails).filter(PatientEmergencyDetails.user_id == ctx.actor_id).first()
    if details is None:
        details = PatientEmergencyDetails(user_id=ctx.actor_id)
        db.add(details)

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(details, field, value)

    commit_or_500(db, "emergency details")
    db.refresh(details)

    return {
        "status": "success",
        "message": "Emergency details updated",
        "emergency_details": serialize_emergency(ctx.actor_id, details)
    }


@router.get("/emergency/{patient_id}", response_model=dict)
async def get_emergency_details(
    patient_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Readable by any signed-in user; responders need it without a link"""
    patient = db.query(Profile).filter(
        Profile.id == patient_id,
        Profile.role == UserRole.PATIENT.value
    ).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    details = db.query(PatientEmergencyDetails).filter(PatientEmergencyDetails.user_id == patient_id).first()
    payload = serialize_emergency(patient_id, details)
    payload["full_name"] = patient.full_name
    return payload

# ==================== DOCTOR ENDPOINTS ====================

@router.get("/doctor", response_model=dict)
async def get_doctor_profile(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR)

    user = db.query(Profile).filter(Profile.id == ctx.actor_id).first()
    doctor = get_or_create_doctor_profile(db, ctx.actor_id)
    return serialize_doctor(user, doctor)


@router.put("/doctor", response_model=dict)
async def update_doctor_profile(
    request: DoctorProfileRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """✏️ Specialization, experience, bio and affiliated organization"""
    require_role(ctx, UserRole.DOCTOR)

    user = db.query(Profile).filter(Profile.id == ctx.actor_id).first()
    doctor = get_or_create_doctor_profile(db, ctx.actor_id)

    fields = request.model_dump(exclude_unset=True)
    org_id = fields.get("healthcare_organization_id")
    if org_id and not db.query(HealthcareOrganization).filter(HealthcareOrganization.id == org_id).first():
        raise HTTPException(status_code=404, detail="Organization not found")

    for field, value in fields.items():
        setattr(doctor, field, value)
    doctor.updated_at = datetime.now()

    commit_or_500(db, "doctor profile")
    db.refresh(doctor)

    return {
        "status": "success",
        "message": "Profile updated",
        "doctor": serialize_doctor(user, doctor)
    }


@router.post("/doctor/academic-records", response_model=dict, status_code=201)
async def add_academic_record(
    request: AcademicRecordRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🎓 Add a degree or certification"""
    require_role(ctx, UserRole.DOCTOR)
    doctor = get_or_create_doctor_profile(db, ctx.actor_id)

    record = AcademicRecord(
        doctor_id=doctor.id,
        degree_name=request.degree_name.strip(),
        institution=request.institution.strip(),
        year_obtained=request.year_obtained,
        certificate_url=request.certificate_url
    )
    db.add(record)
    commit_or_500(db, "academic record")
    db.refresh(record)

    return {
        "status": "success",
        "message": "Academic record added",
        "academic_record": serialize_academic(record)
    }


@router.delete("/doctor/academic-records/{record_id}", response_model=dict)
async def delete_academic_record(
    record_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR)
    doctor = get_or_create_doctor_profile(db, ctx.actor_id)

    record = db.query(AcademicRecord).filter(
        AcademicRecord.id == record_id,
        AcademicRecord.doctor_id == doctor.id
    ).first()
    if not record:
        raise HTTPException(status_code=404, detail="Academic record not found")

    db.delete(record)
    commit_or_500(db, "academic record")

    return {
        "status": "success",
        "message": "Academic record deleted"
    }


@router.get("/doctors", response_model=dict)
async def list_doctors(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🩺 Doctors directory"""
    rows = db.query(Profile, DoctorProfile).outerjoin(
        DoctorProfile, DoctorProfile.user_id == Profile.id
    ).filter(
        Profile.role == UserRole.DOCTOR.value
    ).order_by(Profile.full_name.asc()).all()

    return {
        "total": len(rows),
        "doctors": [
            {
                "user_id": user.id,
                "full_name": user.full_name,
                "specialization": doctor.specialization if doctor else None,
                "years_of_experience": doctor.years_of_experience if doctor else None,
                "healthcare_organization_id": doctor.healthcare_organization_id if doctor else None
            }
            for user, doctor in rows
        ]
    }
