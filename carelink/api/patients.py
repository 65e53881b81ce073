"""
Patient directory

Doctors and organizations keep a private list of patients they manage
outside the platform. Every entry is visible only to its creator.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, EmailStr
from typing import Optional
from datetime import date
import logging

from carelink.api.auth import get_request_context, require_role
from carelink.core.access import can_manage_directory_entry
from carelink.core.context import RequestContext
from carelink.database.connection import get_db
from carelink.database.models import PatientRecord, UserRole

router = APIRouter(prefix="/api/patients", tags=["Patient Directory"])
logger = logging.getLogger(__name__)

# ==================== PYDANTIC MODELS ====================

class PatientCreateRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    notes: Optional[str] = None

class PatientUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    notes: Optional[str] = None

# ==================== HELPER FUNCTIONS ====================

def serialize_patient(entry: PatientRecord) -> dict:
    return {
        "id": entry.id,
        "full_name": entry.full_name,
        "date_of_birth": entry.date_of_birth.isoformat(),
        "phone": entry.phone,
        "email": entry.email,
        "notes": entry.notes,
        "created_by": entry.created_by,
        "created_at": entry.created_at.isoformat() if entry.created_at else None
    }

def get_owned_entry(db: Session, ctx: RequestContext, patient_id: str) -> PatientRecord:
    """Entries owned by someone else look exactly like missing ones."""
    entry = db.query(PatientRecord).filter(PatientRecord.id == patient_id).first()
    if not entry or not can_manage_directory_entry(ctx, entry):
        raise HTTPException(status_code=404, detail="Patient not found")
    return entry

# ==================== API ENDPOINTS ====================

@router.get("", response_model=dict)
async def list_patients(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR, UserRole.HEALTHCARE_ORGANIZATION)

    entries = db.query(PatientRecord).filter(
        PatientRecord.created_by == ctx.actor_id
    ).order_by(PatientRecord.created_at.desc()).all()

    return {
        "total": len(entries),
        "patients": [serialize_patient(e) for e in entries]
    }


@router.post("", response_model=dict, status_code=201)
async def create_patient(
    request: PatientCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR, UserRole.HEALTHCARE_ORGANIZATION)

    entry = PatientRecord(
        full_name=request.full_name.strip(),
        date_of_birth=request.date_of_birth,
        phone=request.phone,
        email=request.email,
        notes=request.notes,
        created_by=ctx.actor_id
    )

    try:
        db.add(entry)
        db.commit()
        db.refresh(entry)
    except Exception as e:
        db.rollback()
        logger.error(f"Directory insert failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to add patient")

    return {
        "status": "success",
        "message": "Patient added",
        "patient": serialize_patient(entry)
    }


@router.get("/{patient_id}", response_model=dict)
async def get_patient(
    patient_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR, UserRole.HEALTHCARE_ORGANIZATION)
    return serialize_patient(get_owned_entry(db, ctx, patient_id))


@router.put("/{patient_id}", response_model=dict)
async def update_patient(
    patient_id: str,
    request: PatientUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR, UserRole.HEALTHCARE_ORGANIZATION)
    entry = get_owned_entry(db, ctx, patient_id)

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(entry, field, value)

    try:
        db.commit()
        db.refresh(entry)
    except Exception as e:
        db.rollback()
        logger.error(f"Directory update failed for {patient_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update patient")

    return {
        "status": "success",
        "message": "Patient updated",
        "patient": serialize_patient(entry)
    }


@router.delete("/{patient_id}", response_model=dict)
async def delete_patient(
    patient_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.DOCTOR, UserRole.HEALTHCARE_ORGANIZATION)
    entry = get_owned_entry(db, ctx, patient_id)

    try:
        db.delete(entry)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Directory delete failed for {patient_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete patient")

    return {
        "status": "success",
        "message": "Patient deleted"
    }
