from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import logging

from carelink.api.auth import get_request_context, require_role
from carelink.core.access import Resource, WRITE_LINK_STATUSES, ensure_can_write
from carelink.core.context import RequestContext
from carelink.database.connection import get_db
from carelink.database.models import (
    DoctorPatientLink, DoctorProfile, LinkStatus, Profile, UserRole
)

router = APIRouter(prefix="/api/doctor-patients", tags=["Doctor-Patient Links"])
logger = logging.getLogger(__name__)

OPEN_LINK_STATUSES = WRITE_LINK_STATUSES | {LinkStatus.PENDING.value}

# ==================== PYDANTIC MODELS ====================

class LinkRequest(BaseModel):
    patient_id: str = Field(..., description="Profile id of the patient")
    notes: Optional[str] = Field(None, max_length=1000)

# ==================== HELPER FUNCTIONS ====================

def serialize_link(link: DoctorPatientLink) -> dict:
    return {
        "id": link.id,
        "doctor_id": link.doctor_id,
        "patient_id": link.patient_id,
        "status": link.status,
        "admission_date": link.admission_date.isoformat() if link.admission_date else None,
        "discharge_date": link.discharge_date.isoformat() if link.discharge_date else None,
        "notes": link.notes
    }

def get_link_or_404(db: Session, link_id: str) -> DoctorPatientLink:
    link = db.query(DoctorPatientLink).filter(DoctorPatientLink.id == link_id).first()
    if not link:
        raise HTTPException(status_code=404, detail="Link not found")
    return link

def commit_link(db: Session, link: DoctorPatientLink, action: str) -> None:
    try:
        db.commit()
        db.refresh(link)
    except Exception as e:
        db.rollback()
        logger.error(f"Link {action} failed for {link.id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to {action} link")

# ==================== API ENDPOINTS ====================

@router.post("", response_model=dict, status_code=201)
async def request_link(
    request: LinkRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    🔗 Request a care relationship with a patient

    The link starts as pending; the patient approves it before any records
    can be written through it.
    """
    ensure_can_write(ctx, request.patient_id, Resource.DOCTOR_PATIENT_LINK)

    patient = db.query(Profile).filter(
        Profile.id == request.patient_id,
        Profile.role == UserRole.PATIENT.value
    ).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    existing = db.query(DoctorPatientLink).filter(
        DoctorPatientLink.doctor_id == ctx.actor_id,
        DoctorPatientLink.patient_id == request.patient_id,
        DoctorPatientLink.status.in_(sorted(OPEN_LINK_STATUSES))
    ).first()
    if existing:
        raise HTTPException(
            status_code=400,
            detail=f"A {existing.status} link with this patient already exists"
        )

    link = DoctorPatientLink(
        doctor_id=ctx.actor_id,
        patient_id=request.patient_id,
        status=LinkStatus.PENDING.value,
        admission_date=datetime.now(),
        notes=request.notes
    )

    try:
        db.add(link)
        db.commit()
        db.refresh(link)
    except Exception as e:
        db.rollback()
        logger.error(f"Link request failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to request link")

    logger.info(f"{ctx.role} {ctx.actor_id} requested link with patient {request.patient_id}")
    return {
        "status": "success",
        "message": "Link requested",
        "link": serialize_link(link)
    }


@router.get("", response_model=dict)
async def list_links(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Patients see their doctors; doctors and organizations see their patients."""
    if ctx.is_patient:
        rows = db.query(DoctorPatientLink, Profile, DoctorProfile).join(
            Profile, Profile.id == DoctorPatientLink.doctor_id
        ).outerjoin(
            DoctorProfile, DoctorProfile.user_id == DoctorPatientLink.doctor_id
        ).filter(
            DoctorPatientLink.patient_id == ctx.actor_id
        ).order_by(DoctorPatientLink.admission_date.desc()).all()

        return {
            "total": len(rows),
            "doctors": [
                {
                    **serialize_link(link),
                    "doctor_name": doctor.full_name,
                    "specialization": profile.specialization if profile else None,
                    "years_of_experience": profile.years_of_experience if profile else None
                }
                for link, doctor, profile in rows
            ]
        }

    rows = db.query(DoctorPatientLink, Profile).join(
        Profile, Profile.id == DoctorPatientLink.patient_id
    ).filter(
        DoctorPatientLink.doctor_id == ctx.actor_id
    ).order_by(DoctorPatientLink.admission_date.desc()).all()

    return {
        "total": len(rows),
        "patients": [
            {**serialize_link(link), "patient_name": patient.full_name}
            for link, patient in rows
        ]
    }


@router.post("/{link_id}/approve", response_model=dict)
async def approve_link(
    link_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """✅ Patient approves a pending link"""
    require_role(ctx, UserRole.PATIENT)
    link = get_link_or_404(db, link_id)

    if link.patient_id != ctx.actor_id:
        raise HTTPException(status_code=404, detail="Link not found")
    if link.status != LinkStatus.PENDING.value:
        raise HTTPException(
            status_code=409,
            detail=f"Only pending links can be approved (current: {link.status})"
        )

    link.status = LinkStatus.APPROVED.value
    commit_link(db, link, "approve")

    return {
        "status": "success",
        "message": "Link approved",
        "link": serialize_link(link)
    }


@router.post("/{link_id}/discharge", response_model=dict)
async def discharge_link(
    link_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🏁 Discharge a patient; the link stops permitting record writes"""
    require_role(ctx, UserRole.DOCTOR, UserRole.HEALTHCARE_ORGANIZATION)
    link = get_link_or_404(db, link_id)

    if link.doctor_id != ctx.actor_id:
        raise HTTPException(status_code=404, detail="Link not found")
    if link.status not in WRITE_LINK_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Only active or approved links can be discharged (current: {link.status})"
        )

    link.status = LinkStatus.DISCHARGED.value
    link.discharge_date = datetime.now()
    commit_link(db, link, "discharge")

    return {
        "status": "success",
        "message": "Patient discharged",
        "link": serialize_link(link)
    }
