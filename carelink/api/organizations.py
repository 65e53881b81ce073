from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import logging

from carelink.api.auth import get_request_context, require_role
from carelink.core.context import RequestContext
from carelink.core.relationships import find_grant
from carelink.database.connection import get_db
from carelink.database.models import (
    HealthcareOrganization,
    MedicalRecord,
    MedicalRecordAccessLog,
    PatientOrganizationAccess,
    Profile,
    UserRole,
)

router = APIRouter(prefix="/api/organizations", tags=["Healthcare Organizations"])
logger = logging.getLogger(__name__)

ACCESS_LOG_LIMIT = 50

# ==================== PYDANTIC MODELS ====================

class OrganizationUpdateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    address: Optional[str] = None
    contact_info: Optional[str] = None

# ==================== HELPER FUNCTIONS ====================

def serialize_organization(org: HealthcareOrganization) -> dict:
    return {
        "id": org.id,
        "name": org.name,
        "address": org.address,
        "contact_info": org.contact_info
    }

def serialize_grant(grant: PatientOrganizationAccess) -> dict:
    return {
        "id": grant.id,
        "patient_id": grant.patient_id,
        "organization_id": grant.organization_id,
        "organization_name": grant.organization.name if grant.organization else None,
        "has_access": grant.has_access,
        "granted_at": grant.granted_at.isoformat() if grant.granted_at else None,
        "revoked_at": grant.revoked_at.isoformat() if grant.revoked_at else None
    }

def get_organization_or_404(db: Session, organization_id: str) -> HealthcareOrganization:
    org = db.query(HealthcareOrganization).filter(HealthcareOrganization.id == organization_id).first()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org

# ==================== ORGANIZATION ENDPOINTS ====================

@router.get("", response_model=dict)
async def list_organizations(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    orgs = db.query(HealthcareOrganization).order_by(HealthcareOrganization.name.asc()).all()
    return {
        "total": len(orgs),
        "organizations": [serialize_organization(o) for o in orgs]
    }


@router.get("/me", response_model=dict)
async def get_my_organization(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    require_role(ctx, UserRole.HEALTHCARE_ORGANIZATION)
    return serialize_organization(get_organization_or_404(db, ctx.actor_id))


@router.put("/me", response_model=dict)
async def upsert_my_organization(
    request: OrganizationUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🏥 Create or update the organization behind this account"""
    require_role(ctx, UserRole.HEALTHCARE_ORGANIZATION)

    org = db.query(HealthcareOrganization).filter(HealthcareOrganization.id == ctx.actor_id).first()
    if org is None:
        org = HealthcareOrganization(id=ctx.actor_id, name=request.name)
        db.add(org)

    org.name = request.name.strip()
    org.address = request.address
    org.contact_info = request.contact_info

    try:
        db.commit()
        db.refresh(org)
    except Exception as e:
        db.rollback()
        logger.error(f"Organization upsert failed for {ctx.actor_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to save organization")

    return {
        "status": "success",
        "message": "Organization saved",
        "organization": serialize_organization(org)
    }


@router.get("/me/patients", response_model=dict)
async def list_granted_patients(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Patients that currently grant this organization access"""
    require_role(ctx, UserRole.HEALTHCARE_ORGANIZATION)

    rows = db.query(PatientOrganizationAccess, Profile).join(
        Profile, Profile.id == PatientOrganizationAccess.patient_id
    ).filter(
        PatientOrganizationAccess.organization_id == ctx.actor_id,
        PatientOrganizationAccess.has_access.is_(True)
    ).order_by(PatientOrganizationAccess.granted_at.desc()).all()

    return {
        "total": len(rows),
        "patients": [
            {
                "patient_id": patient.id,
                "full_name": patient.full_name,
                "granted_at": grant.granted_at.isoformat()
            }
            for grant, patient in rows
        ]
    }

# ==================== ACCESS GRANT ENDPOINTS ====================

@router.get("/access", response_model=dict)
async def list_my_grants(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🔐 Organizations this patient has granted (or revoked) access"""
    require_role(ctx, UserRole.PATIENT)

    grants = db.query(PatientOrganizationAccess).filter(
        PatientOrganizationAccess.patient_id == ctx.actor_id
    ).order_by(PatientOrganizationAccess.granted_at.desc()).all()

    return {
        "total": len(grants),
        "grants": [serialize_grant(g) for g in grants]
    }


@router.post("/{organization_id}/grant", response_model=dict)
async def grant_access(
    organization_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    ✅ Grant an organization read access to this patient's records

    One row per (patient, organization): granting again re-opens a revoked
    grant instead of adding a row.
    """
    require_role(ctx, UserRole.PATIENT)
    get_organization_or_404(db, organization_id)

    now = datetime.now()
    grant = find_grant(db, ctx.actor_id, organization_id)
    if grant is None:
        grant = PatientOrganizationAccess(
            patient_id=ctx.actor_id,
            organization_id=organization_id
        )
        db.add(grant)

    grant.has_access = True
    grant.granted_at = now
    grant.revoked_at = None

    try:
        db.commit()
        db.refresh(grant)
    except Exception as e:
        db.rollback()
        logger.error(f"Grant failed for {ctx.actor_id} -> {organization_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to grant access")

    logger.info(f"Patient {ctx.actor_id} granted access to organization {organization_id}")
    return {
        "status": "success",
        "message": "Access granted",
        "grant": serialize_grant(grant)
    }


@router.post("/{organization_id}/revoke", response_model=dict)
async def revoke_access(
    organization_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """🚫 Revoke an organization's access; the grant row is kept"""
    require_role(ctx, UserRole.PATIENT)

    grant = find_grant(db, ctx.actor_id, organization_id)
    if grant is None:
        raise HTTPException(status_code=404, detail="No access grant for this organization")

    grant.has_access = False
    grant.revoked_at = datetime.now()

    try:
        db.commit()
        db.refresh(grant)
    except Exception as e:
        db.rollback()
        logger.error(f"Revoke failed for {ctx.actor_id} -> {organization_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to revoke access")

    logger.info(f"Patient {ctx.actor_id} revoked access for organization {organization_id}")
    return {
        "status": "success",
        "message": "Access revoked",
        "grant": serialize_grant(grant)
    }


@router.get("/access-logs", response_model=dict)
async def get_access_logs(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """👁 Who viewed this patient's records, newest first"""
    require_role(ctx, UserRole.PATIENT)

    rows = db.query(MedicalRecordAccessLog, MedicalRecord, Profile).join(
        MedicalRecord, MedicalRecord.id == MedicalRecordAccessLog.medical_record_id
    ).outerjoin(
        Profile, Profile.id == MedicalRecordAccessLog.accessed_by
    ).filter(
        MedicalRecord.patient_id == ctx.actor_id
    ).order_by(MedicalRecordAccessLog.accessed_at.desc()).limit(ACCESS_LOG_LIMIT).all()

    return {
        "total": len(rows),
        "logs": [
            {
                "id": log.id,
                "medical_record_id": log.medical_record_id,
                "record_title": record.title,
                "accessed_by": log.accessed_by,
                "accessor_name": accessor.full_name if accessor else None,
                "accessed_by_role": log.accessed_by_role,
                "access_type": log.access_type,
                "context": log.context,
                "accessed_at": log.accessed_at.isoformat()
            }
            for log, record, accessor in rows
        ]
    }
