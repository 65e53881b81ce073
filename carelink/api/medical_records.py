from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
import os
import logging
from dotenv import load_dotenv

from carelink.api.auth import get_request_context
from carelink.core.access import ensure_can_read
from carelink.core.access_log import log_access, log_history_access
from carelink.core.context import RequestContext
from carelink.core.errors import AccessDenied, InvalidAttachment, StorageError
from carelink.core.records import Attachment, NewMedicalRecord, create_medical_record
from carelink.core.relationships import find_link, load_relationships
from carelink.core.storage import LocalStorage, get_storage
from carelink.database.connection import get_db
from carelink.database.models import MedicalRecord, Profile, RecordType, UserRole

load_dotenv()
router = APIRouter(prefix="/api/medical-records", tags=["Medical Records"])
logger = logging.getLogger(__name__)

# ==================== CONFIG ====================

# Delete the stored attachment when the record insert that follows it fails
COMPENSATE_ORPHANED_UPLOADS = os.getenv(
    "CARELINK_COMPENSATE_ORPHANED_UPLOADS", "false"
).lower() in {"1", "true", "yes"}

# ==================== HELPER FUNCTIONS ====================

def serialize_record(record: MedicalRecord, storage: LocalStorage) -> dict:
    return {
        "id": record.id,
        "patient_id": record.patient_id,
        "doctor_id": record.doctor_id,
        "title": record.title,
        "description": record.description,
        "record_date": record.record_date.isoformat(),
        "record_type": record.record_type,
        "file_url": record.file_url,
        "attachment_url": storage.get_public_url(record.file_url),
        "created_at": record.created_at.isoformat() if record.created_at else None
    }

def patient_history(db: Session, patient_id: str):
    return db.query(MedicalRecord).filter(
        MedicalRecord.patient_id == patient_id
    ).order_by(MedicalRecord.record_date.desc(), MedicalRecord.created_at.desc()).all()

# ==================== API ENDPOINTS ====================

@router.get("", response_model=dict)
async def get_my_records(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage)
):
    """📋 The signed-in patient's own medical history"""
    if not ctx.is_patient:
        raise HTTPException(
            status_code=403,
            detail="Use /api/medical-records/patient/{patient_id} to view a patient's history"
        )

    records = patient_history(db, ctx.actor_id)
    return {
        "total": len(records),
        "records": [serialize_record(r, storage) for r in records]
    }


@router.post("", response_model=dict, status_code=201)
async def add_medical_record(
    title: str = Form(..., min_length=1, max_length=200),
    record_date: date = Form(...),
    record_type: RecordType = Form(RecordType.GENERAL),
    patient_id: Optional[str] = Form(None),
    issuing_hospital: Optional[str] = Form(None),
    objective: Optional[str] = Form(None),
    diagnosis: Optional[str] = Form(None),
    prescriptions: Optional[str] = Form(None),
    medicines: Optional[str] = Form(None),
    tests: Optional[str] = Form(None),
    followup: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage)
):
    """
    📄 Add a medical record

    Patients add to their own history (patient_id omitted or their own id).
    Doctors and organizations add records for a patient through an active
    or approved link. The description is composed from the labelled
    sections; blank sections are left out.
    """
    target_patient = patient_id or ctx.actor_id

    patient = db.query(Profile).filter(
        Profile.id == target_patient,
        Profile.role == UserRole.PATIENT.value
    ).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    link = None
    if not ctx.is_patient:
        link = find_link(db, ctx.actor_id, target_patient)

    attachment = None
    if file is not None and file.filename:
        attachment = Attachment(
            filename=file.filename,
            content=await file.read(),
            content_type=file.content_type
        )

    data = NewMedicalRecord(
        patient_id=target_patient,
        title=title,
        record_date=record_date,
        record_type=record_type.value,
        sections={
            "issuing_hospital": issuing_hospital,
            "objective": objective,
            "diagnosis": diagnosis,
            "prescriptions": prescriptions,
            "medicines": medicines,
            "tests": tests,
            "followup": followup,
            "notes": notes,
        }
    )

    try:
        record = create_medical_record(
            db, storage, ctx, data,
            attachment=attachment,
            link=link,
            compensate_orphaned_upload=COMPENSATE_ORPHANED_UPLOADS
        )
    except (AccessDenied, InvalidAttachment):
        raise
    except StorageError as e:
        logger.error(f"Attachment upload failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to upload attachment")
    except Exception as e:
        logger.error(f"Medical record insert failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to save medical record")

    return {
        "status": "success",
        "message": "Medical record added",
        "record": serialize_record(record, storage)
    }


@router.get("/patient/{patient_id}", response_model=dict)
async def get_patient_history(
    patient_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage)
):
    """
    🩺 A patient's full medical history

    Doctors need an active or approved link; organizations need an open
    access grant. Each record viewed by someone other than the patient is
    written to the access log.
    """
    link, grant = load_relationships(db, ctx, patient_id)
    ensure_can_read(ctx, patient_id, link=link, grant=grant)

    records = patient_history(db, patient_id)
    payload = [serialize_record(r, storage) for r in records]

    if ctx.actor_id != patient_id:
        log_history_access(
            db,
            accessed_by=ctx.actor_id,
            accessed_by_role=ctx.role,
            record_ids=[r["id"] for r in payload],
            context="medical_history"
        )

    return {
        "patient_id": patient_id,
        "total": len(payload),
        "records": payload
    }


@router.get("/{record_id}", response_model=dict)
async def get_medical_record(
    record_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage)
):
    record = db.query(MedicalRecord).filter(MedicalRecord.id == record_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Medical record not found")

    link, grant = load_relationships(db, ctx, record.patient_id)
    ensure_can_read(ctx, record.patient_id, link=link, grant=grant)

    payload = serialize_record(record, storage)
    if ctx.actor_id != payload["patient_id"]:
        log_access(
            db,
            accessed_by=ctx.actor_id,
            accessed_by_role=ctx.role,
            medical_record_id=payload["id"],
            context="medical_record"
        )

    return payload
