from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from itertools import groupby
import os
import logging
from dotenv import load_dotenv

from carelink.api.auth import get_request_context
from carelink.api.medical_records import serialize_record
from carelink.core.access import Resource, can_read, ensure_can_read, ensure_can_write
from carelink.core.access_log import log_access
from carelink.core.appointment_status import INITIAL_STATUS, apply_status_change
from carelink.core.context import RequestContext
from carelink.core.errors import AccessDenied
from carelink.core.linkage import find_linked_record
from carelink.core.relationships import find_link, load_relationships
from carelink.core.storage import LocalStorage, get_storage
from carelink.database.connection import get_db
from carelink.database.models import Appointment, AppointmentStatus, Profile, UserRole

load_dotenv()
router = APIRouter(prefix="/api/appointments", tags=["Appointments"])
logger = logging.getLogger(__name__)

# ==================== CONFIG ====================

# Re-evaluate the caller's write access (current link state) on every status change
STRICT_STATUS_RECHECK = os.getenv(
    "CARELINK_STRICT_STATUS_RECHECK", "false"
).lower() in {"1", "true", "yes"}

# ==================== PYDANTIC MODELS (Request/Response) ====================

class AppointmentCreateRequest(BaseModel):
    patient_id: Optional[str] = Field(None, description="Defaults to the caller for patients")
    appointment_date: datetime
    notes: Optional[str] = Field(None, max_length=2000)
    status: AppointmentStatus = AppointmentStatus.BOOKED

class StatusChangeRequest(BaseModel):
    status: AppointmentStatus

# ==================== HELPER FUNCTIONS ====================

def serialize_appointment(appointment: Appointment) -> dict:
    return {
        "id": appointment.id,
        "patient_id": appointment.patient_id,
        "patient_name": appointment.patient.full_name if appointment.patient else None,
        "appointment_date": appointment.appointment_date.isoformat(),
        "status": appointment.status,
        "notes": appointment.notes,
        "created_by": appointment.created_by
    }

def group_by_date(appointments) -> list:
    """Group appointments (already sorted by appointment_date) under their calendar day."""
    return [
        {"date": day.isoformat(), "appointments": [serialize_appointment(a) for a in items]}
        for day, items in groupby(appointments, key=lambda a: a.appointment_date.date())
    ]

def get_appointment_or_404(db: Session, appointment_id: str) -> Appointment:
    appointment = db.query(Appointment).options(
        joinedload(Appointment.patient)
    ).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment

def is_party(ctx: RequestContext, appointment: Appointment) -> bool:
    return ctx.actor_id in (appointment.patient_id, appointment.created_by)

def ensure_can_view(db: Session, ctx: RequestContext, patient_id: str) -> None:
    """Only the patient skips the read check; booking an appointment grants no read access."""
    if ctx.is_patient and ctx.actor_id == patient_id:
        return
    link, grant = load_relationships(db, ctx, patient_id)
    ensure_can_read(ctx, patient_id, link=link, grant=grant)

def readable_only(db: Session, ctx: RequestContext, appointments: list) -> list:
    """Drop appointments of patients the caller can no longer read."""
    allowed = {}
    for patient_id in {a.patient_id for a in appointments}:
        link, grant = load_relationships(db, ctx, patient_id)
        allowed[patient_id] = can_read(ctx, patient_id, link=link, grant=grant)
    return [a for a in appointments if allowed[a.patient_id]]

def to_utc_naive(value: datetime) -> datetime:
    """Offset-aware times are converted to UTC; naive times are kept as given."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

# ==================== API ENDPOINTS ====================

@router.get("", response_model=dict)
async def list_appointments(
    patient_id: Optional[str] = Query(None, description="View one patient's appointments"),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    📅 Appointments grouped by day, earliest first

    Without patient_id: a patient sees their own, doctors and organizations
    see the ones they booked for patients they can still read. With
    patient_id the usual read rules apply.
    """
    query = db.query(Appointment).options(joinedload(Appointment.patient))

    if patient_id:
        ensure_can_view(db, ctx, patient_id)
        query = query.filter(Appointment.patient_id == patient_id)
    elif ctx.is_patient:
        query = query.filter(Appointment.patient_id == ctx.actor_id)
    else:
        query = query.filter(Appointment.created_by == ctx.actor_id)

    appointments = query.order_by(Appointment.appointment_date.asc()).all()
    if not patient_id and not ctx.is_patient:
        appointments = readable_only(db, ctx, appointments)

    return {
        "total": len(appointments),
        "days": group_by_date(appointments)
    }


@router.post("", response_model=dict, status_code=201)
async def create_appointment(
    request: AppointmentCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """📝 Book an appointment (always starts as booked)"""
    if request.status.value != INITIAL_STATUS:
        raise HTTPException(
            status_code=400,
            detail=f"New appointments must start as '{INITIAL_STATUS}'"
        )

    target_patient = request.patient_id or ctx.actor_id

    patient = db.query(Profile).filter(
        Profile.id == target_patient,
        Profile.role == UserRole.PATIENT.value
    ).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    link = None if ctx.is_patient else find_link(db, ctx.actor_id, target_patient)
    ensure_can_write(ctx, target_patient, Resource.APPOINTMENT, link)

    appointment = Appointment(
        patient_id=target_patient,
        appointment_date=to_utc_naive(request.appointment_date),
        status=INITIAL_STATUS,
        notes=request.notes,
        created_by=ctx.actor_id
    )

    try:
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except Exception as e:
        db.rollback()
        logger.error(f"Appointment insert failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to book appointment")

    logger.info(f"Appointment {appointment.id} booked for {target_patient} by {ctx.actor_id}")
    return {
        "status": "success",
        "message": "Appointment booked",
        "appointment": serialize_appointment(appointment)
    }


@router.post("/{appointment_id}/status", response_model=dict)
async def change_status(
    appointment_id: str,
    request: StatusChangeRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """
    🔁 Complete or cancel a booked appointment

    completed and cancelled are final.
    """
    appointment = get_appointment_or_404(db, appointment_id)

    if not is_party(ctx, appointment):
        raise AccessDenied("Only the patient or the booking account can change this appointment")

    link = None
    if STRICT_STATUS_RECHECK and not ctx.is_patient:
        link = find_link(db, ctx.actor_id, appointment.patient_id)

    previous = appointment.status
    apply_status_change(
        appointment,
        request.status,
        ctx=ctx,
        link=link,
        strict_recheck=STRICT_STATUS_RECHECK
    )

    try:
        db.commit()
        db.refresh(appointment)
    except Exception as e:
        db.rollback()
        logger.error(f"Status change failed for appointment {appointment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update appointment")

    logger.info(f"Appointment {appointment_id}: {previous} -> {appointment.status} by {ctx.actor_id}")
    return {
        "status": "success",
        "message": f"Appointment {appointment.status}",
        "appointment": serialize_appointment(appointment)
    }


@router.get("/{appointment_id}", response_model=dict)
async def get_appointment_details(
    appointment_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage)
):
    """
    🔍 Appointment details with the medical record closest to its date

    Anyone but the patient needs read access, even for appointments they
    booked. Viewing the linked record is then logged once, with the
    appointment id as context.
    """
    appointment = get_appointment_or_404(db, appointment_id)
    ensure_can_view(db, ctx, appointment.patient_id)

    linked = find_linked_record(db, appointment.patient_id, appointment.appointment_date)

    payload = serialize_appointment(appointment)
    payload["linked_record"] = serialize_record(linked, storage) if linked else None

    if linked is not None and ctx.actor_id != payload["patient_id"]:
        log_access(
            db,
            accessed_by=ctx.actor_id,
            accessed_by_role=ctx.role,
            medical_record_id=payload["linked_record"]["id"],
            context=f"appointment:{payload['id']}"
        )

    return payload
