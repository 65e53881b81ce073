"""
Access rules for patient data.

Every rule is a pure function of the request context, the target patient id
and the relationship rows the caller already fetched (a doctor-patient link
or a patient-organization grant). Nothing here touches the database.

    patient       reads/writes only their own records, appointments,
                  profile and emergency details
    doctor        may request a link for anyone; writes medical records
                  only through an active/approved link; books appointments
                  for any patient
    organization  reads only while the patient's grant is open; writes
                  records and appointments through an active/approved link
"""
from enum import Enum
from typing import Optional

from carelink.core.context import RequestContext
from carelink.core.errors import AccessDenied
from carelink.database.models import (
    DoctorPatientLink,
    LinkStatus,
    PatientOrganizationAccess,
    PatientRecord,
)

WRITE_LINK_STATUSES = frozenset({LinkStatus.ACTIVE.value, LinkStatus.APPROVED.value})


class Resource(str, Enum):
    MEDICAL_RECORD = "medical_record"
    APPOINTMENT = "appointment"
    PATIENT_PROFILE = "patient_profile"
    EMERGENCY_DETAILS = "emergency_details"
    DOCTOR_PATIENT_LINK = "doctor_patient_link"


PATIENT_OWNED = frozenset({
    Resource.MEDICAL_RECORD,
    Resource.APPOINTMENT,
    Resource.PATIENT_PROFILE,
    Resource.EMERGENCY_DETAILS,
})


def link_permits_write(
    link: Optional[DoctorPatientLink],
    actor_id: str,
    patient_id: str,
) -> bool:
    """True only for the actor's own link to this patient in an active/approved state."""
    if link is None:
        return False
    return (
        link.doctor_id == actor_id
        and link.patient_id == patient_id
        and link.status in WRITE_LINK_STATUSES
    )


def grant_permits_read(
    grant: Optional[PatientOrganizationAccess],
    organization_id: str,
    patient_id: str,
) -> bool:
    if grant is None:
        return False
    return (
        grant.organization_id == organization_id
        and grant.patient_id == patient_id
        and bool(grant.has_access)
    )


def can_write(
    ctx: RequestContext,
    patient_id: str,
    resource: Resource,
    link: Optional[DoctorPatientLink] = None,
) -> bool:
    resource = Resource(resource)

    if ctx.is_patient:
        return ctx.actor_id == patient_id and resource in PATIENT_OWNED

    if ctx.is_doctor:
        if resource == Resource.DOCTOR_PATIENT_LINK:
            return True
        if resource == Resource.APPOINTMENT:
            # Not gated on the link (revisit reminders).
            return True
        if resource == Resource.MEDICAL_RECORD:
            return link_permits_write(link, ctx.actor_id, patient_id)
        return False

    if ctx.is_organization:
        if resource == Resource.DOCTOR_PATIENT_LINK:
            return True
        if resource in (Resource.MEDICAL_RECORD, Resource.APPOINTMENT):
            return link_permits_write(link, ctx.actor_id, patient_id)
        return False

    return False


def can_read(
    ctx: RequestContext,
    patient_id: str,
    link: Optional[DoctorPatientLink] = None,
    grant: Optional[PatientOrganizationAccess] = None,
) -> bool:
    """Whether the caller may read a patient's medical records and appointments."""
    if ctx.is_patient:
        return ctx.actor_id == patient_id
    if ctx.is_doctor:
        return link_permits_write(link, ctx.actor_id, patient_id)
    if ctx.is_organization:
        return grant_permits_read(grant, ctx.actor_id, patient_id)
    return False


def ensure_can_write(
    ctx: RequestContext,
    patient_id: str,
    resource: Resource,
    link: Optional[DoctorPatientLink] = None,
) -> None:
    if not can_write(ctx, patient_id, resource, link):
        resource = Resource(resource)
        if resource == Resource.MEDICAL_RECORD and not ctx.is_patient:
            raise AccessDenied(
                "An active or approved doctor-patient link is required to add records for this patient"
            )
        raise AccessDenied(f"Not permitted to write {resource.value.replace('_', ' ')} for this patient")


def ensure_can_read(
    ctx: RequestContext,
    patient_id: str,
    link: Optional[DoctorPatientLink] = None,
    grant: Optional[PatientOrganizationAccess] = None,
) -> None:
    if not can_read(ctx, patient_id, link, grant):
        if ctx.is_organization:
            raise AccessDenied("The patient has not granted this organization access")
        raise AccessDenied("Not permitted to view this patient's records")


def can_manage_directory_entry(ctx: RequestContext, entry: PatientRecord) -> bool:
    """Directory patients are private to whoever created them."""
    return not ctx.is_patient and entry.created_by == ctx.actor_id
