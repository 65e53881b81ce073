"""Store lookups for the link and grant rows the access rules consume."""
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from carelink.core.access import WRITE_LINK_STATUSES
from carelink.core.context import RequestContext
from carelink.database.models import DoctorPatientLink, PatientOrganizationAccess


def find_link(db: Session, doctor_id: str, patient_id: str) -> Optional[DoctorPatientLink]:
    """Get the link for a (doctor, patient) pair, preferring one that permits writes."""
    links = db.query(DoctorPatientLink).filter(
        DoctorPatientLink.doctor_id == doctor_id,
        DoctorPatientLink.patient_id == patient_id
    ).order_by(DoctorPatientLink.admission_date.desc()).all()

    for link in links:
        if link.status in WRITE_LINK_STATUSES:
            return link
    return links[0] if links else None


def find_grant(db: Session, patient_id: str, organization_id: str) -> Optional[PatientOrganizationAccess]:
    return db.query(PatientOrganizationAccess).filter(
        PatientOrganizationAccess.patient_id == patient_id,
        PatientOrganizationAccess.organization_id == organization_id
    ).first()


def load_relationships(
    db: Session,
    ctx: RequestContext,
    patient_id: str,
) -> Tuple[Optional[DoctorPatientLink], Optional[PatientOrganizationAccess]]:
    """Fetch whatever link/grant rows the caller's role needs for a rule check."""
    link = None
    grant = None
    if ctx.is_doctor or ctx.is_organization:
        link = find_link(db, ctx.actor_id, patient_id)
    if ctx.is_organization:
        grant = find_grant(db, patient_id, ctx.actor_id)
    return link, grant
