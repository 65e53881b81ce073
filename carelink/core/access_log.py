import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from carelink.database.models import MedicalRecordAccessLog

logger = logging.getLogger(__name__)


def log_access(
    db: Session,
    *,
    accessed_by: str,
    accessed_by_role: str,
    medical_record_id: str,
    access_type: str = "view",
    context: Optional[str] = None,
) -> Optional[MedicalRecordAccessLog]:
    """
    Record that an actor viewed patient data.

    Best effort: a failed insert is rolled back and reported through the
    logger, never raised. Callers should finish reading ORM objects before
    calling this, since a rollback expires the session.
    """
    try:
        entry = MedicalRecordAccessLog(
            medical_record_id=medical_record_id,
            accessed_by=accessed_by,
            accessed_by_role=accessed_by_role,
            access_type=access_type,
            context=context,
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception as e:
        db.rollback()
        logger.warning(
            f"Failed to record access by {accessed_by} "
            f"(record={medical_record_id}, context={context}): {str(e)}"
        )
        return None


def log_history_access(
    db: Session,
    *,
    accessed_by: str,
    accessed_by_role: str,
    record_ids: Iterable[str],
    context: Optional[str] = None,
) -> int:
    """Log one view row per record; returns how many were written."""
    written = 0
    for record_id in record_ids:
        entry = log_access(
            db,
            accessed_by=accessed_by,
            accessed_by_role=accessed_by_role,
            medical_record_id=record_id,
            context=context,
        )
        if entry is not None:
            written += 1
    return written
