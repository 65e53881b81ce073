"""
Medical record creation.

Creating a record with an attachment is a two-step saga:

    1. upload the file to object storage
    2. insert the medical_records row

The steps are not covered by one transaction. If the insert fails after a
successful upload the object is left in storage (an orphan) unless the
caller passes compensate_orphaned_upload=True, in which case it is deleted.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from carelink.core.access import Resource, ensure_can_write
from carelink.core.context import RequestContext
from carelink.core.record_description import compose_description
from carelink.core.storage import LocalStorage, build_storage_path, validate_attachment
from carelink.database.models import DoctorPatientLink, MedicalRecord, RecordType

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: Optional[str] = None


@dataclass
class NewMedicalRecord:
    patient_id: str
    title: str
    record_date: date
    record_type: str = RecordType.GENERAL.value
    sections: Dict[str, Optional[str]] = field(default_factory=dict)


def upload_attachment(storage: LocalStorage, ctx: RequestContext, attachment: Attachment) -> str:
    """Validate and store an attachment under the uploader's prefix. Returns the storage path."""
    name = validate_attachment(attachment.filename, attachment.content)
    path = build_storage_path(ctx.actor_id, name)
    return storage.upload(path, attachment.content, attachment.content_type)


def create_medical_record(
    db: Session,
    storage: LocalStorage,
    ctx: RequestContext,
    data: NewMedicalRecord,
    attachment: Optional[Attachment] = None,
    link: Optional[DoctorPatientLink] = None,
    compensate_orphaned_upload: bool = False,
) -> MedicalRecord:
    ensure_can_write(ctx, data.patient_id, Resource.MEDICAL_RECORD, link)

    record_type = RecordType(data.record_type).value

    file_path = None
    if attachment is not None:
        file_path = upload_attachment(storage, ctx, attachment)

    record = MedicalRecord(
        patient_id=data.patient_id,
        doctor_id=None if ctx.actor_id == data.patient_id else ctx.actor_id,
        title=data.title.strip(),
        description=compose_description(data.sections) or None,
        record_date=data.record_date,
        record_type=record_type,
        file_url=file_path,
    )

    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except Exception:
        db.rollback()
        if file_path is not None:
            if compensate_orphaned_upload:
                storage.delete(file_path)
                logger.info(f"Removed upload {file_path} after failed record insert")
            else:
                logger.warning(f"Record insert failed; upload {file_path} left orphaned")
        raise

    logger.info(f"Medical record {record.id} created for patient {data.patient_id} by {ctx.actor_id}")
    return record
