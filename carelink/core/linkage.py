from datetime import date, datetime, time
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from carelink.database.models import MedicalRecord

RECENT_RECORD_LIMIT = 20


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        # Wall-clock comparison; record dates carry no zone
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.min)


def nearest_record(
    records: Iterable[MedicalRecord],
    reference: Union[date, datetime],
) -> Optional[MedicalRecord]:
    """
    Return the record whose record_date is closest to reference.

    Records are scanned in the order given; on equal distance the first one
    seen wins, so a newest-first input favours the more recent record.
    """
    reference_dt = _as_datetime(reference)
    best = None
    best_distance = None

    for record in records:
        distance = abs((_as_datetime(record.record_date) - reference_dt).total_seconds())
        if best_distance is None or distance < best_distance:
            best = record
            best_distance = distance

    return best


def recent_records(db: Session, patient_id: str, limit: int = RECENT_RECORD_LIMIT) -> List[MedicalRecord]:
    """Get a patient's most recent records, newest record_date first."""
    return db.query(MedicalRecord).filter(
        MedicalRecord.patient_id == patient_id
    ).order_by(MedicalRecord.record_date.desc()).limit(limit).all()


def find_linked_record(db: Session, patient_id: str, reference: datetime) -> Optional[MedicalRecord]:
    return nearest_record(recent_records(db, patient_id), reference)
