from dataclasses import dataclass

from carelink.database.models import UserRole


@dataclass(frozen=True)
class RequestContext:
    """The authenticated caller of a single request."""
    actor_id: str
    role: str

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.PATIENT.value

    @property
    def is_doctor(self) -> bool:
        return self.role == UserRole.DOCTOR.value

    @property
    def is_organization(self) -> bool:
        return self.role == UserRole.HEALTHCARE_ORGANIZATION.value
