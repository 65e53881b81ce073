"""
Appointment status lifecycle.

    booked ──> completed
       └────> cancelled

completed and cancelled are terminal.
"""
from typing import Optional

from carelink.core.access import Resource, ensure_can_write
from carelink.core.context import RequestContext
from carelink.core.errors import InvalidStatusTransition
from carelink.database.models import Appointment, AppointmentStatus, DoctorPatientLink

TRANSITIONS = {
    AppointmentStatus.BOOKED.value: frozenset({
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
    }),
    AppointmentStatus.COMPLETED.value: frozenset(),
    AppointmentStatus.CANCELLED.value: frozenset(),
}

INITIAL_STATUS = AppointmentStatus.BOOKED.value


def _value(status) -> str:
    return status.value if isinstance(status, AppointmentStatus) else str(status)


def can_transition(current, target) -> bool:
    return _value(target) in TRANSITIONS.get(_value(current), frozenset())


def is_terminal(status) -> bool:
    return not TRANSITIONS.get(_value(status), frozenset())


def transition(current, target) -> str:
    """Return the new status, or raise InvalidStatusTransition."""
    current, target = _value(current), _value(target)
    if not can_transition(current, target):
        raise InvalidStatusTransition(current, target)
    return target


def apply_status_change(
    appointment: Appointment,
    target,
    ctx: Optional[RequestContext] = None,
    link: Optional[DoctorPatientLink] = None,
    strict_recheck: bool = False,
) -> Appointment:
    """
    Move an appointment to target in place. The caller commits.

    With strict_recheck the caller's write permission is evaluated again
    against the current link before the change is applied.
    """
    if strict_recheck:
        if ctx is None:
            raise ValueError("strict_recheck requires a request context")
        ensure_can_write(ctx, appointment.patient_id, Resource.APPOINTMENT, link)

    appointment.status = transition(appointment.status, target)
    return appointment
