"""
Booking status transitions
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .errors import InvalidTransitionError
from .scheduling import get_appointment, get_policy

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    models.STATUS_PENDING: {
        models.STATUS_PENDING,
        models.STATUS_ACCEPTED,
        models.STATUS_REJECTED,
        models.STATUS_CANCELLED,
    },
    models.STATUS_ACCEPTED: {
        models.STATUS_ACCEPTED,
        models.STATUS_REJECTED,
        models.STATUS_CANCELLED,
    },
}

# the owner hears about these
NOTIFY_STATUSES = (models.STATUS_ACCEPTED, models.STATUS_REJECTED)


@dataclass
class StatusChange:
    appointment: models.Appointment
    previous_status: str
    notify: bool


def set_status(
    db: Session,
    service: str,
    appointment_id: str,
    new_status: str,
    rejection_reason: Optional[str] = None,
    actor_name: Optional[str] = None,
) -> StatusChange:
    """Apply a caller-driven status change.

    Only status, rejection reason and actor are written, so rows created
    before newer required fields existed can still be moved along.
    `notify` tells the caller to dispatch an owner notification.
    """
    policy = get_policy(service)
    if new_status not in models.BOOKING_STATUSES:
        raise InvalidTransitionError("Invalid status")

    appointment = get_appointment(db, policy.kind, appointment_id)
    previous = appointment.status

    allowed = ALLOWED_TRANSITIONS.get(previous, set())
    if new_status not in allowed:
        raise InvalidTransitionError(f"Invalid transition from {previous} to {new_status}")

    appointment.status = new_status
    if new_status == models.STATUS_REJECTED:
        appointment.rejection_reason = (rejection_reason or "").strip()
    else:
        appointment.rejection_reason = None
    appointment.actor_name = (actor_name or "").strip() or policy.default_actor

    db.commit()
    db.refresh(appointment)

    notify = new_status in NOTIFY_STATUSES and previous != new_status
    logger.info(f"{policy.kind} booking {appointment.id}: {previous} -> {new_status} by {appointment.actor_name}")
    return StatusChange(appointment=appointment, previous_status=previous, notify=notify)
