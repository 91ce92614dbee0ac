"""
Slot booking engine for vet, grooming and daycare appointments.

All three services share one `Appointment` model. A `ServicePolicy` describes
what differs between them: the shape of the booked window (a fixed-length slot
or a free drop-off/pick-up interval), opening hours, required fields and the
allowed enumerations.

Exclusivity is checked in two layers. `find_conflict` scans the live bookings
of the same date before writing; for exact-slot services the partial unique
index `uq_live_exact_slot` is the final arbiter and its violation is reported
as `ConflictError`. Daycare intervals cannot be covered by an index, so their
check-then-write runs under a per-date lock.
"""
import logging
import threading
import zlib
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, NotFoundError, ValidationError
from .timewindow import end_label, intervals_overlap, is_valid_date_iso, minutes_to_label

logger = logging.getLogger(__name__)

EXACT_SLOT = "exact_slot"
INTERVAL = "interval"

VET = "vet"
GROOMING = "grooming"
DAYCARE = "daycare"


@dataclass(frozen=True)
class ServicePolicy:
    kind: str
    display_name: str
    window_shape: str
    default_duration: Optional[int]
    opens_at: int
    closes_at: int
    required_fields: Tuple[str, ...]
    pet_types: Tuple[str, ...]
    packages: Tuple[str, ...]
    staff_roles: Tuple[str, ...]
    default_actor: str
    conflict_message: str


SERVICE_POLICIES: Dict[str, ServicePolicy] = {
    VET: ServicePolicy(
        kind=VET,
        display_name="Veterinary",
        window_shape=EXACT_SLOT,
        default_duration=30,
        opens_at=8 * 60,
        closes_at=20 * 60 + 30,
        required_fields=("owner_name", "owner_phone", "owner_email", "pet_type", "pet_size", "reason"),
        pet_types=("Dog", "Cat", "Rabbit", "Bird", "Other"),
        packages=("general health checkup", "vaccination", "emergency care"),
        staff_roles=("doctor", "admin"),
        default_actor="Doctor",
        conflict_message="This time slot is already booked. Please choose another.",
    ),
    GROOMING: ServicePolicy(
        kind=GROOMING,
        display_name="Grooming",
        window_shape=EXACT_SLOT,
        default_duration=60,
        opens_at=0,
        closes_at=24 * 60,
        required_fields=("owner_name", "owner_phone", "owner_email", "pet_type", "package_id"),
        pet_types=("Dog", "Cat", "Rabbit", "Bird", "Other"),
        packages=("basic-bath-brush", "full-grooming", "nail-trim", "deshedding", "flea-tick", "premium-spa"),
        staff_roles=("caretaker", "admin"),
        default_actor="Caretaker",
        conflict_message="That time slot is already booked.",
    ),
    DAYCARE: ServicePolicy(
        kind=DAYCARE,
        display_name="Daycare",
        window_shape=INTERVAL,
        default_duration=None,
        opens_at=0,
        closes_at=24 * 60 - 1,
        required_fields=("owner_name", "owner_phone", "owner_email", "pet_type", "pet_name", "package_id"),
        pet_types=("Dog", "Cat", "Rabbit", "Parrot", "Other"),
        packages=("half-day", "full-day", "extended-day"),
        staff_roles=("caretaker", "admin"),
        default_actor="Caretaker",
        conflict_message="Overlaps another booking.",
    ),
}

SERVICE_KINDS = tuple(SERVICE_POLICIES)


@dataclass(frozen=True)
class SlotWindow:
    slot: int


@dataclass(frozen=True)
class IntervalWindow:
    start: int
    end: int


Window = Union[SlotWindow, IntervalWindow]

# fields a caller may supply; everything else is owned by the engine or the state machine
EDITABLE_FIELDS = (
    "owner_name",
    "owner_phone",
    "owner_email",
    "emergency_phone",
    "pet_type",
    "pet_name",
    "pet_size",
    "package_id",
    "reason",
    "notes",
    "selected_service",
    "selected_price",
    "file_reference",
)
PET_SIZES = ("small", "medium", "large")


def get_policy(service: str) -> ServicePolicy:
    policy = SERVICE_POLICIES.get((service or "").lower())
    if policy is None:
        raise NotFoundError(f"Unknown service '{service}'")
    return policy


def build_window(
    policy: ServicePolicy,
    time_slot_minutes: Optional[int] = None,
    drop_off_minutes: Optional[int] = None,
    pick_up_minutes: Optional[int] = None,
) -> Window:
    """Pick the window fields that match the service's window shape"""
    if policy.window_shape == EXACT_SLOT:
        if time_slot_minutes is None:
            raise ValidationError("timeSlotMinutes is required")
        return SlotWindow(slot=time_slot_minutes)

    if drop_off_minutes is None or pick_up_minutes is None:
        raise ValidationError("dropOffMinutes and pickUpMinutes are required")
    return IntervalWindow(start=drop_off_minutes, end=pick_up_minutes)


def window_bounds(policy: ServicePolicy, window: Window) -> Tuple[int, int]:
    if isinstance(window, SlotWindow):
        return window.slot, window.slot + policy.default_duration
    return window.start, window.end


def appointment_bounds(policy: ServicePolicy, appointment: models.Appointment) -> Tuple[int, int]:
    if policy.window_shape == EXACT_SLOT:
        slot = appointment.time_slot_minutes or 0
        return slot, slot + policy.default_duration
    return appointment.drop_off_minutes, appointment.pick_up_minutes


def validate_schedule(policy: ServicePolicy, date_iso: str, window: Window) -> None:
    """Reject malformed dates and windows before any conflict scan"""
    if not is_valid_date_iso(date_iso):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.")

    expected = SlotWindow if policy.window_shape == EXACT_SLOT else IntervalWindow
    if not isinstance(window, expected):
        raise ValidationError(f"{policy.display_name} bookings need a {policy.window_shape} window")

    start, end = window_bounds(policy, window)
    if end <= start:
        raise ValidationError("pickUpMinutes must be after dropOffMinutes")
    if start < policy.opens_at or end > policy.closes_at:
        raise ValidationError(
            f"{policy.display_name} bookings must fall between "
            f"{minutes_to_label(policy.opens_at)} and {end_label(policy.closes_at)}"
        )


def normalize_attributes(attributes: dict) -> dict:
    cleaned = {}
    for field in EDITABLE_FIELDS:
        if field not in attributes:
            continue
        value = attributes[field]
        if isinstance(value, str):
            value = value.strip()
        if field == "owner_email" and value:
            value = value.lower()
        cleaned[field] = value
    return cleaned


def validate_attributes(policy: ServicePolicy, attributes: dict) -> None:
    for field in policy.required_fields:
        if attributes.get(field) in (None, ""):
            raise ValidationError(f"Missing required field: {field}")

    pet_type = attributes.get("pet_type")
    if pet_type not in policy.pet_types:
        raise ValidationError(f"petType must be one of: {', '.join(policy.pet_types)}")

    package_id = attributes.get("package_id")
    if package_id and package_id not in policy.packages:
        raise ValidationError(f"packageId must be one of: {', '.join(policy.packages)}")

    pet_size = attributes.get("pet_size")
    if pet_size and pet_size not in PET_SIZES:
        raise ValidationError(f"petSize must be one of: {', '.join(PET_SIZES)}")

    price = attributes.get("selected_price")
    if price is not None and price < 0:
        raise ValidationError("selectedPrice cannot be negative")


def live_bookings(db: Session, policy: ServicePolicy, date_iso: str, exclude_id: Optional[str] = None):
    query = db.query(models.Appointment).filter(
        models.Appointment.service == policy.kind,
        models.Appointment.date_iso == date_iso,
        models.Appointment.status.notin_(models.TERMINAL_STATUSES),
    )
    if exclude_id:
        query = query.filter(models.Appointment.id != exclude_id)
    return query


def find_conflict(
    db: Session,
    policy: ServicePolicy,
    date_iso: str,
    window: Window,
    candidate_id: Optional[str] = None,
) -> Optional[models.Appointment]:
    """Return the first live booking whose window overlaps the requested one"""
    start, end = window_bounds(policy, window)
    for existing in live_bookings(db, policy, date_iso, exclude_id=candidate_id):
        existing_start, existing_end = appointment_bounds(policy, existing)
        if existing_start is None or existing_end is None:
            continue
        if intervals_overlap(start, end, existing_start, existing_end):
            return existing
    return None


_interval_locks = [threading.Lock() for _ in range(64)]


@contextmanager
def reservation_guard(db: Session, policy: ServicePolicy, date_iso: str):
    """Serialize check-then-write for interval services on one date"""
    if policy.window_shape != INTERVAL:
        yield
        return

    key = f"{policy.kind}:{date_iso}"
    lock = _interval_locks[zlib.crc32(key.encode()) % len(_interval_locks)]
    with lock:
        if db.get_bind().dialect.name == "postgresql":
            # released at commit/rollback, covers other worker processes
            db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        yield


def _apply_window(policy: ServicePolicy, appointment: models.Appointment, window: Window) -> None:
    if policy.window_shape == EXACT_SLOT:
        appointment.time_slot_minutes = window.slot
        appointment.drop_off_minutes = None
        appointment.pick_up_minutes = None
    else:
        appointment.time_slot_minutes = None
        appointment.drop_off_minutes = window.start
        appointment.pick_up_minutes = window.end


def _commit_or_conflict(db: Session, policy: ServicePolicy) -> None:
    try:
        db.commit()
    except IntegrityError:
        # two requests raced for the same slot; the unique index rejected the second
        db.rollback()
        logger.info(f"Slot race lost on {policy.kind} booking, reporting conflict")
        raise ConflictError(policy.conflict_message)


def reserve(
    db: Session,
    service: str,
    date_iso: str,
    window: Window,
    attributes: dict,
    user_id: Optional[str] = None,
    candidate_id: Optional[str] = None,
) -> models.Appointment:
    """Validate and persist a new pending booking, or raise ConflictError"""
    policy = get_policy(service)
    validate_schedule(policy, date_iso, window)
    cleaned = normalize_attributes(attributes)
    validate_attributes(policy, cleaned)

    with reservation_guard(db, policy, date_iso):
        conflict = find_conflict(db, policy, date_iso, window, candidate_id=candidate_id)
        if conflict is not None:
            raise ConflictError(policy.conflict_message)

        appointment = models.Appointment(
            service=policy.kind,
            user_id=user_id,
            date_iso=date_iso,
            status=models.STATUS_PENDING,
            payment_status=models.PAYMENT_UNPAID,
            **cleaned,
        )
        if appointment.notes is None:
            appointment.notes = ""
        _apply_window(policy, appointment, window)
        db.add(appointment)
        _commit_or_conflict(db, policy)

    db.refresh(appointment)
    logger.info(f"New {policy.kind} booking {appointment.id} on {date_iso}")
    return appointment


def get_appointment(db: Session, service: str, appointment_id: str) -> models.Appointment:
    policy = get_policy(service)
    if not models.is_valid_id(appointment_id):
        raise NotFoundError("Appointment not found")
    appointment = db.query(models.Appointment).filter(
        models.Appointment.id == appointment_id,
        models.Appointment.service == policy.kind,
    ).first()
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def update_appointment(db: Session, service: str, appointment_id: str, changes: dict) -> models.Appointment:
    """Full-field edit of a pending booking, re-running the conflict scan"""
    policy = get_policy(service)
    appointment = get_appointment(db, service, appointment_id)

    if appointment.status != models.STATUS_PENDING:
        raise ValidationError("Only pending appointments can be edited")

    cleaned = normalize_attributes(changes)
    if policy.kind == VET and "reason" in cleaned:
        if (cleaned["reason"] or "") != (appointment.reason or "").strip():
            raise ValidationError("Reason cannot be changed after booking. Please create a new booking.")

    merged = {field: getattr(appointment, field) for field in EDITABLE_FIELDS}
    merged.update(cleaned)
    validate_attributes(policy, merged)

    date_iso = changes.get("date_iso") or appointment.date_iso
    if policy.window_shape == EXACT_SLOT:
        window = build_window(policy, time_slot_minutes=changes.get("time_slot_minutes", appointment.time_slot_minutes))
    else:
        window = build_window(
            policy,
            drop_off_minutes=changes.get("drop_off_minutes", appointment.drop_off_minutes),
            pick_up_minutes=changes.get("pick_up_minutes", appointment.pick_up_minutes),
        )
    validate_schedule(policy, date_iso, window)

    with reservation_guard(db, policy, date_iso):
        if find_conflict(db, policy, date_iso, window, candidate_id=appointment.id) is not None:
            raise ConflictError(policy.conflict_message)

        for field, value in cleaned.items():
            setattr(appointment, field, value)
        appointment.date_iso = date_iso
        _apply_window(policy, appointment, window)
        _commit_or_conflict(db, policy)

    db.refresh(appointment)
    return appointment


def cancel_appointment(db: Session, service: str, appointment_id: str) -> dict:
    """Administrative removal of a booking; returns what the staff alert needs"""
    policy = get_policy(service)
    appointment = get_appointment(db, service, appointment_id)
    summary = calendar_entry(policy, appointment)
    summary["ownerName"] = appointment.owner_name

    db.delete(appointment)
    db.commit()
    logger.info(f"{policy.kind} booking {appointment_id} removed by an administrator")
    return summary


def list_for_user(db: Session, service: str, user_id: str) -> List[models.Appointment]:
    policy = get_policy(service)
    return db.query(models.Appointment).filter(
        models.Appointment.service == policy.kind,
        models.Appointment.user_id == user_id,
    ).order_by(models.Appointment.date_iso.desc(), models.Appointment.created_at.desc()).all()


def list_all(db: Session, service: str) -> List[models.Appointment]:
    policy = get_policy(service)
    return db.query(models.Appointment).filter(
        models.Appointment.service == policy.kind,
    ).order_by(models.Appointment.date_iso.desc(), models.Appointment.created_at.desc()).all()


def booking_title(policy: ServicePolicy, appointment: models.Appointment) -> str:
    if policy.kind == VET:
        return appointment.selected_service or appointment.package_id or "Vet appointment"
    return f"{appointment.pet_type or 'Pet'} • {appointment.package_id or policy.display_name}"


def calendar_entry(policy: ServicePolicy, appointment: models.Appointment) -> dict:
    start, end = appointment_bounds(policy, appointment)
    return {
        "id": appointment.id,
        "date": appointment.date_iso,
        "start": minutes_to_label(start),
        "end": end_label(end),
        "startMinutes": start,
        "endMinutes": end,
        "title": booking_title(policy, appointment),
        "service": policy.kind,
        "status": appointment.status,
    }


def list_calendar(db: Session, service: str, date_iso: str) -> List[dict]:
    """Live bookings of one date for the booking calendar"""
    policy = get_policy(service)
    if not is_valid_date_iso(date_iso):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.")

    rows = live_bookings(db, policy, date_iso).all()
    entries = [calendar_entry(policy, row) for row in rows]
    return sorted(entries, key=lambda entry: entry["startMinutes"])


def schedule_for_email(db: Session, email: str) -> List[dict]:
    """Every booking made with this email, newest first"""
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")

    rows = db.query(models.Appointment).filter(models.Appointment.owner_email == email).all()
    items = []
    for row in rows:
        policy = get_policy(row.service)
        entry = calendar_entry(policy, row)
        entry.update(
            {
                "dateISO": row.date_iso,
                "paymentStatus": row.payment_status,
                "createdAt": row.created_at,
            }
        )
        items.append(entry)

    items.sort(key=lambda item: (item["createdAt"] or datetime.min, item["dateISO"]), reverse=True)
    return items
