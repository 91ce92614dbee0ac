"""
Payment slips and propagation of payment status to bookings and adoptions
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError, ValidationError
from .scheduling import SERVICE_KINDS

logger = logging.getLogger(__name__)

ADOPTION = "adoption"

# which services each staff role handles
ROLE_SERVICES = {
    "caretaker": ("grooming", "daycare"),
    "doctor": ("vet",),
}


@dataclass
class ReconcileSummary:
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


def _reference_id(item: dict) -> Optional[str]:
    return item.get("referenceId") or item.get("id")


def _apply_one(db: Session, item: dict, status: str) -> bool:
    """Set payment_status on the entity one line item refers to; False when skipped"""
    service = str(item.get("service") or "").lower()
    reference_id = _reference_id(item)

    if service in SERVICE_KINDS:
        query = db.query(models.Appointment).filter(
            models.Appointment.id == reference_id,
            models.Appointment.service == service,
        )
        column = models.Appointment.payment_status
    elif service == ADOPTION:
        query = db.query(models.Adoption).filter(models.Adoption.id == reference_id)
        column = models.Adoption.payment_status
    else:
        return False

    if not models.is_valid_id(reference_id):
        logger.warning(f"⚠️ Skipping invalid reference id {reference_id!r} for service {service}")
        return False

    matched = query.update({column: status}, synchronize_session=False)
    db.commit()
    return matched > 0


def apply_payment_status(db: Session, items: Iterable[dict], status: str) -> ReconcileSummary:
    """Mark every referenced booking/adoption paid or unpaid.

    Items are independent: each one is written and committed on its own and a
    failing item is logged and counted without stopping the rest.
    """
    if status not in models.PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status: {status}")

    summary = ReconcileSummary()
    for item in items:
        try:
            if _apply_one(db, item, status):
                summary.updated += 1
            else:
                summary.skipped += 1
        except SQLAlchemyError as e:
            db.rollback()
            summary.failed += 1
            summary.errors.append(str(e))
            logger.error(f"❌ Could not set payment status for {_reference_id(item)!r}: {e}")

    db.expire_all()
    logger.info(
        f"Payment status '{status}': {summary.updated} updated, "
        f"{summary.skipped} skipped, {summary.failed} failed"
    )
    return summary


def mark_paid(db: Session, items: Iterable[dict]) -> ReconcileSummary:
    """Re-sync payment status for items already paid for; safe to repeat"""
    return apply_payment_status(db, items, models.PAYMENT_PAID)


def normalize_items(raw_items) -> List[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must contain items")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Order items must be objects")
        extras = raw.get("extras") if isinstance(raw.get("extras"), list) else []
        try:
            items.append(
                {
                    "referenceId": _reference_id(raw),
                    "service": str(raw.get("service") or "").lower(),
                    "title": raw.get("title"),
                    "date": raw.get("date"),
                    "time": raw.get("time"),
                    "basePrice": float(raw.get("basePrice") or 0),
                    "extras": [
                        {"name": extra.get("name"), "price": float(extra.get("price") or 0)}
                        for extra in extras
                        if isinstance(extra, dict)
                    ],
                    "lineTotal": float(raw.get("lineTotal") or 0),
                }
            )
        except (TypeError, ValueError):
            raise ValidationError("Order item prices must be numbers")
    return items


def record_slip_payment(
    db: Session,
    order: dict,
    slip: dict,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
) -> models.PaymentRecord:
    """Store a verified payment for an uploaded slip and mark its items paid"""
    if not isinstance(order, dict):
        raise ValidationError("Invalid order JSON")
    items = normalize_items(order.get("items"))

    subtotal = order.get("subtotal")
    if subtotal is None:
        subtotal = sum(item["lineTotal"] for item in items)
    try:
        subtotal = float(subtotal)
    except (TypeError, ValueError):
        raise ValidationError("Order subtotal must be a number")
    if subtotal < 0:
        raise ValidationError("Order subtotal must not be negative")

    payment = models.PaymentRecord(
        currency=order.get("currency") or "LKR",
        subtotal=subtotal,
        items=items,
        status=models.PAYMENT_VERIFIED,
        uploaded_by_user_id=user_id,
        uploaded_by_email=email,
        slip=slip,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)

    mark_paid(db, items)
    return payment


def slip_message(items: List[dict]) -> str:
    services = {item.get("service") for item in items}
    has_adoptions = ADOPTION in services
    has_appointments = bool(services & set(SERVICE_KINDS))

    message = "Slip uploaded successfully."
    if has_adoptions and has_appointments:
        message += " Adoptions and appointments marked as PAID."
    elif has_adoptions:
        message += " Adoptions marked as PAID."
    elif has_appointments:
        message += " Appointments marked as PAID."
    return message


def list_payments(
    db: Session,
    role: str,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
) -> List[models.PaymentRecord]:
    """Payments visible to the caller: admins see all, staff see their services, owners their own"""
    query = db.query(models.PaymentRecord)
    if status:
        query = query.filter(models.PaymentRecord.status == status)
    if role not in ROLE_SERVICES and role != "admin":
        query = query.filter(models.PaymentRecord.uploaded_by_user_id == user_id)
    payments = query.order_by(models.PaymentRecord.created_at.desc()).all()

    services = ROLE_SERVICES.get(role)
    if services is None:
        return payments
    return [p for p in payments if any(item.get("service") in services for item in p.items or [])]


def get_payment(db: Session, payment_id: str) -> models.PaymentRecord:
    payment = None
    if models.is_valid_id(payment_id):
        payment = db.query(models.PaymentRecord).filter(models.PaymentRecord.id == payment_id).first()
    if payment is None:
        raise NotFoundError("Not found")
    return payment


def verify_payment(db: Session, payment_id: str) -> models.PaymentRecord:
    payment = get_payment(db, payment_id)
    if payment.status != models.PAYMENT_VERIFIED:
        payment.status = models.PAYMENT_VERIFIED
        db.commit()
        apply_payment_status(db, payment.items or [], models.PAYMENT_PAID)
    return payment


def reject_payment(db: Session, payment_id: str) -> models.PaymentRecord:
    payment = get_payment(db, payment_id)
    payment.status = models.PAYMENT_REJECTED
    db.commit()
    apply_payment_status(db, payment.items or [], models.PAYMENT_UNPAID)
    return payment
