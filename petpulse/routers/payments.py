import json
import logging
import os
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from .. import config, payments, schemas
from ..auth import CallerIdentity, get_current_user, require_roles
from ..database import get_db
from ..errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

get_payment_staff = require_roles("caretaker", "doctor", "admin")

SLIP_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "application/pdf": ".pdf",
}


@router.post("/upload-slip", response_model=schemas.SlipUploadResponse, status_code=201)
async def upload_slip(
    slip: UploadFile = File(...),
    order: str = Form(...),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    """Store a bank slip and mark the bookings/adoptions it pays for as paid"""
    if slip.content_type not in config.ALLOWED_SLIP_TYPES:
        raise ValidationError("Slip must be a JPEG, PNG or PDF file")

    content = await slip.read()
    if not content:
        raise ValidationError("Slip file is empty")
    if len(content) > config.MAX_SLIP_SIZE_MB * 1024 * 1024:
        raise ValidationError(f"Slip must be smaller than {config.MAX_SLIP_SIZE_MB} MB")

    try:
        order_data = json.loads(order)
    except ValueError:
        raise ValidationError("Invalid order JSON")

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    filename = f"{uuid.uuid4().hex}{SLIP_EXTENSIONS[slip.content_type]}"
    path = os.path.join(config.UPLOAD_DIR, filename)
    with open(path, "wb") as f:
        f.write(content)

    slip_info = {
        "filename": filename,
        "originalName": slip.filename,
        "contentType": slip.content_type,
        "size": len(content),
        "path": path,
    }

    try:
        payment = payments.record_slip_payment(
            db,
            order_data,
            slip_info,
            user_id=current_user.user_id,
            email=current_user.email,
        )
    except Exception:
        # the slip is only kept for a recorded payment
        os.remove(path)
        raise

    logger.info(f"✅ Slip {filename} stored for payment {payment.id}")
    return schemas.SlipUploadResponse(message=payments.slip_message(payment.items), payment_id=payment.id)


@router.get("", response_model=List[schemas.PaymentOut])
def list_payments(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    return payments.list_payments(db, current_user.role, status=status, user_id=current_user.user_id)


@router.patch("/mark-paid", response_model=schemas.ReconcileOut)
def mark_paid(
    payload: schemas.MarkPaidRequest,
    db: Session = Depends(get_db),
    staff: CallerIdentity = Depends(get_payment_staff),
):
    summary = payments.mark_paid(db, payload.items)
    return schemas.ReconcileOut(updated=summary.updated, skipped=summary.skipped, failed=summary.failed)


@router.patch("/{payment_id}/verify", response_model=schemas.PaymentActionResponse)
def verify_payment(
    payment_id: str,
    db: Session = Depends(get_db),
    staff: CallerIdentity = Depends(get_payment_staff),
):
    payment = payments.verify_payment(db, payment_id)
    return schemas.PaymentActionResponse(payment=schemas.PaymentOut.model_validate(payment))


@router.patch("/{payment_id}/reject", response_model=schemas.PaymentActionResponse)
def reject_payment(
    payment_id: str,
    db: Session = Depends(get_db),
    staff: CallerIdentity = Depends(get_payment_staff),
):
    """Reject a slip; the items it covered go back to unpaid"""
    payment = payments.reject_payment(db, payment_id)
    return schemas.PaymentActionResponse(payment=schemas.PaymentOut.model_validate(payment))
