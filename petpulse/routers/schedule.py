from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas, scheduling
from ..auth import CallerIdentity, get_current_user
from ..database import get_db

router = APIRouter(prefix="/api/schedule", tags=["schedule"])


@router.get("/mine", response_model=schemas.ScheduleResponse)
def my_schedule(
    email: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    """Vet, grooming and daycare bookings made with one email, newest first"""
    items = scheduling.schedule_for_email(db, email or current_user.email)
    return schemas.ScheduleResponse(items=items)
