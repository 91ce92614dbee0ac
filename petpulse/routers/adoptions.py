from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import adoptions, schemas
from ..auth import CallerIdentity, get_current_admin, get_current_user
from ..database import get_db

router = APIRouter(prefix="/api/adoption", tags=["adoptions"])


@router.post("", response_model=schemas.AdoptionOut, status_code=201)
def create_adoption(
    payload: schemas.AdoptionCreate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    """Apply for a pet; the pet is reserved until the adoption is cancelled"""
    return adoptions.create_adoption(db, payload.pet_id, current_user.user_id, payload.price)


@router.delete("/{adoption_id}", response_model=schemas.MessageResponse)
def cancel_adoption(
    adoption_id: str,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    adoptions.cancel_adoption(db, adoption_id)
    return schemas.MessageResponse(message="Adoption cancelled, pet released")
