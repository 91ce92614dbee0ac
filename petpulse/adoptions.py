"""
Adoption reservations: applying reserves the pet, cancelling releases it
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def create_adoption(db: Session, pet_id: str, user_id: Optional[str], price: float) -> models.Adoption:
    pet = None
    if models.is_valid_id(pet_id):
        pet = db.query(models.Pet).filter(models.Pet.id == pet_id).first()
    if pet is None:
        raise NotFoundError("Pet not found")
    if pet.is_adopted:
        raise ConflictError("This pet is already reserved")
    if price < 0:
        raise ValidationError("Price cannot be negative")

    adoption = models.Adoption(pet_id=pet.id, user_id=user_id, price=price)
    pet.is_adopted = True
    db.add(adoption)
    db.commit()
    db.refresh(adoption)
    logger.info(f"Pet {pet.id} reserved by adoption {adoption.id}")
    return adoption


def cancel_adoption(db: Session, adoption_id: str) -> None:
    """Delete an adoption and release the pet it reserved"""
    adoption = None
    if models.is_valid_id(adoption_id):
        adoption = db.query(models.Adoption).filter(models.Adoption.id == adoption_id).first()
    if adoption is None:
        raise NotFoundError("Adoption not found")

    if adoption.pet is not None:
        adoption.pet.is_adopted = False
    db.delete(adoption)
    db.commit()
    logger.info(f"Adoption {adoption_id} cancelled, pet released")
