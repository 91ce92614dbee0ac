"""
Database models for the PetPulse booking and shop backend
"""
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"
BOOKING_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED, STATUS_CANCELLED)
TERMINAL_STATUSES = (STATUS_REJECTED, STATUS_CANCELLED)

PAYMENT_UNPAID = "unpaid"
PAYMENT_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PAID)

PAYMENT_PENDING_VERIFICATION = "pending_verification"
PAYMENT_VERIFIED = "verified"
PAYMENT_REJECTED = "rejected"

LIVE_SLOT_CONDITION = "status NOT IN ('rejected', 'cancelled') AND time_slot_minutes IS NOT NULL"


def new_id() -> str:
    return str(uuid.uuid4())


def is_valid_id(value) -> bool:
    """Check that value looks like one of our UUID primary keys"""
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class Appointment(Base):
    """Vet, grooming or daycare booking; `service` selects the booking policy"""
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=new_id)
    service = Column(String(20), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)

    owner_name = Column(String(100), nullable=False)
    owner_phone = Column(String(30), nullable=False)
    owner_email = Column(String(255), nullable=False, index=True)
    emergency_phone = Column(String(30), nullable=True)

    pet_type = Column(String(20), nullable=False)
    pet_name = Column(String(100), nullable=True)
    pet_size = Column(String(20), nullable=True)

    date_iso = Column(String(10), nullable=False, index=True)
    # exact-slot services (vet, grooming)
    time_slot_minutes = Column(Integer, nullable=True)
    # interval services (daycare)
    drop_off_minutes = Column(Integer, nullable=True)
    pick_up_minutes = Column(Integer, nullable=True)

    package_id = Column(String(50), nullable=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=False, default="")
    selected_service = Column(String(100), nullable=True)
    selected_price = Column(Float, nullable=True)
    file_reference = Column(String(500), nullable=True)

    status = Column(String(20), nullable=False, default=STATUS_PENDING)
    # pending - requested by the owner
    # accepted - confirmed by a doctor/caretaker
    # rejected - declined, rejection_reason explains why
    # cancelled - withdrawn
    payment_status = Column(String(20), nullable=False, default=PAYMENT_UNPAID)
    rejection_reason = Column(Text, nullable=True)
    actor_name = Column(String(100), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        # one live booking per exact slot; rejected/cancelled slots can be booked again
        Index(
            "uq_live_exact_slot",
            "service",
            "date_iso",
            "time_slot_minutes",
            unique=True,
            sqlite_where=text(LIVE_SLOT_CONDITION),
            postgresql_where=text(LIVE_SLOT_CONDITION),
        ),
        Index("ix_appointments_service_date", "service", "date_iso"),
    )


class Product(Base):
    """Shop catalog item"""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False)
    sub_category = Column(String(100), nullable=True)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    expiry_date = Column(Date, nullable=True)
    discount_price = Column(Float, nullable=True)
    # operator override in percent (0-100); NULL means the automatic rule applies
    manual_discount_percent = Column(Float, nullable=True)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price"),
        CheckConstraint("quantity >= 0", name="ck_products_quantity"),
    )


class PaymentRecord(Base):
    """Uploaded payment slip with the line items it pays for"""
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    currency = Column(String(5), nullable=False, default="LKR")
    subtotal = Column(Float, nullable=False, default=0)
    items = Column(JSON, nullable=False, default=list)
    status = Column(String(30), nullable=False, default=PAYMENT_PENDING_VERIFICATION, index=True)
    uploaded_by_user_id = Column(String(64), nullable=True)
    uploaded_by_email = Column(String(255), nullable=True)
    slip = Column(JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Pet(Base):
    """Pet listed for adoption"""
    __tablename__ = "pets"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    species = Column(String(20), nullable=False)
    is_adopted = Column(Boolean, nullable=False, default=False)

    adoptions = relationship("Adoption", back_populates="pet")


class Adoption(Base):
    """Adoption application; creating one reserves the pet"""
    __tablename__ = "adoptions"

    id = Column(String(36), primary_key=True, default=new_id)
    pet_id = Column(String(36), ForeignKey("pets.id"), nullable=False)
    user_id = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_PENDING)
    price = Column(Float, nullable=False, default=0)
    payment_status = Column(String(20), nullable=False, default=PAYMENT_UNPAID)

    created_at = Column(DateTime, server_default=func.now())

    pet = relationship("Pet", back_populates="adoptions")
