from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """JSON uses camelCase, Python code uses snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Appointments
class AppointmentFields(CamelModel):
    owner_name: Optional[str] = Field(None, max_length=100)
    owner_phone: Optional[str] = Field(None, max_length=30)
    owner_email: Optional[EmailStr] = None
    emergency_phone: Optional[str] = Field(None, max_length=30)
    pet_type: Optional[str] = None
    pet_name: Optional[str] = Field(None, max_length=100)
    pet_size: Optional[str] = None
    package_id: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    selected_service: Optional[str] = None
    selected_price: Optional[float] = None
    file_reference: Optional[str] = None

    date_iso: Optional[str] = Field(None, alias="dateISO")
    time_slot_minutes: Optional[int] = Field(None, ge=0, le=1439)
    drop_off_minutes: Optional[int] = Field(None, ge=0, le=1439)
    pick_up_minutes: Optional[int] = Field(None, ge=0, le=1439)


class AppointmentCreate(AppointmentFields):
    date_iso: str = Field(..., alias="dateISO")


class AppointmentUpdate(AppointmentFields):
    pass


class AppointmentOut(CamelModel):
    id: str
    service: str
    user_id: Optional[str] = None
    owner_name: str
    owner_phone: str
    owner_email: str
    emergency_phone: Optional[str] = None
    pet_type: str
    pet_name: Optional[str] = None
    pet_size: Optional[str] = None
    package_id: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    selected_service: Optional[str] = None
    selected_price: Optional[float] = None
    file_reference: Optional[str] = None
    date_iso: str = Field(..., alias="dateISO")
    time_slot_minutes: Optional[int] = None
    drop_off_minutes: Optional[int] = None
    pick_up_minutes: Optional[int] = None
    status: str
    payment_status: str
    rejection_reason: Optional[str] = None
    actor_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AppointmentEnvelope(CamelModel):
    ok: bool = True
    data: AppointmentOut


class AppointmentList(CamelModel):
    ok: bool = True
    data: List[AppointmentOut]


class CreatedResponse(CamelModel):
    ok: bool = True
    id: str
    message: str


class MessageResponse(CamelModel):
    ok: bool = True
    message: str


class StatusUpdate(CamelModel):
    status: str
    rejection_reason: Optional[str] = None
    actor_name: Optional[str] = Field(None, max_length=100)

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v):
        return v.strip().lower()


class StatusChangeResponse(CamelModel):
    ok: bool = True
    item: AppointmentOut


class CalendarEntry(CamelModel):
    id: str
    date: str
    start: str
    end: str
    start_minutes: int
    end_minutes: int
    title: str
    service: str
    status: str


class ScheduleItem(CalendarEntry):
    date_iso: str = Field(..., alias="dateISO")
    payment_status: str
    created_at: Optional[datetime] = None


class ScheduleResponse(CamelModel):
    items: List[ScheduleItem]


# Inventory and sales
class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    sub_category: Optional[str] = None
    description: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(0, ge=0)
    expiry_date: Optional[date] = None
    manual_discount_percent: Optional[float] = None
    low_stock_threshold: int = Field(10, ge=0)
    is_active: bool = True


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    sub_category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    expiry_date: Optional[date] = None
    manual_discount_percent: Optional[float] = None
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class StockUpdate(CamelModel):
    operation: str
    quantity: int = Field(..., ge=0)


class ProductOut(CamelModel):
    id: str
    name: str
    category: str
    sub_category: Optional[str] = None
    description: str = ""
    price: float
    quantity: int
    expiry_date: Optional[date] = None
    discount_price: Optional[float] = None
    manual_discount_percent: Optional[float] = None
    low_stock_threshold: int
    is_active: bool


class SaleItem(CamelModel):
    id: str
    name: str
    category: str
    price: float
    discount_price: float
    expiry_date: Optional[date] = None
    quantity: int


class DiscountUpdate(CamelModel):
    discount: Optional[float] = None


class DiscountResponse(CamelModel):
    message: str
    product: ProductOut


class DashboardOut(CamelModel):
    total_products: int
    low_stock: int
    discounted_products: int
    products: List[ProductOut]


# Payments
class PaymentOut(CamelModel):
    id: str
    currency: str
    subtotal: float
    items: List[Dict[str, Any]]
    status: str
    uploaded_by_user_id: Optional[str] = None
    uploaded_by_email: Optional[str] = None
    slip: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class SlipUploadResponse(CamelModel):
    message: str
    payment_id: str


class MarkPaidRequest(CamelModel):
    items: List[Dict[str, Any]] = Field(..., min_length=1)


class ReconcileOut(CamelModel):
    ok: bool = True
    updated: int
    skipped: int
    failed: int


class PaymentActionResponse(CamelModel):
    ok: bool = True
    payment: PaymentOut


# Adoptions
class AdoptionCreate(CamelModel):
    pet_id: str
    price: float = Field(0, ge=0)


class AdoptionOut(CamelModel):
    id: str
    pet_id: str
    user_id: Optional[str] = None
    status: str
    price: float
    payment_status: str
    created_at: Optional[datetime] = None
