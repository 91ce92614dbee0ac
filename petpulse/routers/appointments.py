from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas, scheduling, status_machine
from ..auth import CallerIdentity, get_current_admin, get_current_user
from ..database import get_db
from ..notifications import booking_snapshot, notify_status_change, time_label_for
from ..telegram_service import telegram_notifier
from ..timewindow import window_label

router = APIRouter(prefix="/api", tags=["appointments"])


def get_service_staff(service: str, current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
    """Doctors handle vet bookings, caretakers grooming and daycare; admins handle all"""
    policy = scheduling.get_policy(service)
    if current_user.role not in policy.staff_roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return current_user


@router.post("/{service}/appointments", response_model=schemas.CreatedResponse, status_code=201)
def create_appointment(
    service: str,
    payload: schemas.AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    """Book a slot; 409 when it is already taken"""
    policy = scheduling.get_policy(service)
    data = payload.model_dump(exclude_unset=True)
    date_iso = data.pop("date_iso")
    window = scheduling.build_window(
        policy,
        time_slot_minutes=data.pop("time_slot_minutes", None),
        drop_off_minutes=data.pop("drop_off_minutes", None),
        pick_up_minutes=data.pop("pick_up_minutes", None),
    )

    appointment = scheduling.reserve(db, policy.kind, date_iso, window, data, user_id=current_user.user_id)

    # 🤖 staff alert in the background
    booking = booking_snapshot(appointment)
    background_tasks.add_task(
        telegram_notifier.send_new_booking_notification,
        service_name=policy.display_name,
        owner_name=appointment.owner_name,
        owner_phone=appointment.owner_phone,
        date_iso=appointment.date_iso,
        time_label=time_label_for(policy.kind, booking),
        booking_id=appointment.id,
    )

    return schemas.CreatedResponse(id=appointment.id, message=f"{policy.display_name} appointment booked")


@router.get("/{service}/appointments", response_model=List[schemas.CalendarEntry])
def get_calendar(
    service: str,
    date_iso: str = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    """Live bookings of one day for the booking calendar"""
    return scheduling.list_calendar(db, service, date_iso)


@router.get("/{service}/", response_model=schemas.AppointmentList)
def get_my_appointments(
    service: str,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    items = scheduling.list_for_user(db, service, current_user.user_id)
    return schemas.AppointmentList(data=[schemas.AppointmentOut.model_validate(item) for item in items])


@router.get("/{service}/all", response_model=schemas.AppointmentList)
def get_all_appointments(
    service: str,
    db: Session = Depends(get_db),
    staff: CallerIdentity = Depends(get_service_staff),
):
    items = scheduling.list_all(db, service)
    return schemas.AppointmentList(data=[schemas.AppointmentOut.model_validate(item) for item in items])


@router.get("/{service}/{appointment_id}", response_model=schemas.AppointmentEnvelope)
def get_appointment(
    service: str,
    appointment_id: str,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    appointment = scheduling.get_appointment(db, service, appointment_id)
    return schemas.AppointmentEnvelope(data=schemas.AppointmentOut.model_validate(appointment))


@router.put("/{service}/{appointment_id}", response_model=schemas.AppointmentEnvelope)
def update_appointment(
    service: str,
    appointment_id: str,
    payload: schemas.AppointmentUpdate,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user),
):
    """Edit a pending booking"""
    policy = scheduling.get_policy(service)
    appointment = scheduling.get_appointment(db, service, appointment_id)
    is_owner = appointment.user_id is None or appointment.user_id == current_user.user_id
    if not is_owner and current_user.role not in policy.staff_roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    changes = payload.model_dump(exclude_unset=True)
    appointment = scheduling.update_appointment(db, service, appointment_id, changes)
    return schemas.AppointmentEnvelope(data=schemas.AppointmentOut.model_validate(appointment))


@router.delete("/{service}/{appointment_id}", response_model=schemas.MessageResponse)
def delete_appointment(
    service: str,
    appointment_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: CallerIdentity = Depends(get_current_admin),
):
    """Administrative removal"""
    policy = scheduling.get_policy(service)
    summary = scheduling.cancel_appointment(db, service, appointment_id)

    background_tasks.add_task(
        telegram_notifier.send_booking_cancelled_notification,
        service_name=policy.display_name,
        owner_name=summary["ownerName"],
        date_iso=summary["date"],
        time_label=window_label(summary["startMinutes"], summary["endMinutes"]),
        booking_id=summary["id"],
    )

    return schemas.MessageResponse(message="Appointment deleted")


@router.patch("/{service}/{appointment_id}/status", response_model=schemas.StatusChangeResponse)
def update_status(
    service: str,
    appointment_id: str,
    payload: schemas.StatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    staff: CallerIdentity = Depends(get_service_staff),
):
    """Accept, reject or cancel a booking; the owner is told about accept/reject"""
    change = status_machine.set_status(
        db,
        service,
        appointment_id,
        payload.status,
        rejection_reason=payload.rejection_reason,
        actor_name=payload.actor_name or staff.name,
    )
    appointment = change.appointment

    if change.notify:
        background_tasks.add_task(
            notify_status_change,
            appointment.service,
            booking_snapshot(appointment),
            appointment.status,
            appointment.actor_name,
        )

    return schemas.StatusChangeResponse(item=schemas.AppointmentOut.model_validate(appointment))
