"""
Owner notifications for booking status changes.

Runs as a background task after the status change is committed. Email and SMS
are attempted side by side; a failing channel is logged and never affects the
other channel or the stored status.
"""
import asyncio
import logging

from . import config
from .email_service import send_status_change_email
from .scheduling import DAYCARE, get_policy
from .sms_service import send_sms
from .timewindow import minutes_to_label, window_label

logger = logging.getLogger(__name__)


def booking_snapshot(appointment) -> dict:
    """Plain copy of the fields a notification needs, safe to use after the session closes"""
    return {
        "id": appointment.id,
        "service": appointment.service,
        "owner_name": appointment.owner_name,
        "owner_email": appointment.owner_email,
        "owner_phone": appointment.owner_phone,
        "date_iso": appointment.date_iso,
        "time_slot_minutes": appointment.time_slot_minutes,
        "drop_off_minutes": appointment.drop_off_minutes,
        "pick_up_minutes": appointment.pick_up_minutes,
        "rejection_reason": appointment.rejection_reason,
    }


def time_label_for(service: str, booking: dict) -> str:
    if service == DAYCARE:
        start, end = booking.get("drop_off_minutes"), booking.get("pick_up_minutes")
        if start is not None and end is not None:
            return window_label(start, end)
        if start is not None:
            return minutes_to_label(start)
        return ""

    slot = booking.get("time_slot_minutes")
    return minutes_to_label(slot) if slot is not None else ""


def status_message(service: str, booking: dict, new_status: str, actor_name: str) -> str:
    service_name = get_policy(service).display_name
    time_label = time_label_for(service, booking)
    owner_name = booking.get("owner_name") or "there"

    text = (
        f"{owner_name}, your {service_name} appointment on {booking.get('date_iso', '')}"
        f"{f' at {time_label}' if time_label else ''} was {new_status.upper()} by {actor_name}.\n"
        f"Appointment ID: {booking.get('id', '')}"
    )
    if booking.get("rejection_reason"):
        text += f"\nReason: {booking['rejection_reason']}"
    return text


async def notify_status_change(service: str, booking: dict, new_status: str, actor_name: str) -> None:
    """Tell the owner that staff accepted or rejected the booking"""
    policy = get_policy(service)
    text = status_message(service, booking, new_status, actor_name)
    email_body = {
        "app_name": config.APP_NAME,
        "service_name": policy.display_name,
        "owner_name": booking.get("owner_name") or "there",
        "status": new_status,
        "actor_name": actor_name,
        "date": booking.get("date_iso", ""),
        "time": time_label_for(service, booking),
        "appointment_id": booking.get("id", ""),
        "rejection_reason": booking.get("rejection_reason"),
    }

    results = await asyncio.gather(
        send_status_change_email(
            booking.get("owner_email"),
            f"{config.APP_NAME} {policy.display_name} {new_status}",
            email_body,
        ),
        send_sms(booking.get("owner_phone"), text),
        return_exceptions=True,
    )

    for channel, result in zip(("email", "sms"), results):
        if isinstance(result, Exception):
            logger.error(f"❌ {channel} notification for booking {booking.get('id')} failed: {result}")
