"""
Owner SMS sent through the Twilio REST API
"""
import logging
import re
from typing import Optional

import httpx

from . import config
from .errors import UpstreamDeliveryError

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def to_e164(phone: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """Normalize a local or international number to E.164"""
    if not phone:
        return phone
    country_code = country_code or config.SMS_DEFAULT_COUNTRY_CODE
    digits = re.sub(r"[^\d+]", "", str(phone))

    if digits.startswith("+"):
        return digits
    if digits.startswith(country_code):
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+{country_code}{digits[1:]}"
    return f"+{digits}"


def sms_configured() -> bool:
    return bool(config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN)


async def send_sms(to: Optional[str], body: str) -> bool:
    """Send one SMS; returns False when Twilio is not configured"""
    if not to or not sms_configured():
        logger.debug("SMS skipped: no recipient or Twilio credentials not set")
        return False

    data = {"To": to_e164(to), "Body": body}
    if config.TWILIO_MESSAGING_SERVICE_SID:
        data["MessagingServiceSid"] = config.TWILIO_MESSAGING_SERVICE_SID
    else:
        data["From"] = config.TWILIO_FROM_NUMBER

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                TWILIO_MESSAGES_URL.format(sid=config.TWILIO_ACCOUNT_SID),
                auth=(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN),
                data=data,
                timeout=10.0,
            )
    except httpx.HTTPError as e:
        raise UpstreamDeliveryError(f"Twilio request failed: {e}") from e

    if response.status_code not in (200, 201):
        try:
            error = response.json()
        except ValueError:
            error = {}
        raise UpstreamDeliveryError(
            f"Twilio API error [{error.get('code')}]: {error.get('message', response.text)}"
        )

    logger.info(f"✅ SMS sent to {data['To']} (SID: {response.json().get('sid')})")
    return True
