"""
Owner emails sent through fastapi-mail
"""
import logging
from pathlib import Path

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from . import config
from .errors import UpstreamDeliveryError

logger = logging.getLogger(__name__)

# Email configuration
conf = ConnectionConfig(
    MAIL_USERNAME=config.MAIL_USERNAME,
    MAIL_PASSWORD=config.MAIL_PASSWORD,
    MAIL_FROM=config.MAIL_FROM,
    MAIL_PORT=config.MAIL_PORT,
    MAIL_SERVER=config.MAIL_SERVER or "localhost",
    MAIL_FROM_NAME=config.MAIL_FROM_NAME,
    MAIL_STARTTLS=True,
    MAIL_SSL_TLS=False,
    USE_CREDENTIALS=bool(config.MAIL_USERNAME and config.MAIL_PASSWORD),
    VALIDATE_CERTS=True,
    TEMPLATE_FOLDER=Path(__file__).parent / "templates",
)


def email_configured() -> bool:
    return bool(config.MAIL_SERVER)


async def send_status_change_email(to: str, subject: str, body: dict) -> bool:
    """Send the booking status email; returns False when email is not configured"""
    if not to or not email_configured():
        logger.debug("Email skipped: no recipient or MAIL_SERVER not set")
        return False

    message = MessageSchema(
        subject=subject,
        recipients=[to],
        template_body=body,
        subtype=MessageType.html,
    )

    try:
        fm = FastMail(conf)
        await fm.send_message(message, template_name="status_change.html")
    except Exception as e:
        raise UpstreamDeliveryError(f"Email to {to} failed: {e}") from e

    logger.info(f"✅ Status email sent to {to}")
    return True
