"""
Telegram alerts to staff chats about new and cancelled bookings
"""
import html
import logging
from typing import List, Optional

from telegram import Bot
from telegram.error import TelegramError

from . import config

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends booking alerts to the configured admin chats"""

    def __init__(self, bot_token: Optional[str] = None, chat_ids: Optional[str] = None):
        self.bot_token = bot_token if bot_token is not None else config.TELEGRAM_BOT_TOKEN
        self.admin_chat_ids = self._parse_chat_ids(
            chat_ids if chat_ids is not None else config.TELEGRAM_ADMIN_CHAT_IDS
        )
        self.bot = None

        if self.bot_token:
            try:
                self.bot = Bot(token=self.bot_token)
                logger.info("✅ Telegram bot initialised")
            except Exception as e:
                logger.error(f"❌ Telegram bot initialisation failed: {e}")
        else:
            logger.warning("⚠️ TELEGRAM_BOT_TOKEN not set, staff alerts disabled")

    @staticmethod
    def _escape(value) -> str:
        """Booking fields are user input and the messages are sent as HTML"""
        return html.escape(str(value))

    @staticmethod
    def _parse_chat_ids(chat_ids_str: str) -> List[int]:
        """Comma separated chat ids"""
        if not chat_ids_str:
            return []
        return [int(chat_id.strip()) for chat_id in chat_ids_str.split(",") if chat_id.strip()]

    async def _broadcast(self, message: str) -> bool:
        if not self.bot or not self.admin_chat_ids:
            logger.debug("Telegram alert skipped: bot or admin chats not configured")
            return False

        success_count = 0
        for chat_id in self.admin_chat_ids:
            try:
                await self.bot.send_message(chat_id=chat_id, text=message, parse_mode="HTML")
                success_count += 1
            except TelegramError as e:
                logger.error(f"❌ Telegram alert to {chat_id} failed: {e}")

        return success_count > 0

    async def send_new_booking_notification(
        self,
        service_name: str,
        owner_name: str,
        owner_phone: str,
        date_iso: str,
        time_label: str,
        booking_id: str,
    ) -> bool:
        """Alert staff about a booking waiting for review"""
        message = f"""
🐾 <b>New {self._escape(service_name)} booking</b>

📅 <b>Date:</b> {self._escape(date_iso)}
🕐 <b>Time:</b> {self._escape(time_label)}

👤 <b>Owner:</b> {self._escape(owner_name)}
📞 <b>Phone:</b> <code>{self._escape(owner_phone)}</code>

🆔 Booking {self._escape(booking_id)}
"""
        return await self._broadcast(message)

    async def send_booking_cancelled_notification(
        self,
        service_name: str,
        owner_name: str,
        date_iso: str,
        time_label: str,
        booking_id: str,
    ) -> bool:
        """Alert staff that an administrator removed a booking"""
        message = f"""
❌ <b>{self._escape(service_name)} booking cancelled</b>

📅 <b>Date:</b> {self._escape(date_iso)}
🕐 <b>Time:</b> {self._escape(time_label)}

👤 <b>Owner:</b> {self._escape(owner_name)}

🆔 Booking {self._escape(booking_id)}
"""
        return await self._broadcast(message)


telegram_notifier = TelegramNotifier()
