"""
Failure Notification Adapter
Posts simulation failure alerts to a Telegram chat when configured
"""

import asyncio
from typing import Optional

import aiohttp

from vaultsim.core.config import settings
from vaultsim.core.logging import get_logger

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramNotifier:
    """Best-effort alert channel; delivery problems are logged and dropped"""

    def __init__(self, bot_id: Optional[str] = None, chat_id: Optional[str] = None):
        self.bot_id = bot_id if bot_id is not None else settings.TELEGRAM_BOT_ID
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_CHAT_ID

    @property
    def enabled(self) -> bool:
        return bool(self.bot_id and self.chat_id)

    async def send_message(self, text: str) -> bool:
        """Send text to the configured chat; returns whether it was delivered"""
        if not self.enabled:
            return False

        url = f"{TELEGRAM_API_BASE}/bot{self.bot_id}/sendMessage"
        params = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": "true",
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session:
                async with session.get(url, params=params) as response:
                    if response.status != 200:
                        logger.warning("Telegram notification rejected", status=response.status)
                        return False
            return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Telegram notification failed", error=str(e))
            return False


_notifier: Optional[TelegramNotifier] = None


def get_notifier() -> TelegramNotifier:
    """Get global notifier instance"""
    global _notifier
    if _notifier is None:
        _notifier = TelegramNotifier()
    return _notifier
