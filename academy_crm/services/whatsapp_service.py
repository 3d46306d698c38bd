"""
WhatsApp Service (Green API)
Sends operational alerts to staff phones
"""

import logging
import re

import httpx

from ..config import EXTERNAL_HTTP_TIMEOUT, GREEN_API_INSTANCE_ID, GREEN_API_TOKEN, GREEN_API_URL
from ..errors import ExternalProviderError

logger = logging.getLogger(__name__)


def format_chat_id(phone: str) -> str:
    """
    Normalize a phone number to a Green API chat id.

    Local Israeli numbers (leading 0 or 9 digits) get the 972 country code.
    """
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("0"):
        digits = "972" + digits[1:]
    if len(digits) == 9:
        digits = "972" + digits
    return f"{digits}@c.us"


async def send_whatsapp_message(phone: str, message: str) -> bool:
    """
    Send a WhatsApp text message

    Returns:
        False when WhatsApp is not configured

    Raises:
        ExternalProviderError: Green API rejected the message or was unreachable
    """
    if not GREEN_API_INSTANCE_ID or not GREEN_API_TOKEN:
        logger.info("📵 WhatsApp not configured, skipping message")
        return False

    url = f"{GREEN_API_URL}/waInstance{GREEN_API_INSTANCE_ID}/sendMessage/{GREEN_API_TOKEN}"
    try:
        async with httpx.AsyncClient(timeout=EXTERNAL_HTTP_TIMEOUT) as client:
            response = await client.post(url, json={"chatId": format_chat_id(phone), "message": message})
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"❌ WhatsApp send to {phone} failed: {e}")
        raise ExternalProviderError("whatsapp", str(e)) from e

    logger.info(f"📱 WhatsApp sent to {phone}")
    return True
