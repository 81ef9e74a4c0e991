"""
Outbound delivery of parent notifications.

Delivery is fire-and-forget: the channel opens (or records) a deep link and
nothing about the receiving side is observable. Failures never touch the
ledger.
"""
import logging
import re
from collections import deque
from datetime import datetime
from urllib.parse import quote

logger = logging.getLogger(__name__)

WHATSAPP_LINK_BASE = "https://wa.me/"
_NON_DIGITS = re.compile(r"\D+")


def normalize_phone(contact: str | None, country_code: str = "51") -> str:
    """Strip everything but digits; a bare 9-digit mobile gets the country code."""
    digits = _NON_DIGITS.sub("", contact or "")
    if len(digits) == 9:
        return f"{country_code}{digits}"
    return digits


def build_whatsapp_link(phone: str, message: str) -> str:
    return f"{WHATSAPP_LINK_BASE}{phone}?text={quote(message, safe='')}"


class DeliveryChannel:
    def send(self, phone: str, message: str) -> str | None:
        """Hand the message off; returns the deep link when one was produced."""
        raise NotImplementedError


class WhatsAppLinkChannel(DeliveryChannel):
    """
    Builds ``wa.me`` links and keeps the most recent ones in an outbox.

    The operator's browser opens the link; a blocked pop-up is invisible from
    here.
    """

    def __init__(self, max_outbox: int = 100):
        self.outbox: deque[dict] = deque(maxlen=max_outbox)

    def send(self, phone: str, message: str) -> str:
        link = build_whatsapp_link(phone, message)
        self.outbox.appendleft(
            {
                "phone": phone,
                "message": message,
                "link": link,
                "created_at": datetime.now().isoformat(timespec="seconds"),
            }
        )
        logger.info("Delivery link prepared for %s", phone)
        return link
