"""
Transactional email through the Resend HTTP API.

Without RESEND_API_KEY configured the message is logged instead of sent,
so local development and tests never reach the network.
"""

import logging
from dataclasses import dataclass
from html import escape
from typing import Optional

import httpx

from landlordcomply.core.config import get_settings
from landlordcomply.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    delivered: bool
    message_id: Optional[str] = None


class ResendMailer:
    API_URL = "https://api.resend.com/emails"

    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.sender = sender or settings.email_from

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> SendResult:
        """Send one message. Raises ServiceUnavailableError when the provider rejects it."""
        if not self.is_configured:
            logger.info("Email not configured; would send %r to %s", subject, to)
            return SendResult(delivered=False)

        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text

        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    self.API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Resend delivery failed: %s", e)
            raise ServiceUnavailableError("Failed to send access link. Please try again.") from e

        message_id = response.json().get("id")
        logger.info("Sent %r (id=%s)", subject, message_id)
        return SendResult(delivered=True, message_id=message_id)


def access_link_email(link: str, jurisdiction_name: str) -> tuple[str, str, str]:
    """(subject, html, text) for the start-flow access link."""
    subject = "Your LandlordComply deposit deadline"
    text = (
        f"Your {jurisdiction_name} security deposit checklist is ready.\n\n"
        f"Open it here: {link}\n\n"
        "This link expires in 7 days. If you didn't request it, you can ignore this email."
    )
    html = f"""<div style="font-family: Helvetica, Arial, sans-serif; max-width: 560px;">
  <h2>Your deposit checklist is ready</h2>
  <p>Your {escape(jurisdiction_name)} security deposit deadline and checklist are waiting for you.</p>
  <p><a href="{escape(link, quote=True)}" style="background:#2563eb;color:#fff;padding:10px 18px;border-radius:6px;text-decoration:none;">Open my case</a></p>
  <p style="color:#666;font-size:12px;">This link expires in 7 days. If you didn't request it, you can ignore this email.</p>
</div>"""
    return subject, html, text


_mailer: Optional[ResendMailer] = None


def get_mailer() -> ResendMailer:
    """Get or create the mailer singleton."""
    global _mailer
    if _mailer is None:
        _mailer = ResendMailer()
    return _mailer
