"""Outbound email transport for leave notifications.

SendGrid is used when an API key is configured, SMTP otherwise. Both paths
report failure by returning ``False`` so the dispatcher can mark the
notification retryable.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


def _sender() -> tuple[str, str]:
    return settings.APP_NAME, settings.SMTP_FROM_EMAIL


class EmailService:
    @property
    def is_configured(self) -> bool:
        return bool(settings.SENDGRID_API_KEY) or bool(settings.SMTP_USER)

    async def send_email(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> bool:
        if settings.SENDGRID_API_KEY:
            return await self._sendgrid(to, subject, body_text, body_html, reply_to)
        if settings.SMTP_USER:
            message = self.build_message(to, subject, body_text, body_html, reply_to)
            return await asyncio.to_thread(self._smtp, message)

        logger.warning("No email provider configured, not sending to %s", to)
        return False

    @staticmethod
    def build_message(
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr(_sender())
        message["To"] = to
        message["Subject"] = subject
        if reply_to:
            message["Reply-To"] = reply_to
        message.set_content(body_text)
        if body_html:
            message.add_alternative(body_html, subtype="html")
        return message

    async def _sendgrid(
        self,
        to: str,
        subject: str,
        body_text: str,
        body_html: Optional[str],
        reply_to: Optional[str],
    ) -> bool:
        name, address = _sender()
        content = [{"type": "text/plain", "value": body_text}]
        if body_html:
            content.append({"type": "text/html", "value": body_html})
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": address, "name": name},
            "subject": subject,
            "content": content,
        }
        if reply_to:
            payload["reply_to"] = {"email": reply_to}

        async with httpx.AsyncClient(timeout=settings.EMAIL_TIMEOUT_SECONDS) as client:
            try:
                resp = await client.post(
                    SENDGRID_SEND_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
                )
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "SendGrid rejected mail to %s: %s %s",
                    to,
                    e.response.status_code,
                    e.response.text,
                )
                return False
            except httpx.HTTPError as e:
                logger.error("SendGrid request for %s failed: %s", to, e)
                return False

        logger.info("Mail to %s accepted by SendGrid", to)
        return True

    def _smtp(self, message: EmailMessage) -> bool:
        # Blocking; always called through asyncio.to_thread
        try:
            with smtplib.SMTP(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                timeout=settings.EMAIL_TIMEOUT_SECONDS,
            ) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls()
                if settings.SMTP_USER and settings.SMTP_PASSWORD:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", message["To"], e)
            return False

        logger.info("Mail to %s handed to SMTP server", message["To"])
        return True


email_service = EmailService()
