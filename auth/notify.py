"""
auth/notify.py -- Outbound notification sinks (password-reset email).

Pattern: Strategy behind a Protocol. AuthService only knows NotificationSink;
build_notification_sink() picks the variant from configuration:

  SmtpNotificationSink   -- real delivery via aiosmtplib. Used when SMTP host,
                            user and password are all configured.
  MemoryNotificationSink -- records messages in `sent` and logs the recipient
                            and subject. Used in development and tests so
                            dispatched messages can be asserted on without
                            network I/O.

Security: message bodies contain the cleartext reset token. No sink logs a
body, only recipient and subject.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

import aiosmtplib

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("jobtracker.notify")


@dataclass(frozen=True)
class Notification:
    to: str
    subject: str
    text: str
    html: str


class NotificationSink(Protocol):
    async def send(self, message: Notification) -> None:
        """Deliver message. May raise on transport failure."""
        ...


class SmtpNotificationSink:
    """Deliver notifications through an SMTP relay.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS.
    """

    def __init__(self, host: str, port: int, username: str, password: str, sender: str, timeout: int = 10) -> None:
        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self.sender = sender
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"SmtpNotificationSink(host={self.host!r}, port={self.port})"

    async def send(self, message: Notification) -> None:
        email = EmailMessage()
        email["From"] = self.sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.text)
        email.add_alternative(message.html, subtype="html")

        implicit_tls = self.port == 465
        await aiosmtplib.send(
            email,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self._password,
            use_tls=implicit_tls,
            start_tls=not implicit_tls,
            timeout=self.timeout,
        )
        logger.info("Email sent to %s (%s)", message.to, message.subject)


class MemoryNotificationSink:
    """Keep notifications in memory instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, message: Notification) -> None:
        self.sent.append(message)
        logger.info("Email not sent (SMTP not configured): to=%s subject=%r", message.to, message.subject)


def build_notification_sink(settings: Settings) -> NotificationSink:
    """Return the SMTP sink when SMTP is fully configured, else the memory sink."""
    if settings.smtp_configured:
        return SmtpNotificationSink(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
        )
    logger.warning("SMTP not configured -- outbound email is kept in memory only")
    return MemoryNotificationSink()


def _describe_minutes(minutes: int) -> str:
    if minutes % 60 == 0:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


def build_password_reset_email(to: str, reset_url: str, expires_minutes: int = 60) -> Notification:
    """Compose the reset email carrying reset_url."""
    subject = "Reset your password"
    expires = _describe_minutes(expires_minutes)
    safe_url = html.escape(reset_url, quote=True)
    body_html = f"""
<div style="font-family: sans-serif; max-width: 480px; margin: 0 auto; padding: 24px;">
  <h2 style="margin: 0 0 16px;">Reset your password</h2>
  <p style="color: #555; line-height: 1.5;">
    We received a request to reset your password. Click the button below to choose a new one.
    This link expires in {expires}.
  </p>
  <div style="margin: 24px 0; text-align: center;">
    <a href="{safe_url}"
       style="display: inline-block; padding: 12px 24px; background: #4f46e5; color: #fff;
              text-decoration: none; border-radius: 6px; font-weight: 600;">
      Reset Password
    </a>
  </div>
  <p style="color: #888; font-size: 13px; line-height: 1.5;">
    If the button doesn't work, copy and paste this URL into your browser:<br/>
    <a href="{safe_url}" style="color: #4f46e5;">{safe_url}</a>
  </p>
  <p style="color: #888; font-size: 13px;">
    If you didn't request this, you can safely ignore this email.
  </p>
</div>
""".strip()
    body_text = "\n".join(
        [
            "Reset your password",
            "",
            "We received a request to reset your password.",
            f"Visit the link below to choose a new one (expires in {expires}):",
            "",
            reset_url,
            "",
            "If you didn't request this, you can safely ignore this email.",
        ]
    )
    return Notification(to=to, subject=subject, text=body_text, html=body_html)
