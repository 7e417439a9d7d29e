from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import Protocol

from estatetrust.core.config import Settings


log = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Transport could not hand the code to the recipient."""


class CodeDelivery(Protocol):
    async def deliver_code(self, address: str, code: str, *, ttl_seconds: int) -> None:
        ...


def render_code_email(code: str, ttl_seconds: int) -> tuple[str, str]:
    minutes = max(1, ttl_seconds // 60)
    subject = "Your verification code"
    body = (
        f"Your verification code is {code}.\n\n"
        f"It expires in {minutes} minutes and can be used once.\n"
        "If you did not ask to see a property owner's contact details, ignore this email.\n"
    )
    return subject, body


class SmtpCodeDelivery:
    """Plain-text mail over SMTP; the blocking smtplib call runs in a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        mail_from: str,
        timeout_seconds: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.mail_from = mail_from
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, s: Settings) -> "SmtpCodeDelivery":
        return cls(
            host=s.smtp_host or "",
            port=s.smtp_port,
            username=s.smtp_username,
            password=s.smtp_password.get_secret_value() if s.smtp_password else None,
            use_tls=s.smtp_use_tls,
            mail_from=s.mail_from,
        )

    def _send(self, msg: MIMEText, to_address: str) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.mail_from, [to_address], msg.as_string())

    async def deliver_code(self, address: str, code: str, *, ttl_seconds: int) -> None:
        subject, body = render_code_email(code, ttl_seconds)
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.mail_from
        msg["To"] = address

        try:
            await asyncio.to_thread(self._send, msg, address)
        except (smtplib.SMTPException, OSError) as e:
            log.warning("smtp delivery to %s failed: %s: %s", address, type(e).__name__, e)
            raise DeliveryError(str(e)) from e


class LogCodeDelivery:
    """Development transport: writes the code to the log instead of sending mail."""

    async def deliver_code(self, address: str, code: str, *, ttl_seconds: int) -> None:
        log.info("verification code for %s: %s (valid %ss)", address, code, ttl_seconds)


class UnconfiguredCodeDelivery:
    """Stand-in outside dev when no mail transport is configured: every send fails."""

    async def deliver_code(self, address: str, code: str, *, ttl_seconds: int) -> None:
        log.error("no mail transport configured (SMTP_HOST unset); code for %s not sent", address)
        raise DeliveryError("mail transport not configured")


def build_code_delivery(s: Settings) -> CodeDelivery:
    if s.smtp_host:
        return SmtpCodeDelivery.from_settings(s)
    if s.env == "dev":
        return LogCodeDelivery()
    return UnconfiguredCodeDelivery()
