"""
Outbound mail for password reset and email verification links.

Sends through SMTP when SMTP_HOST and MAIL_FROM are set, otherwise only logs
that a message would have been sent. Delivery problems are logged and
reported as False; they never fail the request that triggered them.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional
from urllib.parse import urlencode

logger = logging.getLogger(__name__)


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        client_url: str = "http://localhost:5173",
        timeout: float = 10.0,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.client_url = client_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "Mailer":
        return cls(
            smtp_host=config.get("SMTP_HOST"),
            smtp_port=config.get("SMTP_PORT", 587),
            smtp_user=config.get("SMTP_USER"),
            smtp_password=config.get("SMTP_PASSWORD"),
            smtp_use_tls=config.get("SMTP_USE_TLS", True),
            from_email=config.get("MAIL_FROM"),
            client_url=config.get("CLIENT_URL", "http://localhost:5173"),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, to_email: str, subject: str, body: str) -> bool:
        if not self.is_configured:
            logger.info("Mail delivery not configured, dropping %r for %s", subject, redact_email(to_email))
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to_email
        message.set_content(body)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
                if self.smtp_use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                if self.smtp_user and self.smtp_password:
                    smtp.login(self.smtp_user, self.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send %r to %s: %s", subject, redact_email(to_email), exc)
            return False
        logger.info("Sent %r to %s", subject, redact_email(to_email))
        return True

    def _link(self, path: str, user_id: str, token: str) -> str:
        return f"{self.client_url}{path}?{urlencode({'userId': user_id, 'token': token})}"

    def send_password_reset(self, to_email: str, user_id: str, token: str) -> bool:
        link = self._link("/reset-password", user_id, token)
        body = (
            "A password reset was requested for your account.\n\n"
            f"Reset your password here (valid for one hour):\n{link}\n\n"
            "If you did not request this, you can ignore this message."
        )
        return self.send(to_email, "Reset your password", body)

    def send_email_verification(self, to_email: str, user_id: str, token: str) -> bool:
        link = self._link("/verify-email", user_id, token)
        body = f"Confirm your email address (valid for one hour):\n{link}\n"
        return self.send(to_email, "Verify your email address", body)
