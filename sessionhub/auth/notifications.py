"""Outbound email notifications for password reset and email verification."""

import enum
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from sessionhub.core import config
from sessionhub.core.exceptions import UpstreamNotificationError

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class NotificationSender(Protocol):
    def send(self, kind: NotificationKind, recipient: str, token: str) -> None:
        ...


def redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpNotificationSender:
    """Sends notification emails over SMTP.

    When no SMTP host is configured the message is logged instead, which
    keeps local development working without a mail server.
    """

    def __init__(
        self,
        *,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        smtp_use_tls: bool = True,
        from_email: str | None = None,
        frontend_url: str = "http://localhost:3000",
        api_url: str = "http://localhost:8000",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.frontend_url = frontend_url.rstrip("/")
        self.api_url = api_url.rstrip("/")

    @classmethod
    def from_config(cls) -> "SmtpNotificationSender":
        return cls(
            smtp_host=config.SMTP_HOST,
            smtp_port=config.SMTP_PORT,
            smtp_user=config.SMTP_USER,
            smtp_password=config.SMTP_PASSWORD,
            smtp_use_tls=config.SMTP_USE_TLS,
            from_email=config.EMAIL_FROM,
            frontend_url=config.FRONTEND_URL,
            api_url=config.PUBLIC_API_URL,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def build_message(self, kind: NotificationKind, token: str) -> tuple[str, str]:
        if kind is NotificationKind.PASSWORD_RESET:
            link = f"{self.frontend_url}/reset-password/{token}"
            return (
                "Reset your password",
                "Someone asked to reset the password for your account.\n\n"
                f"Open this link to choose a new password: {link}\n\n"
                f"The link expires in {config.PASSWORD_RESET_EXPIRES_MINUTES} minutes. "
                "If you did not ask for this, ignore this email.",
            )
        link = f"{self.api_url}/auth/verify-email/{token}"
        return (
            "Verify your email address",
            f"Confirm your email address by opening this link: {link}\n\n"
            f"The link expires in {config.EMAIL_VERIFICATION_EXPIRES_MINUTES // 60} hours.",
        )

    def send(self, kind: NotificationKind, recipient: str, token: str) -> None:
        subject, body = self.build_message(kind, token)

        if not self.is_configured:
            logger.info("SMTP not configured; %s email for %s not sent", kind.value, redact_email(recipient))
            logger.debug("Email body: %s", body)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg.attach(MIMEText(body, "plain"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, recipient, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, recipient, msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            raise UpstreamNotificationError(f"Failed to send {kind.value} email: {exc}") from exc

        logger.info("Sent %s email to %s", kind.value, redact_email(recipient))
