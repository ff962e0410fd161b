import asyncio
import smtplib
import ssl
from email.message import EmailMessage

from loguru import logger

from app.core.config import Environment, settings
from app.core.constants import OperationType
from app.core.exceptions.security import StoreUnavailableError
from app.core.logger import redact_email
from app.services.cache.attempt_limiter import AttemptLimiter


class EmailService:
    """
    Transactional email over SMTP.

    Sending is throttled per recipient through the attempt limiter cooldown
    (one message per ``email_send_cooldown_seconds``). When SMTP is not
    configured the message is logged instead of sent.
    """

    def __init__(self, attempt_limiter: AttemptLimiter):
        self.attempt_limiter = attempt_limiter
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.smtp_use_tls = settings.smtp_use_tls
        self.from_email = settings.smtp_from_email or settings.smtp_user
        self.from_name = settings.smtp_from_name
        self.base_url = settings.frontend_base_url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    async def send_verification_email(self, to_email: str, token: str) -> bool:
        link = f"{self.base_url}/verify-email?token={token}"
        body = (
            "Welcome!\n\n"
            f"Confirm your email address by opening the link below:\n{link}\n\n"
            "The link expires in 24 hours."
        )
        return await self._send_throttled(to_email, "Confirm your email address", body)

    async def send_password_reset_email(self, to_email: str, token: str) -> bool:
        link = f"{self.base_url}/reset-password?token={token}"
        body = (
            "A password reset was requested for your account.\n\n"
            f"Choose a new password here:\n{link}\n\n"
            "The link expires in 2 hours. If you did not ask for it, ignore this email."
        )
        return await self._send_throttled(to_email, "Reset your password", body)

    async def _send_throttled(self, to_email: str, subject: str, body: str) -> bool:
        """
        Returns:
            bool: False when the recipient is cooling down or delivery failed
        """
        try:
            allowed = await self.attempt_limiter.start_cooldown(
                to_email.lower(), OperationType.EMAIL_SEND
            )
        except StoreUnavailableError:
            logger.error(f"Email to {redact_email(to_email)} not sent: throttle store unavailable")
            return False

        if not allowed:
            logger.info(f"Email to {redact_email(to_email)} skipped: recipient cooling down")
            return False

        return await asyncio.to_thread(self._send_email, to_email, subject, body)

    def _send_email(self, to_email: str, subject: str, body: str) -> bool:
        if not self.is_configured:
            logger.info(f"SMTP not configured, email to {redact_email(to_email)}: {subject}")
            if settings.current_environment == Environment.LOCAL:
                logger.debug(body)
            return True

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message.set_content(body)

        context = ssl.create_default_context()

        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.send_message(message)
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=30
                ) as server:
                    self._login(server)
                    server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email to {redact_email(to_email)} failed: {e}")
            return False

        logger.info(f"Email sent to {redact_email(to_email)}: {subject}")
        return True

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
