"""
WhisperLog Backend — Email Service
====================================

What:  Sends the welcome email and the password-reset OTP over SMTP.
Why:   Password reset is only as good as OTP delivery, so a failed OTP send
       is reported to the caller; the welcome email is a courtesy and its
       failure is only logged.
How:   smtplib in a worker thread (asyncio.to_thread) so the event loop is
       never blocked by the SMTP conversation. Port 465 uses implicit TLS,
       any other port upgrades with STARTTLS when the server offers it.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from whisperlog.config import Settings, settings
from whisperlog.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

SMTPS_PORT = 465


class EmailService:
    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings

    @property
    def is_configured(self) -> bool:
        return self.config.mail_configured

    async def send_welcome_email(self, to: str, username: str) -> None:
        """Best effort: failures are logged and never raised."""
        body = (
            f"Hi {username},\n\n"
            "Welcome to WhisperLog. Create a template, then send text or a voice note "
            "and we will format it for you.\n\n"
            f"Get started: {self.config.frontend_url}\n"
        )
        try:
            await self._send(to, "Welcome to WhisperLog", body)
        except EmailDeliveryError as e:
            logger.warning("Welcome email to %s not sent: %s", to, e.context.get("reason", e.message))

    async def send_otp_email(self, to: str, otp: str) -> None:
        """
        Send a password-reset code.

        Raises:
            EmailDeliveryError: mail is not configured or the SMTP exchange failed.
        """
        body = (
            "We received a request to reset your WhisperLog password.\n\n"
            f"Your code is: {otp}\n\n"
            f"It expires in {self.config.otp_expire_minutes} minutes. "
            "If you did not request this, you can ignore this email.\n"
        )
        await self._send(to, "Your WhisperLog password reset code", body)
        logger.info("Password reset OTP sent to %s", to)

    async def test_connection(self) -> bool:
        """Open and authenticate an SMTP session without sending anything."""
        if not self.is_configured:
            return False
        try:
            await asyncio.to_thread(self._verify_sync)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP connection test failed: %s", str(e))
            return False
        return True

    async def _send(self, to: str, subject: str, body: str) -> None:
        if not self.is_configured:
            raise EmailDeliveryError(context={"reason": "mail is not configured"})

        message = EmailMessage()
        message["From"] = self.config.mail_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", to, str(e))
            raise EmailDeliveryError(context={"reason": type(e).__name__})

    def _connect(self) -> smtplib.SMTP:
        cfg = self.config
        if cfg.mail_port == SMTPS_PORT:
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(cfg.mail_host, cfg.mail_port, timeout=cfg.mail_timeout)
        else:
            smtp = smtplib.SMTP(cfg.mail_host, cfg.mail_port, timeout=cfg.mail_timeout)
        try:
            if cfg.mail_port != SMTPS_PORT:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
            if cfg.mail_user:
                smtp.login(cfg.mail_user, cfg.mail_password)
        except BaseException:
            # Handshake or login failed: the socket is open but no session exists
            smtp.close()
            raise
        return smtp

    def _send_sync(self, message: EmailMessage) -> None:
        smtp = self._connect()
        try:
            smtp.send_message(message)
        finally:
            self._disconnect(smtp)

    def _verify_sync(self) -> None:
        smtp = self._connect()
        self._disconnect(smtp)

    @staticmethod
    def _disconnect(smtp: smtplib.SMTP) -> None:
        try:
            smtp.quit()
        except (smtplib.SMTPException, OSError):
            smtp.close()
