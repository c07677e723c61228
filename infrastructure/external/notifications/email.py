"""
Plain-text SMTP mail sender (blocking; run it from a worker or a thread).
"""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Optional

from core.config import SmtpSettings, settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class SmtpEmailSender:
    def __init__(self, config: Optional[SmtpSettings] = None, *, timeout: float = 10.0) -> None:
        self._config = config or settings.smtp
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._config.host)

    def send(self, to: str, subject: str, body: str) -> bool:
        """Send one message. Returns False when SMTP is not configured."""
        if not self.configured:
            logger.info("email_skipped_not_configured", to=to, subject=subject)
            return False

        msg = EmailMessage()
        msg["From"] = self._config.from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self._config.host, self._config.port, timeout=self._timeout) as smtp:
            if self._config.use_tls:
                smtp.starttls()
            if self._config.username:
                smtp.login(self._config.username, self._config.password or "")
            smtp.send_message(msg)

        logger.info("email_sent", to=to, subject=subject)
        return True
