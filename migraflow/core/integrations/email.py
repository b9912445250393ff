"""
Email transport for notification nodes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

import aiosmtplib

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailTransport(ABC):
    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str) -> EmailResult:
        """Deliver one message. Delivery problems are reported in the result, not raised."""


class SmtpEmailTransport(EmailTransport):
    """
    Sends plain-text email through an SMTP relay.

    Args:
        host: SMTP server
        port: SMTP port (587 with STARTTLS by default)
        username / password: optional login
        sender: From address
        use_tls: issue STARTTLS after connecting
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "workflows@localhost",
        use_tls: bool = True,
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(body)
        return message

    async def send_email(self, to: str, subject: str, body: str) -> EmailResult:
        message = self.build_message(to, subject, body)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password if self.username else None,
                start_tls=self.use_tls,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning(f"SMTP delivery to {to} failed: {e}")
            return EmailResult(success=False, error=str(e))

        return EmailResult(success=True, message_id=message["Message-ID"])
