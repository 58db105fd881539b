"""Email message structure and delivery transports."""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from ..core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """A rendered email ready for delivery."""
    to: str
    subject: str
    body_text: str
    body_html: str
    from_email: str


class EmailTransport(ABC):
    """Delivers rendered emails. Implementations raise on delivery failure."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        ...


class SmtpEmailTransport(EmailTransport):
    """SMTP delivery; the blocking smtplib call runs in the default executor."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = message.from_email
        msg["To"] = message.to
        msg.attach(MIMEText(message.body_text, "plain"))
        msg.attach(MIMEText(message.body_html, "html"))
        return msg

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(self._build_mime(message), to_addrs=[message.to])

    async def send(self, message: EmailMessage) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, message)
        logger.info("Email sent", extra={"recipient": message.to, "subject": message.subject})


class LoggingEmailTransport(EmailTransport):
    """Writes emails to the log instead of sending them. Used when SMTP is not configured."""

    async def send(self, message: EmailMessage) -> None:
        logger.info(
            "Email delivery (logging transport)",
            extra={
                "recipient": message.to,
                "subject": message.subject,
                "body": message.body_text,
            }
        )


def build_email_transport(settings: Settings) -> EmailTransport:
    """Pick the SMTP transport when a host is configured, else the logging one."""
    if settings.smtp_host:
        return SmtpEmailTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )
    return LoggingEmailTransport()
