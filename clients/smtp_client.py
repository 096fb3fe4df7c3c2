"""
SMTP mail transport on aiosmtplib.

Implicit TLS on port 465, STARTTLS otherwise (unless disabled). Each
message gets its own connection and its own event loop via asyncio.run,
so one transport can be shared by the threadpool running sync routes.
"""

import asyncio
import logging
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid

import aiosmtplib

from auth.types import MailMessage

logger = logging.getLogger(__name__)


class SmtpError(Exception):
    """Raised when an SMTP server rejects or drops a message."""


class SmtpTransport:
    """Send HTML email through one SMTP account."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        starttls: bool = True,
        timeout_seconds: float = 30,
    ):
        if not host:
            raise ValueError("host is required")
        if not username:
            raise ValueError("username is required")

        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self.use_ssl = port == 465
        self.starttls = starttls and not self.use_ssl
        self.timeout_seconds = timeout_seconds
        self.identity = f"{username}@{host}"

    def _build(self, message: MailMessage) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["From"] = message.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Date"] = formatdate(localtime=False)
        mime["Message-ID"] = make_msgid(domain=self.host)
        mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    async def _deliver(self, mime: MIMEMultipart) -> None:
        await aiosmtplib.send(
            mime,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self._password,
            use_tls=self.use_ssl,
            start_tls=self.starttls,
            tls_context=ssl.create_default_context(),
            timeout=self.timeout_seconds,
        )

    def send(self, message: MailMessage) -> None:
        """
        Deliver message. Must not be called from a thread running an event loop.

        Raises:
            SmtpError: On connection, auth, or delivery failure
        """
        mime = self._build(message)
        try:
            asyncio.run(self._deliver(mime))
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            raise SmtpError(f"{self.identity}: {e}") from e
        logger.info(f"Email sent to {message.to} via {self.identity}")
