"""SMTP email delivery with Jinja2-rendered HTML bodies.

Three template kinds exist, each with a fixed data schema:

• ``reminder``: title, message, appUrl
• ``monthlySummary``: month, year, income, expenses, net, topCategories, appUrl
• ``notification``: title, message, actionUrl (optional)

``smtplib`` is blocking, so delivery runs in a worker thread to keep the
event loop (and every other scheduled job) responsive.
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from finance_tracker import config
from finance_tracker.exceptions import EmailNotConfiguredError, EmailTemplateNotFoundError

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

SUBJECTS = {
    "reminder": lambda data: f"💰 Finance Tracker Reminder: {data.get('title', 'Reminder')}",
    "monthlySummary": lambda data: f"📊 Monthly Finance Summary - {data.get('month')} {data.get('year')}",
    "notification": lambda data: f"🔔 Finance Tracker: {data.get('title', 'Notification')}",
}

# Header gradient and accent colour per template
THEMES = {
    "reminder": ("#667eea", "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"),
    "monthlySummary": ("#28a745", "linear-gradient(135deg, #28a745 0%, #20c997 100%)"),
    "notification": ("#17a2b8", "linear-gradient(135deg, #17a2b8 0%, #138496 100%)"),
}


def render_email(kind: str, data: Dict[str, Any]) -> Tuple[str, str]:
    """Return ``(subject, html)`` for template *kind*."""
    if kind not in SUBJECTS:
        raise EmailTemplateNotFoundError(kind)
    accent, accent_gradient = THEMES[kind]
    html = _env.get_template(f"{kind}.html").render(
        accent=accent, accent_gradient=accent_gradient, **data
    )
    return SUBJECTS[kind](data), html


class EmailSender:
    """Sends templated emails over SMTP."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        secure: Optional[bool] = None,
        sender: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port if port is not None else config.SMTP_PORT
        self.user = user if user is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASSWORD
        self.secure = secure if secure is not None else config.SMTP_SECURE
        self.sender = sender or config.EMAIL_FROM or self.user
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if not self.host or not self.sender:
            raise EmailNotConfiguredError("SMTP host/sender missing; email not sent")
        if self.secure:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.starttls()
        if self.user and self.password:
            server.login(self.user, self.password)
        return server

    def _deliver(self, message: EmailMessage) -> None:
        with self._connect() as server:
            server.send_message(message)

    async def send(self, to: str, kind: str, data: Dict[str, Any]) -> str:
        """
        Render and send an email.

        Args:
            to: Recipient address
            kind: Template kind (reminder, monthlySummary, notification)
            data: Template data for that kind

        Returns:
            The Message-ID of the sent email
        """
        subject, html = render_email(kind, data)

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to
        message["Message-ID"] = make_msgid(domain="finance-tracker")
        message.set_content(f"{data.get('title') or subject}\n\n{data.get('message', '')}".strip())
        message.add_alternative(html, subtype="html")

        try:
            await asyncio.to_thread(self._deliver, message)
        except Exception as e:
            logger.error(f"Email sending to {to} failed: {str(e)}")
            raise

        logger.info(f"Email sent successfully to {to}: {message['Message-ID']}")
        return message["Message-ID"]

    async def verify(self) -> bool:
        """Check that the SMTP server accepts a connection and login."""
        def _check():
            with self._connect() as server:
                server.noop()

        try:
            await asyncio.to_thread(_check)
            logger.info("Email server connection verified")
            return True
        except Exception as e:
            logger.error(f"Email server connection failed: {str(e)}")
            return False
