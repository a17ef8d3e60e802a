"""Email transports.

A transport submits one rendered message to a provider and returns the
provider-assigned message id. Every provider failure is surfaced as a
``TransportError`` so the delivery engine can decide whether to retry.
"""
import smtplib
import ssl
import uuid
from dataclasses import dataclass, field
from email.message import EmailMessage as MimeMessage
from email.utils import make_msgid
from typing import Dict, List, Optional, Protocol

import resend
from resend.exceptions import ResendError

from app.core.logging_config import get_logger

logger = get_logger(__name__)


class TransportError(Exception):
    """A provider rejected or could not accept a message.

    ``retryable`` is False for permanent failures (bad recipient, auth
    rejected) that will not succeed on a later attempt.
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass
class EmailMessage:
    sender: str
    recipients: List[str]
    subject: str
    html: str
    attachments: List[EmailAttachment] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


class EmailTransport(Protocol):
    def send(self, message: EmailMessage) -> str:
        """Submit ``message``; return the provider message id."""
        ...


def _bare_address(sender: str) -> str:
    """'Name <addr@x>' -> 'addr@x'."""
    return sender.split("<")[-1].rstrip(">").strip()


class SmtpTransport:
    """Deliver through an authenticated SMTP relay (SMTP2Go by default)."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_mime(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["Subject"] = message.subject
        mime["From"] = message.sender
        mime["To"] = ", ".join(message.recipients)
        mime["Message-ID"] = make_msgid(domain=_bare_address(message.sender).split("@")[-1])
        for name, value in message.headers.items():
            mime[name] = value

        mime.set_content("This message requires an HTML-capable email client.")
        mime.add_alternative(message.html, subtype="html")

        for attachment in message.attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            mime.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return mime

    def send(self, message: EmailMessage) -> str:
        mime = self.build_mime(message)
        try:
            if self.port == 465:
                context = ssl.create_default_context()
                server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.port != 465 and self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(mime, from_addr=_bare_address(message.sender), to_addrs=message.recipients)
        except (smtplib.SMTPRecipientsRefused, smtplib.SMTPAuthenticationError, smtplib.SMTPSenderRefused) as e:
            raise TransportError(f"SMTP rejected message: {e}", retryable=False) from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"SMTP delivery failed: {e}") from e

        return mime["Message-ID"]


def _resend_retryable(error: ResendError) -> bool:
    """4xx API errors other than 429 are permanent (validation, auth, bad sender)."""
    try:
        status = int(getattr(error, "code", None))
    except (TypeError, ValueError):
        return True
    return status == 429 or not 400 <= status < 500


class ResendTransport:
    """Deliver through the Resend HTTP API."""

    def __init__(self, api_key: str):
        if not api_key:
            raise ValueError("RESEND_API_KEY is not configured")
        resend.api_key = api_key

    def send(self, message: EmailMessage) -> str:
        email_data = {
            "from": message.sender,
            "to": message.recipients,
            "subject": message.subject,
            "html": message.html,
        }
        if message.headers:
            email_data["headers"] = dict(message.headers)
        if message.attachments:
            email_data["attachments"] = [
                {"filename": attachment.filename, "content": list(attachment.content)}
                for attachment in message.attachments
            ]

        try:
            response = resend.Emails.send(email_data)
        except ResendError as e:
            raise TransportError(f"Resend rejected message: {e}", retryable=_resend_retryable(e)) from e
        except Exception as e:
            raise TransportError(f"Resend delivery failed: {e}") from e

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        if not message_id:
            raise TransportError("Resend returned no message id")
        return message_id


class ConsoleTransport:
    """Log messages instead of sending them (local development)."""

    def send(self, message: EmailMessage) -> str:
        message_id = f"console-{uuid.uuid4().hex}"
        logger.info(
            "email_logged",
            message_id=message_id,
            recipients=message.recipients,
            subject=message.subject,
            attachments=[a.filename for a in message.attachments],
        )
        return message_id


def build_transport(settings) -> EmailTransport:
    """Create the transport selected by ``settings.EMAIL_PROVIDER``."""
    if settings.EMAIL_PROVIDER == "resend":
        return ResendTransport(settings.RESEND_API_KEY)
    if settings.EMAIL_PROVIDER == "console":
        return ConsoleTransport()
    return SmtpTransport(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_USE_TLS,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )
