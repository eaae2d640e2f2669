"""
Outbound e-mail delivery.

Providers:
    - ResendProvider: Resend HTTPS API over httpx
    - SMTPProvider: smtplib, run in a worker thread

EmailDispatcher composes the message (subject, HTML body, optional PDF) and
hands it to the configured provider. It never raises: every failure comes
back as a DeliveryRecord with success=False.
"""

import asyncio
import base64
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from listing_audit.config.settings import Settings, get_settings
from listing_audit.models.schemas import DeliveryMode, DeliveryRecord, Report
from listing_audit.utils.formatters import (
    ReportDocumentBuilder,
    ReportPayload,
    attachment_filename,
    subject_for,
)
from listing_audit.utils.logger import get_logger

logger = get_logger(__name__)

WELCOME_SUBJECT = "Welcome to E-CTRL!"


class EmailProviderError(Exception):
    """A provider rejected or failed to transmit a message."""


# =============================================================================
# Message Types
# =============================================================================

@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: str = ""
    attachments: list[EmailAttachment] = field(default_factory=list)

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachments)


# =============================================================================
# Providers
# =============================================================================

class EmailProvider(ABC):
    """Transport for one composed message."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @property
    def sender(self) -> str:
        return formataddr((self.settings.email_from_name, self.settings.email_from))

    @abstractmethod
    async def send(self, message: OutgoingEmail) -> DeliveryRecord:
        """Send the message. Raises EmailProviderError on a rejected send."""

    async def close(self) -> None:
        return None


class ResendProvider(EmailProvider):
    """Resend HTTPS API provider."""

    BASE_URL = "https://api.resend.com/emails"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(settings)
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "resend"

    @property
    def is_configured(self) -> bool:
        return self.settings.resend_api_key is not None

    def _get_api_key(self) -> str:
        if not self.settings.resend_api_key:
            raise EmailProviderError("Resend API key not configured")
        return self.settings.resend_api_key.get_secret_value()

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.email_timeout_seconds, connect=5.0),
            )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _payload(self, message: OutgoingEmail) -> dict:
        payload = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text
        if message.attachments:
            payload["attachments"] = [
                {
                    "filename": a.filename,
                    "content": base64.b64encode(a.content).decode("ascii"),
                    "content_type": a.content_type,
                }
                for a in message.attachments
            ]
        return payload

    @retry(
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
    )
    async def _post(self, payload: dict) -> httpx.Response:
        return await self._client.post(
            self.BASE_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self._get_api_key()}"},
        )

    async def send(self, message: OutgoingEmail) -> DeliveryRecord:
        if not self._client:
            await self.connect()

        response = await self._post(self._payload(message))
        if response.status_code >= 400:
            raise EmailProviderError(f"Resend error: HTTP {response.status_code}: {response.text[:200]}")

        message_id = response.json().get("id")
        return DeliveryRecord(
            success=True,
            provider=self.name,
            message_id=message_id,
            has_attachment=message.has_attachment,
        )


class SMTPProvider(EmailProvider):
    """Plain SMTP with STARTTLS. The blocking client runs in a worker thread."""

    @property
    def name(self) -> str:
        return "smtp"

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.smtp_host)

    def _build_message(self, message: OutgoingEmail) -> EmailMessage:
        mime = EmailMessage()
        mime["From"] = self.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid(domain=self.settings.email_from.split("@")[-1])
        mime.set_content(message.text or "Please view this message in an HTML-capable client.")
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

    def _send_sync(self, mime: EmailMessage) -> None:
        settings = self.settings
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.email_timeout_seconds) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if settings.smtp_username and settings.smtp_password:
                smtp.login(settings.smtp_username, settings.smtp_password.get_secret_value())
            smtp.send_message(mime)

    async def send(self, message: OutgoingEmail) -> DeliveryRecord:
        if not self.is_configured:
            raise EmailProviderError("SMTP host not configured")

        mime = self._build_message(message)
        try:
            await asyncio.to_thread(self._send_sync, mime)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailProviderError(f"SMTP error: {e}") from e

        return DeliveryRecord(
            success=True,
            provider=self.name,
            message_id=mime["Message-ID"],
            has_attachment=message.has_attachment,
        )


def create_email_provider(settings: Optional[Settings] = None) -> EmailProvider:
    """Provider selected by EMAIL_PROVIDER."""
    settings = settings or get_settings()
    if settings.email_provider == "smtp":
        return SMTPProvider(settings)
    return ResendProvider(settings)


# =============================================================================
# Dispatcher
# =============================================================================

class EmailDispatcher:
    """
    Composes and sends report e-mails.

    With a payload (a stored Report or a fresh AnalysisResult) the message
    carries a score summary and a PDF attachment; a PDF that fails to render
    is left off and the message still goes out. Without a payload a welcome
    message is sent.
    """

    def __init__(
        self,
        provider: Optional[EmailProvider] = None,
        settings: Optional[Settings] = None,
        document_builder: type[ReportDocumentBuilder] = ReportDocumentBuilder,
    ):
        self.settings = settings or get_settings()
        self.provider = provider or create_email_provider(self.settings)
        self.document_builder = document_builder

    def compose(
        self,
        to_address: str,
        name: str,
        mode: DeliveryMode,
        payload: Optional[ReportPayload] = None,
        asin: Optional[str] = None,
    ) -> OutgoingEmail:
        if payload is None:
            return OutgoingEmail(
                to=to_address,
                subject=WELCOME_SUBJECT,
                html=self.document_builder.build_html(name, mode),
                text=self.document_builder.build_text(name, mode),
            )

        if asin is None and isinstance(payload, Report):
            asin = payload.asin

        attachments = []
        try:
            pdf = self.document_builder.build_pdf(payload, mode, name=name, email=to_address)
            attachments.append(EmailAttachment(filename=attachment_filename(mode, asin), content=pdf))
        except Exception as e:
            logger.warning("PDF generation failed, sending without attachment", mode=mode.value, error=str(e))

        return OutgoingEmail(
            to=to_address,
            subject=subject_for(mode),
            html=self.document_builder.build_html(name, mode, payload, has_attachment=bool(attachments)),
            text=self.document_builder.build_text(name, mode, payload),
            attachments=attachments,
        )

    async def send(
        self,
        to_address: str,
        name: str,
        mode: DeliveryMode,
        payload: Optional[ReportPayload] = None,
        asin: Optional[str] = None,
    ) -> DeliveryRecord:
        provider_name = self.provider.name
        if not self.provider.is_configured:
            logger.warning("Email provider not configured", provider=provider_name)
            return DeliveryRecord(success=False, provider=provider_name, error="Email service not configured")

        try:
            message = self.compose(to_address, name, mode, payload, asin)
            record = await asyncio.wait_for(
                self.provider.send(message),
                timeout=self.settings.email_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("Email send timed out", provider=provider_name)
            return DeliveryRecord(success=False, provider=provider_name, error="Email send timed out")
        except Exception as e:
            logger.error("Email send failed", provider=provider_name, error=str(e), error_type=type(e).__name__)
            return DeliveryRecord(success=False, provider=provider_name, error=str(e))

        logger.info(
            "Email sent",
            provider=provider_name,
            mode=mode.value,
            message_id=record.message_id,
            has_attachment=record.has_attachment,
        )
        return record

    async def close(self) -> None:
        await self.provider.close()


__all__ = [
    "EmailAttachment",
    "EmailDispatcher",
    "EmailProvider",
    "EmailProviderError",
    "OutgoingEmail",
    "ResendProvider",
    "SMTPProvider",
    "create_email_provider",
]
