import asyncio
import base64
import json
import smtplib
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from listing_audit.models.schemas import DeliveryMode, DeliveryRecord
from listing_audit.services.email_service import (
    WELCOME_SUBJECT,
    EmailAttachment,
    EmailDispatcher,
    EmailProviderError,
    OutgoingEmail,
    ResendProvider,
    SMTPProvider,
    create_email_provider,
)
from listing_audit.utils.formatters import ReportDocumentBuilder


@pytest.fixture
def fake_provider():
    provider = MagicMock()
    provider.name = "fake"
    provider.is_configured = True
    provider.send = AsyncMock(return_value=DeliveryRecord(success=True, provider="fake", message_id="m-1"))
    provider.close = AsyncMock()
    return provider


def outgoing(**kwargs):
    defaults = dict(to="sam@example.com", subject="Hi", html="<p>Hi</p>", text="Hi")
    defaults.update(kwargs)
    return OutgoingEmail(**defaults)


# =============================================================================
# Providers
# =============================================================================

def test_create_email_provider(mock_settings):
    assert isinstance(create_email_provider(mock_settings), ResendProvider)
    mock_settings.email_provider = "smtp"
    assert isinstance(create_email_provider(mock_settings), SMTPProvider)


def test_sender_is_formatted(mock_settings):
    provider = ResendProvider(mock_settings)
    assert provider.sender == "E-Ctrl <contact@e-ctrl.co.uk>"


@pytest.mark.asyncio
async def test_resend_posts_message_with_attachment(mock_settings):
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "re_msg_1"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = ResendProvider(mock_settings, client=client)
    message = outgoing(attachments=[EmailAttachment(filename="report.pdf", content=b"%PDF-1.4")])

    record = await provider.send(message)

    assert record.success and record.message_id == "re_msg_1" and record.has_attachment
    assert captured["auth"] == "Bearer re_mock_key"
    body = captured["body"]
    assert body["to"] == ["sam@example.com"]
    assert body["from"] == "E-Ctrl <contact@e-ctrl.co.uk>"
    assert body["attachments"][0]["filename"] == "report.pdf"
    assert base64.b64decode(body["attachments"][0]["content"]) == b"%PDF-1.4"


@pytest.mark.asyncio
async def test_resend_error_status_raises(mock_settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(422, text="bad from")))
    provider = ResendProvider(mock_settings, client=client)
    with pytest.raises(EmailProviderError, match="422"):
        await provider.send(outgoing())


def test_resend_not_configured_without_key(mock_settings):
    mock_settings.resend_api_key = None
    assert ResendProvider(mock_settings).is_configured is False


@pytest.mark.asyncio
async def test_smtp_sends_multipart_message(mock_settings):
    mock_settings.smtp_host = "smtp.example.com"
    mock_settings.smtp_username = "mailer"
    mock_settings.smtp_password = MagicMock()
    mock_settings.smtp_password.get_secret_value.return_value = "pw"

    smtp = MagicMock()
    smtp.has_extn.return_value = True
    with patch("listing_audit.services.email_service.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.__enter__.return_value = smtp
        record = await SMTPProvider(mock_settings).send(
            outgoing(attachments=[EmailAttachment(filename="r.pdf", content=b"%PDF")])
        )

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=5.0)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("mailer", "pw")
    sent = smtp.send_message.call_args.args[0]
    assert sent["To"] == "sam@example.com"
    assert [part.get_filename() for part in sent.iter_attachments()] == ["r.pdf"]
    assert record.success and record.message_id.endswith("@e-ctrl.co.uk>")


@pytest.mark.asyncio
async def test_smtp_failure_raises_provider_error(mock_settings):
    mock_settings.smtp_host = "smtp.example.com"
    with patch("listing_audit.services.email_service.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
        with pytest.raises(EmailProviderError):
            await SMTPProvider(mock_settings).send(outgoing())


# =============================================================================
# Dispatcher
# =============================================================================

def test_compose_report_with_pdf(mock_settings, fake_provider, existing_result):
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)

    message = dispatcher.compose("sam@example.com", "Sam", DeliveryMode.AUDIT, existing_result, asin="B08N5WRWNW")

    assert message.subject == "Your Amazon Audit Report is Ready!"
    assert message.attachments[0].filename == "amazon-audit-report-B08N5WRWNW.pdf"
    assert message.attachments[0].content.startswith(b"%PDF")
    assert "attached to this email as a PDF" in message.html


def test_compose_welcome_without_payload(mock_settings, fake_provider):
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)
    message = dispatcher.compose("sam@example.com", "Sam", DeliveryMode.CREATE)
    assert message.subject == WELCOME_SUBJECT
    assert message.attachments == []
    assert "Hello Sam!" in message.html


def test_compose_continues_when_pdf_fails(mock_settings, fake_provider, new_result):
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)
    with patch.object(ReportDocumentBuilder, "build_pdf", side_effect=RuntimeError("font missing")):
        message = dispatcher.compose("nia@example.com", "Nia", DeliveryMode.CREATE, new_result)

    assert message.subject == "Your Amazon Listing Pack is Ready!"
    assert message.attachments == []
    assert "attached to this email" not in message.html


@pytest.mark.asyncio
async def test_send_success(mock_settings, fake_provider, existing_result):
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)
    record = await dispatcher.send("sam@example.com", "Sam", DeliveryMode.AUDIT, existing_result)
    assert record.success
    sent = fake_provider.send.call_args.args[0]
    assert sent.to == "sam@example.com"


@pytest.mark.asyncio
async def test_send_unconfigured_provider(mock_settings, fake_provider):
    fake_provider.is_configured = False
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)

    record = await dispatcher.send("sam@example.com", "Sam", DeliveryMode.AUDIT)

    assert record.success is False
    assert record.error == "Email service not configured"
    fake_provider.send.assert_not_called()


@pytest.mark.asyncio
async def test_send_never_raises(mock_settings, fake_provider):
    fake_provider.send.side_effect = EmailProviderError("Resend error: HTTP 500")
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)

    record = await dispatcher.send("sam@example.com", "Sam", DeliveryMode.AUDIT)

    assert record.success is False
    assert "HTTP 500" in record.error


@pytest.mark.asyncio
async def test_send_times_out(mock_settings, fake_provider):
    mock_settings.email_timeout_seconds = 0.01

    async def slow_send(message):
        await asyncio.sleep(1)

    fake_provider.send = slow_send
    dispatcher = EmailDispatcher(provider=fake_provider, settings=mock_settings)

    record = await dispatcher.send("sam@example.com", "Sam", DeliveryMode.AUDIT)

    assert record.success is False
    assert record.error == "Email send timed out"


@pytest.mark.asyncio
async def test_close_closes_provider(mock_settings, fake_provider):
    await EmailDispatcher(provider=fake_provider, settings=mock_settings).close()
    fake_provider.close.assert_awaited_once()
