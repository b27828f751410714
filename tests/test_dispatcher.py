"""Tests for email rendering and the dispatch transports.

Tests cover:
- Template rendering (subject, text, autoescaped HTML, overrides)
- SMTP error classification (permanent vs retryable)
- Webhook gateway: signature, status classification, network errors
- Transport selection from settings
"""

from __future__ import annotations

import hashlib
import hmac
import json
import smtplib
from unittest.mock import MagicMock, patch

import httpx
import pytest
from jinja2 import UndefinedError

from bmsjobs.core.config import DatabaseSettings, Settings, SMTPSettings, WebhookSettings
from bmsjobs.db.models.base import TemplateKind
from bmsjobs.services.dispatcher import SMTPDispatcher, WebhookDispatcher, build_dispatcher
from bmsjobs.services.outcomes import PermanentFailure, RetryableFailure, Success
from bmsjobs.services.templates import TemplateRenderer

LEASE_PAYLOAD = {
    "lease_number": "LSE-2026-0042",
    "tenant_name": "Aisha Rahman",
    "property_name": "Marina Heights",
    "unit_number": "1204",
    "due_date": "2026-03-31",
    "days_remaining": 30,
    "threshold_days": 30,
}

GATEWAY_URL = "https://mail-gateway.example.com/send"


class TestTemplateRenderer:
    """Tests for jinja2 email rendering."""

    def test_render_lease_reminder(self):
        rendered = TemplateRenderer().render(
            TemplateKind.LEASE_EXPIRY_REMINDER,
            {"recipient_name": "Omar", **LEASE_PAYLOAD},
        )

        assert rendered.subject == "Lease LSE-2026-0042 expires in 30 days"
        assert "Dear Omar," in rendered.text_body
        assert "unit 1204" in rendered.text_body
        assert "<strong>2026-03-31</strong>" in rendered.html_body

    def test_explicit_subject_wins(self):
        rendered = TemplateRenderer().render(
            TemplateKind.LEASE_EXPIRY_REMINDER,
            {"recipient_name": None, **LEASE_PAYLOAD},
            subject="Custom subject",
        )

        assert rendered.subject == "Custom subject"
        assert "Dear colleague," in rendered.text_body

    def test_html_is_autoescaped(self):
        payload = {**LEASE_PAYLOAD, "tenant_name": "<script>alert(1)</script>"}

        rendered = TemplateRenderer().render(
            TemplateKind.LEASE_EXPIRY_REMINDER,
            {"recipient_name": "Omar", **payload},
        )

        assert "<script>" not in rendered.html_body
        assert "&lt;script&gt;" in rendered.html_body

    def test_missing_variable_raises(self):
        with pytest.raises(UndefinedError):
            TemplateRenderer().render(
                TemplateKind.LEASE_EXPIRY_REMINDER,
                {"recipient_name": "Omar", "lease_number": "LSE-1"},
            )

    @pytest.mark.parametrize("template_kind", list(TemplateKind))
    def test_every_kind_has_templates(self, template_kind):
        env = TemplateRenderer()._env
        for suffix in ("subject.txt", "txt", "html"):
            env.get_template(f"{template_kind.value}.{suffix}")

    def test_override_directory_searched_first(self, tmp_path):
        (tmp_path / "password_reset.subject.txt").write_text("Reset for {{ first_name }}")

        rendered = TemplateRenderer(str(tmp_path)).render(
            TemplateKind.PASSWORD_RESET,
            {
                "recipient_name": "Lina",
                "first_name": "Lina",
                "reset_link": "https://bms.example.com/reset?token=abc",
                "expiration_minutes": 15,
            },
        )

        assert rendered.subject == "Reset for Lina"
        assert "https://bms.example.com/reset?token=abc" in rendered.text_body


class TestSMTPDispatcher:
    """Tests for SMTP delivery and error classification."""

    async def _send(self, dispatcher, payload=None):
        return await dispatcher.send(
            "tenant@example.com",
            TemplateKind.LEASE_EXPIRY_REMINDER,
            payload or LEASE_PAYLOAD,
            recipient_name="Aisha",
        )

    @pytest.mark.asyncio
    async def test_success(self):
        dispatcher = SMTPDispatcher(SMTPSettings(from_address="noreply@bms.example.com"))

        with patch("smtplib.SMTP") as mock_smtp_class:
            server = MagicMock()
            mock_smtp_class.return_value = server
            outcome = await self._send(dispatcher)

        assert isinstance(outcome, Success)
        assert outcome.message_id.endswith("@bms.example.com>")
        server.sendmail.assert_called_once()
        from_address, to_addresses, _ = server.sendmail.call_args.args
        assert from_address == "noreply@bms.example.com"
        assert to_addresses == ["tenant@example.com"]
        server.starttls.assert_not_called()

    @pytest.mark.asyncio
    async def test_starttls_and_login(self):
        dispatcher = SMTPDispatcher(
            SMTPSettings(use_tls=True, username="mailer", password="hunter2")
        )

        with patch("smtplib.SMTP") as mock_smtp_class:
            server = MagicMock()
            mock_smtp_class.return_value = server
            await self._send(dispatcher)

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "hunter2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (smtplib.SMTPRecipientsRefused({"tenant@example.com": (550, b"no")}), PermanentFailure),
            (smtplib.SMTPResponseException(554, b"rejected"), PermanentFailure),
            (smtplib.SMTPResponseException(451, b"try again later"), RetryableFailure),
            (smtplib.SMTPServerDisconnected("gone"), RetryableFailure),
        ],
    )
    async def test_sendmail_errors_classified(self, error, expected):
        dispatcher = SMTPDispatcher(SMTPSettings())

        with patch("smtplib.SMTP") as mock_smtp_class:
            server = MagicMock()
            server.sendmail.side_effect = error
            mock_smtp_class.return_value = server
            outcome = await self._send(dispatcher)

        assert isinstance(outcome, expected)

    @pytest.mark.asyncio
    async def test_connection_refused_is_retryable(self):
        dispatcher = SMTPDispatcher(SMTPSettings())

        with patch("smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            outcome = await self._send(dispatcher)

        assert isinstance(outcome, RetryableFailure)
        assert "Connection error" in outcome.reason

    @pytest.mark.asyncio
    async def test_template_error_is_permanent(self):
        dispatcher = SMTPDispatcher(SMTPSettings())

        with patch("smtplib.SMTP") as mock_smtp_class:
            outcome = await self._send(dispatcher, payload={"lease_number": "LSE-1"})

        assert isinstance(outcome, PermanentFailure)
        assert outcome.reason.startswith("Template error")
        mock_smtp_class.assert_not_called()


class TestWebhookDispatcher:
    """Tests for the HTTP email gateway."""

    def _dispatcher(self, handler, secret="gateway-secret"):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        settings = WebhookSettings(enabled=True, url=GATEWAY_URL, secret=secret)
        return WebhookDispatcher(settings, client=client)

    async def _send(self, dispatcher):
        return await dispatcher.send(
            "tenant@example.com",
            TemplateKind.LEASE_EXPIRY_REMINDER,
            LEASE_PAYLOAD,
            recipient_name="Aisha",
        )

    @pytest.mark.asyncio
    async def test_success_signs_body(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202, headers={"X-Message-ID": "gw-123"})

        dispatcher = self._dispatcher(handler)
        outcome = await self._send(dispatcher)
        await dispatcher.close()

        assert outcome == Success(message_id="gw-123")
        [request] = requests
        assert str(request.url) == GATEWAY_URL
        expected = hmac.new(b"gateway-secret", request.content, hashlib.sha256).hexdigest()
        assert request.headers["X-Signature-SHA256"] == expected
        body = json.loads(request.content)
        assert body["to"] == "tenant@example.com"
        assert body["template"] == "lease_expiry_reminder"
        assert body["subject"] == "Lease LSE-2026-0042 expires in 30 days"

    @pytest.mark.asyncio
    async def test_no_signature_without_secret(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        dispatcher = self._dispatcher(handler, secret=None)
        await self._send(dispatcher)

        assert "X-Signature-SHA256" not in requests[0].headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (400, PermanentFailure),
            (422, PermanentFailure),
            (408, RetryableFailure),
            (429, RetryableFailure),
            (500, RetryableFailure),
            (503, RetryableFailure),
        ],
    )
    async def test_status_classification(self, status_code, expected):
        dispatcher = self._dispatcher(lambda request: httpx.Response(status_code))

        outcome = await self._send(dispatcher)

        assert isinstance(outcome, expected)
        assert str(status_code) in outcome.reason

    @pytest.mark.asyncio
    async def test_network_error_is_retryable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        outcome = await self._send(self._dispatcher(handler))

        assert isinstance(outcome, RetryableFailure)


class TestBuildDispatcher:
    """Tests for transport selection."""

    def test_smtp_by_default(self):
        settings = Settings(database=DatabaseSettings(url="sqlite+aiosqlite://"))

        assert isinstance(build_dispatcher(settings), SMTPDispatcher)

    def test_webhook_when_enabled(self):
        settings = Settings(
            database=DatabaseSettings(url="sqlite+aiosqlite://"),
            webhook=WebhookSettings(enabled=True, url=GATEWAY_URL),
        )

        assert isinstance(build_dispatcher(settings), WebhookDispatcher)
