"""Dispatchers: the transports that actually deliver a notification.

A dispatcher receives (recipient, template kind, payload) and returns a
DispatchOutcome. Transport errors are classified here, at the boundary:

- SMTPDispatcher: renders the jinja2 templates and sends through smtplib
  (run in a thread so the event loop is never blocked by SMTP I/O).
- WebhookDispatcher: renders the templates and POSTs them to an HTTP email
  gateway with httpx, signing the body with HMAC-SHA256 when a secret is set.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from jinja2 import TemplateError

from bmsjobs.services.outcomes import (
    DispatchOutcome,
    PermanentFailure,
    RetryableFailure,
    Success,
)
from bmsjobs.services.recipients import hash_recipient
from bmsjobs.services.templates import RenderedEmail, TemplateRenderer

if TYPE_CHECKING:
    from bmsjobs.core.config import Settings, SMTPSettings, WebhookSettings
    from bmsjobs.db.models.base import TemplateKind

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying even though they are 4xx
RETRYABLE_HTTP_STATUSES = frozenset({408, 425, 429})


class Dispatcher(Protocol):
    """Anything that can deliver one rendered notification."""

    async def send(
        self,
        recipient: str,
        template_kind: TemplateKind,
        payload: dict[str, Any],
        *,
        recipient_name: str | None = None,
        subject: str | None = None,
    ) -> DispatchOutcome: ...


class EmailDeliveryError(Exception):
    """Raised inside the SMTP transport; classified before leaving the dispatcher."""

    def __init__(self, message: str, *, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent


def _render(
    renderer: TemplateRenderer,
    template_kind: TemplateKind,
    payload: dict[str, Any],
    recipient_name: str | None,
    subject: str | None,
) -> RenderedEmail | PermanentFailure:
    context = {"recipient_name": recipient_name, **payload}
    try:
        return renderer.render(template_kind, context, subject=subject)
    except TemplateError as e:
        logger.error("Template rendering failed: template=%s, error=%s", template_kind.value, e)
        return PermanentFailure(f"Template error: {e}")


class SMTPDispatcher:
    """Sends notifications over SMTP."""

    def __init__(
        self,
        smtp_settings: SMTPSettings,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.smtp_settings = smtp_settings
        self.renderer = renderer or TemplateRenderer()

    async def send(
        self,
        recipient: str,
        template_kind: TemplateKind,
        payload: dict[str, Any],
        *,
        recipient_name: str | None = None,
        subject: str | None = None,
    ) -> DispatchOutcome:
        rendered = _render(self.renderer, template_kind, payload, recipient_name, subject)
        if isinstance(rendered, PermanentFailure):
            return rendered

        loop = asyncio.get_running_loop()
        try:
            message_id = await loop.run_in_executor(
                None,
                self._send_email,
                recipient,
                rendered,
            )
        except EmailDeliveryError as e:
            logger.warning(
                "SMTP delivery failed: template=%s, recipient_hash=%s, permanent=%s, error=%s",
                template_kind.value,
                hash_recipient(recipient)[:16],
                e.permanent,
                e,
            )
            if e.permanent:
                return PermanentFailure(str(e))
            return RetryableFailure(str(e))

        logger.debug(
            "SMTP delivery accepted: template=%s, recipient_hash=%s, message_id=%s",
            template_kind.value,
            hash_recipient(recipient)[:16],
            message_id,
        )
        return Success(message_id=message_id)

    def _send_email(self, to_email: str, rendered: RenderedEmail) -> str:
        """Send an email via SMTP (blocking).

        Returns:
            Generated Message-ID.

        Raises:
            EmailDeliveryError: If the email cannot be sent.
        """
        settings = self.smtp_settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = rendered.subject
        msg["From"] = f"{settings.from_name} <{settings.from_address}>"
        msg["To"] = to_email

        domain = settings.from_address.rpartition("@")[2] or "localhost"
        message_id = f"<{secrets.token_hex(16)}@{domain}>"
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(rendered.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(rendered.html_body, "html", "utf-8"))

        try:
            if settings.use_ssl:
                server = smtplib.SMTP_SSL(
                    settings.host,
                    settings.port,
                    timeout=settings.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)
                if settings.use_tls:
                    server.starttls(context=ssl.create_default_context())

            with server:
                if settings.username and settings.password:
                    server.login(settings.username, settings.password.get_secret_value())
                server.sendmail(settings.from_address, [to_email], msg.as_string())

            return message_id

        except smtplib.SMTPRecipientsRefused as e:
            raise EmailDeliveryError(f"Recipient refused: {e}", permanent=True) from e
        except smtplib.SMTPResponseException as e:
            # 5xx replies are final, 4xx are transient
            raise EmailDeliveryError(
                f"SMTP error {e.smtp_code}: {e.smtp_error!r}",
                permanent=e.smtp_code >= 500,
            ) from e
        except smtplib.SMTPException as e:
            raise EmailDeliveryError(f"SMTP error: {e}") from e
        except OSError as e:
            raise EmailDeliveryError(f"Connection error: {e}") from e


class WebhookDispatcher:
    """Posts rendered notifications to an HTTP email gateway."""

    def __init__(
        self,
        webhook_settings: WebhookSettings,
        renderer: TemplateRenderer | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_settings = webhook_settings
        self.renderer = renderer or TemplateRenderer()
        self._http_client = client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.webhook_settings.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send(
        self,
        recipient: str,
        template_kind: TemplateKind,
        payload: dict[str, Any],
        *,
        recipient_name: str | None = None,
        subject: str | None = None,
    ) -> DispatchOutcome:
        rendered = _render(self.renderer, template_kind, payload, recipient_name, subject)
        if isinstance(rendered, PermanentFailure):
            return rendered

        body = json.dumps(
            {
                "to": recipient,
                "to_name": recipient_name,
                "template": template_kind.value,
                "subject": rendered.subject,
                "text": rendered.text_body,
                "html": rendered.html_body,
            },
            sort_keys=True,
        ).encode()
        headers = {"Content-Type": "application/json"}
        if self.webhook_settings.secret:
            headers["X-Signature-SHA256"] = hmac.new(
                self.webhook_settings.secret.get_secret_value().encode(),
                body,
                hashlib.sha256,
            ).hexdigest()

        client = await self._get_http_client()
        try:
            response = await client.post(self.webhook_settings.url, content=body, headers=headers)
        except httpx.RequestError as e:
            logger.warning("Email gateway request failed: template=%s, error=%s", template_kind.value, e)
            return RetryableFailure(f"Gateway request failed: {e}")

        if response.is_success:
            return Success(message_id=response.headers.get("X-Message-ID"))

        reason = f"Gateway returned status {response.status_code}"
        logger.warning("Email gateway rejected notification: template=%s, %s", template_kind.value, reason)
        if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_HTTP_STATUSES:
            return PermanentFailure(reason)
        return RetryableFailure(reason)


def build_dispatcher(settings: Settings) -> SMTPDispatcher | WebhookDispatcher:
    """Choose the configured transport."""
    if settings.webhook.enabled:
        logger.info("Using HTTP email gateway dispatcher")
        return WebhookDispatcher(settings.webhook)
    logger.info("Using SMTP dispatcher: host=%s, port=%d", settings.smtp.host, settings.smtp.port)
    return SMTPDispatcher(settings.smtp)
