"""Channel senders: the transport capability the dispatch engine calls.

A sender either returns a SendResult or raises SenderError for a structured
failure. Anything else it raises is treated by the engine as a crash and
recorded as "sender_error".
"""

import json
import logging
import smtplib
from collections.abc import Mapping
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Any, Protocol
from uuid import UUID

import httpx

from ..config import settings
from ..errors import SenderError
from .credentials import reveal
from .models import Channel, NotificationType

logger = logging.getLogger(__name__)

_SENDER_NAME = "NotifyHub"


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    log_id: UUID
    user_id: str
    email: str
    notification_type: NotificationType
    channel: Channel
    content: Mapping[str, Any] = field(default_factory=dict)

    @property
    def subject(self) -> str:
        return str(self.content.get("subject") or self.content.get("title") or f"{self.notification_type} notification")

    @property
    def body(self) -> str:
        for key in ("body", "message", "text"):
            if self.content.get(key):
                return str(self.content[key])
        return json.dumps(dict(self.content), ensure_ascii=False, default=str)


@dataclass(frozen=True, slots=True)
class SendResult:
    success: bool
    failure_reason: str | None = None

    @classmethod
    def ok(cls) -> "SendResult":
        return cls(success=True)

    @classmethod
    def failed(cls, reason: str) -> "SendResult":
        return cls(success=False, failure_reason=reason)


class ChannelSender(Protocol):
    """Channel sender interface."""

    def send(self, message: OutboundMessage) -> SendResult: ...


class ConsoleSender:
    """Logs the message instead of transmitting it. Always succeeds."""

    def send(self, message: OutboundMessage) -> SendResult:
        logger.info(
            "[console:%s] to=%s type=%s subject=%r log=%s",
            message.channel,
            message.email if message.channel == Channel.EMAIL else message.user_id,
            message.notification_type,
            message.subject,
            message.log_id,
        )
        return SendResult.ok()


class SmtpEmailSender:
    """Email over SMTP with STARTTLS.

    The password may be stored Fernet-encrypted; it is decrypted per send so
    the plaintext never sits on the instance.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_addr: str = "",
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self._password = password
        self.from_addr = from_addr or user
        self.timeout = timeout

    def _build(self, message: OutboundMessage) -> MIMEText:
        msg = MIMEText(message.body, "plain", "utf-8")
        msg["From"] = formataddr((_SENDER_NAME, self.from_addr))
        msg["To"] = message.email
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.from_addr.split("@")[-1] if "@" in self.from_addr else "local")
        msg["Subject"] = message.subject
        msg["X-Notification-Type"] = str(message.notification_type)
        msg["X-Delivery-Log"] = str(message.log_id)
        return msg

    def send(self, message: OutboundMessage) -> SendResult:
        if not self.user or not self._password:
            return SendResult.failed("email_not_configured")

        msg = self._build(message)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(self.user, reveal(self._password))
                server.send_message(msg)
        except smtplib.SMTPRecipientsRefused:
            logger.warning("SMTP refused recipient for user %s", message.user_id)
            return SendResult.failed("bounced")
        except smtplib.SMTPAuthenticationError as exc:
            raise SenderError("smtp_auth_failed") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise SenderError("smtp_error") from exc
        return SendResult.ok()


class WebhookSender:
    """Hands SMS/push messages to an HTTP gateway."""

    def __init__(self, url: str, token: str = "", timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, message: OutboundMessage) -> SendResult:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {reveal(self._token)}"
        payload = {
            "id": str(message.log_id),
            "userId": message.user_id,
            "channel": str(message.channel),
            "type": str(message.notification_type),
            "subject": message.subject,
            "body": message.body,
            "content": dict(message.content),
        }
        try:
            response = self._client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException:
            return SendResult.failed("sender_timeout")
        except httpx.HTTPError as exc:
            raise SenderError("gateway_unreachable") from exc

        if response.is_success:
            return SendResult.ok()
        logger.warning("Gateway %s answered %d for log %s", self.url, response.status_code, message.log_id)
        return SendResult.failed(f"http_{response.status_code}")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class ChannelRouter:
    """Dispatches each message to the sender registered for its channel."""

    def __init__(self, routes: Mapping[Channel, ChannelSender]) -> None:
        self._routes = dict(routes)

    def send(self, message: OutboundMessage) -> SendResult:
        sender = self._routes.get(message.channel)
        if sender is None:
            return SendResult.failed("channel_unavailable")
        return sender.send(message)

    def close(self) -> None:
        """Release transport resources held by the registered senders."""
        for sender in self._routes.values():
            close = getattr(sender, "close", None)
            if close is not None:
                close()


def create_channel_sender() -> ChannelSender:
    """Factory: build the channel router from configuration."""
    timeout = settings.sender_timeout_seconds

    if settings.email_backend == "smtp":
        email: ChannelSender = SmtpEmailSender(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.smtp_from,
            timeout=timeout,
        )
    else:
        email = ConsoleSender()

    sms: ChannelSender = (
        WebhookSender(settings.sms_webhook_url, settings.webhook_token, timeout)
        if settings.sms_webhook_url
        else ConsoleSender()
    )
    push: ChannelSender = (
        WebhookSender(settings.push_webhook_url, settings.webhook_token, timeout)
        if settings.push_webhook_url
        else ConsoleSender()
    )
    logger.info(
        "Channel senders: email=%s sms=%s push=%s",
        type(email).__name__, type(sms).__name__, type(push).__name__,
    )
    return ChannelRouter({Channel.EMAIL: email, Channel.SMS: sms, Channel.PUSH: push})
