"""Notification channels — email, chat-ops, generic webhook and SMS delivery."""

from __future__ import annotations

import abc
from typing import Any

import aiohttp
import structlog

from src.core.config import (
    ChatOpsConfig,
    EmailConfig,
    NotificationsConfig,
    SmsConfig,
    WebhookConfig,
)
from src.core.types import AlertLevel, ErrorKind
from src.monitor.exceptions import NotificationError
from src.monitor.formatters import (
    build_chat_ops_payload,
    build_sms_text,
    build_webhook_payload,
    render_email_html,
)
from src.monitor.types import AlertMessage

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels.

    ``send`` returns normally on delivery and raises NotificationError (or
    any transport exception) on failure; the dispatcher counts both.
    """

    name: str = "channel"
    min_level: AlertLevel = AlertLevel.INFO

    def accepts(self, msg: AlertMessage) -> bool:
        """Whether this channel delivers messages of *msg*'s level."""
        return msg.level.rank >= self.min_level.rank

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> None:
        """Deliver an alert message."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class HttpChannel(NotificationChannel):
    """Shared aiohttp session handling for HTTP-based channels."""

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _post(self, url: str, **kwargs: Any) -> None:
        session = self._get_session()
        try:
            async with session.post(url, **kwargs) as resp:
                if 200 <= resp.status < 300:
                    return
                body = await resp.text()
                raise NotificationError(
                    self.name,
                    f"HTTP {resp.status}: {body[:200]}",
                    kind=ErrorKind.EXTERNAL,
                )
        except aiohttp.ClientError as exc:
            raise NotificationError(self.name, str(exc), kind=ErrorKind.NETWORK) from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class EmailChannel(HttpChannel):
    """Delivers alerts through the SendGrid v3 mail-send API.

    Escalated alerts also go to the ``escalation_to`` recipients.
    """

    name = "email"

    def __init__(self, config: EmailConfig) -> None:
        super().__init__()
        self._config = config

    def recipients(self, msg: AlertMessage) -> list[str]:
        to = list(self._config.to)
        if msg.escalation:
            to.extend(a for a in self._config.escalation_to if a not in to)
        return to

    async def send(self, msg: AlertMessage) -> None:
        to = self.recipients(msg)
        if not to:
            raise NotificationError(
                self.name, "no recipients configured", kind=ErrorKind.CONFIGURATION,
            )
        payload = {
            "personalizations": [{"to": [{"email": addr} for addr in to]}],
            "from": {"email": self._config.from_address},
            "subject": msg.subject,
            "content": [{"type": "text/html", "value": render_email_html(msg)}],
        }
        headers = {
            "Authorization": f"Bearer {self._config.api_key.get_secret_value()}",
        }
        await self._post(self._config.api_url, json=payload, headers=headers)
        logger.debug("email_alert_sent", alert_id=msg.alert_id, recipients=len(to))


class ChatOpsChannel(HttpChannel):
    """Delivers alerts to a Slack-compatible incoming webhook."""

    name = "chat_ops"

    def __init__(self, config: ChatOpsConfig) -> None:
        super().__init__()
        self._config = config

    async def send(self, msg: AlertMessage) -> None:
        payload = build_chat_ops_payload(
            msg, channel=self._config.channel, username=self._config.username,
        )
        await self._post(self._config.webhook_url.get_secret_value(), json=payload)
        logger.debug("chat_ops_alert_sent", alert_id=msg.alert_id)


class WebhookChannel(HttpChannel):
    """POSTs the alert as JSON to a configured URL."""

    name = "webhook"

    def __init__(self, config: WebhookConfig) -> None:
        super().__init__()
        self._config = config

    async def send(self, msg: AlertMessage) -> None:
        await self._post(
            self._config.url.get_secret_value(), json=build_webhook_payload(msg),
        )
        logger.debug("webhook_alert_sent", alert_id=msg.alert_id)


class SmsChannel(HttpChannel):
    """Sends a short text per recipient via the Twilio Messages API.

    Reserved for critical alerts. Any recipient failing fails the channel.
    """

    name = "sms"
    min_level = AlertLevel.CRITICAL

    def __init__(self, config: SmsConfig) -> None:
        super().__init__()
        self._config = config

    async def send(self, msg: AlertMessage) -> None:
        if not self._config.to:
            raise NotificationError(
                self.name, "no recipients configured", kind=ErrorKind.CONFIGURATION,
            )
        url = (
            f"{self._config.api_base}/Accounts/"
            f"{self._config.account_sid}/Messages.json"
        )
        auth = aiohttp.BasicAuth(
            self._config.account_sid, self._config.auth_token.get_secret_value(),
        )
        text = build_sms_text(msg)
        for number in self._config.to:
            await self._post(
                url,
                data={"From": self._config.from_number, "To": number, "Body": text},
                auth=auth,
            )
        logger.debug("sms_alert_sent", alert_id=msg.alert_id, recipients=len(self._config.to))


def create_channels(config: NotificationsConfig) -> list[NotificationChannel]:
    """Build one channel per enabled entry in *config*."""
    channels: list[NotificationChannel] = []
    if config.email.enabled:
        channels.append(EmailChannel(config.email))
    if config.chat_ops.enabled:
        channels.append(ChatOpsChannel(config.chat_ops))
    if config.webhook.enabled:
        channels.append(WebhookChannel(config.webhook))
    if config.sms.enabled:
        channels.append(SmsChannel(config.sms))
    return channels
