from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Protocol

import httpx
import structlog

from shop_monitor.config import MailConfig, TelegramConfig
from shop_monitor.errors import NotificationChannelFailure
from shop_monitor.notifications.messages import AlertMessage


logger = structlog.get_logger(__name__)

TELEGRAM_MAX_MESSAGE_LEN = 3900


class AlertChannel(Protocol):
    name: str

    async def deliver(self, message: AlertMessage) -> None:
        """Send one alert. Raises NotificationChannelFailure on error."""
        ...


class MailChannel:
    """Plain-text SMTP alerts to every configured recipient.

    Each recipient is a separate SMTP call bounded by ``timeout``, so the
    notifier does not wrap the whole channel in a single deadline.
    """

    name = "mail"
    bounds_own_timeout = True

    def __init__(self, config: MailConfig, *, timeout: float = 15.0):
        self.config = config
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.config.smtp_host and self.config.recipients)

    def build_email(self, recipient: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.config.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body, charset="utf-8")
        return msg

    def send(self, recipient: str, subject: str, body: str) -> None:
        msg = self.build_email(recipient, subject, body)
        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=self.timeout) as smtp:
                if self.config.use_starttls:
                    smtp.starttls()
                if self.config.username:
                    smtp.login(self.config.username, self.config.password or "")
                smtp.send_message(msg)
        except (OSError, smtplib.SMTPException) as e:
            raise NotificationChannelFailure(self.name, f"{type(e).__name__}: {e}") from e

    async def deliver(self, message: AlertMessage) -> None:
        failures = []
        for recipient in self.config.recipients:
            try:
                await asyncio.wait_for(
                    asyncio.to_thread(self.send, recipient, message.subject, message.body),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Mail send timed out", recipient=recipient, timeout=self.timeout)
                failures.append(f"{recipient}: timed out")
            except NotificationChannelFailure as e:
                failures.append(f"{recipient}: {e}")
        if failures:
            raise NotificationChannelFailure(self.name, "; ".join(failures))


class WebhookChannel:
    """Slack-style incoming webhook: ``POST {"text": ...}``.

    A missing URL makes the channel a silent no-op.
    """

    name = "webhook"

    def __init__(self, client: httpx.AsyncClient, url: str | None):
        self.client = client
        self.url = (url or "").strip()

    async def post(self, text: str) -> None:
        if not self.url:
            return
        try:
            resp = await self.client.post(self.url, json={"text": text}, timeout=15.0)
        except httpx.HTTPError as e:
            raise NotificationChannelFailure(self.name, f"{type(e).__name__}: {e}") from e
        if resp.status_code >= 400:
            raise NotificationChannelFailure(self.name, f"webhook returned {resp.status_code}")

    async def deliver(self, message: AlertMessage) -> None:
        await self.post(message.chat_text())


def split_telegram_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        chunk = s[:cut].rstrip()
        parts.append(chunk)
        s = s[cut:].lstrip()
    return parts


class TelegramChannel:
    """Telegram Bot API alerts, chunked below the message size limit."""

    name = "telegram"

    def __init__(self, client: httpx.AsyncClient, config: TelegramConfig):
        self.client = client
        self.config = config

    def is_configured(self) -> bool:
        return bool(self.config.bot_token and self.config.chat_id)

    def _redact(self, text: str) -> str:
        if self.config.bot_token:
            return text.replace(self.config.bot_token, "<redacted>")
        return text

    async def _send_part(self, text: str) -> None:
        url = f"https://api.telegram.org/bot{self.config.bot_token}/sendMessage"
        payload = {"chat_id": self.config.chat_id, "text": text}
        try:
            resp = await self.client.post(url, json=payload, timeout=15.0)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationChannelFailure(self.name, self._redact(f"{type(e).__name__}: {e}")) from e
        if not (isinstance(data, dict) and data.get("ok")):
            description = data.get("description") if isinstance(data, dict) else None
            raise NotificationChannelFailure(self.name, f"telegram rejected message: {description or resp.status_code}")

    async def deliver(self, message: AlertMessage) -> None:
        for part in split_telegram_message(message.chat_text()):
            await self._send_part(part)


def build_channels(
    client: httpx.AsyncClient,
    *,
    mail: MailConfig,
    webhook_url: str | None,
    telegram: TelegramConfig,
    timeout: float = 15.0,
) -> list[AlertChannel]:
    channels: list[AlertChannel] = []

    mail_channel = MailChannel(mail, timeout=timeout)
    if mail_channel.is_configured():
        channels.append(mail_channel)
    else:
        logger.warning("Mail channel not configured, skipping")

    # The webhook channel is always present; it no-ops without a URL.
    channels.append(WebhookChannel(client, webhook_url))

    telegram_channel = TelegramChannel(client, telegram)
    if telegram_channel.is_configured():
        channels.append(telegram_channel)

    return channels
