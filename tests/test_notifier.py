from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone

import httpx
import pytest

from shop_monitor.config import MailConfig, TelegramConfig
from shop_monitor.errors import NotificationChannelFailure
from shop_monitor.notifications import channels as channels_mod
from shop_monitor.notifications.channels import (
    TELEGRAM_MAX_MESSAGE_LEN,
    MailChannel,
    TelegramChannel,
    WebhookChannel,
    build_channels,
    split_telegram_message,
)
from shop_monitor.notifications.messages import Severity, build_failure_message
from shop_monitor.notifications.notifier import Notifier


def _at() -> datetime:
    return datetime(2025, 1, 1, 8, 30, tzinfo=timezone.utc)


class _RecordingChannel:
    def __init__(self, name: str) -> None:
        self.name = name
        self.messages = []

    async def deliver(self, message) -> None:
        self.messages.append(message)


class _FailingChannel:
    name = "failing"

    async def deliver(self, message) -> None:
        raise NotificationChannelFailure(self.name, "connection refused")


class _HangingChannel:
    name = "hanging"

    async def deliver(self, message) -> None:
        await asyncio.sleep(5)


@pytest.mark.asyncio
async def test_failing_channel_does_not_block_others() -> None:
    first = _RecordingChannel("first")
    last = _RecordingChannel("last")
    notifier = Notifier([first, _FailingChannel(), _HangingChannel(), last], timeout=0.05)

    results = await notifier.notify("Subject", "Body", Severity.WARNING)

    assert results == {"first": True, "failing": False, "hanging": False, "last": True}
    assert len(first.messages) == 1
    assert len(last.messages) == 1
    assert last.messages[0].severity is Severity.WARNING


@pytest.mark.asyncio
async def test_webhook_without_url_is_noop() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        channel = WebhookChannel(client, None)
        await channel.post("hello")
        assert requests == []


@pytest.mark.asyncio
async def test_webhook_posts_text_payload() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    message = build_failure_message(site_name="Shop", site_url="https://shop.example", at=_at())
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await WebhookChannel(client, "https://hooks.example/T1").deliver(message)

    assert len(bodies) == 1
    assert set(bodies[0]) == {"text"}
    assert "Products missing." in bodies[0]["text"]
    assert "https://shop.example" in bodies[0]["text"]


@pytest.mark.asyncio
async def test_webhook_error_status_raises_channel_failure() -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as client:
        with pytest.raises(NotificationChannelFailure):
            await WebhookChannel(client, "https://hooks.example/T1").post("x")


class _FakeSMTP:
    sent: list = []

    def __init__(self, host, port, timeout=None) -> None:
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def starttls(self) -> None:
        pass

    def login(self, user, password) -> None:
        pass

    def send_message(self, msg) -> None:
        type(self).sent.append(msg)


@pytest.mark.asyncio
async def test_mail_channel_sends_to_each_recipient(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeSMTP.sent = []
    monkeypatch.setattr(channels_mod.smtplib, "SMTP", _FakeSMTP)
    config = MailConfig(smtp_host="smtp.local", sender="monitor@shop.example", recipients=["a@x.test", "b@x.test"])

    channel = MailChannel(config)
    assert channel.is_configured()
    await channel.deliver(build_failure_message(site_name="Shop", site_url="", at=_at()))

    assert [m["To"] for m in _FakeSMTP.sent] == ["a@x.test", "b@x.test"]
    assert _FakeSMTP.sent[0]["Subject"] == "⚠ Shop Issue Detected (Auto-Fix Started)"
    assert "Auto-recovery (cache flush) initiated." in _FakeSMTP.sent[0].get_content()


def test_mail_channel_wraps_smtp_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    class _RefusingSMTP(_FakeSMTP):
        def __init__(self, host, port, timeout=None) -> None:
            raise ConnectionRefusedError("refused")

    monkeypatch.setattr(channels_mod.smtplib, "SMTP", _RefusingSMTP)
    channel = MailChannel(MailConfig(smtp_host="smtp.local", recipients=["a@x.test"]))
    with pytest.raises(NotificationChannelFailure):
        channel.send("a@x.test", "s", "b")


@pytest.mark.asyncio
async def test_telegram_channel_redacts_token_on_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"cannot reach {request.url}")

    config = TelegramConfig(bot_token="123:SECRET", chat_id="42")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(NotificationChannelFailure) as excinfo:
            await TelegramChannel(client, config).deliver(
                build_failure_message(site_name="Shop", site_url="", at=_at())
            )

    assert "SECRET" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_build_channels_includes_only_configured_channels() -> None:
    async with httpx.AsyncClient() as client:
        names = [
            c.name
            for c in build_channels(client, mail=MailConfig(), webhook_url=None, telegram=TelegramConfig())
        ]
        assert names == ["webhook"]

        names = [
            c.name
            for c in build_channels(
                client,
                mail=MailConfig(smtp_host="smtp.local", recipients=["a@x.test"]),
                webhook_url="https://hooks.example/T1",
                telegram=TelegramConfig(bot_token="t", chat_id="1"),
            )
        ]
        assert names == ["mail", "webhook", "telegram"]


def test_split_telegram_message_respects_max_len() -> None:
    text = ("line\n" * 2000).strip()
    parts = split_telegram_message(text, max_len=500)
    assert len(parts) > 1
    assert all(0 < len(p) <= 500 for p in parts)

    parts = split_telegram_message("a" * (TELEGRAM_MAX_MESSAGE_LEN + 10))
    assert len(parts) == 2



@pytest.mark.asyncio
async def test_mail_timeout_applies_per_recipient(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: list[str] = []
    config = MailConfig(smtp_host="smtp.local", recipients=["a@x.test", "b@x.test", "c@x.test"])
    channel = MailChannel(config, timeout=1.0)

    def _slow_send(recipient: str, subject: str, body: str) -> None:
        time.sleep(0.3)
        sent.append(recipient)

    monkeypatch.setattr(channel, "send", _slow_send)
    # Three sends take longer than one notifier budget but each fits its own.
    notifier = Notifier([channel], timeout=0.5)

    results = await notifier.notify("Subject", "Body", Severity.CRITICAL)

    assert results == {"mail": True}
    assert sent == ["a@x.test", "b@x.test", "c@x.test"]


@pytest.mark.asyncio
async def test_slow_recipient_does_not_skip_the_rest(monkeypatch: pytest.MonkeyPatch) -> None:
    attempted: list[str] = []
    config = MailConfig(smtp_host="smtp.local", recipients=["a@x.test", "slow@x.test", "c@x.test"])
    channel = MailChannel(config, timeout=0.2)

    def _send(recipient: str, subject: str, body: str) -> None:
        attempted.append(recipient)
        if recipient == "slow@x.test":
            time.sleep(0.5)

    monkeypatch.setattr(channel, "send", _send)

    with pytest.raises(NotificationChannelFailure) as excinfo:
        await channel.deliver(build_failure_message(site_name="Shop", site_url="", at=_at()))

    assert attempted == ["a@x.test", "slow@x.test", "c@x.test"]
    assert "slow@x.test: timed out" in str(excinfo.value)
    assert "a@x.test" not in str(excinfo.value)


def test_mail_channel_uses_configured_smtp_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[float | None] = []

    class _TimeoutRecordingSMTP(_FakeSMTP):
        def __init__(self, host, port, timeout=None) -> None:
            seen.append(timeout)

    monkeypatch.setattr(channels_mod.smtplib, "SMTP", _TimeoutRecordingSMTP)
    channel = MailChannel(MailConfig(smtp_host="smtp.local", recipients=["a@x.test"]), timeout=4.0)
    channel.send("a@x.test", "s", "b")

    assert seen == [4.0]
