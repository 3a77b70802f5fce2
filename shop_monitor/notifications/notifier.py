"""Multi-channel alert dispatch."""

from __future__ import annotations

import asyncio

import structlog

from shop_monitor.notifications.channels import AlertChannel
from shop_monitor.notifications.messages import AlertMessage, Severity


logger = structlog.get_logger(__name__)


class Notifier:
    """Broadcasts alerts to every channel independently.

    A channel that fails or times out is logged and skipped; the remaining
    channels are still attempted.
    """

    def __init__(self, channels: list[AlertChannel], *, timeout: float = 5.0):
        self.channels = list(channels)
        self.timeout = timeout

    async def notify(self, subject: str, body: str, severity: Severity, *, text: str | None = None) -> dict[str, bool]:
        """Send to all channels; returns delivery success per channel name."""
        message = AlertMessage(subject=subject, body=body, severity=Severity(severity), text=text)
        results: dict[str, bool] = {}
        for channel in self.channels:
            results[channel.name] = await self._deliver(channel, message)

        logger.info(
            "Alert dispatched",
            subject=subject,
            severity=message.severity.value,
            delivered=[name for name, ok in results.items() if ok],
        )
        return results

    async def send(self, message: AlertMessage) -> dict[str, bool]:
        return await self.notify(message.subject, message.body, message.severity, text=message.text)

    async def _deliver(self, channel: AlertChannel, message: AlertMessage) -> bool:
        try:
            if getattr(channel, "bounds_own_timeout", False):
                await channel.deliver(message)
            else:
                await asyncio.wait_for(channel.deliver(message), timeout=self.timeout)
            return True
        except asyncio.TimeoutError:
            logger.error("Alert channel timed out", channel=channel.name, timeout=self.timeout)
        except Exception as e:
            logger.error("Failed to send alert", channel=channel.name, error=str(e))
        return False
