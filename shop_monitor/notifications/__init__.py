"""Alert channels and message construction."""

from .channels import MailChannel, TelegramChannel, WebhookChannel, build_channels, split_telegram_message
from .messages import AlertMessage, Severity
from .notifier import Notifier

__all__ = [
    "AlertMessage",
    "MailChannel",
    "Notifier",
    "Severity",
    "TelegramChannel",
    "WebhookChannel",
    "build_channels",
    "split_telegram_message",
]
