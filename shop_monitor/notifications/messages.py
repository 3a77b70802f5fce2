from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AlertMessage:
    subject: str
    body: str
    severity: Severity
    # Short chat-style rendering for webhook/Telegram; defaults to subject + body.
    text: str | None = None

    def chat_text(self) -> str:
        if self.text:
            return self.text
        return f"*{self.subject}*\n{self.body}".strip()


def _fmt_time(at: datetime) -> str:
    return at.strftime("%Y-%m-%d %H:%M:%S")


def build_failure_message(*, site_name: str, site_url: str, at: datetime) -> AlertMessage:
    body = "\n".join(
        [
            "Zero sellable items detected.",
            "Auto-recovery (cache flush) initiated.",
            "",
            f"Time: {_fmt_time(at)}",
        ]
    )
    lines = [f"⚠ *{site_name} Issue Detected*", "Products missing.", "Auto-recovery started."]
    if site_url:
        lines.append(site_url)
    return AlertMessage(
        subject=f"⚠ {site_name} Issue Detected (Auto-Fix Started)",
        body=body,
        severity=Severity.CRITICAL,
        text="\n".join(lines),
    )


def build_recovery_message(*, site_name: str, at: datetime) -> AlertMessage:
    return AlertMessage(
        subject=f"✅ {site_name} Recovered",
        body=f"Products are visible again.\nTime: {_fmt_time(at)}",
        severity=Severity.INFO,
        text=f"✅ *{site_name} Recovered*\nProducts are visible again.",
    )


def build_immediate_recovery_message(*, site_name: str, at: datetime) -> AlertMessage:
    return AlertMessage(
        subject=f"✅ {site_name} Recovered Immediately",
        body=f"Products recovered immediately after cache flush.\nTime: {_fmt_time(at)}",
        severity=Severity.INFO,
        text="✅ *Immediate Recovery*\nProducts visible again after cache purge.",
    )


def build_test_message() -> AlertMessage:
    return AlertMessage(
        subject="[TEST] Shop Monitor Alert",
        body="This is a manual test alert.",
        severity=Severity.INFO,
        text="🧪 *TEST ALERT*\nManual test alert triggered.",
    )
