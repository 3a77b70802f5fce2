"""Configuration management for the shop monitor."""

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field


DEFAULT_CONFIG_PATH = "config/shop_monitor.yaml"


class ProbeConfig(BaseModel):
    """Catalog probe configuration."""
    catalog_url: Optional[str] = Field(default=None, description="Catalog listing endpoint to probe")
    params: Dict[str, str] = Field(
        default_factory=lambda: {"status": "publish", "limit": "1"},
        description="Query parameters; keep the result size bounded to one item",
    )
    items_key: Optional[str] = Field(default=None, description="Key holding the item list in a JSON object response")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers (e.g. auth)")


class MailConfig(BaseModel):
    """SMTP alert channel configuration."""
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host; mail is disabled when unset")
    smtp_port: int = Field(default=25, description="SMTP server port")
    use_starttls: bool = Field(default=False, description="Upgrade the connection with STARTTLS")
    username: Optional[str] = Field(default=None, description="SMTP login user")
    password: Optional[str] = Field(default=None, description="SMTP login password")
    sender: str = Field(default="shop-monitor@localhost", description="From address")
    recipients: list[str] = Field(default_factory=list, description="Alert recipients")


class WebhookConfig(BaseModel):
    """Slack-style incoming webhook configuration."""
    url: Optional[str] = Field(default=None, description="Webhook URL; the channel is a no-op when unset")


class TelegramConfig(BaseModel):
    """Telegram bot channel configuration."""
    bot_token: Optional[str] = Field(default=None, description="Telegram bot token")
    chat_id: Optional[str] = Field(default=None, description="Telegram chat ID")


class RemediationBackendConfig(BaseModel):
    """One cache-invalidation backend, listed in priority order."""
    kind: str = Field(description="http_purge, command or directory")
    name: Optional[str] = Field(default=None, description="Name reported in the incident journal")
    url: Optional[str] = Field(default=None, description="Purge URL (http_purge)")
    method: str = Field(default="PURGE", description="HTTP method for the purge request (http_purge)")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra purge request headers (http_purge)")
    command: list[str] = Field(default_factory=list, description="Flush command argv (command)")
    path: Optional[str] = Field(default=None, description="Cache directory to empty (directory)")


class RemediationConfig(BaseModel):
    """Remediation configuration."""
    backends: list[RemediationBackendConfig] = Field(default_factory=list)


class ApiConfig(BaseModel):
    """Administrative API configuration."""
    admin_token: str = Field(default="", description="Bearer token required for admin actions")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")


class MonitorConfig(BaseModel):
    """Main configuration for the shop monitor."""

    site_url: str = Field(default="", description="Public shop URL included in alerts")
    site_name: str = Field(default="Shop", description="Shop name used in alert subjects")
    log_level: str = Field(default="INFO", description="Logging level")

    # Scheduling
    check_interval_seconds: int = Field(default=60, description="Main check cadence")
    recovery_delay_seconds: int = Field(default=10, description="Delay before the one-shot recovery check")
    rearm_recovery_on_sustained_failure: bool = Field(
        default=True,
        description="Arm a new recovery check on every empty observation when none is pending",
    )
    external_call_timeout_seconds: float = Field(default=5.0, description="Timeout for probe, flush and alert calls")

    # Persistence
    state_path: str = Field(default="data/state.json", description="JSON state file")

    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    remediation: RemediationConfig = Field(default_factory=RemediationConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


def _set_nested(data: dict, dotted_key: str, value) -> None:
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def load_config(config_path: Optional[str] = None) -> MonitorConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("SHOP_MONITOR_CONFIG", DEFAULT_CONFIG_PATH)

    config_data = {}

    # Load from file if exists
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    if not isinstance(config_data, dict):
        raise ValueError("Config YAML must be a mapping")

    # Override with environment variables
    env_overrides = {
        "log_level": os.getenv("LOG_LEVEL"),
        "state_path": os.getenv("SHOP_MONITOR_STATE_PATH"),
        "probe.catalog_url": os.getenv("SHOP_MONITOR_CATALOG_URL"),
        "webhook.url": os.getenv("SHOP_MONITOR_WEBHOOK_URL"),
        "telegram.bot_token": os.getenv("TELEGRAM_BOT_TOKEN"),
        "telegram.chat_id": os.getenv("TELEGRAM_CHAT_ID"),
        "api.admin_token": os.getenv("SHOP_MONITOR_ADMIN_TOKEN"),
        "mail.recipients": os.getenv("SHOP_MONITOR_ALERT_EMAIL"),
    }

    for key, value in env_overrides.items():
        if value is None:
            continue
        if key == "mail.recipients":
            value = [addr.strip() for addr in value.split(",") if addr.strip()]
        _set_nested(config_data, key, value)

    return MonitorConfig(**config_data)


def get_config() -> MonitorConfig:
    """Get the global configuration instance."""
    return load_config()
