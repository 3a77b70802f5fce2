from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from shop_monitor.config import load_config
from shop_monitor.remediation.backends import build_backends


_ENV_VARS = (
    "LOG_LEVEL",
    "SHOP_MONITOR_STATE_PATH",
    "SHOP_MONITOR_CATALOG_URL",
    "SHOP_MONITOR_WEBHOOK_URL",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "SHOP_MONITOR_ADMIN_TOKEN",
    "SHOP_MONITOR_ALERT_EMAIL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.check_interval_seconds == 60
    assert config.recovery_delay_seconds == 10
    assert config.probe.params == {"status": "publish", "limit": "1"}
    assert config.webhook.url is None
    assert config.remediation.backends == []


def test_yaml_values_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "shop.yaml"
    path.write_text(
        "\n".join(
            [
                "site_name: Demo",
                "webhook:",
                "  url: https://hooks.example/from-file",
                "mail:",
                "  smtp_host: smtp.local",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("SHOP_MONITOR_WEBHOOK_URL", "https://hooks.example/from-env")
    monkeypatch.setenv("SHOP_MONITOR_ALERT_EMAIL", "ops@shop.test, owner@shop.test")
    monkeypatch.setenv("SHOP_MONITOR_ADMIN_TOKEN", "tok")

    config = load_config(str(path))

    assert config.site_name == "Demo"
    assert config.webhook.url == "https://hooks.example/from-env"
    assert config.mail.smtp_host == "smtp.local"
    assert config.mail.recipients == ["ops@shop.test", "owner@shop.test"]
    assert config.api.admin_token == "tok"


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


@pytest.mark.asyncio
async def test_example_config_builds_backends_in_order() -> None:
    config_path = Path(__file__).resolve().parents[1] / "config" / "shop_monitor.yaml"
    config = load_config(str(config_path))

    async with httpx.AsyncClient() as client:
        backends = build_backends(config.remediation.backends, client)

    assert [b.name for b in backends] == ["Varnish", "WP-CLI", "Page Cache Directory"]
    # No purge URL configured in the example, so the proxy is not detected.
    assert backends[0].detect() is False
