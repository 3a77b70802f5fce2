from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog

from shop_monitor.errors import SubsystemUnavailable
from shop_monitor.notifications.messages import build_immediate_recovery_message
from shop_monitor.notifications.notifier import Notifier
from shop_monitor.probe import CatalogProbe, probe_health
from shop_monitor.reporting.incident_journal import IncidentJournal, IncidentKind
from shop_monitor.state.monitor_state import HealthStatus, MonitorStateCell


logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecoveryChecker:
    """One-shot re-probe armed shortly after a failure-triggered cache flush.

    It only ever moves ``empty`` to ``ok``. If the main cycle already saw the
    recovery, the compare-and-swap fails and nothing is logged or sent. A
    still-empty result is left for the main cadence.
    """

    def __init__(
        self,
        *,
        probe: CatalogProbe,
        state: MonitorStateCell,
        journal: IncidentJournal,
        notifier: Notifier,
        site_name: str = "Shop",
        probe_timeout: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self.probe = probe
        self.state = state
        self.journal = journal
        self.notifier = notifier
        self.site_name = site_name
        self.probe_timeout = probe_timeout
        self.clock = clock or _utcnow

    async def run(self) -> bool:
        """Returns True if this check closed out the incident."""
        if self.state.status is not HealthStatus.EMPTY:
            logger.debug("Recovery check skipped, status not empty", status=self.state.status.value)
            return False

        try:
            healthy = await probe_health(self.probe, timeout=self.probe_timeout)
        except SubsystemUnavailable:
            logger.info("Catalog subsystem unavailable, skipping recovery check")
            return False

        if not healthy:
            logger.info("Recovery check still sees an empty catalog")
            return False

        now = self.clock()
        if not self.state.try_transition(HealthStatus.EMPTY, HealthStatus.OK, at=now):
            logger.info("Recovery already recorded by main cycle")
            return False

        self.journal.append(IncidentKind.RECOVERY, "Immediate recovery after cache flush.")
        await self.notifier.send(build_immediate_recovery_message(site_name=self.site_name, at=now))
        return True
