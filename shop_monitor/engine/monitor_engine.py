from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import structlog

from shop_monitor.engine.recovery_checker import RecoveryChecker
from shop_monitor.errors import SubsystemUnavailable
from shop_monitor.notifications.messages import (
    build_failure_message,
    build_recovery_message,
    build_test_message,
)
from shop_monitor.notifications.notifier import Notifier
from shop_monitor.probe import CatalogProbe, probe_health
from shop_monitor.remediation.remediator import RemediationOutcome, Remediator
from shop_monitor.reporting.incident_journal import IncidentJournal, IncidentKind
from shop_monitor.state.monitor_state import HealthStatus, MonitorStateCell


logger = structlog.get_logger(__name__)

RECOVERY_JOB_ID = "shop_monitor_recovery_check"


class OneShotScheduler(Protocol):
    def is_pending(self, job_id: str) -> bool: ...

    def schedule_once(
        self,
        job_id: str,
        func: Callable,
        delay_seconds: float,
        description: Optional[str] = None,
    ) -> bool: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MonitorEngine:
    """Edge-triggered shop health state machine.

    Each ``run_cycle`` probes the catalog once and compares the verdict with
    the previous status:

    * into ``empty``: journal, alert, flush cache, arm a recovery check
    * ``empty`` to ``ok``: journal and alert the recovery
    * anything else is silent

    A sustained ``empty`` does not re-alert. When
    ``rearm_recovery_on_sustained_failure`` is set it arms a fresh recovery
    check if none is pending.
    """

    def __init__(
        self,
        *,
        probe: CatalogProbe,
        state: MonitorStateCell,
        journal: IncidentJournal,
        remediator: Remediator,
        notifier: Notifier,
        scheduler: OneShotScheduler,
        site_name: str = "Shop",
        site_url: str = "",
        check_interval_seconds: int = 60,
        recovery_delay_seconds: float = 10,
        probe_timeout: float = 5.0,
        rearm_recovery_on_sustained_failure: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.probe = probe
        self.state = state
        self.journal = journal
        self.remediator = remediator
        self.notifier = notifier
        self.scheduler = scheduler
        self.site_name = site_name
        self.site_url = site_url
        self.check_interval_seconds = check_interval_seconds
        self.recovery_delay_seconds = recovery_delay_seconds
        self.probe_timeout = probe_timeout
        self.rearm_recovery_on_sustained_failure = rearm_recovery_on_sustained_failure
        self.clock = clock or _utcnow
        self.recovery_checker = RecoveryChecker(
            probe=probe,
            state=state,
            journal=journal,
            notifier=notifier,
            site_name=site_name,
            probe_timeout=probe_timeout,
            clock=self.clock,
        )

    async def run_cycle(self) -> HealthStatus | None:
        """Run one main-cadence check. Returns the observed status, or None if skipped."""
        try:
            healthy = await probe_health(self.probe, timeout=self.probe_timeout)
        except SubsystemUnavailable as e:
            logger.info("Catalog subsystem unavailable, skipping cycle", reason=str(e))
            return None

        current = HealthStatus.OK if healthy else HealthStatus.EMPTY
        now = self.clock()
        previous = self.state.observe(current, at=now)
        logger.info("Shop check completed", status=current.value, previous=previous.value)

        if current is HealthStatus.EMPTY:
            if previous is not HealthStatus.EMPTY:
                await self._handle_failure(now)
            elif self.rearm_recovery_on_sustained_failure:
                self.arm_recovery_check()
            return current

        if previous is HealthStatus.EMPTY:
            self.journal.append(IncidentKind.RECOVERY, "Recovered on next scheduled check.")
            await self.notifier.send(build_recovery_message(site_name=self.site_name, at=now))

        return current

    async def _handle_failure(self, now: datetime) -> None:
        self.state.record_failure(now)
        self.journal.append(IncidentKind.FAILURE, "Zero products detected. Auto-recovery started.")

        # Alert first, even if the flush below fixes it.
        await self.notifier.send(
            build_failure_message(site_name=self.site_name, site_url=self.site_url, at=now)
        )

        await self.flush_cache()
        self.state.record_remediation(self.clock())
        self.arm_recovery_check()

    async def flush_cache(self) -> RemediationOutcome:
        outcome = await self.remediator.remediate()
        message = f"Cache flushed: {outcome.backend_name}"
        if not outcome.ok:
            message += f" (failed: {outcome.error})"
        self.journal.append(IncidentKind.INFO, message)
        return outcome

    def arm_recovery_check(self) -> bool:
        """Arm the one-shot recovery check unless one is already pending."""
        return self.scheduler.schedule_once(
            RECOVERY_JOB_ID,
            self.run_recovery_check,
            self.recovery_delay_seconds,
            description="Shop recovery check",
        )

    async def run_recovery_check(self) -> bool:
        try:
            return await self.recovery_checker.run()
        except Exception as e:
            logger.error("Recovery check failed", error=str(e))
            return False

    async def run_check_now(self) -> HealthStatus | None:
        """Manual "run check now" action."""
        logger.info("Manual check requested")
        return await self.run_cycle()

    async def send_test_alert(self) -> RemediationOutcome:
        """Manual test alert: journal, flush and message every channel. Status is untouched."""
        self.journal.append(IncidentKind.TEST, "Manual test alert triggered.")
        outcome = await self.flush_cache()
        await self.notifier.send(build_test_message())
        return outcome

    def snapshot(self, recent: int = 3) -> dict[str, Any]:
        state = self.state.state

        def _fmt(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "status": state.current_status.value,
            "check_interval_seconds": self.check_interval_seconds,
            "last_check": _fmt(state.last_check_at),
            "last_failure": _fmt(state.last_failure_at),
            "last_flush": _fmt(state.last_remediation_at),
            "recovery_check_pending": self.scheduler.is_pending(RECOVERY_JOB_ID),
            "recent_events": [entry.to_dict() for entry in self.journal.list_entries(recent)],
        }
