"""Wires the monitor components together and drives them from the scheduler."""

from typing import Optional

import httpx
import structlog

from ..config import MonitorConfig
from ..engine.monitor_engine import MonitorEngine
from ..notifications.channels import build_channels
from ..notifications.notifier import Notifier
from ..probe import HttpCatalogProbe
from ..remediation.backends import ObjectCacheBackend, build_backends
from ..remediation.remediator import Remediator
from ..reporting.incident_journal import IncidentJournal
from ..state.monitor_state import MonitorStateCell
from ..state.store import JsonFileStateStore, StateStore
from .job_scheduler import JobScheduler, RunOnceScheduler


logger = structlog.get_logger(__name__)

CYCLE_JOB_ID = "shop_monitor_cycle"


def build_engine(
    config: MonitorConfig,
    client: httpx.AsyncClient,
    scheduler: JobScheduler | RunOnceScheduler,
    store: Optional[StateStore] = None,
    object_cache: Optional[ObjectCacheBackend] = None,
) -> MonitorEngine:
    """Build a MonitorEngine from configuration."""
    store = store if store is not None else JsonFileStateStore(config.state_path)
    timeout = config.external_call_timeout_seconds

    remediator = Remediator(
        build_backends(config.remediation.backends, client, timeout=timeout),
        fallback=object_cache,
        timeout=timeout,
    )
    notifier = Notifier(
        build_channels(
            client,
            mail=config.mail,
            webhook_url=config.webhook.url,
            telegram=config.telegram,
            timeout=timeout,
        ),
        timeout=timeout,
    )

    return MonitorEngine(
        probe=HttpCatalogProbe.from_config(client, config.probe),
        state=MonitorStateCell(store),
        journal=IncidentJournal(store),
        remediator=remediator,
        notifier=notifier,
        scheduler=scheduler,
        site_name=config.site_name,
        site_url=config.site_url,
        check_interval_seconds=config.check_interval_seconds,
        recovery_delay_seconds=config.recovery_delay_seconds,
        probe_timeout=timeout,
        rearm_recovery_on_sustained_failure=config.rearm_recovery_on_sustained_failure,
    )


class MonitorCoordinator:
    """Owns the HTTP client, the scheduler and the engine for a running monitor."""

    def __init__(
        self,
        config: MonitorConfig,
        store: Optional[StateStore] = None,
        scheduler: Optional[JobScheduler | RunOnceScheduler] = None,
    ):
        self.config = config
        self.client = httpx.AsyncClient(timeout=config.external_call_timeout_seconds)
        self.scheduler = scheduler if scheduler is not None else JobScheduler()
        self.engine = build_engine(config, self.client, self.scheduler, store=store)

    async def start(self):
        """Start the scheduler and register the main check."""
        self.scheduler.add_interval_job(
            job_id=CYCLE_JOB_ID,
            func=self.run_scheduled_cycle,
            seconds=self.config.check_interval_seconds,
            description="Shop health check",
            run_immediately=True,
        )
        await self.scheduler.start()
        logger.info("Monitor coordinator started", interval_seconds=self.config.check_interval_seconds)

    async def stop(self):
        """Stop the scheduler and release the HTTP client."""
        await self.scheduler.stop()
        await self.client.aclose()
        logger.info("Monitor coordinator stopped")

    async def run_scheduled_cycle(self):
        # Scheduled jobs must never take the host down.
        try:
            await self.engine.run_cycle()
        except Exception as e:
            logger.error("Shop check cycle failed", error=str(e))

    def get_system_status(self):
        status = self.engine.snapshot()
        status["jobs"] = self.scheduler.list_jobs()
        return status
