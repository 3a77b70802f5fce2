from __future__ import annotations

import hmac
from typing import Any

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request

from shop_monitor.config import MonitorConfig
from shop_monitor.engine.monitor_engine import MonitorEngine
from shop_monitor.scheduler.coordinator import MonitorCoordinator


logger = structlog.get_logger(__name__)


def _auth_header_token(req: Request) -> str:
    raw = req.headers.get("authorization") or ""
    if not raw:
        return ""
    parts = raw.split(None, 1)
    if len(parts) != 2:
        return ""
    scheme, rest = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer":
        return ""
    return rest


def get_config(req: Request) -> MonitorConfig:
    config: Any = getattr(req.app.state, "config", None)
    if not isinstance(config, MonitorConfig):
        raise RuntimeError("Monitor config not configured")
    return config


def get_coordinator(req: Request) -> MonitorCoordinator:
    coordinator = getattr(req.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="monitor_not_initialized")
    return coordinator


def get_engine(coordinator: MonitorCoordinator = Depends(get_coordinator)) -> MonitorEngine:
    return coordinator.engine


def require_admin(req: Request, config: MonitorConfig = Depends(get_config)) -> None:
    token = _auth_header_token(req)
    if not token:
        raise HTTPException(status_code=401, detail="missing_bearer_token")
    if not config.api.admin_token:
        raise HTTPException(status_code=503, detail="admin_token_not_configured")
    if not hmac.compare_digest(token.strip(), config.api.admin_token.strip()):
        raise HTTPException(status_code=403, detail="invalid_admin_token")


def create_app(
    config: MonitorConfig,
    coordinator: MonitorCoordinator | None = None,
    *,
    start_scheduler: bool = True,
) -> FastAPI:
    app = FastAPI(title="Shop Health Monitor", version="0.1.0")
    app.state.config = config
    app.state.coordinator = coordinator

    @app.on_event("startup")
    async def startup_event():
        if app.state.coordinator is None:
            app.state.coordinator = MonitorCoordinator(config)
        if start_scheduler:
            await app.state.coordinator.start()
        logger.info("Shop monitor API started")

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.coordinator is not None and start_scheduler:
            await app.state.coordinator.stop()
        logger.info("Shop monitor API stopped")

    @app.get("/")
    async def root():
        """Liveness endpoint."""
        return {"status": "healthy", "service": "shop-monitor"}

    @app.get("/status", dependencies=[Depends(require_admin)])
    async def get_status(coordinator: MonitorCoordinator = Depends(get_coordinator)):
        """Current shop status, cadence and the most recent events."""
        return coordinator.get_system_status()

    @app.get("/incidents", dependencies=[Depends(require_admin)])
    async def list_incidents(
        limit: int | None = Query(default=None, ge=1, le=20),
        engine: MonitorEngine = Depends(get_engine),
    ):
        entries = engine.journal.list_entries(limit)
        return {"count": len(entries), "incidents": [e.to_dict() for e in entries]}

    @app.post("/actions/run-check", dependencies=[Depends(require_admin)])
    async def run_check(engine: MonitorEngine = Depends(get_engine)):
        status = await engine.run_check_now()
        return {
            "message": "Manual check completed.",
            "status": status.value if status is not None else None,
            "skipped": status is None,
        }

    @app.post("/actions/test-alert", dependencies=[Depends(require_admin)])
    async def test_alert(engine: MonitorEngine = Depends(get_engine)):
        outcome = await engine.send_test_alert()
        return {
            "message": "Test alert sent.",
            "cache_backend": outcome.backend_name,
            "cache_flush_ok": outcome.ok,
        }

    return app
