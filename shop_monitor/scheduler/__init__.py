"""Scheduler module for driving the monitor."""

from .coordinator import MonitorCoordinator, build_engine
from .job_scheduler import JobScheduler, RunOnceScheduler

__all__ = ["JobScheduler", "MonitorCoordinator", "RunOnceScheduler", "build_engine"]
