"""Persisted monitor state."""

from .monitor_state import HealthStatus, MonitorState, MonitorStateCell
from .store import JsonFileStateStore, StateStore

__all__ = ["HealthStatus", "MonitorState", "MonitorStateCell", "StateStore", "JsonFileStateStore"]
