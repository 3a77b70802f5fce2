from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from shop_monitor.state.store import StateStore


class HealthStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    UNKNOWN = "unknown"


def _coerce_status(value: Any) -> HealthStatus:
    try:
        return HealthStatus(str(value))
    except ValueError:
        return HealthStatus.UNKNOWN


def _coerce_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class MonitorState:
    current_status: HealthStatus = HealthStatus.UNKNOWN
    last_check_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_remediation_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        # "last_flush" is the persisted name of the remediation timestamp.
        return {
            "status": self.current_status.value,
            "last_check": _format_timestamp(self.last_check_at),
            "last_failure": _format_timestamp(self.last_failure_at),
            "last_flush": _format_timestamp(self.last_remediation_at),
        }

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> "MonitorState":
        return cls(
            current_status=_coerce_status(raw.get("status", HealthStatus.UNKNOWN.value)),
            last_check_at=_coerce_timestamp(raw.get("last_check")),
            last_failure_at=_coerce_timestamp(raw.get("last_failure")),
            last_remediation_at=_coerce_timestamp(raw.get("last_flush")),
        )


class MonitorStateCell:
    """Lock-guarded owner of the singleton MonitorState.

    All read-modify-write access goes through ``observe`` and
    ``try_transition`` so the main cycle and the recovery checker cannot
    both claim the same status edge.
    """

    def __init__(self, store: StateStore):
        self._store = store
        self._lock = threading.Lock()
        self._state = MonitorState.from_record(store.snapshot())

    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def status(self) -> HealthStatus:
        return self.state.current_status

    def _commit(self, state: MonitorState) -> None:
        self._state = state
        self._store.update(state.to_record())

    def observe(self, status: HealthStatus, *, at: datetime) -> HealthStatus:
        """Record a completed probe and return the status it replaced."""
        with self._lock:
            previous = self._state.current_status
            self._commit(replace(self._state, current_status=status, last_check_at=at))
            return previous

    def try_transition(self, expected: HealthStatus, new: HealthStatus, *, at: datetime | None = None) -> bool:
        """Compare-and-swap the status; returns False if it was not ``expected``."""
        with self._lock:
            if self._state.current_status is not expected:
                return False
            updated = replace(self._state, current_status=new)
            if at is not None:
                updated = replace(updated, last_check_at=at)
            self._commit(updated)
            return True

    def record_failure(self, at: datetime) -> None:
        with self._lock:
            self._commit(replace(self._state, last_failure_at=at))

    def record_remediation(self, at: datetime) -> None:
        with self._lock:
            self._commit(replace(self._state, last_remediation_at=at))
