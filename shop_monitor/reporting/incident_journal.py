"""Bounded incident journal for the shop monitor."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from shop_monitor.state.store import StateStore


logger = structlog.get_logger(__name__)

JOURNAL_CAPACITY = 20
JOURNAL_KEY = "incident_log"


class IncidentKind(str, Enum):
    FAILURE = "failure"
    RECOVERY = "recovery"
    INFO = "info"
    TEST = "test"


@dataclass(frozen=True)
class IncidentEntry:
    """One journal event. Immutable once created."""

    timestamp: datetime
    kind: IncidentKind
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IncidentEntry":
        return cls(
            timestamp=datetime.fromisoformat(str(data["time"])),
            kind=IncidentKind(str(data["kind"])),
            message=str(data.get("message") or ""),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentJournal:
    """Newest-first log of state changes, capped at ``JOURNAL_CAPACITY`` entries."""

    def __init__(self, store: StateStore, clock: Optional[Callable[[], datetime]] = None):
        self._store = store
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._entries: list[IncidentEntry] = self._load()

    def _load(self) -> list[IncidentEntry]:
        raw = self._store.get(JOURNAL_KEY, [])
        if not isinstance(raw, list):
            return []

        entries = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(IncidentEntry.from_dict(item))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping malformed journal entry", error=str(e))
        return entries[:JOURNAL_CAPACITY]

    def append(self, kind: IncidentKind, message: str) -> IncidentEntry:
        """Prepend an entry and evict anything past the capacity.

        This is the only mutator; the prepend, truncation and persist happen
        under one lock.
        """
        entry = IncidentEntry(timestamp=self._clock(), kind=IncidentKind(kind), message=message)
        with self._lock:
            self._entries = [entry, *self._entries][:JOURNAL_CAPACITY]
            self._store.update({JOURNAL_KEY: [e.to_dict() for e in self._entries]})

        logger.info("Logged incident", kind=entry.kind.value, message=message)
        return entry

    def list_entries(self, limit: Optional[int] = None) -> list[IncidentEntry]:
        """Return entries newest-first; ``limit`` takes a prefix without mutating the log."""
        with self._lock:
            entries = list(self._entries)
        if limit is not None:
            entries = entries[: max(0, int(limit))]
        return entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
