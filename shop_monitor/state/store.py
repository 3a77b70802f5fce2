from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any

import structlog


logger = structlog.get_logger(__name__)


class StateStore:
    """Key/value holder for the monitor's persisted state.

    The base class keeps everything in memory; ``JsonFileStateStore`` adds
    durable storage. ``update`` merges a batch of keys as one write.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._lock = threading.Lock()
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(key, default))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)

    def update(self, values: dict[str, Any]) -> None:
        with self._lock:
            self._data.update(copy.deepcopy(values))
            self._persist(self._data)

    def _persist(self, data: dict[str, Any]) -> None:
        return None


def _write_state_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def _read_state(path: Path) -> dict[str, Any]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except Exception as exc:
        logger.warning("Failed to read state file", path=str(path), error=str(exc))
        return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring state file with unexpected shape", path=str(path))
        return {}
    return raw


class JsonFileStateStore(StateStore):
    """State store backed by a single JSON document written atomically."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(_read_state(self.path))

    def _persist(self, data: dict[str, Any]) -> None:
        try:
            _write_state_atomic(self.path, data)
        except OSError as exc:
            # In-memory state stays authoritative; the next write retries.
            logger.error("Failed to write state file", path=str(self.path), error=str(exc))
