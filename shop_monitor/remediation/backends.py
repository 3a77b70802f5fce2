from __future__ import annotations

import asyncio
import shutil
import threading
from pathlib import Path
from typing import Callable, Protocol

import httpx
import structlog

from shop_monitor.config import RemediationBackendConfig
from shop_monitor.errors import RemediationBackendFailure


logger = structlog.get_logger(__name__)


class RemediationBackend(Protocol):
    name: str

    def detect(self) -> bool:
        """True if this caching layer is present in the hosting environment."""
        ...

    async def invalidate(self) -> None:
        """Flush the cache. Raises RemediationBackendFailure on error."""
        ...


class HttpPurgeBackend:
    """Purge a reverse proxy or CDN cache with a single HTTP request."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str | None,
        *,
        name: str = "HTTP Purge",
        method: str = "PURGE",
        headers: dict[str, str] | None = None,
    ):
        self.client = client
        self.url = (url or "").strip()
        self.name = name
        self.method = (method or "PURGE").upper()
        self.headers = dict(headers or {})

    def detect(self) -> bool:
        return bool(self.url)

    async def invalidate(self) -> None:
        try:
            resp = await self.client.request(self.method, self.url, headers=self.headers)
        except httpx.HTTPError as e:
            raise RemediationBackendFailure(self.name, f"{type(e).__name__}: {e}") from e
        if resp.status_code >= 400:
            raise RemediationBackendFailure(self.name, f"purge returned {resp.status_code}")


class CommandBackend:
    """Run a cache-flush CLI such as ``wp cache flush`` or ``redis-cli FLUSHALL``.

    The child process is killed when it overruns ``timeout`` or when the
    caller cancels the flush.
    """

    def __init__(self, command: list[str], *, name: str | None = None, timeout: float = 30.0):
        if not command:
            raise ValueError("command backend requires a non-empty command")
        self.command = list(command)
        self.name = name or Path(self.command[0]).name
        self.timeout = timeout

    def detect(self) -> bool:
        return shutil.which(self.command[0]) is not None

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
        logger.warning("Cache flush command killed", backend=self.name, pid=proc.pid)

    async def invalidate(self) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RemediationBackendFailure(self.name, f"{type(e).__name__}: {e}") from e

        try:
            _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise RemediationBackendFailure(self.name, f"timed out after {self.timeout}s")
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            message = (stderr or b"").decode("utf-8", errors="replace").strip()[:300]
            raise RemediationBackendFailure(self.name, f"exit code {proc.returncode}: {message}")


class DirectoryCacheBackend:
    """Empty a filesystem page cache directory, keeping the directory itself."""

    def __init__(self, path: str | Path, *, name: str = "Page Cache Directory"):
        self.path = Path(path)
        self.name = name

    def detect(self) -> bool:
        return self.path.is_dir()

    def _clear(self) -> None:
        try:
            for child in self.path.iterdir():
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
        except OSError as e:
            raise RemediationBackendFailure(self.name, f"{type(e).__name__}: {e}") from e

    async def invalidate(self) -> None:
        await asyncio.to_thread(self._clear)


class ObjectCacheBackend:
    """Generic fallback: clears in-process caches registered with it.

    Always detected, so a remediation attempt always selects a backend.
    """

    def __init__(self, name: str = "Object Cache"):
        self.name = name
        self._lock = threading.Lock()
        self._clearers: list[Callable[[], object]] = []

    def register(self, clearer: Callable[[], object]) -> None:
        """Register a cache clear callable (e.g. ``dict.clear`` or ``fn.cache_clear``)."""
        with self._lock:
            self._clearers.append(clearer)

    def detect(self) -> bool:
        return True

    async def invalidate(self) -> None:
        with self._lock:
            clearers = list(self._clearers)

        errors = []
        for clear in clearers:
            try:
                clear()
            except Exception as e:
                errors.append(f"{type(e).__name__}: {e}")
        if errors:
            raise RemediationBackendFailure(self.name, "; ".join(errors))


def build_backends(
    configs: list[RemediationBackendConfig],
    client: httpx.AsyncClient,
    *,
    timeout: float = 30.0,
) -> list[RemediationBackend]:
    """Build backends from config, preserving priority order.

    ``timeout`` bounds each flush command run.
    """
    backends: list[RemediationBackend] = []
    for cfg in configs:
        kind = (cfg.kind or "").strip().lower()
        if kind == "http_purge":
            backends.append(
                HttpPurgeBackend(client, cfg.url, name=cfg.name or "HTTP Purge", method=cfg.method, headers=cfg.headers)
            )
        elif kind == "command":
            backends.append(CommandBackend(cfg.command, name=cfg.name, timeout=timeout))
        elif kind == "directory":
            if not cfg.path:
                raise ValueError("directory backend requires a path")
            backends.append(DirectoryCacheBackend(cfg.path, name=cfg.name or "Page Cache Directory"))
        else:
            raise ValueError(f"Unknown remediation backend kind: {cfg.kind!r}")
    return backends
